"""String similarity helpers used for fuzzy alert comparison."""
import re

_NUMBERS = re.compile(r"\d+")
_WHITESPACE = re.compile(r"\s+")
NUMBER_TOKEN = "<num>"


def normalize_message(message):
    """Lower-case, replace digit runs with a placeholder, collapse whitespace."""
    text = str(message).lower()
    text = _NUMBERS.sub(NUMBER_TOKEN, text)
    return _WHITESPACE.sub(" ", text).strip()


def levenshtein_distance(a, b):
    """Edit distance between two strings (insert/delete/substitute cost 1)."""
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            if ca == cb:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(previous[j - 1], previous[j], current[j - 1]))
        previous = current
    return previous[-1]


def string_similarity(a, b):
    """1 - distance / longest length; two empty strings are identical."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein_distance(a, b) / longest


def message_similarity(msg1, msg2):
    """Similarity of two alert messages after normalization. Missing message scores 0."""
    if not msg1 or not msg2:
        return 0.0
    norm1 = normalize_message(msg1)
    norm2 = normalize_message(msg2)
    if norm1 == norm2:
        return 1.0
    return string_similarity(norm1, norm2)
