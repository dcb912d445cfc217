"""Deterministic hashing for alerts, cache keys and generated ids."""
import hashlib
import json
import time
import uuid

MINUTE_MS = 60_000


def stable_hash(value: str) -> str:
    """Non-cryptographic, deterministic digest of a string."""
    return hashlib.md5(str(value).encode("utf-8")).hexdigest()


def truncate_to_minute(timestamp) -> int:
    """Floor an epoch-millisecond timestamp to its minute."""
    if not timestamp:
        return 0
    return int(timestamp) // MINUTE_MS * MINUTE_MS


def _or_timestamp(value, alert):
    return alert.timestamp if value is None else value


def fingerprint_components(alert) -> tuple:
    """Fields that identify an alert for exact-duplicate detection."""
    return (
        alert.equipamento,
        alert.rule_id,
        alert.event_identifier or alert.event_type,
        truncate_to_minute(_or_timestamp(alert.first_occurrence, alert)),
        truncate_to_minute(_or_timestamp(alert.last_occurrence, alert)),
        bool(alert.consolidated),
        alert.severity,
    )


def alert_fingerprint(alert=None, components=None) -> str:
    """Hash of an alert's identifying fields. Pass precomputed components to skip extraction."""
    if components is None:
        components = fingerprint_components(alert)
    return stable_hash("|".join(str(c) for c in components))


def payload_hash(payload) -> str:
    """Hash an arbitrary JSON-like payload independent of key order."""
    raw = json.dumps(payload, sort_keys=True, default=str)
    return stable_hash(raw)


def unique_id(prefix="id") -> str:
    """Time-prefixed random id, e.g. ``alert_1718000000000_3f9a1c2b0``."""
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"
