"""Leaf operator dispatch and recursive condition-tree evaluation."""
import logging
import re

from models.enums import ConditionType, Logic
from models.rules import Group

logger = logging.getLogger("equipalert.alerts.conditions")

NUMERIC_OPERATORS = {
    ">": lambda v, t: v > t,
    "<": lambda v, t: v < t,
    ">=": lambda v, t: v >= t,
    "<=": lambda v, t: v <= t,
    "=": lambda v, t: v == t,
    "==": lambda v, t: v == t,
    "!=": lambda v, t: v != t,
}

# Operators accepted on tree leaves
TREE_NUMERIC_OPERATORS = {">", "<", ">=", "<=", "="}
TEXT_OPERATORS = {"equals", "not_equals", "contains", "starts_with", "ends_with", "regex"}
MEMBERSHIP_OPERATORS = {"in", "not_in"}
TREE_OPERATORS = TREE_NUMERIC_OPERATORS | TEXT_OPERATORS | MEMBERSHIP_OPERATORS

# Operators that must hold for every group an equipment belongs to
NEGATED_OPERATORS = {"not_equals", "not_in"}


def to_number(value):
    """Coerce to float, or None when the value is not numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def compare_numeric(actual, operator, expected):
    func = NUMERIC_OPERATORS.get(operator)
    if func is None:
        logger.warning(f"Unknown numeric operator: {operator}")
        return False
    a, b = to_number(actual), to_number(expected)
    if a is None or b is None:
        return False
    return func(a, b)


def compare(actual, operator, expected):
    """Apply a leaf operator to an observed value and the condition's value."""
    if operator in NUMERIC_OPERATORS:
        return compare_numeric(actual, operator, expected)
    if operator == "equals":
        return actual == expected
    if operator == "not_equals":
        return actual != expected
    if operator in ("contains", "starts_with", "ends_with"):
        if isinstance(actual, (list, tuple, set)) and operator == "contains":
            return expected in actual
        if not isinstance(actual, str) or not isinstance(expected, str):
            return False
        if operator == "contains":
            return expected in actual
        if operator == "starts_with":
            return actual.startswith(expected)
        return actual.endswith(expected)
    if operator == "in":
        return isinstance(expected, (list, tuple, set)) and actual in expected
    if operator == "not_in":
        return isinstance(expected, (list, tuple, set)) and actual not in expected
    if operator == "regex":
        try:
            return re.search(str(expected), str(actual), re.IGNORECASE) is not None
        except re.error:
            logger.warning(f"Invalid regex in condition: {expected!r}")
            return False
    logger.warning(f"Unknown comparison operator: {operator}")
    return False


def evaluate_condition(condition, data, context=None):
    """Evaluate one leaf against event data.

    The observed value is ``data[condition.type]``. Equipment leaves fall back
    to the context's equipment name; group leaves without a ``group`` data
    field test the equipment's group list.
    """
    context = context or {}
    if condition.type == ConditionType.GROUP.value and "group" not in data:
        groups = context.get("equipment_groups") or []
        if condition.operator in NEGATED_OPERATORS:
            return all(compare(g, condition.operator, condition.value) for g in groups)
        return any(compare(g, condition.operator, condition.value) for g in groups)

    if condition.type == ConditionType.EQUIPMENT.value and "equipment" not in data:
        actual = data.get("equipamento", context.get("equipment_name"))
    else:
        actual = data.get(condition.type)
    return compare(actual, condition.operator, condition.value)


def combine(logic, results):
    """Fold child results with a group's boolean logic.

    NOT negates only the first child; any further children are ignored.
    """
    if not results:
        return False
    if logic == Logic.AND.value:
        return all(results)
    if logic == Logic.OR.value:
        return any(results)
    if logic == Logic.XOR.value:
        return sum(1 for r in results if r) == 1
    if logic == Logic.NOT.value:
        return not results[0]
    logger.warning(f"Unknown group logic: {logic}")
    return False


def evaluate_node(node, data, context=None):
    if isinstance(node, Group):
        return evaluate_group(node, data, context)
    return evaluate_condition(node, data, context)


def evaluate_group(group, data, context=None):
    """Evaluate every child in order, then combine with the group's logic."""
    results = [evaluate_node(child, data, context) for child in group.rules]
    return combine(group.logic, results)
