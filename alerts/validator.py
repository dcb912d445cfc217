"""Rule and condition-tree validation."""
import logging
import re
from dataclasses import dataclass, field

from alerts.anomaly import ANOMALY_DETECTORS
from alerts.conditions import NUMERIC_OPERATORS, TREE_NUMERIC_OPERATORS, TREE_OPERATORS, MEMBERSHIP_OPERATORS
from models.enums import ConditionType, EquipmentStatus, Logic, RuleType, Severity, TEXT_CONDITION_TYPES
from models.rules import Condition, Group, count_conditions
from utils.errors import ValidationError

logger = logging.getLogger("equipalert.alerts.validator")

CONDITION_TYPES = {t.value for t in ConditionType}
LOGICS = {l.value for l in Logic}
RULE_TYPES = {t.value for t in RuleType}
SEVERITIES = {s.value for s in Severity}
STATUSES = {s.value for s in EquipmentStatus}
SIMPLE_TIME_OPERATORS = set(NUMERIC_OPERATORS)
THRESHOLD_OPERATORS = {">", "<", ">=", "<=", "==", "!="}


def _is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass
class ValidationResult:
    errors: list = field(default_factory=list)
    warnings: list = field(default_factory=list)

    @property
    def valid(self):
        return not self.errors

    def extend(self, other, prefix=""):
        self.errors.extend(f"{prefix}{e}" for e in other.errors)
        self.warnings.extend(f"{prefix}{w}" for w in other.warnings)

    def raise_if_invalid(self, message="Invalid rule"):
        if self.errors:
            raise ValidationError(f"{message}: {'; '.join(self.errors)}", self.errors, self.warnings)


class RuleValidator:
    """Checks condition trees and whole rules.

    Settings come from the ``validation`` config section: ``strict``,
    ``max_conditions`` (50), ``max_group_depth`` (5) and
    ``allow_empty_conditions``. In strict mode, operator/type mismatches that
    are otherwise warnings become errors.
    """

    def __init__(self, config=None):
        self.config = config or {}
        cfg = self.config.get("validation", {})
        self.strict = cfg.get("strict", False)
        self.max_conditions = cfg.get("max_conditions", 50)
        self.max_group_depth = cfg.get("max_group_depth", 5)
        self.allow_empty_conditions = cfg.get("allow_empty_conditions", False)

    # ── Condition tree ──────────────────────────────────

    def validate_tree(self, group):
        result = ValidationResult()
        if not isinstance(group, Group):
            result.errors.append("Conditions must be a logic group")
            return result

        self._validate_group(group, 0, result, "")

        total = count_conditions(group)
        if total > self.max_conditions:
            result.errors.append(f"Too many conditions ({total}); maximum is {self.max_conditions}")
        if total == 0 and not self.allow_empty_conditions:
            result.errors.append("At least one condition is required")
        return result

    def _validate_group(self, group, depth, result, path):
        if depth > self.max_group_depth:
            result.errors.append(f"{path}group nesting too deep ({depth}); maximum is {self.max_group_depth}")
            return

        if group.logic not in LOGICS:
            result.errors.append(f"{path}logic must be one of {', '.join(sorted(LOGICS))}, got {group.logic!r}")

        if not group.rules:
            message = f"{path}empty group"
            if self.allow_empty_conditions:
                result.warnings.append(message)
            else:
                result.errors.append(message)
            return

        if group.logic == Logic.NOT.value and len(group.rules) > 1:
            result.warnings.append(f"{path}NOT only negates the first of {len(group.rules)} children")

        for index, child in enumerate(group.rules):
            if isinstance(child, Group):
                self._validate_group(child, depth + 1, result, f"{path}group {index}: ")
            else:
                result.extend(self.validate_condition(child), prefix=f"{path}condition {index}: ")

    def validate_condition(self, condition):
        result = ValidationResult()
        if not isinstance(condition, Condition):
            result.errors.append("not a condition")
            return result

        if not condition.type:
            result.errors.append("type is required")
        elif condition.type not in CONDITION_TYPES:
            result.errors.append(f"unknown condition type {condition.type!r}")

        if not condition.operator:
            result.errors.append("operator is required")
        elif condition.operator not in TREE_OPERATORS:
            result.errors.append(f"unknown operator {condition.operator!r}")

        if condition.value is None:
            result.errors.append("value is required")
            return result

        numeric_op = condition.operator in TREE_NUMERIC_OPERATORS
        if condition.type == ConditionType.TIME.value:
            if not numeric_op:
                result.errors.append("time conditions need one of >, <, >=, <=, =")
            if not _is_number(condition.value):
                result.errors.append("time value must be a number")
            elif condition.value < 0:
                result.errors.append("time value must not be negative")
        elif condition.type in TEXT_CONDITION_TYPES and numeric_op:
            message = f"numeric operator {condition.operator!r} on text field {condition.type!r}"
            if self.strict:
                result.errors.append(message)
            else:
                result.warnings.append(message)

        if condition.operator in MEMBERSHIP_OPERATORS and not isinstance(condition.value, (list, tuple, set)):
            result.errors.append(f"{condition.operator} needs a list value")

        if condition.operator == "regex":
            try:
                re.compile(str(condition.value))
            except re.error as e:
                result.warnings.append(f"invalid regex {condition.value!r}: {e}")

        if (condition.type == ConditionType.STATUS.value and condition.operator == "equals"
                and condition.value not in STATUSES):
            result.warnings.append(f"status {condition.value!r} is not a standard status")
        return result

    # ── Whole rule ──────────────────────────────────────

    def validate_rule(self, rule):
        result = ValidationResult()

        if not rule.name or not str(rule.name).strip():
            result.errors.append("name is required")
        elif len(rule.name) > 100:
            result.warnings.append("name is longer than 100 characters")

        if rule.type not in RULE_TYPES:
            result.errors.append(f"type must be one of {', '.join(sorted(RULE_TYPES))}")
        if rule.severity not in SEVERITIES:
            result.errors.append(f"severity must be one of {', '.join(Severity.__members__)}")
        if rule.logic not in LOGICS:
            result.errors.append(f"logic must be one of {', '.join(sorted(LOGICS))}")

        if rule.cooldown_period is not None:
            if not _is_number(rule.cooldown_period):
                result.errors.append("cooldownPeriod must be a number")
            elif rule.cooldown_period < 0:
                result.errors.append("cooldownPeriod must not be negative")
        if rule.evaluation_frequency is not None:
            if not _is_number(rule.evaluation_frequency):
                result.errors.append("evaluationFrequency must be a number")
            elif rule.evaluation_frequency and rule.evaluation_frequency < 1000:
                result.errors.append("evaluationFrequency must be at least 1000ms")

        window = {"validFrom": rule.valid_from, "validUntil": rule.valid_until}
        for key, value in window.items():
            if value is not None and not _is_number(value):
                result.errors.append(f"{key} must be an epoch-millisecond timestamp")
        if all(_is_number(v) for v in window.values()) and rule.valid_from >= rule.valid_until:
            result.errors.append("validFrom must be earlier than validUntil")

        if rule.message:
            if rule.message.count("{") != rule.message.count("}"):
                message = "unbalanced placeholder braces in message"
                if self.strict:
                    result.errors.append(message)
                else:
                    result.warnings.append(message)

        checks = {
            RuleType.SIMPLE.value: self._validate_simple,
            RuleType.ADVANCED.value: self._validate_advanced,
            RuleType.THRESHOLD.value: self._validate_threshold,
            RuleType.ANOMALY.value: self._validate_anomaly,
        }
        check = checks.get(rule.type)
        if check:
            check(rule, result)
        return result

    def _validate_simple(self, rule, result):
        conditions = rule.conditions
        if not isinstance(conditions, dict):
            result.errors.append("simple rules need a conditions object")
            return

        time_operator = conditions.get("timeOperator")
        time_value = conditions.get("timeValue")
        if time_operator and time_value is None:
            result.errors.append("timeValue is required with timeOperator")
        if time_value is not None and not time_operator:
            result.errors.append("timeOperator is required with timeValue")
        if time_operator and time_operator not in SIMPLE_TIME_OPERATORS:
            result.errors.append(f"timeOperator must be one of {', '.join(sorted(SIMPLE_TIME_OPERATORS))}")
        if time_value is not None:
            if not _is_number(time_value):
                result.errors.append("timeValue must be a number")
            elif time_value < 0:
                result.errors.append("timeValue must not be negative")
            elif time_value > 1440:
                result.warnings.append("timeValue is longer than 24 hours")

        status = conditions.get("status")
        if status and status not in STATUSES:
            result.warnings.append(f"status {status!r} is not a standard status")

        has_any = conditions.get("apontamento") or status or (time_operator and time_value is not None)
        if not has_any and not self.allow_empty_conditions:
            result.errors.append("at least one of apontamento, status or time is required")

    def _validate_advanced(self, rule, result):
        result.extend(self.validate_tree(rule.conditions))

    def _validate_threshold(self, rule, result):
        conditions = rule.conditions if isinstance(rule.conditions, dict) else {}
        if not conditions.get("metric"):
            result.errors.append("metric is required for threshold rules")
        if not _is_number(conditions.get("threshold")):
            result.errors.append("threshold must be a number")
        operator = conditions.get("operator", ">")
        if operator not in THRESHOLD_OPERATORS:
            result.errors.append(f"threshold operator must be one of {', '.join(sorted(THRESHOLD_OPERATORS))}")

    def _validate_anomaly(self, rule, result):
        conditions = rule.conditions if isinstance(rule.conditions, dict) else {}
        if not conditions.get("metric"):
            result.errors.append("metric is required for anomaly rules")
        algorithm = conditions.get("algorithm")
        if algorithm not in ANOMALY_DETECTORS:
            result.errors.append(f"algorithm must be one of {', '.join(sorted(ANOMALY_DETECTORS))}")

    def ensure_valid(self, rule):
        """Raise ValidationError if the rule is invalid; return the warnings otherwise."""
        result = self.validate_rule(rule)
        result.raise_if_invalid(f"Invalid rule {rule.id}")
        return result.warnings

    # ── Rule sets ───────────────────────────────────────

    def validate_rule_set(self, rules):
        """Validate every rule plus cross-rule checks (duplicate ids, similar names)."""
        result = ValidationResult()
        seen_ids = set()
        seen_names = set()
        for index, rule in enumerate(rules):
            result.extend(self.validate_rule(rule), prefix=f"rule {rule.id if rule.id is not None else index}: ")

            if rule.id is not None:
                if rule.id in seen_ids:
                    result.errors.append(f"duplicate rule id {rule.id!r}")
                seen_ids.add(rule.id)

            name = str(rule.name or "").strip().lower()
            if name:
                if name in seen_names:
                    result.warnings.append(f"similar rule names: {rule.name!r}")
                seen_names.add(name)

        logger.debug(f"Validated {len(rules)} rules: {len(result.errors)} errors, {len(result.warnings)} warnings")
        return result
