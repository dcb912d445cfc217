"""Data models."""
from models.enums import (
    RuleType, Severity, Logic, ConditionType, AnomalyAlgorithm, AlertStatus, DedupStrategy,
    EquipmentStatus, severity_rank,
)
from models.rules import Rule, Condition, Group, node_from_dict, group_from_dict
from models.alerts import Alert
