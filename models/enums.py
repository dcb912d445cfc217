"""Enums for rule types, severities, condition trees and dedup strategies."""
from enum import Enum


class RuleType(str, Enum):
    SIMPLE = "simple"
    ADVANCED = "advanced"
    THRESHOLD = "threshold"
    ANOMALY = "anomaly"


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


SEVERITY_ORDER = [s.value for s in Severity]


def severity_rank(severity):
    """Position of a severity in LOW..CRITICAL, or -1 if unknown."""
    value = severity.value if hasattr(severity, "value") else str(severity or "").upper()
    try:
        return SEVERITY_ORDER.index(value)
    except ValueError:
        return -1


class Logic(str, Enum):
    AND = "AND"
    OR = "OR"
    NOT = "NOT"
    XOR = "XOR"


class ConditionType(str, Enum):
    APONTAMENTO = "apontamento"
    STATUS = "status"
    TIME = "time"
    EQUIPMENT = "equipment"
    GROUP = "group"
    CUSTOM = "custom"


# Condition types whose values are free text
TEXT_CONDITION_TYPES = {
    ConditionType.APONTAMENTO.value,
    ConditionType.STATUS.value,
    ConditionType.EQUIPMENT.value,
    ConditionType.GROUP.value,
}


class AnomalyAlgorithm(str, Enum):
    ZSCORE = "zscore"
    STATISTICAL = "statistical"


class AlertStatus(str, Enum):
    ACTIVE = "ACTIVE"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"
    SUPPRESSED = "SUPPRESSED"


class DedupStrategy(str, Enum):
    HASH = "hash"
    ID = "id"
    CONTENT = "content"
    TIME = "time"
    SMART = "smart"


class EquipmentStatus(str, Enum):
    ON = "on"
    OFF = "off"
    STOPPED = "stopped"
    MAINTENANCE = "maintenance"
    OUT_OF_PLANT = "out_of_plant"
