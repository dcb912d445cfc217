"""Dataclass for alert records."""
from dataclasses import dataclass, field
from typing import Any, Optional

from utils.timeutils import now_ms, parse_timestamp

_FIELD_MAP = {
    "id": "id",
    "uniqueId": "unique_id",
    "equipamento": "equipamento",
    "equipmentGroups": "equipment_groups",
    "ruleId": "rule_id",
    "ruleName": "rule_name",
    "severity": "severity",
    "message": "message",
    "eventType": "event_type",
    "eventIdentifier": "event_identifier",
    "timestamp": "timestamp",
    "firstOccurrence": "first_occurrence",
    "lastOccurrence": "last_occurrence",
    "duration": "duration",
    "consolidated": "consolidated",
    "consolidatedCount": "consolidated_count",
    "status": "status",
    "recordCount": "record_count",
    "mergedFrom": "merged_from",
    "mergedCount": "merged_count",
    "metadata": "metadata",
}

_OPTIONAL_KEYS = {"eventIdentifier", "recordCount", "mergedFrom", "mergedCount"}


@dataclass
class Alert:
    id: Optional[str] = None
    unique_id: Optional[str] = None
    equipamento: str = ""
    equipment_groups: list = field(default_factory=list)
    rule_id: Any = None
    rule_name: str = ""
    severity: str = "MEDIUM"
    message: str = ""
    event_type: str = "UNKNOWN"
    event_identifier: Optional[str] = None
    timestamp: int = field(default_factory=now_ms)
    first_occurrence: Optional[int] = None
    last_occurrence: Optional[int] = None
    duration: float = 0.0  # minutes
    consolidated: bool = False
    consolidated_count: int = 1
    status: str = "ACTIVE"
    record_count: Optional[int] = None
    merged_from: Optional[list] = None
    merged_count: Optional[int] = None
    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        self.timestamp = parse_timestamp(self.timestamp, default=now_ms())
        self.first_occurrence = parse_timestamp(self.first_occurrence, default=self.timestamp)
        self.last_occurrence = parse_timestamp(self.last_occurrence, default=self.timestamp)
        self.severity = str(self.severity or "MEDIUM").upper()
        self.status = str(self.status or "ACTIVE").upper()

    @classmethod
    def from_dict(cls, raw):
        kwargs = {attr: raw[key] for key, attr in _FIELD_MAP.items() if key in raw}
        if "durationMinutes" in raw and "duration" not in kwargs:
            kwargs["duration"] = raw["durationMinutes"]
        if not isinstance(kwargs.get("duration", 0), (int, float)):
            kwargs["duration"] = 0.0
        return cls(**kwargs)

    def to_dict(self):
        d = {}
        for key, attr in _FIELD_MAP.items():
            value = getattr(self, attr)
            if key in _OPTIONAL_KEYS and value is None:
                continue
            d[key] = list(value) if isinstance(value, list) else value
        return d
