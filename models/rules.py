"""Dataclasses for rules and the recursive condition tree.

A condition tree is either a ``Condition`` leaf or a ``Group`` node whose
``rules`` hold further conditions and groups. In the persisted JSON shape a
nested group is wrapped as ``{"type": "group", "group": {...}}``; a child with
``type: "group"`` but no ``group`` key is a leaf testing equipment groups.
"""
import copy
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from utils.timeutils import parse_timestamp


@dataclass
class Condition:
    type: str = ""
    operator: str = ""
    value: Any = None
    id: Optional[str] = None

    def to_dict(self):
        d = {"type": self.type, "operator": self.operator, "value": self.value}
        if self.id is not None:
            d["id"] = self.id
        return d


@dataclass
class Group:
    logic: str = "AND"
    rules: list = field(default_factory=list)
    id: Optional[str] = None

    def to_dict(self):
        d = {"logic": self.logic, "rules": [node_to_dict(child) for child in self.rules]}
        if self.id is not None:
            d["id"] = self.id
        return d


Node = Union[Condition, Group]


def node_to_dict(node):
    if isinstance(node, Group):
        return {"type": "group", "group": node.to_dict()}
    return node.to_dict()


def node_from_dict(raw):
    """Build a Condition or Group from its persisted dict form."""
    if isinstance(raw, (Condition, Group)):
        return copy.deepcopy(raw)
    if raw.get("type") == "group" and isinstance(raw.get("group"), dict):
        return group_from_dict(raw["group"])
    if "rules" in raw and "operator" not in raw:
        return group_from_dict(raw)
    return Condition(
        type=str(raw.get("type") or "").strip().lower(),
        operator=str(raw.get("operator") or "").strip(),
        value=raw["value"].strip() if isinstance(raw.get("value"), str) else raw.get("value"),
        id=raw.get("id"),
    )


def group_from_dict(raw):
    if isinstance(raw, Group):
        return copy.deepcopy(raw)
    return Group(
        logic=str(raw.get("logic") or "AND").upper(),
        rules=[node_from_dict(child) for child in raw.get("rules") or []],
        id=raw.get("id"),
    )


def iter_conditions(group):
    """Yield every leaf Condition under a group, depth-first."""
    for child in group.rules:
        if isinstance(child, Group):
            yield from iter_conditions(child)
        else:
            yield child


def iter_nodes(group):
    """Yield every node (conditions and nested groups) under a group."""
    for child in group.rules:
        yield child
        if isinstance(child, Group):
            yield from iter_nodes(child)


def count_conditions(group):
    return sum(1 for _ in iter_conditions(group))


def group_depth(group, current=0):
    """Deepest nesting level below ``group``; a flat group has depth 0."""
    depth = current
    for child in group.rules:
        if isinstance(child, Group):
            depth = max(depth, group_depth(child, current + 1))
    return depth


def logic_types(group):
    found = {group.logic}
    for child in group.rules:
        if isinstance(child, Group):
            found |= logic_types(child)
    return found


# camelCase JSON key -> dataclass field
_FIELD_MAP = {
    "id": "id",
    "name": "name",
    "description": "description",
    "type": "type",
    "enabled": "enabled",
    "conditions": "conditions",
    "logic": "logic",
    "severity": "severity",
    "message": "message",
    "eventType": "event_type",
    "equipmentGroups": "equipment_groups",
    "equipmentPatterns": "equipment_patterns",
    "applicableEquipment": "applicable_equipment",
    "evaluationFrequency": "evaluation_frequency",
    "cooldownPeriod": "cooldown_period",
    "validFrom": "valid_from",
    "validUntil": "valid_until",
    "tags": "tags",
    "version": "version",
}

_STATS_MAP = {
    "lastEvaluated": "last_evaluated",
    "lastTriggered": "last_triggered",
    "triggerCount": "trigger_count",
    "evaluationCount": "evaluation_count",
}


@dataclass
class Rule:
    id: Any = None
    name: str = ""
    description: str = ""
    type: str = "simple"
    enabled: bool = True
    conditions: Any = field(default_factory=dict)
    logic: str = "AND"
    severity: str = "MEDIUM"
    message: str = ""
    event_type: str = "RULE_TRIGGERED"
    equipment_groups: list = field(default_factory=list)
    equipment_patterns: list = field(default_factory=list)
    applicable_equipment: list = field(default_factory=list)
    evaluation_frequency: int = 60_000
    cooldown_period: int = 300_000
    valid_from: Optional[int] = None
    valid_until: Optional[int] = None
    tags: list = field(default_factory=list)
    version: int = 1
    # Persisted runtime snapshot; the evaluator owns the live values
    last_evaluated: Optional[int] = None
    last_triggered: Optional[int] = None
    trigger_count: int = 0
    evaluation_count: int = 0

    def __post_init__(self):
        if self.type == "advanced" and isinstance(self.conditions, dict):
            self.conditions = group_from_dict(self.conditions)

    @classmethod
    def from_dict(cls, raw):
        """Build a Rule from its persisted camelCase dict, normalizing case and timestamps."""
        kwargs = {}
        for key, attr in {**_FIELD_MAP, **_STATS_MAP}.items():
            if key in raw:
                kwargs[attr] = raw[key]

        kwargs["type"] = str(kwargs.get("type") or "simple").strip().lower()
        kwargs["severity"] = str(kwargs.get("severity") or "MEDIUM").strip().upper()
        kwargs["logic"] = str(kwargs.get("logic") or "AND").strip().upper()
        kwargs["name"] = str(kwargs.get("name") or "").strip()
        kwargs["enabled"] = kwargs.get("enabled", True) is not False
        kwargs["equipment_groups"] = [
            g.strip().upper() if isinstance(g, str) else g
            for g in kwargs.get("equipment_groups") or []
        ]
        kwargs["tags"] = [t.strip().lower() if isinstance(t, str) else t for t in kwargs.get("tags") or []]
        for attr in ("valid_from", "valid_until"):
            if kwargs.get(attr) is not None:
                kwargs[attr] = parse_timestamp(kwargs[attr])

        conditions = kwargs.get("conditions")
        if conditions is None:
            kwargs["conditions"] = {}
        elif kwargs["type"] == "advanced" and isinstance(conditions, dict):
            kwargs["conditions"] = group_from_dict(conditions)
        elif isinstance(conditions, dict):
            kwargs["conditions"] = _normalize_flat_conditions(conditions)

        return cls(**kwargs)

    def to_dict(self, include_stats=False):
        """Persisted JSON shape with camelCase keys."""
        d = {}
        for key, attr in _FIELD_MAP.items():
            value = getattr(self, attr)
            if attr == "conditions":
                value = value.to_dict() if isinstance(value, Group) else copy.deepcopy(value)
            elif isinstance(value, list):
                value = list(value)
            d[key] = value
        if include_stats:
            for key, attr in _STATS_MAP.items():
                d[key] = getattr(self, attr)
        return d

    def __str__(self):
        return f"Rule[{self.id}]: {self.name} ({self.type}, {self.severity})"


def _normalize_flat_conditions(conditions):
    normalized = dict(conditions)
    if isinstance(normalized.get("timeOperator"), str):
        normalized["timeOperator"] = normalized["timeOperator"].strip()
    if isinstance(normalized.get("apontamento"), str):
        normalized["apontamento"] = normalized["apontamento"].strip()
    if isinstance(normalized.get("status"), str):
        normalized["status"] = normalized["status"].strip().lower()
    return normalized
