"""Scoped builder for condition trees."""
import copy
import logging

from alerts.conditions import TREE_OPERATORS
from alerts.validator import CONDITION_TYPES, LOGICS, RuleValidator
from models.enums import ConditionType, Logic
from models.rules import Condition, Group, Rule, group_depth, iter_nodes, logic_types, node_from_dict
from utils.errors import ValidationError
from utils.fingerprint import unique_id

logger = logging.getLogger("equipalert.alerts.builder")


class ConditionTreeBuilder:
    """Builds a Group tree one condition at a time.

    ``start_group`` opens a nested group that receives subsequent conditions
    until the matching ``end_group``::

        tree = (ConditionTreeBuilder("AND")
                .when_status("on")
                .start_group("OR")
                .when_time(">", 30)
                .when_apontamento("Manutenção")
                .end_group()
                .build())
    """

    def __init__(self, logic="AND", config=None):
        self.validator = RuleValidator(config)
        self.root = Group(logic=self._check_logic(logic), id=unique_id("group"))
        self._current = self.root
        self._stack = []

    @staticmethod
    def _check_logic(logic):
        logic = str(logic or "").upper()
        if logic not in LOGICS:
            raise ValidationError(f"Invalid logic: {logic}", [f"logic must be one of {', '.join(sorted(LOGICS))}"])
        return logic

    # ── Scope ───────────────────────────────────────────

    def start_group(self, logic="AND"):
        group = Group(logic=self._check_logic(logic), id=unique_id("group"))
        self._current.rules.append(group)
        self._stack.append(self._current)
        self._current = group
        return self

    def end_group(self):
        if not self._stack:
            raise ValidationError("No open group to close", ["end_group called without start_group"])
        self._current = self._stack.pop()
        return self

    def with_logic(self, logic):
        """Set the logic of the group currently being built."""
        self._current.logic = self._check_logic(logic)
        return self

    # ── Conditions ──────────────────────────────────────

    def add_condition(self, type, operator, value):
        errors = []
        type = str(type or "").strip().lower()
        if type not in CONDITION_TYPES:
            errors.append(f"unknown condition type {type!r}")
        if operator not in TREE_OPERATORS:
            errors.append(f"unknown operator {operator!r}")
        if value is None or value == "":
            errors.append("value is required")
        if errors:
            raise ValidationError(f"Invalid condition: {'; '.join(errors)}", errors)

        condition = Condition(type=type, operator=operator, value=value, id=unique_id("cond"))
        result = self.validator.validate_condition(condition)
        result.raise_if_invalid("Invalid condition")
        self._current.rules.append(condition)
        return self

    def when_status(self, status, operator="equals"):
        return self.add_condition(ConditionType.STATUS.value, operator, status)

    def when_apontamento(self, apontamento, operator="equals"):
        return self.add_condition(ConditionType.APONTAMENTO.value, operator, apontamento)

    def when_time(self, operator, minutes):
        if isinstance(minutes, bool) or not isinstance(minutes, (int, float)) or minutes < 0:
            raise ValidationError(f"Invalid time value: {minutes!r}", ["time value must be a non-negative number"])
        return self.add_condition(ConditionType.TIME.value, operator, minutes)

    def when_equipment(self, equipment, operator="equals"):
        return self.add_condition(ConditionType.EQUIPMENT.value, operator, equipment)

    def when_group(self, group, operator="equals"):
        return self.add_condition(ConditionType.GROUP.value, operator, group)

    # ── Lookup & editing ────────────────────────────────

    def _locate(self, node_id):
        """(parent, index) of the node with the given id, or (None, -1)."""
        stack = [self.root]
        while stack:
            parent = stack.pop()
            for index, child in enumerate(parent.rules):
                if child.id == node_id:
                    return parent, index
                if isinstance(child, Group):
                    stack.append(child)
        return None, -1

    def find_condition(self, node_id):
        if self.root.id == node_id:
            return self.root
        parent, index = self._locate(node_id)
        return parent.rules[index] if parent is not None else None

    def remove_condition(self, node_id):
        parent, index = self._locate(node_id)
        if parent is None:
            return False
        removed = parent.rules.pop(index)
        # Closing scopes that no longer belong to the tree
        if isinstance(removed, Group) and (
                removed is self._current or any(node is self._current for node in iter_nodes(removed))):
            while self._stack and self._current is not parent:
                self._current = self._stack.pop()
        return True

    def update_condition(self, node_id, **changes):
        node = self.find_condition(node_id)
        if node is None:
            raise KeyError(node_id)
        if isinstance(node, Group):
            if "logic" in changes:
                node.logic = self._check_logic(changes["logic"])
            return node

        updated = copy.copy(node)
        for key in ("type", "operator", "value"):
            if key in changes:
                setattr(updated, key, changes[key])
        self.validator.validate_condition(updated).raise_if_invalid("Invalid condition")
        node.type, node.operator, node.value = updated.type, updated.operator, updated.value
        return node

    # ── Inspection ──────────────────────────────────────

    def count_conditions(self):
        return sum(1 for node in iter_nodes(self.root) if isinstance(node, Condition))

    def max_depth(self):
        return group_depth(self.root)

    def complexity(self):
        """simple / medium / complex from leaf count, nesting and logic variety."""
        count = self.count_conditions()
        depth = self.max_depth()
        variety = len(logic_types(self.root))
        if count <= 3 and depth == 0 and variety == 1:
            return "simple"
        if count <= 10 and depth <= 2 and variety <= 2:
            return "medium"
        return "complex"

    def validate(self):
        return self.validator.validate_tree(self.root)

    # ── Output ──────────────────────────────────────────

    def build(self):
        if self._stack:
            raise ValidationError(
                f"{len(self._stack)} group(s) still open",
                ["every start_group needs a matching end_group"],
            )
        result = self.validate()
        result.raise_if_invalid("Invalid condition tree")
        for warning in result.warnings:
            logger.warning(f"Condition tree: {warning}")
        return copy.deepcopy(self.root)

    def to_rule(self, **fields):
        """Wrap the built tree in an advanced Rule."""
        tree = self.build()
        fields.setdefault("logic", tree.logic)
        return Rule(type="advanced", conditions=tree, **fields)

    @classmethod
    def from_tree(cls, tree, config=None):
        """Load an existing tree (Group or dict) for editing, assigning missing ids."""
        group = node_from_dict(tree) if isinstance(tree, dict) else copy.deepcopy(tree)
        if not isinstance(group, Group):
            group = Group(logic=Logic.AND.value, rules=[group])
        builder = cls(group.logic, config=config)
        if group.id is None:
            group.id = builder.root.id
        for node in iter_nodes(group):
            if node.id is None:
                node.id = unique_id("group" if isinstance(node, Group) else "cond")
        builder.root = group
        builder._current = group
        return builder
