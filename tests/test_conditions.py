"""Tests for condition tree model, leaf operators and group logic."""
import pytest
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from alerts.conditions import compare, combine, evaluate_condition, evaluate_group
from models.rules import Condition, Group, Rule, group_from_dict, group_depth, count_conditions


def _leaf(result):
    """A leaf that evaluates to ``result`` against {"flag": True}."""
    return Condition(type="flag", operator="equals", value=result)


def _group(logic, *results):
    return Group(logic=logic, rules=[_leaf(r) for r in results])


DATA = {"flag": True}


# ── Group logic ─────────────────────────────────────────

def test_and_or_xor_truth_table():
    assert evaluate_group(_group("AND", True, False, True), DATA) is False
    assert evaluate_group(_group("OR", True, False, True), DATA) is True
    assert evaluate_group(_group("XOR", True, False, True), DATA) is False
    assert evaluate_group(_group("XOR", True, False, False), DATA) is True


def test_not_negates_first_child_only():
    assert evaluate_group(_group("NOT", True), DATA) is False
    assert evaluate_group(_group("NOT", False), DATA) is True
    # Later children are ignored
    assert evaluate_group(_group("NOT", False, True, True), DATA) is True
    assert evaluate_group(_group("NOT", True, False), DATA) is False


def test_empty_group_is_false():
    assert evaluate_group(Group(logic="OR"), DATA) is False
    assert combine("AND", []) is False


def test_unknown_logic_is_false():
    assert combine("NAND", [True, True]) is False


def test_nested_groups():
    tree = Group(logic="AND", rules=[
        _leaf(True),
        Group(logic="OR", rules=[_leaf(False), _leaf(True)]),
    ])
    assert evaluate_group(tree, DATA) is True


def test_advanced_scenario(advanced_rule):
    assert evaluate_group(advanced_rule.conditions, {"status": "on", "time": 45}) is True
    assert evaluate_group(advanced_rule.conditions, {"status": "off", "time": 45}) is False


# ── Leaf operators ──────────────────────────────────────

def test_numeric_operators_coerce():
    assert compare("45", ">", 30) is True
    assert compare(30, ">=", "30") is True
    assert compare(29.5, "<", 30) is True
    assert compare(30, "=", 30.0) is True
    assert compare("abc", ">", 1) is False
    assert compare(None, "<", 1) is False


def test_text_operators():
    assert compare("Manutenção Corretiva", "contains", "Corretiva") is True
    assert compare("Manutenção", "starts_with", "Manu") is True
    assert compare("Manutenção", "ends_with", "ção") is True
    assert compare("on", "not_equals", "off") is True
    assert compare(5, "contains", "5") is False


def test_membership_operators():
    assert compare("on", "in", ["on", "maintenance"]) is True
    assert compare("off", "not_in", ["on", "maintenance"]) is True
    assert compare("on", "in", "on") is False


def test_regex_is_case_insensitive_and_safe():
    assert compare("CAT-793", "regex", r"^cat-\d+$") is True
    assert compare("CAT-793", "regex", "[unclosed") is False


def test_unknown_operator_is_false():
    assert compare(1, "~=", 1) is False


def test_equipment_leaf_falls_back_to_context():
    cond = Condition(type="equipment", operator="starts_with", value="CAT")
    assert evaluate_condition(cond, {}, {"equipment_name": "CAT-01"}) is True
    assert evaluate_condition(cond, {"equipamento": "VOLVO-2"}, {"equipment_name": "CAT-01"}) is False


def test_group_leaf_tests_equipment_groups():
    cond = Condition(type="group", operator="equals", value="CARREGADEIRAS")
    ctx = {"equipment_groups": ["ESCAVADEIRAS", "CARREGADEIRAS"]}
    assert evaluate_condition(cond, {}, ctx) is True
    negated = Condition(type="group", operator="not_equals", value="CARREGADEIRAS")
    assert evaluate_condition(negated, {}, ctx) is False
    assert evaluate_condition(cond, {}, {}) is False


# ── Model ───────────────────────────────────────────────

def test_group_from_dict_nested_shape():
    tree = group_from_dict({
        "logic": "or",
        "rules": [
            {"type": "status", "operator": "equals", "value": " on "},
            {"type": "group", "group": {"logic": "AND", "rules": [
                {"type": "time", "operator": ">", "value": 10},
            ]}},
            {"type": "group", "operator": "equals", "value": "TRATORES"},
        ],
    })
    assert tree.logic == "OR"
    assert tree.rules[0].value == "on"
    assert isinstance(tree.rules[1], Group)
    assert isinstance(tree.rules[2], Condition)
    assert group_depth(tree) == 1
    assert count_conditions(tree) == 3


def test_rule_dict_round_trip():
    raw = {
        "id": "r1", "name": "Rule", "type": "advanced", "severity": "critical", "logic": "and",
        "equipmentGroups": ["carregadeiras"], "cooldownPeriod": 0,
        "conditions": {"logic": "AND", "rules": [
            {"type": "group", "group": {"logic": "NOT", "rules": [
                {"type": "status", "operator": "equals", "value": "off"},
            ]}},
        ]},
    }
    rule = Rule.from_dict(raw)
    assert rule.severity == "CRITICAL"
    assert rule.equipment_groups == ["CARREGADEIRAS"]
    assert rule.cooldown_period == 0

    exported = rule.to_dict()
    assert exported["conditions"]["rules"][0]["type"] == "group"
    assert exported["conditions"]["rules"][0]["group"]["logic"] == "NOT"
    assert Rule.from_dict(exported).conditions == rule.conditions
