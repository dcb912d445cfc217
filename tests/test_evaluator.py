"""Tests for the rule evaluator: gating, dispatch, cache and statistics."""
import pytest
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from alerts.evaluator import RuleEvaluator
from models.rules import Rule

T0 = 1_718_000_000_000


def _ctx(ts=T0, **extra):
    return {"timestamp": ts, **extra}


# ── Dispatch ────────────────────────────────────────────

def test_advanced_scenario(advanced_rule):
    ev = RuleEvaluator()
    assert ev.evaluate(advanced_rule, {"status": "on", "time": 45}, _ctx()) is True
    ev = RuleEvaluator()
    assert ev.evaluate(advanced_rule, {"status": "off", "time": 45}, _ctx()) is False


def test_simple_rule(simple_rule):
    assert RuleEvaluator().evaluate(simple_rule, {"apontamento": "Manutenção", "time": 90}, _ctx()) is True
    assert RuleEvaluator().evaluate(simple_rule, {"apontamento": "Manutenção", "time": 30}, _ctx()) is False
    assert RuleEvaluator().evaluate(simple_rule, {"apontamento": "Refeição", "time": 90}, _ctx()) is False


def test_simple_rule_uses_duration_fallback():
    rule = Rule(id="s", name="s", conditions={"timeOperator": ">=", "timeValue": 10})
    assert RuleEvaluator().evaluate(rule, {"duration": 10}, _ctx()) is True
    assert RuleEvaluator().evaluate(rule, {}, _ctx()) is False


def test_threshold_rule():
    rule = Rule(id="fuel", name="Fuel", type="threshold",
                conditions={"metric": "fuel_level", "operator": "<", "threshold": 10})
    ev = RuleEvaluator()
    assert ev.evaluate(rule, {"fuel_level": 5}, _ctx()) is True
    assert RuleEvaluator().evaluate(rule, {"fuel_level": 50}, _ctx()) is False
    assert RuleEvaluator().evaluate(rule, {}, _ctx()) is False


def test_anomaly_zscore_and_statistical():
    zscore = Rule(id="z", name="z", type="anomaly",
                  conditions={"metric": "temp", "algorithm": "zscore", "mean": 85, "stdDev": 5})
    assert RuleEvaluator().evaluate(zscore, {"temp": 110}, _ctx()) is True
    assert RuleEvaluator().evaluate(zscore, {"temp": 90}, _ctx()) is False

    bounds = Rule(id="b", name="b", type="anomaly",
                  conditions={"metric": "rpm", "algorithm": "statistical", "min": 0, "max": 100})
    assert RuleEvaluator().evaluate(bounds, {"rpm": 111}, _ctx()) is True
    assert RuleEvaluator().evaluate(bounds, {"rpm": 109}, _ctx()) is False


def test_anomaly_uses_history_when_stats_missing():
    rule = Rule(id="h", name="h", type="anomaly",
                conditions={"metric": "temp", "algorithm": "zscore", "history": [80, 82, 84, 86, 88]})
    assert RuleEvaluator().evaluate(rule, {"temp": 84}, _ctx()) is False
    assert RuleEvaluator().evaluate(rule, {"temp": 120}, _ctx()) is True


def test_anomaly_non_numeric_value_is_false():
    rule = Rule(id="n", name="n", type="anomaly", conditions={"metric": "temp", "algorithm": "zscore"})
    assert RuleEvaluator().evaluate(rule, {"temp": "hot"}, _ctx()) is False


def test_unknown_rule_type_is_false():
    rule = Rule(id="u", name="u", type="mystery")
    assert RuleEvaluator().evaluate(rule, {"x": 1}, _ctx()) is False


def test_handler_errors_are_absorbed():
    ev = RuleEvaluator()

    def explode(value, conditions):
        raise RuntimeError("boom")

    ev.register_anomaly_detector("explode", explode)
    rule = Rule(id="e", name="e", type="anomaly", conditions={"metric": "v", "algorithm": "explode"})
    assert ev.evaluate(rule, {"v": 1}, _ctx()) is False
    assert ev.get_metrics()["errors"] == 1
    assert ev.recent_errors[0].rule_id == "e"
    assert ev.recent_errors[0].data == {"v": 1}


def test_group_detector_errors_are_absorbed(advanced_rule):
    def detector(name):
        raise LookupError(f"no groups for {name}")

    advanced_rule.equipment_groups = ["ESCAVADEIRAS"]
    ev = RuleEvaluator(group_detector=detector)
    ctx = _ctx(equipment_name="EX-1")
    assert ev.evaluate(advanced_rule, {"status": "on", "time": 45}, ctx) is False
    assert ev.get_metrics()["errors"] == 1
    assert ev.recent_errors[0].rule_id == advanced_rule.id
    assert ev.recent_errors[0].context == ctx


def test_non_numeric_cooldown_is_absorbed(advanced_rule):
    advanced_rule.last_triggered = T0
    advanced_rule.cooldown_period = "300000"
    ev = RuleEvaluator()
    assert ev.evaluate(advanced_rule, {"status": "on", "time": 45}, _ctx(T0 + 1000)) is False
    assert ev.get_metrics()["errors"] == 1
    assert ev.get_state(advanced_rule.id)["evaluation_count"] == 0


# ── Gating ──────────────────────────────────────────────

def test_disabled_rule_has_no_side_effects(advanced_rule):
    advanced_rule.enabled = False
    ev = RuleEvaluator()
    assert ev.evaluate(advanced_rule, {"status": "on", "time": 45}, _ctx()) is False
    assert ev.get_state(advanced_rule.id)["evaluation_count"] == 0


def test_validity_window(advanced_rule):
    advanced_rule.valid_from = T0 + 1000
    advanced_rule.valid_until = T0 + 5000
    data = {"status": "on", "time": 45}
    assert RuleEvaluator().evaluate(advanced_rule, data, _ctx(T0)) is False
    assert RuleEvaluator().evaluate(advanced_rule, data, _ctx(T0 + 2000)) is True
    assert RuleEvaluator().evaluate(advanced_rule, data, _ctx(T0 + 6000)) is False


def test_epoch_zero_timestamp_is_honoured(advanced_rule):
    advanced_rule.valid_from = 0
    advanced_rule.valid_until = 1000
    data = {"status": "on", "time": 45}
    assert RuleEvaluator().evaluate(advanced_rule, data, _ctx(0)) is True
    assert RuleEvaluator().evaluate(advanced_rule, data, _ctx(T0)) is False


def test_cooldown_gating(advanced_rule):
    advanced_rule.last_triggered = T0
    advanced_rule.cooldown_period = 300_000
    data = {"status": "on", "time": 45}
    ev = RuleEvaluator()
    assert ev.evaluate(advanced_rule, data, _ctx(T0 + 100_000)) is False
    assert ev.evaluate(advanced_rule, data, _ctx(T0 + 300_001)) is True
    assert ev.get_state(advanced_rule.id)["last_triggered"] == T0 + 300_001
    # The new trigger restarts the cooldown
    assert ev.evaluate(advanced_rule, data, _ctx(T0 + 400_000)) is False


def test_zero_cooldown_never_blocks(advanced_rule):
    advanced_rule.cooldown_period = 0
    ev = RuleEvaluator({"evaluator": {"enable_caching": False}})
    data = {"status": "on", "time": 45}
    assert ev.evaluate(advanced_rule, data, _ctx()) is True
    assert ev.evaluate(advanced_rule, data, _ctx()) is True


def test_applicability_by_group_pattern_and_name(advanced_rule):
    data = {"status": "on", "time": 45}
    advanced_rule.cooldown_period = 0
    advanced_rule.equipment_groups = ["CARREGADEIRAS"]
    advanced_rule.equipment_patterns = ["^CAT-"]
    advanced_rule.applicable_equipment = ["VOLVO-7"]

    ev = RuleEvaluator({"evaluator": {"enable_caching": False}})
    assert ev.evaluate(advanced_rule, data, _ctx(equipment_name="X-1", equipment_groups=["carregadeiras"])) is True
    assert ev.evaluate(advanced_rule, data, _ctx(equipment_name="cat-02", equipment_groups=[])) is True
    assert ev.evaluate(advanced_rule, data, _ctx(equipment_name="VOLVO-7", equipment_groups=[])) is True
    assert ev.evaluate(advanced_rule, data, _ctx(equipment_name="JD-3", equipment_groups=["TRATORES"])) is False


def test_invalid_pattern_falls_back_to_substring(advanced_rule):
    advanced_rule.equipment_patterns = ["cat-[0"]
    ev = RuleEvaluator()
    assert ev.is_applicable(advanced_rule, {"equipment_name": "CAT-[01"}) is True
    assert ev.is_applicable(advanced_rule, {"equipment_name": "JD-3"}) is False


def test_group_detector_resolves_groups(advanced_rule):
    advanced_rule.equipment_groups = ["ESCAVADEIRAS"]
    ev = RuleEvaluator(group_detector=lambda name: ["ESCAVADEIRAS"] if name.startswith("EX") else [])
    assert ev.is_applicable(advanced_rule, {"equipment_name": "EX-1200"}) is True
    assert ev.is_applicable(advanced_rule, {"equipment_name": "CAT-01"}) is False


# ── Cache & state ───────────────────────────────────────

def test_determinism_ignoring_cache(advanced_rule):
    advanced_rule.cooldown_period = 0
    data = {"status": "on", "time": 45}
    first = RuleEvaluator({"evaluator": {"enable_caching": False}})
    second = RuleEvaluator({"evaluator": {"enable_caching": False}})
    assert first.evaluate(advanced_rule, data, _ctx()) == second.evaluate(advanced_rule, data, _ctx())


def test_cache_hit_skips_counters(advanced_rule):
    ev = RuleEvaluator()
    data = {"status": "off", "time": 45}
    assert ev.evaluate(advanced_rule, data, _ctx()) is False
    assert ev.evaluate(advanced_rule, data, _ctx()) is False
    metrics = ev.get_metrics()
    assert metrics["cache_hits"] == 1
    assert metrics["cache_misses"] == 1
    assert ev.get_state(advanced_rule.id)["evaluation_count"] == 1

    ev.clear_cache()
    ev.evaluate(advanced_rule, data, _ctx())
    assert ev.get_state(advanced_rule.id)["evaluation_count"] == 2


def test_counters_only_increase(advanced_rule):
    advanced_rule.cooldown_period = 0
    advanced_rule.trigger_count = 4
    advanced_rule.evaluation_count = 10
    ev = RuleEvaluator({"evaluator": {"enable_caching": False}})
    ev.evaluate(advanced_rule, {"status": "on", "time": 45}, _ctx())
    ev.evaluate(advanced_rule, {"status": "off", "time": 45}, _ctx(T0 + 10))
    state = ev.get_state(advanced_rule.id)
    assert state["evaluation_count"] == 12
    assert state["trigger_count"] == 5
    assert state["last_evaluated"] == T0 + 10
    assert state["last_triggered"] == T0

    exported = ev.export_rule(advanced_rule)
    assert exported.trigger_count == 5
    assert advanced_rule.trigger_count == 4

    ev.reset_state(advanced_rule.id)
    assert ev.get_state(advanced_rule.id)["evaluation_count"] == 0


def test_evaluate_many_returns_triggered_subset(advanced_rule, simple_rule):
    triggered = RuleEvaluator().evaluate_many(
        [simple_rule, advanced_rule], {"status": "on", "time": 45}, _ctx())
    assert triggered == [advanced_rule]
