"""Stateful rule evaluation: gating, result cache and type dispatch."""
import dataclasses
import logging
import re
from dataclasses import dataclass, field
from typing import Optional

from alerts.anomaly import ANOMALY_DETECTORS
from alerts.conditions import compare, compare_numeric, evaluate_group
from models.enums import RuleType
from models.rules import Group
from utils.cache import BoundedCache
from utils.errors import EvaluationError
from utils.fingerprint import payload_hash
from utils.timeutils import now_ms, parse_timestamp

logger = logging.getLogger("equipalert.alerts.evaluator")

MAX_RECENT_ERRORS = 50


@dataclass
class EvaluationState:
    """Mutable runtime record for one rule, owned by the evaluator."""
    evaluation_count: int = 0
    trigger_count: int = 0
    last_evaluated: Optional[int] = None
    last_triggered: Optional[int] = None
    cache: BoundedCache = field(default_factory=BoundedCache, repr=False)

    def to_dict(self):
        return {
            "evaluation_count": self.evaluation_count,
            "trigger_count": self.trigger_count,
            "last_evaluated": self.last_evaluated,
            "last_triggered": self.last_triggered,
        }


class RuleEvaluator:
    """Evaluates rules against event data and keeps per-rule statistics.

    Gating runs in a fixed order: enabled, validity window, cooldown,
    applicability. Only rules that pass every gate reach the result cache and
    the type handler. Any exception raised past the enabled check, in gating
    or in a handler, is logged and the rule is treated as not triggered.
    """

    def __init__(self, config=None, group_detector=None):
        self.config = config or {}
        cfg = self.config.get("evaluator", {})
        self.enable_caching = cfg.get("enable_caching", True)
        self.cache_timeout = cfg.get("cache_timeout", 300_000)
        self.cache_size = cfg.get("cache_size", 100)
        self.group_detector = group_detector

        self._states = {}
        self._handlers = {
            RuleType.SIMPLE.value: self._evaluate_simple,
            RuleType.ADVANCED.value: self._evaluate_advanced,
            RuleType.THRESHOLD.value: self._evaluate_threshold,
            RuleType.ANOMALY.value: self._evaluate_anomaly,
        }
        self._detectors = dict(ANOMALY_DETECTORS)
        self._metrics = {"evaluations": 0, "triggers": 0, "cache_hits": 0, "cache_misses": 0, "errors": 0}
        self.recent_errors = []

    # ── State ───────────────────────────────────────────

    def _state_for(self, rule):
        state = self._states.get(rule.id)
        if state is None:
            # Seed from the rule's persisted snapshot
            state = EvaluationState(
                evaluation_count=rule.evaluation_count or 0,
                trigger_count=rule.trigger_count or 0,
                last_evaluated=rule.last_evaluated,
                last_triggered=rule.last_triggered,
                cache=BoundedCache(max_size=self.cache_size),
            )
            self._states[rule.id] = state
        return state

    def get_state(self, rule_id):
        state = self._states.get(rule_id)
        if state is None:
            return {"evaluation_count": 0, "trigger_count": 0, "last_evaluated": None, "last_triggered": None}
        return state.to_dict()

    def reset_state(self, rule_id=None):
        if rule_id is None:
            self._states.clear()
        else:
            self._states.pop(rule_id, None)

    def clear_cache(self):
        for state in self._states.values():
            state.cache.clear()
        logger.debug("Evaluation cache cleared")

    def export_rule(self, rule):
        """Copy of the rule with the live statistics written back into it."""
        state = self._states.get(rule.id)
        if state is None:
            return dataclasses.replace(rule)
        return dataclasses.replace(
            rule,
            evaluation_count=state.evaluation_count,
            trigger_count=state.trigger_count,
            last_evaluated=state.last_evaluated,
            last_triggered=state.last_triggered,
        )

    def register_anomaly_detector(self, name, detector):
        self._detectors[name] = detector

    def get_metrics(self):
        lookups = self._metrics["cache_hits"] + self._metrics["cache_misses"]
        return {
            **self._metrics,
            "cache_hit_rate": self._metrics["cache_hits"] / lookups if lookups else 0.0,
            "tracked_rules": len(self._states),
        }

    # ── Gating ──────────────────────────────────────────

    def is_valid_at(self, rule, timestamp):
        if rule.valid_from is not None and timestamp < rule.valid_from:
            return False
        if rule.valid_until is not None and timestamp > rule.valid_until:
            return False
        return True

    def is_in_cooldown(self, rule, timestamp):
        state = self._states.get(rule.id)
        last = state.last_triggered if state else rule.last_triggered
        if last is None or not rule.cooldown_period:
            return False
        return (timestamp - last) < rule.cooldown_period

    def is_applicable(self, rule, context):
        """True if the event's equipment satisfies at least one declared constraint.

        Rules without constraints apply everywhere, as do events that carry no
        equipment identity at all.
        """
        if not (rule.equipment_groups or rule.equipment_patterns or rule.applicable_equipment):
            return True

        name = context.get("equipment_name")
        groups = context.get("equipment_groups")
        if groups is None and name and self.group_detector:
            groups = self.group_detector(name)
        groups = [str(g).upper() for g in groups or []]
        if not name and not groups:
            return True

        if rule.applicable_equipment and name in rule.applicable_equipment:
            return True
        if rule.equipment_groups and set(groups) & {str(g).upper() for g in rule.equipment_groups}:
            return True
        if rule.equipment_patterns and name:
            if any(self._pattern_matches(p, name) for p in rule.equipment_patterns):
                return True
        return False

    def _pattern_matches(self, pattern, name):
        try:
            return re.search(pattern, name, re.IGNORECASE) is not None
        except re.error:
            return str(pattern).lower() in name.lower()

    # ── Evaluation ──────────────────────────────────────

    def evaluate(self, rule, data, context=None):
        """Evaluate one rule. Returns False for gated rules and on internal errors."""
        data = data or {}
        context = context or {}
        if not rule.enabled:
            return False
        try:
            return self._evaluate_enabled(rule, data, context)
        except Exception as e:
            error = EvaluationError(str(e), rule_id=rule.id, data=dict(data), context=dict(context))
            self._record_error(error)
            logger.error(f"Evaluation failed: {error}")
            return False

    def _evaluate_enabled(self, rule, data, context):
        timestamp = parse_timestamp(context.get("timestamp"), default=now_ms())
        if not self.is_valid_at(rule, timestamp):
            logger.debug(f"Rule {rule.id} outside its validity window")
            return False
        if self.is_in_cooldown(rule, timestamp):
            logger.debug(f"Rule {rule.id} in cooldown")
            return False
        if not self.is_applicable(rule, context):
            return False

        state = self._state_for(rule)
        cache_key = None
        if self.enable_caching:
            cache_key = payload_hash({
                "rule_id": rule.id,
                "data": data,
                "context": context,
                "bucket": timestamp // self.cache_timeout,
            })
            cached = state.cache.get(cache_key)
            if cached is not None:
                self._metrics["cache_hits"] += 1
                return cached
            self._metrics["cache_misses"] += 1

        result = self._dispatch(rule, data, context)

        state.evaluation_count += 1
        state.last_evaluated = timestamp
        self._metrics["evaluations"] += 1
        if result:
            state.trigger_count += 1
            state.last_triggered = timestamp
            self._metrics["triggers"] += 1
            logger.debug(f"Rule {rule.id} triggered")
        if cache_key is not None:
            state.cache.set(cache_key, result)
        return result

    def _dispatch(self, rule, data, context):
        handler = self._handlers.get(rule.type)
        if handler is None:
            logger.warning(f"Unknown rule type '{rule.type}' for rule {rule.id}")
            return False
        return bool(handler(rule, data, context))

    def _record_error(self, error):
        self._metrics["errors"] += 1
        self.recent_errors.append(error)
        del self.recent_errors[:-MAX_RECENT_ERRORS]

    def evaluate_many(self, rules, data, context=None):
        """Triggered subset of ``rules``, in order."""
        return [rule for rule in rules if self.evaluate(rule, data, context)]

    # ── Type handlers ───────────────────────────────────

    def _evaluate_simple(self, rule, data, context):
        conditions = rule.conditions or {}

        apontamento = conditions.get("apontamento")
        if apontamento and data.get("apontamento") != apontamento:
            return False

        status = conditions.get("status")
        if status and data.get("status") != status:
            return False

        operator = conditions.get("timeOperator")
        time_value = conditions.get("timeValue")
        if operator and time_value is not None:
            elapsed = data.get("time")
            if elapsed is None:
                elapsed = data.get("duration")
            if elapsed is None:
                elapsed = 0
            if not compare_numeric(elapsed, operator, time_value):
                return False
        return True

    def _evaluate_advanced(self, rule, data, context):
        if not isinstance(rule.conditions, Group):
            raise EvaluationError("advanced rule without a condition group", rule_id=rule.id)
        return evaluate_group(rule.conditions, data, context)

    def _evaluate_threshold(self, rule, data, context):
        conditions = rule.conditions or {}
        value = data.get(conditions.get("metric"))
        if value is None:
            return False
        return compare(value, conditions.get("operator", ">"), conditions.get("threshold"))

    def _evaluate_anomaly(self, rule, data, context):
        conditions = rule.conditions or {}
        value = data.get(conditions.get("metric"))
        if value is None:
            return False
        try:
            value = float(value)
        except (TypeError, ValueError):
            logger.warning(f"Rule {rule.id}: non-numeric value {value!r} for {conditions.get('metric')}")
            return False

        detector = self._detectors.get(conditions.get("algorithm"))
        if detector is None:
            logger.warning(f"Rule {rule.id}: unknown anomaly algorithm {conditions.get('algorithm')!r}")
            return False
        return detector(value, conditions)
