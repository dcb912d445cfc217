"""Batch pipeline: evaluate rules over events, build alerts, dedup, merge, dispatch."""
import logging

from alerts.alert_builder import AlertBuilder
from alerts.deduplicator import AlertDeduplicator
from alerts.evaluator import RuleEvaluator
from utils.timeutils import now_ms, parse_timestamp

logger = logging.getLogger("equipalert.alerts.engine")

SEVERITY_ICONS = {"CRITICAL": "!!!", "HIGH": "!!", "MEDIUM": "!", "LOW": "i"}


def event_context(event):
    """Evaluation context for one raw event dict."""
    groups = event.get("equipmentGroups", event.get("equipment_groups"))
    return {
        "equipment_name": event.get("equipamento") or event.get("equipment"),
        "equipment_groups": list(groups) if groups is not None else None,
        "timestamp": parse_timestamp(event.get("timestamp"), default=now_ms()),
    }


class AlertPipeline:
    def __init__(self, evaluator=None, builder=None, deduplicator=None, channels=None, config=None):
        config = config or {}
        self.evaluator = evaluator or RuleEvaluator(config)
        self.builder = builder or AlertBuilder(config)
        self.deduplicator = deduplicator or AlertDeduplicator(config)
        self.channels = channels or []
        self.errors = []

    def evaluate_event(self, rules, event):
        """Alerts for every rule the event triggers."""
        context = event_context(event)
        if context["equipment_groups"] is None:
            del context["equipment_groups"]
        alerts = []
        for rule in self.evaluator.evaluate_many(rules, event, context):
            alerts.append(self.builder.build(rule, event, context))
        return alerts

    def process(self, rules, events, existing_alerts=(), dispatch=True):
        """Run the full pipeline and return the unique (and merged) alerts."""
        self.errors = []
        candidates = []
        for index, event in enumerate(events):
            try:
                candidates.extend(self.evaluate_event(rules, event))
            except Exception as e:
                self.errors.append((index, str(e)))
                logger.error(f"Event {index} skipped: {e}")

        unique = self.deduplicator.deduplicate(candidates, existing_alerts)
        alerts = self.deduplicator.merge_alerts(unique)
        logger.info(f"Processed {len(events)} events: {len(candidates)} triggered, {len(alerts)} emitted")

        if dispatch:
            for alert in alerts:
                self._dispatch(alert)
        return alerts

    def test_rules(self, rules, event):
        """Dry run of every rule against one event without touching the live evaluator state."""
        dry_run = RuleEvaluator({"evaluator": {"enable_caching": False}}, self.evaluator.group_detector)
        context = event_context(event)
        if context["equipment_groups"] is None:
            del context["equipment_groups"]
        results = []
        for rule in rules:
            results.append({
                "rule_id": rule.id,
                "name": rule.name,
                "type": rule.type,
                "severity": rule.severity,
                "enabled": rule.enabled,
                "would_fire": dry_run.evaluate(rule, event, context),
            })
        return results

    def format_alert_summary(self, alerts):
        """Format alerts for display."""
        if not alerts:
            return "All clear - no alerts triggered."
        lines = []
        for a in alerts:
            icon = SEVERITY_ICONS.get(a.severity, "?")
            lines.append(f"[{icon}] [{a.severity}] {a.equipamento}: {a.message}")
        return "\n".join(lines)

    def _dispatch(self, alert):
        for channel in self.channels:
            try:
                channel.send(alert)
            except Exception as e:
                logger.warning(f"Channel dispatch error: {e}")
