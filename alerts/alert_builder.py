"""Turns a triggered rule plus event data into an Alert."""
import logging
import re

from models.alerts import Alert
from models.enums import ConditionType
from utils.fingerprint import alert_fingerprint, unique_id
from utils.timeutils import duration, format_duration, now_ms, parse_timestamp

logger = logging.getLogger("equipalert.alerts.alert_builder")

DEFAULT_TEMPLATE = "{equipamento} - {evento} há {tempo}"

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


class AlertBuilder:
    def __init__(self, config=None):
        self.config = config or {}
        cfg = self.config.get("alerts", {})
        self.default_template = cfg.get("default_template", DEFAULT_TEMPLATE)
        self.clean_unknown_placeholders = cfg.get("clean_unknown_placeholders", False)

    def build(self, rule, data, context=None):
        data = data or {}
        context = context or {}
        timestamp = parse_timestamp(context.get("timestamp"), default=now_ms())

        equipamento = (context.get("equipment_name") or data.get("equipamento")
                       or data.get("equipment") or "")
        groups = list(context.get("equipment_groups") or data.get("equipmentGroups") or [])

        event_type, identifier = self._event_identity(rule, data)
        first = parse_timestamp(data.get("startTime"), default=timestamp)
        last = parse_timestamp(data.get("endTime"), default=timestamp)

        minutes = data.get("duration", data.get("time"))
        if not isinstance(minutes, (int, float)) or isinstance(minutes, bool):
            minutes = duration(first, last) or 0.0

        alert = Alert(
            id=unique_id("alert"),
            equipamento=equipamento,
            equipment_groups=groups,
            rule_id=rule.id,
            rule_name=rule.name,
            severity=rule.severity,
            event_type=event_type,
            event_identifier=identifier,
            timestamp=timestamp,
            first_occurrence=first,
            last_occurrence=last,
            duration=float(minutes),
            consolidated=bool(data.get("consolidated", False)),
            consolidated_count=data.get("consolidatedCount", 1),
            record_count=data.get("recordCount", 1),
            metadata={"rule_type": rule.type, "tags": list(rule.tags)},
        )
        alert.message = self.render_message(rule.message or self.default_template, alert, data)
        alert.unique_id = alert_fingerprint(alert)
        logger.debug(f"Built alert {alert.id} for rule {rule.id} on {equipamento or '?'}")
        return alert

    def _event_identity(self, rule, data):
        """(eventType, eventIdentifier) for the alert."""
        if data.get("eventType"):
            return str(data["eventType"]), data.get("identifier") or data.get("apontamento") or data.get("status")
        if data.get("apontamento"):
            return ConditionType.APONTAMENTO.value, data["apontamento"]
        if data.get("status"):
            return ConditionType.STATUS.value, data["status"]
        return rule.event_type or "UNKNOWN", data.get("identifier")

    def render_message(self, template, alert, data=None):
        """Fill ``{name}`` placeholders from the alert, then from raw data keys."""
        data = data or {}
        values = {
            "equipamento": alert.equipamento,
            "equipment": alert.equipamento,
            "rule_name": alert.rule_name,
            "severity": alert.severity,
            "gravidade": alert.severity,
            "tipo": alert.event_type,
            "evento": alert.event_identifier or "evento",
            "tempo": format_duration(alert.duration),
            "duracao": format_duration(alert.duration),
            "grupos": ", ".join(alert.equipment_groups),
            "grupo_principal": alert.equipment_groups[0] if alert.equipment_groups else "",
            "registros": str(alert.record_count or 1),
        }

        def replace(match):
            key = match.group(1)
            if key in values:
                return str(values[key])
            if key in data:
                return str(data[key])
            return "" if self.clean_unknown_placeholders else match.group(0)

        return _PLACEHOLDER.sub(replace, template).strip()
