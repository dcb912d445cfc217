"""Rule set loading and management."""
import json
import logging
from pathlib import Path

import yaml

from alerts.validator import RuleValidator
from models.rules import Rule

logger = logging.getLogger("equipalert.alerts.rules")


class RulesManager:
    """Loads ``{"rules": [...]}`` (or a bare list) from a JSON or YAML file.

    Every rule is validated on load; invalid rules are skipped and kept in
    the validation report.
    """

    def __init__(self, rules_path="config/alert_rules.yaml", config=None):
        self.rules_path = Path(rules_path) if rules_path else None
        self.validator = RuleValidator(config)
        self.rules = []
        self.rejected = {}
        self.warnings = {}
        self.set_errors = []
        self.set_warnings = []
        if self.rules_path is not None:
            self.load()

    def load(self):
        if not self.rules_path.exists():
            logger.warning(f"Rules file not found: {self.rules_path}")
            return
        with open(self.rules_path, encoding="utf-8") as f:
            if self.rules_path.suffix.lower() == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
        self.load_rules(data)

    def load_rules(self, data):
        """Replace the working set from already-parsed data."""
        raw_rules = data.get("rules", []) if isinstance(data, dict) else data or []
        self.rules = self._parse_rules(raw_rules)

        result = self.validator.validate_rule_set(self.rules)
        self.set_errors = [e for e in result.errors if e.startswith("duplicate rule id")]
        self.set_warnings = [w for w in result.warnings if w.startswith("similar rule names")]
        for message in self.set_errors + self.set_warnings:
            logger.warning(f"Rule set: {message}")

        logger.info(f"Loaded {len(self.rules)} rules ({len(self.rejected)} rejected) from "
                    f"{self.rules_path or 'memory'}")
        return self.rules

    def _parse_rules(self, raw_rules):
        rules = []
        self.rejected = {}
        self.warnings = {}
        for index, raw in enumerate(raw_rules):
            rule_id = raw.get("id", index) if isinstance(raw, dict) else index
            try:
                rule = Rule.from_dict(raw)
                if rule.id is None:
                    rule.id = rule_id
                result = self.validator.validate_rule(rule)
            except (AttributeError, TypeError, ValueError) as e:
                logger.warning(f"Unreadable rule {rule_id}: {e}")
                self.rejected[rule_id] = [str(e)]
                continue

            if not result.valid:
                logger.warning(f"Invalid rule {rule.id}: {'; '.join(result.errors)}")
                self.rejected[rule.id] = result.errors
                continue
            if result.warnings:
                self.warnings[rule.id] = result.warnings
            rules.append(rule)
        return rules

    def get_enabled_rules(self):
        return [r for r in self.rules if r.enabled]

    def get_rule(self, rule_id):
        for r in self.rules:
            if r.id == rule_id:
                return r
        return None

    def get_all_rules(self):
        return self.rules

    def validation_report(self):
        return {
            "valid": len(self.rules),
            "rejected": dict(self.rejected),
            "warnings": dict(self.warnings),
            "set_errors": list(self.set_errors),
            "set_warnings": list(self.set_warnings),
        }
