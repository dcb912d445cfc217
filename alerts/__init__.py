"""Rule evaluation and alert processing."""
from alerts.engine import AlertPipeline
from alerts.evaluator import RuleEvaluator
from alerts.validator import RuleValidator, ValidationResult
from alerts.builder import ConditionTreeBuilder
from alerts.alert_builder import AlertBuilder
from alerts.deduplicator import AlertDeduplicator
from alerts.rules_manager import RulesManager
from alerts.channels import ConsoleChannel, FileChannel
