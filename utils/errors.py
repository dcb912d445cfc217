"""Error types raised and absorbed by the rule engine."""


class AlertSystemError(Exception):
    """Base class for rule engine errors."""


class ValidationError(AlertSystemError):
    """Malformed rule or condition tree, raised at build/validate time."""
    def __init__(self, message, errors=None, warnings=None):
        super().__init__(message)
        self.errors = list(errors or [])
        self.warnings = list(warnings or [])


class EvaluationError(AlertSystemError):
    """Failure while evaluating a rule. Never propagated out of evaluate()."""
    def __init__(self, message, rule_id=None, data=None, context=None):
        super().__init__(message)
        self.rule_id = rule_id
        self.data = data
        self.context = context

    def __str__(self):
        return f"rule {self.rule_id}: {self.args[0]}"


class ClassificationError(AlertSystemError):
    """Failure while classifying an alert as duplicate/unique."""
    def __init__(self, message, alert_id=None, strategy=None):
        super().__init__(message)
        self.alert_id = alert_id
        self.strategy = strategy

    def __str__(self):
        return f"alert {self.alert_id} ({self.strategy}): {self.args[0]}"
