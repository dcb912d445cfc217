"""Utility modules for the equipment alert engine."""
from utils.logger import setup_logging
from utils.cache import BoundedCache
from utils.errors import AlertSystemError, ValidationError, EvaluationError, ClassificationError
from utils.fingerprint import stable_hash, alert_fingerprint, payload_hash
from utils.timeutils import parse_timestamp, duration, format_duration
