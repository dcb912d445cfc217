"""Statistical tests for anomaly rules.

Each detector takes the observed value and the rule's condition dict and
returns True when the value is anomalous. When ``history`` is given, missing
statistics (mean, stdDev, min, max) are derived from that sample.
"""
import numpy as np


def _history(conditions):
    history = conditions.get("history")
    if not history:
        return None
    return np.asarray(history, dtype=float)


def zscore_anomaly(value, conditions):
    """|value - mean| / stdDev > zThreshold (default 3)."""
    mean = conditions.get("mean")
    std_dev = conditions.get("stdDev")
    sample = _history(conditions)
    if sample is not None:
        if mean is None:
            mean = float(sample.mean())
        if std_dev is None:
            std_dev = float(sample.std())

    mean = mean or 0.0
    std_dev = std_dev or 1.0
    threshold = conditions.get("zThreshold") or 3.0
    return abs((value - mean) / std_dev) > threshold


def statistical_anomaly(value, conditions):
    """Value outside [min, max] widened by ``tolerance`` times the range on each side."""
    low = conditions.get("min")
    high = conditions.get("max")
    sample = _history(conditions)
    if sample is not None:
        if low is None:
            low = float(sample.min())
        if high is None:
            high = float(sample.max())

    low = 0.0 if low is None else low
    high = 100.0 if high is None else high
    tolerance = conditions.get("tolerance")
    tolerance = 0.1 if tolerance is None else tolerance

    spread = high - low
    return value < low - spread * tolerance or value > high + spread * tolerance


ANOMALY_DETECTORS = {
    "zscore": zscore_anomaly,
    "statistical": statistical_anomaly,
}
