"""Timestamp parsing and duration helpers. All timestamps are epoch milliseconds."""
from datetime import datetime, timezone

_DATE_FORMATS = (
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y",
    "%Y-%m-%d %H:%M:%S",
)

_UNIT_MS = {
    "ms": 1,
    "seconds": 1000,
    "minutes": 60_000,
    "hours": 3_600_000,
    "days": 86_400_000,
}


def now_ms():
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def _datetime_to_ms(dt):
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def parse_timestamp(value, default=None):
    """Parse ints, floats, datetimes and date strings into epoch ms. Returns ``default`` if unparseable."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, datetime):
        return _datetime_to_ms(value)

    text = str(value).strip()
    if text.lstrip("-").isdigit():
        return int(text)
    try:
        return _datetime_to_ms(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return _datetime_to_ms(datetime.strptime(text, fmt))
        except ValueError:
            continue
    return default


def duration(start, end, unit="minutes"):
    """Elapsed time between two timestamps in the given unit, or None if either is unparseable."""
    if unit not in _UNIT_MS:
        raise ValueError(f"Unknown duration unit: {unit}")
    start_ms = parse_timestamp(start)
    end_ms = parse_timestamp(end)
    if start_ms is None or end_ms is None:
        return None
    return (end_ms - start_ms) / _UNIT_MS[unit]


def format_duration(minutes):
    """Render minutes as ``1h 5min`` / ``45min``."""
    minutes = float(minutes or 0)
    hours = int(minutes // 60)
    mins = int(round(minutes % 60))
    if hours > 0:
        return f"{hours}h {mins}min"
    return f"{mins}min"
