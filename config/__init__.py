"""Configuration management."""
import os
import yaml
from pathlib import Path

_config = None
_DEFAULT_CONFIG = Path(__file__).parent / "default_config.yaml"

REQUIRED_SECTIONS = ["logging", "evaluator", "validation", "deduplication", "rules", "channels"]
DEDUP_STRATEGIES = {"hash", "id", "content", "time", "smart"}

# env var -> config path
ENV_OVERRIDES = {
    "EQUIPALERT_LOG_LEVEL": ("logging", "level"),
    "EQUIPALERT_DEDUP_STRATEGY": ("deduplication", "strategy"),
    "EQUIPALERT_DEDUP_WINDOW": ("deduplication", "window_minutes"),
    "EQUIPALERT_RULES_PATH": ("rules", "path"),
}


def load_config(path=None):
    """Load config from YAML, merging defaults with optional overrides."""
    global _config

    with open(_DEFAULT_CONFIG) as f:
        config = yaml.safe_load(f)

    if path and Path(path).exists():
        with open(path) as f:
            overrides = yaml.safe_load(f) or {}
        config = _deep_merge(config, overrides)

    for env_key, config_path in ENV_OVERRIDES.items():
        val = os.environ.get(env_key)
        if val:
            d = config
            for k in config_path[:-1]:
                d = d.setdefault(k, {})
            try:
                d[config_path[-1]] = int(val)
            except ValueError:
                d[config_path[-1]] = val

    _validate_config(config)
    _config = config
    return config


def get_config():
    """Return cached config, loading defaults if needed."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def _deep_merge(base, override):
    """Recursively merge override into base dict."""
    result = base.copy()
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _validate_config(config):
    """Basic config validation."""
    for section in REQUIRED_SECTIONS:
        if section not in config:
            raise ValueError(f"Missing required config section: {section}")

    dedup = config["deduplication"]
    if dedup.get("strategy") not in DEDUP_STRATEGIES:
        raise ValueError(f"deduplication.strategy must be one of {', '.join(sorted(DEDUP_STRATEGIES))}")
    if dedup.get("window_minutes", 0) <= 0:
        raise ValueError("deduplication.window_minutes must be > 0")
    if not 0 <= dedup.get("content_threshold", 0.9) <= 1:
        raise ValueError("deduplication.content_threshold must be between 0 and 1")

    evaluator = config["evaluator"]
    if evaluator.get("cache_timeout", 1) <= 0:
        raise ValueError("evaluator.cache_timeout must be > 0")
    if evaluator.get("cache_size", 1) < 1:
        raise ValueError("evaluator.cache_size must be >= 1")

    validation = config["validation"]
    if validation.get("max_group_depth", 1) < 0:
        raise ValueError("validation.max_group_depth must be >= 0")
    if validation.get("max_conditions", 1) < 1:
        raise ValueError("validation.max_conditions must be >= 1")
