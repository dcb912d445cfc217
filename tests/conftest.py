"""Shared test fixtures."""
import os
import sys
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models.alerts import Alert
from models.rules import Rule, group_from_dict

T0 = 1_718_000_000_000  # fixed epoch ms used across tests


@pytest.fixture
def t0():
    return T0


@pytest.fixture
def config():
    """Default configuration without touching the cached global."""
    from config import load_config
    return load_config()


@pytest.fixture
def simple_rule():
    return Rule.from_dict({
        "id": "maint",
        "name": "Long maintenance",
        "type": "simple",
        "severity": "high",
        "conditions": {"apontamento": "Manutenção", "timeOperator": ">", "timeValue": 60},
        "message": "{equipamento} em manutenção há {tempo}",
    })


@pytest.fixture
def advanced_rule():
    """AND(status equals on, time > 30)."""
    return Rule(
        id="on_idle",
        name="Running idle",
        type="advanced",
        conditions=group_from_dict({
            "logic": "AND",
            "rules": [
                {"type": "status", "operator": "equals", "value": "on"},
                {"type": "time", "operator": ">", "value": 30},
            ],
        }),
    )


def make_alert(**overrides):
    fields = {
        "id": "a1",
        "equipamento": "CAT-01",
        "rule_id": "r1",
        "rule_name": "Rule 1",
        "severity": "MEDIUM",
        "message": "CAT-01 parado há 45min",
        "event_type": "status",
        "event_identifier": "off",
        "timestamp": T0,
        "duration": 45,
    }
    fields.update(overrides)
    return Alert(**fields)


@pytest.fixture
def alert_factory():
    return make_alert
