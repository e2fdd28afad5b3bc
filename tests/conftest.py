"""
Shared fixtures for the automation engine tests.
"""

from typing import Any, Dict, List, Optional

import pytest

from autoflow.config import Settings
from autoflow.engine.models import Automation
from autoflow.runtime import build_runtime


@pytest.fixture
def test_settings():
    """Settings with instant retries and no demo automation."""
    return Settings(
        DATABASE_PATH=None,
        RETRY_BASE_DELAY=0.0,
        RETRY_MAX_DELAY=0.0,
        REGISTER_DEMO=False,
    )


@pytest.fixture
def runtime(test_settings):
    """A fresh in-memory runtime (not subscribed to the bus)."""
    return build_runtime(test_settings)


@pytest.fixture
def make_automation():
    """Factory for automation documents in their stored camelCase form."""

    def factory(
        nodes: List[Dict[str, Any]],
        trigger_type: str = "new_lead",
        trigger_params: Optional[Dict[str, Any]] = None,
        **extra: Any,
    ) -> Automation:
        document = {
            "id": extra.pop("id", "auto-1"),
            "name": extra.pop("name", "Test Automation"),
            "isEnabled": extra.pop("isEnabled", True),
            "trigger": {"id": "t1", "type": trigger_type, "params": trigger_params or {}},
            "nodes": nodes,
        }
        document.update(extra)
        return Automation.from_dict(document)

    return factory


@pytest.fixture
def routing_nodes():
    """Country condition routing to a US or international tag."""
    return [
        {
            "id": "A",
            "type": "condition",
            "params": {"field": "country", "operator": "==", "value": "US"},
            "branches": {"true": "B", "false": "C"},
        },
        {"id": "B", "type": "tag", "params": {"tag": "us-lead"}},
        {"id": "C", "type": "action", "params": {"action": "tag", "tag": "intl-lead"}},
    ]


@pytest.fixture
def delay_nodes():
    """Tag, wait a day, tag again."""
    return [
        {"id": "first", "type": "tag", "params": {"tag": "welcomed"}, "next": "wait"},
        {
            "id": "wait",
            "type": "delay",
            "params": {"delayType": "period", "delayAmount": 1, "delayUnit": "Days"},
            "next": "second",
        },
        {"id": "second", "type": "tag", "params": {"tag": "followed-up"}},
    ]
