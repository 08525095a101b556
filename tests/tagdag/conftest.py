"""Shared fixtures for tagDAG tests.

- log_messages: captures Loguru records emitted during a test
- workspace_payloads: a small container export used by loader and CLI tests
"""

from __future__ import annotations

from typing import Any

import pytest
from loguru import logger


@pytest.fixture
def log_messages():
    """Collect ``(level, message)`` pairs logged while the test runs."""
    records: list[tuple[str, str]] = []

    def sink(message: Any) -> None:
        record = message.record
        records.append((record["level"].name, record["message"]))

    handler_id = logger.add(sink, level="DEBUG", format="{message}")
    yield records
    logger.remove(handler_id)


@pytest.fixture
def workspace_payloads() -> dict[str, Any]:
    """Container export: a GA4 event tag, its trigger, variables and template."""
    return {
        "exportFormatVersion": 2,
        "containerVersion": {
            "tag": [
                {
                    "tagId": "10",
                    "name": "GA4 - Purchase",
                    "type": "gaawe",
                    "parameter": [
                        {"type": "template", "key": "eventName", "value": "purchase"},
                        {"type": "template", "key": "value", "value": "{{DL - Revenue}}"},
                    ],
                    "firingTriggerId": ["20"],
                },
                {
                    "tagId": "11",
                    "name": "Consent Banner",
                    "type": "cvt_123_7",
                    "firingTriggerId": ["2147479553"],
                },
            ],
            "trigger": [
                {
                    "triggerId": "20",
                    "name": "CE - purchase",
                    "type": "customEvent",
                    "customEventFilter": [
                        {
                            "type": "equals",
                            "parameter": [
                                {"type": "template", "key": "arg0", "value": "{{_event}}"},
                                {"type": "template", "key": "arg1", "value": "purchase"},
                            ],
                        }
                    ],
                }
            ],
            "variable": [
                {
                    "variableId": "30",
                    "name": "DL - Revenue",
                    "type": "v",
                    "parameter": [{"type": "template", "key": "name", "value": "ecommerce.value"}],
                }
            ],
            "customTemplate": [
                {
                    "templateId": "7",
                    "containerId": "123",
                    "name": "Consent Mode Template",
                    "templateData": "___INFO___\n{\"id\": \"cvt_temp_public_id\"}",
                }
            ],
            "builtInVariable": [{"type": "EVENT", "name": "Event"}],
        },
    }
