"""Shared fixtures for dashformula tests."""

from __future__ import annotations

from typing import Any

import pytest


@pytest.fixture(autouse=True)
def _reset_event_sink():
    """Keep the module-level event sink from leaking between tests."""
    from dashformula.logging.events import set_log_dir

    set_log_dir(None)
    yield
    set_log_dir(None)


@pytest.fixture
def orders_data() -> list[dict[str, Any]]:
    return [
        {"Revenue": 1000, "Orders": 10},
        {"Revenue": 1500, "Orders": 15},
        {"Revenue": 2000, "Orders": 20},
    ]


@pytest.fixture
def sales_data() -> list[dict[str, Any]]:
    return [
        {"Product": "Widget", "Revenue": 1000, "Cost": 600},
        {"Product": "Gadget", "Revenue": "$2,000.00", "Cost": "1,500"},
        {"Product": "Gizmo", "Revenue": 500, "Cost": 100},
    ]
