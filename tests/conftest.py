"""
Shared pytest fixtures for orderstream tests.

This module provides:
- Deterministic clocks and sleepers
- Builders for raw change-log and clickstream records
- Recording sinks and step capabilities
- Settings isolated from the caller's environment
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest

from orderstream.clickstream.models import encode_record
from orderstream.core.result import Ok
from orderstream.core.settings import OrderStreamSettings
from orderstream.records.normalizer import to_attribute_tree


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark every test without an explicit marker as a unit test."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Clocks
# =============================================================================


class FakeClock:
    """Monotonic clock advanced by hand; also usable as a sleeper."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


FIXED_NOW = datetime(2024, 3, 5, 14, 30, 15, tzinfo=UTC)


@pytest.fixture
def wall_clock():
    return lambda: FIXED_NOW


# =============================================================================
# Record builders
# =============================================================================


def change_record(
    order: Mapping[str, Any] | None,
    *,
    event_name: str = "INSERT",
    sequence: str = "100",
    created: float = 1_700_000_000.0,
    order_id: str | None = None,
    image: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Raw change-log record for an order document."""
    oid = order_id or (order or {}).get("orderId", "o-1")
    change: dict[str, Any] = {
        "Keys": {"orderId": {"S": oid}},
        "SequenceNumber": sequence,
        "ApproximateCreationDateTime": created,
    }
    if image is not None:
        change["NewImage"] = image
    elif order is not None:
        change["NewImage"] = to_attribute_tree(order)
    return {"eventID": f"evt-{sequence}", "eventName": event_name, "dynamodb": change}


def click_record(**event: Any) -> dict[str, Any]:
    return encode_record(event)


@pytest.fixture
def sample_order() -> dict[str, Any]:
    return {
        "orderId": "o-1",
        "customerEmail": "ada@example.com",
        "paymentStatus": "SUCCESS",
        "total": 42.5,
        "items": [{"sku": "A-1", "qty": 2}],
    }


# =============================================================================
# Fakes
# =============================================================================


class RecordingSink:
    """Dispatcher sink that records calls and returns scripted results."""

    def __init__(self, name: str, results: list[Any] | None = None) -> None:
        self.name = name
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self._results = list(results or [])

    def __call__(self, entity_id, document, event):
        self.calls.append((entity_id, document))
        if self._results:
            result = self._results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return Ok({"id": entity_id})


@pytest.fixture
def recording_sink_factory():
    return RecordingSink


class ScriptedCapabilities:
    """Step capabilities returning scripted outputs per step kind.

    A value in ``script`` may be a mapping (returned), an exception (raised)
    or a list of those (consumed one per call).
    """

    def __init__(self, script: Mapping[Any, Any] | None = None, on_invoke=None) -> None:
        self.script = dict(script or {})
        self.calls: list[tuple[Any, Mapping[str, Any]]] = []
        self.on_invoke = on_invoke

    def invoke(self, step_kind, step_input):
        self.calls.append((step_kind, step_input))
        if self.on_invoke is not None:
            self.on_invoke(step_kind)
        value = self.script.get(step_kind, {})
        if isinstance(value, list):
            value = value.pop(0) if value else {}
        if isinstance(value, Exception):
            raise value
        return value


@pytest.fixture
def capabilities_factory():
    return ScriptedCapabilities


# =============================================================================
# Settings
# =============================================================================


@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> OrderStreamSettings:
    """Settings built from defaults only."""
    import os

    for key in list(os.environ):
        if key.startswith("ORDERSTREAM_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    return OrderStreamSettings()


