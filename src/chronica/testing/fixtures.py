"""
Pytest fixtures for testing chronica shippers and plugins.

Loaded through ``pytest_plugins = ("chronica.testing.fixtures",)``.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import pytest

from ..core.shipper import Shipper
from ..metrics.metrics import MetricsCollector
from ..plugins.aggregators.counting import CountingAggregator
from .mocks import ManualClock, MockAggregator, StubTransport
from .validators import validate_aggregator


@pytest.fixture
def stub_transport() -> StubTransport:
    """Transport answering every request with ``OK``."""
    return StubTransport()


@pytest.fixture
def mock_aggregator() -> MockAggregator:
    return MockAggregator()


@pytest.fixture
def manual_clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def diagnostics_capture() -> list[dict[str, Any]]:
    """Collected diagnostic payloads; pass ``list.append`` as the writer."""
    return []


@pytest.fixture
def make_shipper(
    stub_transport: StubTransport,
    manual_clock: ManualClock,
    diagnostics_capture: list[dict[str, Any]],
) -> Iterator[Any]:
    """Factory for shippers wired to stub collaborators.

    The scheduler thread uses a long period so tests drive ``tick()`` by
    hand. Every shipper built here is closed at teardown.
    """
    created: list[Shipper] = []

    def _make(**overrides: Any) -> Shipper:
        params: dict[str, Any] = {
            "aggregator": CountingAggregator(),
            "transport": stub_transport,
            "resolve_url": "https://resolve.test/resolve",
            "period_seconds": 3600.0,
            "metrics": MetricsCollector(enabled=False),
            "diagnostic_writer": diagnostics_capture.append,
            "clock": manual_clock,
        }
        params.update(overrides)
        shipper = Shipper(**params)
        created.append(shipper)
        return shipper

    yield _make
    for shipper in created:
        shipper.close()


@pytest.fixture
def assert_valid_aggregator() -> Any:
    def _check(aggregator: Any) -> None:
        validate_aggregator(aggregator).raise_if_invalid()

    return _check
