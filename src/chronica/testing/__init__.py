"""
Testing utilities for chronica shippers and plugins.

This module provides mocks, factories, fixtures and validators for testing
custom aggregators and transports.

Example:
    from chronica.testing import MockAggregator, validate_aggregator

    def test_my_aggregator():
        result = validate_aggregator(MyAggregator())
        assert result.valid
"""

from .factories import create_batch_events, create_log_event
from .mocks import (
    ManualClock,
    MockAggregator,
    MockAggregatorConfig,
    RecordedRequest,
    StubTransport,
    failing,
)
from .validators import (
    ProtocolViolationError,
    ValidationResult,
    validate_aggregator,
    validate_transport,
)

__all__ = [
    # Mocks
    "ManualClock",
    "MockAggregator",
    "MockAggregatorConfig",
    "RecordedRequest",
    "StubTransport",
    "failing",
    # Validators
    "ProtocolViolationError",
    "ValidationResult",
    "validate_aggregator",
    "validate_transport",
    # Factories
    "create_batch_events",
    "create_log_event",
]
