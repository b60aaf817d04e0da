"""
Exception hierarchy for chronica.

Configuration errors are fatal to shipper initialization. Delivery errors
are recoverable: the shipper logs them, drops the current batch and tries
again on the next tick.
"""

from __future__ import annotations

from typing import Any


class ChronicaError(Exception):
    """Base class for all chronica errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class ConfigurationError(ChronicaError):
    """Missing or invalid configuration (aggregator, transport credentials)."""


class DeliveryError(ChronicaError):
    """Base class for failures while delivering a report."""


class ResolutionError(DeliveryError):
    """The resolve endpoint answered with an error or could not be reached."""


class TransportError(DeliveryError):
    """A request failed at the network or HTTP level."""

    def __init__(
        self, message: str, *, status_code: int | None = None, **context: Any
    ) -> None:
        super().__init__(message, **context)
        self.status_code = status_code


class PayloadTooLargeError(TransportError):
    """A request body exceeded the configured maximum and was not sent."""


__all__ = [
    "ChronicaError",
    "ConfigurationError",
    "DeliveryError",
    "ResolutionError",
    "TransportError",
    "PayloadTooLargeError",
]
