"""Core pipeline: events, buffer, report composition, scheduling, shipper."""

from .buffer import EventBuffer
from .errors import (
    ChronicaError,
    ConfigurationError,
    DeliveryError,
    PayloadTooLargeError,
    ResolutionError,
    TransportError,
)
from .events import LogEvent
from .levels import Level, level_from_stdlib, parse_level
from .report import build_report, build_values_report, format_event
from .scheduler import PeriodicScheduler
from .settings import Settings
from .shipper import Shipper, ShipperState

__all__ = [
    "ChronicaError",
    "ConfigurationError",
    "DeliveryError",
    "EventBuffer",
    "Level",
    "LogEvent",
    "PayloadTooLargeError",
    "PeriodicScheduler",
    "ResolutionError",
    "Settings",
    "Shipper",
    "ShipperState",
    "TransportError",
    "build_report",
    "build_values_report",
    "format_event",
    "level_from_stdlib",
    "parse_level",
]
