"""
Log event snapshot consumed by the shipping pipeline.

Events are produced by the host adapter, owned by the buffer once appended
and discarded after they have been drained and rendered into a report.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

from .levels import Level, parse_level

_EMPTY_CONTEXT: Mapping[str, Any] = MappingProxyType({})


@dataclass(frozen=True)
class LogEvent:
    """Immutable snapshot of a single log occurrence."""

    timestamp_ms: int
    level: Level
    logger_name: str
    message: str
    context: Mapping[str, Any] = field(default_factory=lambda: _EMPTY_CONTEXT)

    def __post_init__(self) -> None:
        """Validate and freeze the event after initialization."""
        if not isinstance(self.level, Level):
            object.__setattr__(self, "level", parse_level(self.level))

        if self.timestamp_ms < 0:
            raise ValueError("Timestamp must not be negative")

        if self.context is not _EMPTY_CONTEXT:
            # Copy so later mutation by the producer cannot leak in
            object.__setattr__(self, "context", MappingProxyType(dict(self.context)))

    @classmethod
    def now(
        cls,
        level: Level | str,
        logger_name: str,
        message: str,
        context: Mapping[str, Any] | None = None,
    ) -> LogEvent:
        """Create an event stamped with the current wall-clock time."""
        return cls(
            timestamp_ms=int(time.time() * 1000),
            level=parse_level(level),
            logger_name=logger_name,
            message=message,
            context=context if context else _EMPTY_CONTEXT,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert event to dictionary for serialization."""
        return {
            "timestamp_ms": self.timestamp_ms,
            "level": self.level.name,
            "logger_name": self.logger_name,
            "message": self.message,
            "context": dict(self.context),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LogEvent:
        """Create event from dictionary."""
        context = data.get("context") or None
        return cls(
            timestamp_ms=int(data["timestamp_ms"]),
            level=parse_level(data["level"]),
            logger_name=str(data.get("logger_name", "")),
            message=str(data.get("message", "")),
            context=context if context else _EMPTY_CONTEXT,
        )
