"""
Bridge from the stdlib ``logging`` module into a :class:`Shipper`.

``enable_stdlib_bridge(shipper)`` attaches a :class:`ShipperHandler` to the
root logger (or a given logger). Each record becomes a :class:`LogEvent`:
``record.created`` as epoch millis, the mapped level, the logger name and the
formatted message. ``funcName`` is carried as the ``method`` context key and
``extra={...}`` fields land in the event context.

Records from ``chronica.*`` loggers and from the HTTP stack the transport
uses (``httpx``, ``httpcore``) are never forwarded, so the shipper's own
diagnostics and delivery traffic cannot feed back into it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from .events import LogEvent
from .levels import level_from_stdlib

if TYPE_CHECKING:
    from .shipper import Shipper

# Attributes present on every LogRecord; anything else came from ``extra``
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys()
) | {"message", "asctime", "taskName"}

# Extra mapping merged verbatim into the event context
CONTEXT_EXTRA_KEY = "chronica_context"

# Logger hierarchies whose records never reach the shipper
DEFAULT_EXCLUDED_LOGGERS: tuple[str, ...] = ("chronica", "httpx", "httpcore")


def _is_excluded(name: str, prefixes: Iterable[str]) -> bool:
    return any(name == p or name.startswith(p + ".") for p in prefixes)


def record_to_event(record: logging.LogRecord) -> LogEvent:
    """Convert a stdlib record into a pipeline event."""
    context: dict[str, Any] = {}
    if record.funcName and record.funcName != "<module>":
        context["method"] = record.funcName
    for key, value in record.__dict__.items():
        if key in _RESERVED_ATTRS or key == CONTEXT_EXTRA_KEY or key.startswith("_"):
            continue
        context[key] = value
    explicit = getattr(record, CONTEXT_EXTRA_KEY, None)
    if isinstance(explicit, dict):
        context.update(explicit)
    if record.exc_info and record.exc_info[0] is not None:
        context["error.type"] = record.exc_info[0].__name__

    return LogEvent(
        timestamp_ms=int(record.created * 1000),
        level=level_from_stdlib(record.levelno),
        logger_name=record.name,
        message=record.getMessage(),
        context=context,
    )


class ShipperHandler(logging.Handler):
    """``logging.Handler`` that feeds records into a shipper."""

    def __init__(
        self,
        shipper: Shipper,
        *,
        level: int = logging.DEBUG,
        close_shipper: bool = True,
        excluded_loggers: Iterable[str] = DEFAULT_EXCLUDED_LOGGERS,
    ) -> None:
        super().__init__(level=level)
        self._shipper = shipper
        self._close_shipper = close_shipper
        self._excluded = tuple(excluded_loggers)

    @property
    def shipper(self) -> Shipper:
        return self._shipper

    def emit(self, record: logging.LogRecord) -> None:
        if _is_excluded(record.name, self._excluded):
            return
        try:
            self._shipper.ingest(record_to_event(record))
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        try:
            if self._close_shipper:
                self._shipper.close()
        finally:
            super().close()


def enable_stdlib_bridge(
    shipper: Shipper,
    *,
    logger: logging.Logger | None = None,
    level: int = logging.DEBUG,
    remove_existing_handlers: bool = False,
    excluded_loggers: Iterable[str] = DEFAULT_EXCLUDED_LOGGERS,
) -> ShipperHandler:
    """Attach a :class:`ShipperHandler` and return it.

    Args:
        shipper: Shipper receiving the events
        logger: Logger to attach to; the root logger when omitted
        level: Minimum stdlib level forwarded by the handler
        remove_existing_handlers: Detach handlers already on ``logger``
        excluded_loggers: Logger names (with their children) never forwarded
    """
    target = logger if logger is not None else logging.getLogger()
    if remove_existing_handlers:
        for existing in list(target.handlers):
            target.removeHandler(existing)
    handler = ShipperHandler(shipper, level=level, excluded_loggers=excluded_loggers)
    target.addHandler(handler)
    if target.level == logging.NOTSET or target.level > level:
        target.setLevel(level)
    return handler


__all__ = [
    "CONTEXT_EXTRA_KEY",
    "DEFAULT_EXCLUDED_LOGGERS",
    "ShipperHandler",
    "enable_stdlib_bridge",
    "record_to_event",
]
