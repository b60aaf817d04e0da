"""
Structured internal diagnostics for chronica.

Diagnostics are small dicts (``component``, ``level``, ``message`` plus
arbitrary fields) handed to a writer. The default writer forwards them as
JSON to the stdlib logger ``chronica.diagnostics``; hosts can pass their own
writer to the shipper instead.

WARN and ERROR diagnostics are always emitted. DEBUG and INFO diagnostics
are emitted only when ``core.internal_logging_enabled`` is set
(``CHRONICA_CORE__INTERNAL_LOGGING_ENABLED=true``). The setting is read once
and cached.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable

DiagnosticWriter = Callable[[dict[str, Any]], None]

_logger = logging.getLogger("chronica.diagnostics")

_STDLIB_LEVELS: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}

# Cached value of core.internal_logging_enabled (None = not read yet)
_internal_logging_enabled: bool | None = None


def _default_writer(payload: dict[str, Any]) -> None:
    level = _STDLIB_LEVELS.get(str(payload.get("level", "WARN")), logging.WARNING)
    _logger.log(level, json.dumps(payload, default=str, separators=(",", ":")))


_writer: DiagnosticWriter = _default_writer


def set_writer_for_tests(writer: DiagnosticWriter) -> None:
    """Replace the module writer (tests only)."""
    global _writer
    _writer = writer


def _reset_for_tests() -> None:
    """Restore the default writer and clear the cached setting (tests only)."""
    global _writer, _internal_logging_enabled
    _writer = _default_writer
    _internal_logging_enabled = None


def _verbose_enabled() -> bool:
    global _internal_logging_enabled
    if _internal_logging_enabled is None:
        try:
            from .settings import Settings

            _internal_logging_enabled = bool(
                Settings().core.internal_logging_enabled
            )
        except Exception:
            _internal_logging_enabled = False
    return _internal_logging_enabled


def make_payload(
    level: str, component: str, message: str, **fields: Any
) -> dict[str, Any]:
    return {"component": component, "level": level, "message": message, **fields}


def is_emitted(level: str) -> bool:
    """Whether a diagnostic at ``level`` passes the verbosity gate."""
    if level in ("WARN", "ERROR"):
        return True
    return _verbose_enabled()


def write(payload: dict[str, Any]) -> None:
    """Send a prepared payload to the module writer, never raising."""
    if not is_emitted(str(payload.get("level", "WARN"))):
        return
    try:
        _writer(payload)
    except Exception:
        # Diagnostics must never break the caller
        pass


def debug(component: str, message: str, **fields: Any) -> None:
    write(make_payload("DEBUG", component, message, **fields))


def info(component: str, message: str, **fields: Any) -> None:
    write(make_payload("INFO", component, message, **fields))


def warn(component: str, message: str, **fields: Any) -> None:
    write(make_payload("WARN", component, message, **fields))


def error(component: str, message: str, **fields: Any) -> None:
    write(make_payload("ERROR", component, message, **fields))


__all__ = [
    "DiagnosticWriter",
    "debug",
    "error",
    "info",
    "is_emitted",
    "make_payload",
    "set_writer_for_tests",
    "warn",
    "write",
]
