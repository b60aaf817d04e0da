"""Severity levels understood by the shipping pipeline.

The pipeline ships four ordered levels. TRACE exists only so that host
records below DEBUG can be represented; they never reach the buffer or the
aggregator. Anything above ERROR is folded into ERROR.

Example:
    from chronica.core.levels import Level, parse_level

    parse_level("warning")  # Level.WARN
    Level.DEBUG < Level.ERROR  # True
"""

from __future__ import annotations

import logging
from enum import IntEnum
from typing import Final


class Level(IntEnum):
    """Ordered severity levels: TRACE < DEBUG < INFO < WARN < ERROR."""

    TRACE = 5  # below the pipeline threshold
    DEBUG = 10
    INFO = 20
    WARN = 30
    ERROR = 40

    def __str__(self) -> str:
        return self.name


_ALIASES: Final[dict[str, Level]] = {
    "TRACE": Level.TRACE,
    "DEBUG": Level.DEBUG,
    "INFO": Level.INFO,
    "WARN": Level.WARN,
    "WARNING": Level.WARN,  # alias
    "ERROR": Level.ERROR,
    "CRITICAL": Level.ERROR,  # folded
    "FATAL": Level.ERROR,  # folded
}

# Pipeline threshold; events below it are filtered before aggregation
MIN_LEVEL: Final[Level] = Level.DEBUG


def parse_level(name: str | Level) -> Level:
    """Resolve a level name (case-insensitive, aliases allowed).

    Raises:
        ValueError: If the name is not a known level or alias
    """
    if isinstance(name, Level):
        return name
    try:
        return _ALIASES[str(name).strip().upper()]
    except KeyError:
        raise ValueError(f"Unknown level '{name}'") from None


def level_from_stdlib(levelno: int) -> Level:
    """Map a stdlib ``logging`` level number onto a pipeline level.

    Records below DEBUG (including NOTSET) map to TRACE.
    """
    if levelno < logging.DEBUG:
        return Level.TRACE
    if levelno < logging.INFO:
        return Level.DEBUG
    if levelno < logging.WARNING:
        return Level.INFO
    if levelno < logging.ERROR:
        return Level.WARN
    return Level.ERROR


def is_shippable(level: Level) -> bool:
    """True when ``level`` meets the pipeline threshold."""
    return level >= MIN_LEVEL
