"""
Report composition with greedy, size-bounded packing of raw events.

The report is the topic header, the aggregator's counters, a short summary
and then as many of the drained events (oldest first) as fit below
``max_length``. Only the event listing is ever truncated.
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Mapping, Sequence

from .events import LogEvent

TOPIC_PREFIX = "Topic: "


def format_timestamp(timestamp_ms: int) -> str:
    """Render epoch millis as local ``YYYY-MM-DD HH:MM:SS,mmm``."""
    seconds, millis = divmod(int(timestamp_ms), 1000)
    return f"{time.strftime('%Y-%m-%d %H:%M:%S', time.localtime(seconds))},{millis:03d}"


def _squash(value: object) -> str:
    return " ".join(str(value).split())


def _join_fields(fields: Iterable[object]) -> str:
    squashed = (_squash(f) for f in fields if f is not None)
    return " ".join(s for s in squashed if s)


def format_event(event: LogEvent) -> str:
    """Format one event as a single line.

    Fields are ``timestamp level logger [method] message`` joined by single
    spaces; whitespace inside a field is collapsed and empty fields skipped.
    """
    return _join_fields(
        (
            format_timestamp(event.timestamp_ms),
            event.level.name,
            event.logger_name,
            event.context.get("method"),
            event.message,
        )
    )


def build_values_report(
    values: Mapping[str, object], topic: str, *, alert: str = "NEVER"
) -> str:
    """Render ``values`` as an aggregator report.

    One ``Topic:`` and one ``Alert:`` header line, then a ``Value: key value``
    line per entry in mapping order. No trailing newline.
    """
    lines = [f"{TOPIC_PREFIX}{_squash(topic)}", f"Alert: {_squash(alert)}"]
    lines.extend(f"Value: {_squash(k)} {_squash(v)}" for k, v in values.items())
    return "\n".join(lines)


def build_report(
    aggregator_report: str,
    events: Sequence[LogEvent],
    topic_label: str,
    max_length: int,
) -> str:
    """Compose the payload posted on each tick.

    Args:
        aggregator_report: Output of the aggregator's ``build_report``
        events: Drained events, oldest first
        topic_label: Topic used when the report carries no topic header
        max_length: Event lines are appended only while the accumulated
            length plus the line and its newline stays below this value

    Returns:
        The report text. Header and counters are always present.
    """
    parts: list[str] = []
    if not aggregator_report.startswith(TOPIC_PREFIX):
        parts.append(f"{TOPIC_PREFIX}{topic_label}\n")
    parts.append(aggregator_report)
    if aggregator_report and not aggregator_report.endswith("\n"):
        parts.append("\n")
    parts.append(f"INFO: event snapshot size: {len(events)}\n")
    parts.append("INFO:-\n")
    parts.append("Latest events:\n")

    length = sum(len(p) for p in parts)
    for event in events:
        line = format_event(event)
        if length + len(line) + 1 >= max_length:
            break
        parts.append(line)
        parts.append("\n")
        length += len(line) + 1
    return "".join(parts)


__all__ = [
    "build_report",
    "build_values_report",
    "format_event",
    "format_timestamp",
    "TOPIC_PREFIX",
]
