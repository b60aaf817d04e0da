"""Thread-safe FIFO of pending log events.

Producers append from arbitrary threads; the scheduler thread is the only
consumer and takes everything at once with :meth:`EventBuffer.drain`. The
drain swaps the backing list under the lock, so an event appended
concurrently lands either in the returned snapshot or in the next one.
"""

from __future__ import annotations

import threading

from .events import LogEvent


class EventBuffer:
    """Unbounded, insertion-ordered buffer with atomic drain."""

    __slots__ = ("_events", "_lock")

    def __init__(self) -> None:
        self._events: list[LogEvent] = []
        self._lock = threading.Lock()

    def append(self, event: LogEvent) -> None:
        with self._lock:
            self._events.append(event)

    def drain(self) -> list[LogEvent]:
        """Return all buffered events (oldest first) and leave the buffer empty."""
        with self._lock:
            snapshot = self._events
            self._events = []
        return snapshot

    def clear(self) -> int:
        """Discard buffered events unread; returns how many were dropped."""
        with self._lock:
            dropped = len(self._events)
            self._events = []
        return dropped

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
