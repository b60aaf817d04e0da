from __future__ import annotations

from typing import Protocol, runtime_checkable

from ...core.events import LogEvent


@runtime_checkable
class BaseAggregator(Protocol):
    """Aggregator interface.

    Aggregators consume events incrementally and render a periodic textual
    report. ``process`` runs synchronously on the ingesting thread and must
    be cheap. ``build_report`` runs on the scheduler thread; it renders
    newline-delimited ``Key: value`` lines and then resets internal state.
    Calling it twice in a row yields an all-zero report, never an error.
    """

    name: str

    def process(self, event: LogEvent) -> None:  # noqa: D401
        """Update internal state from one event."""
        ...

    def build_report(self) -> str:
        """Render current state and reset it."""
        ...


__all__ = ["BaseAggregator"]
