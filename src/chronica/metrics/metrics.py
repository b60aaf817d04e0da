"""
Shipper metrics collection for chronica.

Implements a small set of Prometheus-compatible counters for the ingestion
and delivery paths.

Design goals:
- Thread-safe; called from producer threads and the scheduler thread
- Zero global state; each collector owns an isolated registry
- Safe no-op exporters when metrics are disabled, while still tracking
  in-memory counters for tests
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any

from prometheus_client import CollectorRegistry, Counter


@dataclass
class ShipperMetrics:
    """Captured runtime metrics for quick assertions in tests."""

    events_ingested: int = 0
    events_dropped: int = 0
    ticks: int = 0
    reports_posted: int = 0
    resolve_failures: int = 0
    post_failures: int = 0
    stale_trips: int = 0


class MetricsCollector:
    """Shipper-scoped metrics collector."""

    def __init__(self, *, enabled: bool = False) -> None:
        self._enabled = bool(enabled)
        self._lock = threading.Lock()
        self._state = ShipperMetrics()

        self._c_ingested: Any | None = None
        self._c_dropped: Any | None = None
        self._c_ticks: Any | None = None
        self._c_posted: Any | None = None
        self._c_failures: Any | None = None
        self._c_stale: Any | None = None
        self._registry: CollectorRegistry | None = None

        if self._enabled:
            # Isolated registry avoids duplicate registration across instances
            self._registry = CollectorRegistry()
            self._c_ingested = Counter(
                "chronica_events_ingested_total",
                "Events accepted into the buffer",
                registry=self._registry,
            )
            self._c_dropped = Counter(
                "chronica_events_dropped_total",
                "Events dropped before or after buffering",
                ["reason"],
                registry=self._registry,
            )
            self._c_ticks = Counter(
                "chronica_ticks_total",
                "Scheduler ticks executed",
                registry=self._registry,
            )
            self._c_posted = Counter(
                "chronica_reports_posted_total",
                "Reports acknowledged by the delivery endpoint",
                registry=self._registry,
            )
            self._c_failures = Counter(
                "chronica_delivery_failures_total",
                "Failed delivery attempts",
                ["stage"],
                registry=self._registry,
            )
            self._c_stale = Counter(
                "chronica_stale_trips_total",
                "Times the staleness breaker stopped ingestion",
                registry=self._registry,
            )

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    @property
    def registry(self) -> CollectorRegistry | None:
        """Expose the isolated Prometheus registry when enabled."""
        return self._registry

    def record_event_ingested(self) -> None:
        with self._lock:
            self._state.events_ingested += 1
        if self._c_ingested is not None:
            self._c_ingested.inc()

    def record_events_dropped(self, count: int = 1, *, reason: str = "unknown") -> None:
        if count <= 0:
            return
        with self._lock:
            self._state.events_dropped += count
        if self._c_dropped is not None:
            self._c_dropped.labels(reason=reason).inc(count)

    def record_tick(self) -> None:
        with self._lock:
            self._state.ticks += 1
        if self._c_ticks is not None:
            self._c_ticks.inc()

    def record_report_posted(self) -> None:
        with self._lock:
            self._state.reports_posted += 1
        if self._c_posted is not None:
            self._c_posted.inc()

    def record_delivery_failure(self, *, stage: str) -> None:
        with self._lock:
            if stage == "resolve":
                self._state.resolve_failures += 1
            else:
                self._state.post_failures += 1
        if self._c_failures is not None:
            self._c_failures.labels(stage=stage).inc()

    def record_stale_trip(self) -> None:
        with self._lock:
            self._state.stale_trips += 1
        if self._c_stale is not None:
            self._c_stale.inc()

    def snapshot(self) -> ShipperMetrics:
        # Lightweight copy without exposing internals
        with self._lock:
            return ShipperMetrics(**vars(self._state))
