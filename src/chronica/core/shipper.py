"""
Shipper: buffering, scheduling and delivery of aggregated log reports.

Lifecycle::

    UNINITIALIZED --first ingest / initialize()--> RUNNING
    RUNNING --close() or staleness breaker--> STOPPED

Producers call :meth:`Shipper.ingest` from any thread. The only work done on
their thread is a short buffer append and the aggregator's ``process``. The
scheduler thread runs :meth:`Shipper.tick` once per period: it drains the
buffer, resolves the delivery endpoint once (then caches it), builds the
report and posts it. Delivery failures are logged and the batch is dropped;
nothing is retried and nothing propagates to producers.

Staleness breaker: if more than two periods pass between ticks the remote
side (or our own scheduling) is considered stuck. The buffer is discarded
and the shipper stops accepting events for the rest of its life.
"""

from __future__ import annotations

import threading
import time
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable

from . import diagnostics, shutdown
from .buffer import EventBuffer
from .diagnostics import DiagnosticWriter
from .errors import ConfigurationError, ResolutionError
from .events import LogEvent
from .levels import is_shippable
from .report import build_report
from .scheduler import PeriodicScheduler

if TYPE_CHECKING:
    from ..metrics.metrics import MetricsCollector
    from ..plugins.aggregators import BaseAggregator
    from ..transport.http import ClientFactory, Transport
    from ..transport.resolver import Resolver
    from .settings import Settings

_COMPONENT = "shipper"


class ShipperState(str, Enum):
    UNINITIALIZED = "uninitialized"
    RUNNING = "running"
    STOPPED = "stopped"


class Shipper:
    """Periodic, best-effort shipper of aggregated log reports."""

    def __init__(
        self,
        *,
        aggregator: BaseAggregator | None,
        transport: Transport,
        resolve_url: str,
        period_seconds: float = 60.0,
        topic_label: str | None = None,
        max_report_length: int = 2000,
        resolver: Resolver | None = None,
        metrics: MetricsCollector | None = None,
        diagnostic_writer: DiagnosticWriter | None = None,
        close_timeout: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if period_seconds <= 0:
            raise ValueError("period_seconds must be > 0")
        if max_report_length <= 0:
            raise ValueError("max_report_length must be > 0")
        if resolver is None:
            from ..transport.resolver import Resolver

            resolver = Resolver(transport)

        self._aggregator = aggregator
        self._transport = transport
        self._resolver = resolver
        self._resolve_url = resolve_url
        self._period = float(period_seconds)
        self._topic_label = topic_label
        self._max_report_length = max_report_length
        self._metrics = metrics
        self._diagnostic_writer = diagnostic_writer
        self._clock = clock
        self._close_timeout = close_timeout

        self._buffer = EventBuffer()
        self._state = ShipperState.UNINITIALIZED
        self._state_lock = threading.Lock()
        self._scheduler: PeriodicScheduler | None = None
        self._endpoint: str | None = None
        self._last_tick_at: float | None = None
        self._stale = False
        self._closed = False

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        *,
        client_factory: ClientFactory | None = None,
        diagnostic_writer: DiagnosticWriter | None = None,
    ) -> Shipper:
        """Wire a shipper from :class:`~chronica.core.settings.Settings`.

        An aggregator name that does not resolve leaves the shipper without
        an aggregator; it will refuse to initialize and drop every event.
        A configured ``topic_label`` becomes the counting aggregator's topic
        unless ``aggregator_config`` already sets one.
        """
        from ..metrics.metrics import MetricsCollector
        from ..plugins.aggregators.counting import CountingAggregator
        from ..plugins.loader import (
            PluginLoadError,
            PluginNotFoundError,
            builtin_aggregator,
            load_aggregator,
        )
        from ..transport.http import HttpTransport
        from .settings import Settings as _Settings

        cfg = settings or _Settings()
        options = dict(cfg.shipper.aggregator_config)
        label = cfg.shipper.topic_label
        if label and builtin_aggregator(cfg.shipper.aggregator) is CountingAggregator:
            options.setdefault("topic", label)
        aggregator: BaseAggregator | None
        try:
            aggregator = load_aggregator(cfg.shipper.aggregator, options)
        except (PluginNotFoundError, PluginLoadError) as exc:
            _emit(
                diagnostic_writer,
                "ERROR",
                "invalid aggregator",
                aggregator=cfg.shipper.aggregator,
                error=str(exc),
            )
            aggregator = None

        return cls(
            aggregator=aggregator,
            transport=HttpTransport.from_settings(
                cfg.transport, client_factory=client_factory
            ),
            resolve_url=cfg.shipper.resolve_url,
            period_seconds=cfg.shipper.period_seconds,
            topic_label=cfg.shipper.topic_label,
            max_report_length=cfg.shipper.max_report_length,
            metrics=MetricsCollector(enabled=cfg.core.enable_metrics),
            diagnostic_writer=diagnostic_writer,
            close_timeout=cfg.transport.timeout_seconds,
        )

    # Introspection

    @property
    def state(self) -> ShipperState:
        return self._state

    @property
    def stale(self) -> bool:
        """True once the staleness breaker has tripped."""
        return self._stale

    @property
    def endpoint(self) -> str | None:
        """Cached delivery endpoint, if resolved."""
        return self._endpoint

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    @property
    def period_seconds(self) -> float:
        return self._period

    @property
    def topic_label(self) -> str:
        if self._topic_label:
            return self._topic_label
        if self._aggregator is None:
            return "unknown"
        name = getattr(self._aggregator, "name", None)
        return name if isinstance(name, str) and name else type(self._aggregator).__name__

    @property
    def metrics(self) -> MetricsCollector | None:
        return self._metrics

    # Lifecycle

    def initialize(self) -> bool:
        """One-time setup; returns True when the shipper is running.

        Called implicitly by the first :meth:`ingest`. A configuration error
        moves the shipper straight to STOPPED.
        """
        with self._state_lock:
            if self._state is not ShipperState.UNINITIALIZED:
                return self._state is ShipperState.RUNNING
            self._log(
                "INFO",
                "initialize",
                resolve_url=self._resolve_url,
                period_seconds=self._period,
            )
            try:
                if self._aggregator is None:
                    raise ConfigurationError("an aggregator is required")
                self._transport.open()
            except Exception as exc:
                self._state = ShipperState.STOPPED
                self._log(
                    "ERROR",
                    "initialization failed",
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                return False

            self._scheduler = PeriodicScheduler(
                self._period,
                self.tick,
                name=f"chronica-{self.topic_label}",
                on_error=self._on_scheduler_error,
            )
            self._state = ShipperState.RUNNING
            self._scheduler.start()
            shutdown.register_shipper(self)
            self._log("INFO", "running", topic=self.topic_label)
            return True

    def close(self) -> None:
        """Stop the scheduler and release the transport (idempotent)."""
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
            self._state = ShipperState.STOPPED
            scheduler, self._scheduler = self._scheduler, None
        if scheduler is not None:
            # Bounded wait for an in-flight tick; a late response is ignored
            scheduler.stop(timeout=min(self._period, self._close_timeout))
        shutdown.unregister_shipper(self)
        self._transport.close()
        dropped = self._buffer.clear()
        self._record_dropped(dropped, "closed")
        self._log("INFO", "closed", dropped=dropped)

    def __enter__(self) -> Shipper:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    # Ingestion (producer threads)

    def ingest(self, event: LogEvent) -> None:
        """Accept one event; never raises and never blocks on I/O."""
        try:
            if self._state is ShipperState.UNINITIALIZED:
                self.initialize()
            if self._state is not ShipperState.RUNNING or not is_shippable(
                event.level
            ):
                self._record_dropped(1, "not-accepted")
                return
            if self._is_stale(self._clock()):
                self._trip_staleness()
                self._record_dropped(1, "stale")
                return
            self._buffer.append(event)
            self._aggregator.process(event)  # type: ignore[union-attr]
            if self._metrics is not None:
                self._metrics.record_event_ingested()
        except Exception as exc:  # noqa: BLE001
            self._log("WARN", "ingest failed", error=str(exc))

    # Delivery (scheduler thread)

    def tick(self) -> None:
        """Run one flush cycle: drain, aggregate, resolve, post."""
        if self._state is not ShipperState.RUNNING:
            return
        now = self._clock()
        if self._is_stale(now):
            self._trip_staleness()
            return
        self._last_tick_at = now
        if self._metrics is not None:
            self._metrics.record_tick()

        events = self._buffer.drain()
        self._log("DEBUG", "tick", events=len(events), endpoint=self._endpoint)
        # Counters reset every tick, even when delivery fails below
        stage = "report"
        try:
            report = self._aggregator.build_report()  # type: ignore[union-attr]
            stage = "resolve"
            endpoint = self._endpoint
            if endpoint is None:
                endpoint = self._resolver.resolve(self._resolve_url)
                self._endpoint = endpoint
            stage = "compose"
            payload = build_report(
                report, events, self.topic_label, self._max_report_length
            )
            stage = "post"
            response = self._transport.post(endpoint, payload)
        except Exception as exc:  # noqa: BLE001
            self._delivery_failed(stage, exc, len(events))
            return

        if self._state is not ShipperState.RUNNING:
            self._log("DEBUG", "response after stop ignored", response=response)
            return
        if self._metrics is not None:
            self._metrics.record_report_posted()
        self._log(
            "DEBUG",
            "report delivered",
            endpoint=endpoint,
            events=len(events),
            length=len(payload),
            response=response,
        )

    # Internals

    def _is_stale(self, now: float) -> bool:
        last = self._last_tick_at
        return last is not None and now - last > 2 * self._period

    def _trip_staleness(self) -> None:
        with self._state_lock:
            if self._state is not ShipperState.RUNNING:
                return
            self._state = ShipperState.STOPPED
            self._stale = True
            scheduler = self._scheduler
        dropped = self._buffer.clear()
        if scheduler is not None:
            # Signal only; the caller may be the scheduler thread itself
            scheduler.stop(timeout=0)
        if self._metrics is not None:
            self._metrics.record_stale_trip()
        self._record_dropped(dropped, "stale")
        self._log(
            "WARN",
            "stale; ingestion disabled",
            dropped=dropped,
            period_seconds=self._period,
        )

    def _delivery_failed(self, stage: str, exc: Exception, batch_size: int) -> None:
        if self._metrics is not None and stage in ("resolve", "post"):
            self._metrics.record_delivery_failure(stage=stage)
        self._record_dropped(batch_size, stage)
        fields: dict[str, Any] = {
            "stage": stage,
            "error": str(exc),
            "error_type": type(exc).__name__,
            "dropped": batch_size,
        }
        if isinstance(exc, ResolutionError):
            fields["resolve_url"] = self._resolve_url
        else:
            fields["endpoint"] = self._endpoint
        self._log("WARN", "delivery failed", **fields)

    def _on_scheduler_error(self, exc: BaseException) -> None:
        self._log("ERROR", "tick failed", error=str(exc), error_type=type(exc).__name__)

    def _record_dropped(self, count: int, reason: str) -> None:
        if self._metrics is not None and count:
            self._metrics.record_events_dropped(count, reason=reason)

    def _log(self, level: str, message: str, **fields: Any) -> None:
        _emit(self._diagnostic_writer, level, message, **fields)


def _emit(
    writer: DiagnosticWriter | None, level: str, message: str, **fields: Any
) -> None:
    payload = diagnostics.make_payload(level, _COMPONENT, message, **fields)
    if writer is None:
        diagnostics.write(payload)
        return
    try:
        writer(payload)
    except Exception:
        pass


__all__ = ["Shipper", "ShipperState"]
