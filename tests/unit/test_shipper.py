from __future__ import annotations

import threading
import time
from typing import Any

import httpx
import pytest

from chronica.core import shutdown
from chronica.core.errors import ConfigurationError
from chronica.core.levels import Level
from chronica.core.scheduler import PeriodicScheduler
from chronica.core.settings import Settings
from chronica.core.shipper import Shipper, ShipperState
from chronica.metrics import MetricsCollector
from chronica.plugins import CountingAggregator
from chronica.testing import (
    ManualClock,
    MockAggregator,
    StubTransport,
    create_log_event,
    failing,
)

PERIOD = 3600.0


def _messages(captured: list[dict[str, Any]], level: str | None = None) -> list[str]:
    return [
        p["message"] for p in captured if level is None or p["level"] == level
    ]


class TestLifecycle:
    def test_first_ingest_starts_running(self, make_shipper: Any) -> None:
        shipper = make_shipper()
        assert shipper.state is ShipperState.UNINITIALIZED
        shipper.ingest(create_log_event())
        assert shipper.state is ShipperState.RUNNING
        assert shipper.buffered == 1

    def test_initialize_is_one_time(
        self, make_shipper: Any, stub_transport: StubTransport
    ) -> None:
        shipper = make_shipper()
        assert shipper.initialize() is True
        assert shipper.initialize() is True
        shipper.ingest(create_log_event())
        assert stub_transport.open_calls == 1

    def test_missing_aggregator_stops(
        self, make_shipper: Any, diagnostics_capture: list[dict[str, Any]]
    ) -> None:
        shipper = make_shipper(aggregator=None)
        shipper.ingest(create_log_event())
        assert shipper.state is ShipperState.STOPPED
        assert shipper.buffered == 0
        assert "initialization failed" in _messages(diagnostics_capture, "ERROR")

    def test_transport_open_failure_stops(self, make_shipper: Any) -> None:
        transport = StubTransport(open_error=ConfigurationError("bad keystore"))
        shipper = make_shipper(transport=transport)
        shipper.ingest(create_log_event())
        assert shipper.state is ShipperState.STOPPED
        shipper.ingest(create_log_event())
        assert shipper.buffered == 0
        assert transport.open_calls == 1

    def test_close_wait_is_bounded(
        self, make_shipper: Any, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        timeouts: list[float | None] = []
        original_stop = PeriodicScheduler.stop

        def recording_stop(self: PeriodicScheduler, timeout: float | None = 5.0) -> None:
            timeouts.append(timeout)
            original_stop(self, timeout=timeout)

        monkeypatch.setattr(PeriodicScheduler, "stop", recording_stop)
        shipper = make_shipper(close_timeout=0.25)
        shipper.ingest(create_log_event())
        shipper.close()
        assert timeouts == [0.25]

    def test_close_is_idempotent(
        self, make_shipper: Any, stub_transport: StubTransport
    ) -> None:
        shipper = make_shipper()
        shipper.ingest(create_log_event())
        shipper.close()
        shipper.close()
        assert shipper.state is ShipperState.STOPPED
        assert stub_transport.close_calls == 1
        shipper.ingest(create_log_event())
        assert shipper.buffered == 0

    def test_close_before_start(self, make_shipper: Any) -> None:
        shipper = make_shipper()
        shipper.close()
        shipper.ingest(create_log_event())
        assert shipper.state is ShipperState.STOPPED

    def test_context_manager_closes(self, stub_transport: StubTransport) -> None:
        with Shipper(
            aggregator=CountingAggregator(),
            transport=stub_transport,
            resolve_url="https://r",
            period_seconds=PERIOD,
        ) as shipper:
            shipper.ingest(create_log_event())
        assert shipper.state is ShipperState.STOPPED
        assert stub_transport.close_calls == 1

    def test_registered_for_exit_while_running(self, make_shipper: Any) -> None:
        shipper = make_shipper()
        shipper.ingest(create_log_event())
        assert shutdown.registered_count() == 1
        shutdown._atexit_handler()
        assert shipper.state is ShipperState.STOPPED
        assert shutdown.registered_count() == 0

    @pytest.mark.parametrize(
        "kwargs", [{"period_seconds": 0}, {"max_report_length": 0}]
    )
    def test_invalid_arguments(self, make_shipper: Any, kwargs: dict) -> None:
        with pytest.raises(ValueError):
            make_shipper(**kwargs)


class TestIngest:
    def test_trace_events_are_ignored(self, make_shipper: Any) -> None:
        agg = CountingAggregator()
        shipper = make_shipper(aggregator=agg)
        shipper.ingest(create_log_event(level=Level.TRACE))
        assert shipper.buffered == 0
        assert agg.counts() == {"error": 0, "warn": 0, "info": 0, "debug": 0}

    def test_aggregator_failure_never_reaches_caller(
        self, make_shipper: Any, diagnostics_capture: list[dict[str, Any]]
    ) -> None:
        shipper = make_shipper(aggregator=MockAggregator(raise_on_process=True))
        shipper.ingest(create_log_event())
        assert "ingest failed" in _messages(diagnostics_capture, "WARN")

    def test_concurrent_ingest_counts_everything(
        self, make_shipper: Any, stub_transport: StubTransport
    ) -> None:
        stub_transport.queue("h1")
        shipper = make_shipper()

        def produce() -> None:
            for _ in range(250):
                shipper.ingest(create_log_event(level=Level.WARN))

        threads = [threading.Thread(target=produce) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        shipper.tick()

        body = stub_transport.posts[0].body
        assert body is not None
        assert "Value: warn 1000" in body
        assert "INFO: event snapshot size: 1000" in body


class TestTick:
    def test_resolve_then_post_report(
        self, make_shipper: Any, stub_transport: StubTransport
    ) -> None:
        stub_transport.queue("h1", "OK")
        metrics = MetricsCollector()
        shipper = make_shipper(metrics=metrics)
        shipper.ingest(create_log_event("E1", Level.INFO))
        shipper.ingest(create_log_event("E2", Level.ERROR))
        shipper.ingest(create_log_event("E3", Level.DEBUG))

        shipper.tick()

        probe, post = stub_transport.requests
        assert probe.url == "https://resolve.test/resolve"
        assert probe.body is None
        assert post.url == "https://h1/post"
        assert shipper.endpoint == "https://h1/post"
        body = post.body
        assert body is not None
        assert body.startswith("Topic: chronica shipper\nAlert: NEVER\n")
        for line in ("Value: error 1", "Value: info 1", "Value: debug 1", "Value: warn 0"):
            assert line in body
        assert "INFO: event snapshot size: 3" in body
        assert [ln.split()[-1] for ln in body.splitlines()[-3:]] == ["E1", "E2", "E3"]
        assert shipper.buffered == 0

        snap = metrics.snapshot()
        assert snap.events_ingested == 3
        assert snap.ticks == 1
        assert snap.reports_posted == 1

    def test_endpoint_cached_across_ticks(
        self, make_shipper: Any, stub_transport: StubTransport
    ) -> None:
        stub_transport.queue("h1")
        shipper = make_shipper()
        shipper.ingest(create_log_event(level=Level.ERROR))
        shipper.tick()
        shipper.tick()

        assert len(stub_transport.probes) == 1
        assert [r.url for r in stub_transport.posts] == ["https://h1/post"] * 2
        second = stub_transport.posts[1].body
        assert second is not None
        assert "Value: error 0" in second
        assert "INFO: event snapshot size: 0" in second

    def test_error_resolution_skips_post(
        self,
        make_shipper: Any,
        stub_transport: StubTransport,
        diagnostics_capture: list[dict[str, Any]],
    ) -> None:
        stub_transport.queue("ERROR no route")
        metrics = MetricsCollector()
        shipper = make_shipper(metrics=metrics)
        shipper.ingest(create_log_event())

        shipper.tick()

        assert stub_transport.posts == []
        assert shipper.endpoint is None
        assert shipper.state is ShipperState.RUNNING
        assert shipper.buffered == 0
        assert metrics.snapshot().resolve_failures == 1
        failure = [p for p in diagnostics_capture if p["message"] == "delivery failed"]
        assert failure[0]["stage"] == "resolve"
        assert failure[0]["dropped"] == 1

        # Next tick resolves afresh with a fresh drain
        stub_transport.queue("h2")
        shipper.tick()
        assert shipper.endpoint == "https://h2/post"
        assert len(stub_transport.posts) == 1

    def test_counters_reset_even_when_resolution_fails(
        self, make_shipper: Any, stub_transport: StubTransport
    ) -> None:
        stub_transport.queue("ERROR busy", "h1")
        shipper = make_shipper()
        shipper.ingest(create_log_event(level=Level.ERROR))
        shipper.tick()
        shipper.tick()
        body = stub_transport.posts[0].body
        assert body is not None
        assert "Value: error 0" in body

    def test_post_failure_drops_batch(
        self, make_shipper: Any, stub_transport: StubTransport
    ) -> None:
        stub_transport.queue("h1", failing("HTTP 500", status_code=500))
        metrics = MetricsCollector()
        shipper = make_shipper(metrics=metrics)
        shipper.ingest(create_log_event("lost"))

        shipper.tick()
        assert shipper.endpoint == "https://h1/post"
        assert metrics.snapshot().post_failures == 1
        assert metrics.snapshot().events_dropped == 1

        shipper.ingest(create_log_event("next"))
        shipper.tick()
        body = stub_transport.posts[-1].body
        assert body is not None
        assert "lost" not in body
        assert body.rstrip().endswith("next")
        assert len(stub_transport.probes) == 1

    def test_aggregator_report_failure_is_contained(
        self,
        make_shipper: Any,
        stub_transport: StubTransport,
        diagnostics_capture: list[dict[str, Any]],
    ) -> None:
        shipper = make_shipper(aggregator=MockAggregator(raise_on_report=True))
        shipper.ingest(create_log_event())
        shipper.tick()
        assert stub_transport.requests == []
        assert shipper.state is ShipperState.RUNNING
        failure = [p for p in diagnostics_capture if p["message"] == "delivery failed"]
        assert failure[0]["stage"] == "report"

    def test_composition_failure_is_not_a_post_failure(
        self,
        make_shipper: Any,
        stub_transport: StubTransport,
        diagnostics_capture: list[dict[str, Any]],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def broken(*_args: Any) -> str:
            raise RuntimeError("cannot compose")

        monkeypatch.setattr("chronica.core.shipper.build_report", broken)
        stub_transport.queue("h1")
        metrics = MetricsCollector()
        shipper = make_shipper(metrics=metrics)
        shipper.ingest(create_log_event())
        shipper.tick()

        assert stub_transport.posts == []
        failure = [p for p in diagnostics_capture if p["message"] == "delivery failed"]
        assert failure[0]["stage"] == "compose"
        snap = metrics.snapshot()
        assert snap.post_failures == 0
        assert snap.resolve_failures == 0

    def test_report_respects_max_length(
        self, make_shipper: Any, stub_transport: StubTransport
    ) -> None:
        stub_transport.queue("h1")
        shipper = make_shipper(max_report_length=300)
        for i in range(50):
            shipper.ingest(create_log_event(f"event {i}"))
        shipper.tick()
        body = stub_transport.posts[0].body
        assert body is not None
        assert len(body) < 300
        assert "INFO: event snapshot size: 50" in body

    def test_topic_label_defaults_to_aggregator_name(
        self, make_shipper: Any, stub_transport: StubTransport
    ) -> None:
        stub_transport.queue("h1")
        agg = MockAggregator(report="Value: events 1")
        shipper = make_shipper(aggregator=agg)
        assert shipper.topic_label == "mock"
        shipper.ingest(create_log_event())
        shipper.tick()
        body = stub_transport.posts[0].body
        assert body is not None
        assert body.startswith("Topic: mock\nValue: events 1\n")

    def test_explicit_topic_label(
        self, make_shipper: Any, stub_transport: StubTransport
    ) -> None:
        stub_transport.queue("h1")
        shipper = make_shipper(
            aggregator=MockAggregator(report="Value: events 1"), topic_label="orders"
        )
        shipper.ingest(create_log_event())
        shipper.tick()
        body = stub_transport.posts[0].body
        assert body is not None
        assert body.startswith("Topic: orders\n")

    def test_tick_is_noop_unless_running(
        self, make_shipper: Any, stub_transport: StubTransport
    ) -> None:
        shipper = make_shipper()
        shipper.tick()
        assert stub_transport.requests == []

    def test_response_after_close_is_ignored(
        self,
        make_shipper: Any,
        stub_transport: StubTransport,
        diagnostics_capture: list[dict[str, Any]],
    ) -> None:
        metrics = MetricsCollector()
        shipper = make_shipper(metrics=metrics)

        def close_mid_flight(url: str, body: str | None) -> str:
            shipper.close()
            return "OK"

        stub_transport.queue("h1", close_mid_flight)
        shipper.ingest(create_log_event())
        shipper.tick()

        assert shipper.state is ShipperState.STOPPED
        assert metrics.snapshot().reports_posted == 0
        assert "response after stop ignored" in _messages(diagnostics_capture)


class TestStaleness:
    def test_gap_at_tick_stops_shipper(
        self,
        make_shipper: Any,
        stub_transport: StubTransport,
        manual_clock: ManualClock,
    ) -> None:
        stub_transport.queue("h1")
        metrics = MetricsCollector()
        shipper = make_shipper(metrics=metrics)
        shipper.ingest(create_log_event())
        shipper.tick()
        requests_before = len(stub_transport.requests)

        manual_clock.advance(PERIOD)
        shipper.ingest(create_log_event())
        manual_clock.advance(PERIOD + 1)
        shipper.tick()

        assert shipper.state is ShipperState.STOPPED
        assert shipper.stale is True
        assert shipper.buffered == 0
        assert len(stub_transport.requests) == requests_before
        assert metrics.snapshot().stale_trips == 1

    def test_gap_at_ingest_stops_shipper(
        self,
        make_shipper: Any,
        manual_clock: ManualClock,
        diagnostics_capture: list[dict[str, Any]],
    ) -> None:
        shipper = make_shipper()
        shipper.ingest(create_log_event())
        shipper.tick()
        shipper.ingest(create_log_event())
        assert shipper.buffered == 1

        manual_clock.advance(2 * PERIOD + 0.001)
        shipper.ingest(create_log_event())

        assert shipper.state is ShipperState.STOPPED
        assert shipper.buffered == 0
        assert "stale; ingestion disabled" in _messages(diagnostics_capture, "WARN")

    def test_exactly_two_periods_is_not_stale(
        self, make_shipper: Any, manual_clock: ManualClock
    ) -> None:
        shipper = make_shipper()
        shipper.ingest(create_log_event())
        shipper.tick()
        manual_clock.advance(2 * PERIOD)
        shipper.ingest(create_log_event())
        assert shipper.state is ShipperState.RUNNING
        assert shipper.buffered == 1

    def test_no_previous_tick_is_never_stale(
        self, make_shipper: Any, manual_clock: ManualClock
    ) -> None:
        shipper = make_shipper()
        shipper.ingest(create_log_event())
        manual_clock.advance(10 * PERIOD)
        shipper.ingest(create_log_event())
        assert shipper.state is ShipperState.RUNNING
        assert shipper.buffered == 2

    def test_stale_is_permanent(
        self,
        make_shipper: Any,
        stub_transport: StubTransport,
        manual_clock: ManualClock,
    ) -> None:
        shipper = make_shipper()
        shipper.ingest(create_log_event())
        shipper.tick()
        manual_clock.advance(3 * PERIOD)
        shipper.tick()
        assert shipper.stale

        manual_clock.advance(1)
        shipper.ingest(create_log_event())
        shipper.tick()
        assert shipper.buffered == 0
        assert shipper.state is ShipperState.STOPPED
        shipper.close()
        assert stub_transport.close_calls == 1


class TestFromSettings:
    def test_wires_counting_aggregator(self) -> None:
        settings = Settings(
            shipper={"period_seconds": "5m", "max_report_length": 500},
            transport={"max_post_length": 600},
        )
        shipper = Shipper.from_settings(settings, client_factory=lambda: httpx.Client())
        try:
            assert shipper.period_seconds == 300.0
            assert shipper.topic_label == "counting"
            assert shipper.metrics is not None
        finally:
            shipper.close()

    @staticmethod
    def _collector(bodies: list[str]) -> Any:
        def respond(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/resolve":
                return httpx.Response(200, text="h1")
            bodies.append(request.content.decode("utf-8"))
            return httpx.Response(200, text="OK")

        return lambda: httpx.Client(transport=httpx.MockTransport(respond))

    def test_topic_label_reaches_posted_report(self) -> None:
        bodies: list[str] = []
        settings = Settings(
            shipper={
                "topic_label": "orders",
                "resolve_url": "https://resolve.test/resolve",
            }
        )
        shipper = Shipper.from_settings(settings, client_factory=self._collector(bodies))
        try:
            shipper.ingest(create_log_event("E1", Level.ERROR))
            shipper.tick()
        finally:
            shipper.close()
        assert shipper.topic_label == "orders"
        assert bodies[0].startswith("Topic: orders\nAlert: NEVER\nValue: error 1\n")
        assert bodies[0].count("Topic: ") == 1

    def test_aggregator_config_topic_wins(self) -> None:
        bodies: list[str] = []
        settings = Settings(
            shipper={
                "topic_label": "orders",
                "aggregator_config": {"topic": "billing", "alert": "ALWAYS"},
                "resolve_url": "https://resolve.test/resolve",
            }
        )
        shipper = Shipper.from_settings(settings, client_factory=self._collector(bodies))
        try:
            shipper.ingest(create_log_event())
            shipper.tick()
        finally:
            shipper.close()
        assert bodies[0].startswith("Topic: billing\nAlert: ALWAYS\n")

    def test_close_timeout_follows_transport_timeout(self) -> None:
        settings = Settings(transport={"timeout_seconds": 2.5})
        shipper = Shipper.from_settings(settings, client_factory=lambda: httpx.Client())
        assert shipper._close_timeout == 2.5
        shipper.close()

    def test_unknown_aggregator_refuses_to_start(self) -> None:
        captured: list[dict[str, Any]] = []
        settings = Settings(shipper={"aggregator": "does-not-exist"})
        shipper = Shipper.from_settings(
            settings,
            client_factory=lambda: httpx.Client(),
            diagnostic_writer=captured.append,
        )
        shipper.ingest(create_log_event())
        assert shipper.state is ShipperState.STOPPED
        assert "invalid aggregator" in _messages(captured, "ERROR")
        shipper.close()


@pytest.mark.slow
def test_scheduler_drives_delivery() -> None:
    transport = StubTransport(["h1"])
    delivered = threading.Event()

    def ack(url: str, body: str | None) -> str:
        delivered.set()
        return "OK"

    transport.queue(ack)
    shipper = Shipper(
        aggregator=CountingAggregator(),
        transport=transport,
        resolve_url="https://r",
        period_seconds=0.2,
    )
    started = time.monotonic()
    shipper.ingest(create_log_event(level=Level.ERROR))
    try:
        assert delivered.wait(5.0)
        assert time.monotonic() - started >= 0.15
        body = transport.posts[0].body
        assert body is not None
        assert "Value: error 1" in body
    finally:
        shipper.close()
