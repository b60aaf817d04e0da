"""
Basic usage example for chronica.

Ships stdlib logging records through a local collector. Run a collector that
answers ``POST /resolve`` with its ``host:port`` and accepts ``POST /post``,
then point the shipper at it::

    CHRONICA_SHIPPER__RESOLVE_URL=http://127.0.0.1:8080/resolve \
    CHRONICA_SHIPPER__PERIOD_SECONDS=5s python examples/basic_usage.py
"""

import logging
import time

import httpx

from chronica import Shipper, Settings, enable_stdlib_bridge
from chronica.metrics import MetricsCollector
from chronica.plugins import load_aggregator
from chronica.transport import HttpTransport, Resolver


def main() -> None:
    settings = Settings()
    transport = HttpTransport(
        lambda: httpx.Client(timeout=settings.transport.timeout_seconds),
        max_post_length=settings.transport.max_post_length,
    )
    metrics = MetricsCollector(enabled=True)
    shipper = Shipper(
        aggregator=load_aggregator(settings.shipper.aggregator, {"topic": "example"}),
        transport=transport,
        resolve_url=settings.shipper.resolve_url,
        # Plain HTTP for a local collector
        resolver=Resolver(transport, template="http://{host}/post"),
        period_seconds=settings.shipper.period_seconds,
        metrics=metrics,
    )
    enable_stdlib_bridge(shipper)

    log = logging.getLogger("example.app")
    with shipper:
        for i in range(20):
            log.info("processed item %d", i)
            if i % 7 == 0:
                log.warning("slow item %d", i)
        log.error("could not reach payment gateway")
        time.sleep(settings.shipper.period_seconds * 1.5)

    print(metrics.snapshot())


if __name__ == "__main__":
    main()
