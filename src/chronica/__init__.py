"""
Public entrypoints for chronica.

``get_shipper()`` wires a :class:`Shipper` from environment-driven settings;
``runtime()`` does the same inside a context manager that closes it.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from ._version import __version__
from .core.events import LogEvent
from .core.levels import Level
from .core.settings import Settings
from .core.shipper import Shipper, ShipperState
from .core.stdlib_bridge import enable_stdlib_bridge
from .transport.http import ClientFactory

__all__ = [
    "Level",
    "LogEvent",
    "Settings",
    "Shipper",
    "ShipperState",
    "enable_stdlib_bridge",
    "get_shipper",
    "runtime",
    "__version__",
    "VERSION",
]


def get_shipper(
    *,
    settings: Settings | None = None,
    client_factory: ClientFactory | None = None,
    bridge_stdlib: bool = False,
) -> Shipper:
    """Return a shipper configured from ``settings`` (or the environment).

    The shipper starts lazily on the first ingested event. With
    ``bridge_stdlib=True`` a handler is attached to the root logger so that
    ordinary ``logging`` calls are shipped.

    Example:
        from chronica import get_shipper, LogEvent

        shipper = get_shipper()
        shipper.ingest(LogEvent.now("INFO", "app", "started"))
        shipper.close()
    """
    shipper = Shipper.from_settings(settings, client_factory=client_factory)
    if bridge_stdlib:
        enable_stdlib_bridge(shipper)
    return shipper


@contextmanager
def runtime(
    *,
    settings: Settings | None = None,
    client_factory: ClientFactory | None = None,
) -> Iterator[Shipper]:
    """Context manager yielding a shipper that is closed on exit."""
    shipper = get_shipper(settings=settings, client_factory=client_factory)
    try:
        yield shipper
    finally:
        shipper.close()


VERSION = __version__
