"""Close running shippers on interpreter exit.

Shippers register themselves when they start and unregister on
:meth:`~chronica.core.shipper.Shipper.close`. Registration uses a WeakSet so
an abandoned shipper can still be garbage collected. The atexit hook is
best-effort: buffered events that have not been flushed are dropped, the
hook only stops scheduler threads and releases HTTP clients.
"""

from __future__ import annotations

import atexit
import weakref
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .shipper import Shipper


_shutdown_in_progress: bool = False
_registered_shippers: weakref.WeakSet[Any] = weakref.WeakSet()


def _atexit_enabled() -> bool:
    try:
        from .settings import Settings

        return bool(Settings().core.atexit_close_enabled)
    except Exception:  # pragma: no cover - invalid environment
        return True


def register_shipper(shipper: Shipper) -> None:
    """Register a shipper for automatic close on exit."""
    _registered_shippers.add(shipper)


def unregister_shipper(shipper: Shipper) -> None:
    _registered_shippers.discard(shipper)


def registered_count() -> int:
    return len(_registered_shippers)


def _close_single_shipper(shipper: Any) -> None:
    try:
        shipper.close()
    except Exception:
        pass  # Best effort - don't crash on exit


def _atexit_handler() -> None:
    """Close every registered shipper; never raises."""
    global _shutdown_in_progress

    if _shutdown_in_progress:
        return
    if not _atexit_enabled():
        return
    _shutdown_in_progress = True

    # Snapshot first; close() unregisters while we iterate
    try:
        shippers = list(_registered_shippers)
    except Exception:  # pragma: no cover - rare GC race
        return
    for shipper in shippers:
        _close_single_shipper(shipper)


def _reset_for_tests() -> None:
    global _shutdown_in_progress
    _shutdown_in_progress = False
    _registered_shippers.clear()


atexit.register(_atexit_handler)
