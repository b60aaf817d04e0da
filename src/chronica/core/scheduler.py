"""Fixed-rate background scheduler running on a single daemon thread.

The first run happens one full period after :meth:`PeriodicScheduler.start`,
then every period measured from the start. Runs never overlap: when a run
takes longer than a period the next one starts as soon as it returns and the
schedule drifts instead of bursting to catch up.
"""

from __future__ import annotations

import threading
import time
from typing import Callable


class PeriodicScheduler:
    """Run ``task`` every ``period_seconds`` until stopped."""

    def __init__(
        self,
        period_seconds: float,
        task: Callable[[], None],
        *,
        name: str = "chronica-scheduler",
        on_error: Callable[[BaseException], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if period_seconds <= 0:
            raise ValueError("period_seconds must be > 0")
        self._period = float(period_seconds)
        self._task = task
        self._name = name
        self._on_error = on_error
        self._clock = clock
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._runs = 0

    @property
    def period_seconds(self) -> float:
        return self._period

    @property
    def running(self) -> bool:
        thread = self._thread
        return (
            thread is not None
            and thread.is_alive()
            and not self._stop_event.is_set()
        )

    @property
    def runs(self) -> int:
        """Number of completed task invocations."""
        return self._runs

    def start(self) -> None:
        if self._thread is not None:
            return
        if self._stop_event.is_set():
            raise RuntimeError("Scheduler has been stopped")
        self._thread = threading.Thread(
            target=self._run, name=self._name, daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """Signal the thread to exit and wait for it.

        Safe to call repeatedly and from within the task itself; in that case
        the thread exits after the current run returns.
        """
        self._stop_event.set()
        thread = self._thread
        if thread is None or thread is threading.current_thread():
            return
        thread.join(timeout=timeout)

    def _run(self) -> None:
        next_run = self._clock() + self._period
        while not self._stop_event.is_set():
            delay = next_run - self._clock()
            if delay > 0 and self._stop_event.wait(delay):
                return
            if self._stop_event.is_set():
                return
            try:
                self._task()
            except Exception as exc:  # noqa: BLE001
                if self._on_error is not None:
                    try:
                        self._on_error(exc)
                    except Exception:
                        pass
            self._runs += 1
            next_run = max(next_run + self._period, self._clock())
