from __future__ import annotations

import threading
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ...core.events import LogEvent
from ...core.levels import Level
from ...core.report import build_values_report
from ..utils import parse_plugin_config

# Report order, most severe first
_REPORTED_LEVELS: tuple[Level, ...] = (
    Level.ERROR,
    Level.WARN,
    Level.INFO,
    Level.DEBUG,
)


class CountingAggregatorConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", validate_default=True)

    topic: str = Field(default="chronica shipper", min_length=1)
    alert: str = Field(default="NEVER", min_length=1)


class CountingAggregator:
    """Count events per level and report the totals once per tick."""

    name = "counting"

    def __init__(
        self, config: CountingAggregatorConfig | dict | None = None, **kwargs: Any
    ) -> None:
        cfg = parse_plugin_config(CountingAggregatorConfig, config, **kwargs)
        self._config = cfg
        self._lock = threading.Lock()
        self._counts: dict[Level, int] = dict.fromkeys(_REPORTED_LEVELS, 0)

    def process(self, event: LogEvent) -> None:
        level = event.level
        if level not in self._counts:
            return
        with self._lock:
            self._counts[level] += 1

    def build_report(self) -> str:
        # Snapshot and reset together so no increment falls in between
        with self._lock:
            counts = self._counts
            self._counts = dict.fromkeys(_REPORTED_LEVELS, 0)
        return build_values_report(
            {level.name.lower(): counts[level] for level in _REPORTED_LEVELS},
            self._config.topic,
            alert=self._config.alert,
        )

    def counts(self) -> dict[str, int]:
        """Current counters keyed by lowercase level name (no reset)."""
        with self._lock:
            return {level.name.lower(): n for level, n in self._counts.items()}


PLUGIN_METADATA = {
    "name": "counting",
    "version": "1.0.0",
    "plugin_type": "aggregator",
    "entry_point": "chronica.plugins.aggregators.counting:CountingAggregator",
    "description": "Counts events per level and reports the totals.",
    "author": "Chronica Core",
    "api_version": "1.0",
}
