"""
Chronica plugin system.

Aggregators are the only plugin type: they turn the event stream into the
counter section of each report. Built-ins live in ``plugins.aggregators``;
third-party implementations are discovered through entry points.
"""

from .aggregators import BaseAggregator
from .aggregators.counting import CountingAggregator, CountingAggregatorConfig
from .loader import (
    PluginLoadError,
    PluginNotFoundError,
    ValidationMode,
    list_available_aggregators,
    load_aggregator,
    register_builtin,
)

__all__ = [
    "BaseAggregator",
    "CountingAggregator",
    "CountingAggregatorConfig",
    "PluginLoadError",
    "PluginNotFoundError",
    "ValidationMode",
    "list_available_aggregators",
    "load_aggregator",
    "register_builtin",
]
