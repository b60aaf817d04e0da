"""
Aggregator loader using a built-in registry plus Python entry points.

Names are normalized (hyphens/underscores, case) and may be aliases, so a
configuration key such as ``"Counting"`` or ``"default"`` selects the
built-in counting aggregator. Built-ins are preferred over entry points when
names collide. Third-party aggregators register under the
``chronica.aggregators`` entry point group.
"""

from __future__ import annotations

import importlib
import importlib.metadata
from enum import Enum
from typing import Any, Callable, Iterable

from ..core import diagnostics
from .aggregators.counting import CountingAggregator
from .utils import get_plugin_name, normalize_plugin_name

AGGREGATOR_GROUP = "chronica.aggregators"

# canonical name -> class
BUILTIN_AGGREGATORS: dict[str, type] = {}

# alias -> canonical name
BUILTIN_ALIASES: dict[str, str] = {}


class PluginNotFoundError(Exception):
    """No aggregator is registered under the requested name."""


class PluginLoadError(Exception):
    """An aggregator was found but could not be imported, built or validated."""


class ValidationMode(Enum):
    DISABLED = "disabled"
    WARN = "warn"
    STRICT = "strict"


_validation_mode: ValidationMode = ValidationMode.DISABLED


def set_validation_mode(mode: ValidationMode) -> None:
    """Change the validation applied by later :func:`load_aggregator` calls."""
    global _validation_mode
    _validation_mode = mode


def register_builtin(
    name: str, cls: type, *, aliases: Iterable[str] | None = None
) -> None:
    """Add ``cls`` to the built-in registry under ``name`` and ``aliases``."""
    canonical = normalize_plugin_name(name)
    BUILTIN_AGGREGATORS[canonical] = cls
    for alias in aliases or ():
        BUILTIN_ALIASES[normalize_plugin_name(alias)] = canonical


def builtin_aggregator(name: str) -> type | None:
    """Return the built-in class registered under ``name`` or an alias."""
    key = normalize_plugin_name(name)
    return BUILTIN_AGGREGATORS.get(BUILTIN_ALIASES.get(key, key))


def _check_protocol(instance: Any, mode: ValidationMode) -> None:
    from ..testing.validators import validate_aggregator

    result = validate_aggregator(instance)
    label = get_plugin_name(instance)
    if result.valid:
        if result.warnings:
            diagnostics.warn(
                "plugins",
                "aggregator has protocol warnings",
                aggregator=label,
                warnings=result.warnings,
            )
        return
    if mode is ValidationMode.STRICT:
        raise PluginLoadError(
            f"Aggregator '{label}' failed validation: {'; '.join(result.errors)}"
        )
    diagnostics.warn(
        "plugins",
        "aggregator failed validation",
        aggregator=label,
        errors=result.errors,
    )


def load_aggregator(
    name: str,
    config: dict[str, Any] | None = None,
    *,
    validation_mode: ValidationMode | None = None,
) -> Any:
    """Instantiate an aggregator by name from built-ins or entry points.

    Raises:
        PluginNotFoundError: If no aggregator is registered under ``name``
        PluginLoadError: If the aggregator fails to import, instantiate or
            validate (strict mode)
    """
    key = normalize_plugin_name(name)
    mode = _validation_mode if validation_mode is None else validation_mode
    options = dict(config or {})

    builtin = builtin_aggregator(key)
    if builtin is not None:
        return _build(builtin, options, mode)

    try:
        matches = [
            ep
            for ep in _group_entry_points(importlib.metadata.entry_points())
            if normalize_plugin_name(ep.name) == key
        ]
        target = matches[0].load() if matches else None
    except Exception as exc:
        raise PluginLoadError(f"Cannot import aggregator '{name}': {exc}") from exc
    if target is None:
        raise PluginNotFoundError(
            f"No aggregator '{name}' in built-ins or entry point group "
            f"'{AGGREGATOR_GROUP}'"
        )
    return _build(target, options, mode)


def list_available_aggregators() -> list[str]:
    """Sorted names accepted by :func:`load_aggregator`."""
    names = set(BUILTIN_AGGREGATORS) | set(BUILTIN_ALIASES)
    try:
        eps = _group_entry_points(importlib.metadata.entry_points())
    except Exception:
        # Broken distribution metadata should not hide the built-ins
        eps = []
    names.update(normalize_plugin_name(ep.name) for ep in eps)
    return sorted(names)


def _group_entry_points(eps: Any) -> list[Any]:
    if hasattr(eps, "select"):
        return list(eps.select(group=AGGREGATOR_GROUP))
    return list(eps.get(AGGREGATOR_GROUP, []))


def _build(
    factory: Callable[..., Any] | type,
    options: dict[str, Any],
    mode: ValidationMode,
) -> Any:
    try:
        instance = factory(**options)
    except Exception as exc:
        diagnostics.warn(
            "plugins",
            "aggregator construction failed",
            aggregator=get_plugin_name(factory),
            error=str(exc),
        )
        raise PluginLoadError(str(exc)) from exc
    if mode is not ValidationMode.DISABLED:
        _check_protocol(instance, mode)
    return instance


register_builtin("counting", CountingAggregator, aliases=("default",))


__all__ = [
    "AGGREGATOR_GROUP",
    "PluginLoadError",
    "PluginNotFoundError",
    "ValidationMode",
    "builtin_aggregator",
    "list_available_aggregators",
    "load_aggregator",
    "register_builtin",
    "set_validation_mode",
]
