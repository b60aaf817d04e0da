"""
Helpers shared by aggregator plugins: config parsing and naming.
"""

from __future__ import annotations

import sys
from typing import Any, TypeVar

from pydantic import BaseModel

ConfigT = TypeVar("ConfigT", bound=BaseModel)


def parse_plugin_config(
    config_cls: type[ConfigT],
    config: ConfigT | dict[str, Any] | None = None,
    **kwargs: Any,
) -> ConfigT:
    """Build a plugin config from a model, a dict, keyword overrides or nothing.

    Keyword arguments take precedence over keys in ``config``.
    """
    if isinstance(config, config_cls):
        if not kwargs:
            return config
        data = config.model_dump()
    elif config is None:
        data = {}
    elif isinstance(config, dict):
        data = dict(config)
    else:
        raise TypeError(
            f"config must be {config_cls.__name__}, dict or None, "
            f"got {type(config).__name__}"
        )
    data.update(kwargs)
    return config_cls(**data)


def get_plugin_name(plugin: Any) -> str:
    """Display name for a plugin instance or class.

    Prefers a non-blank ``name`` attribute, then ``PLUGIN_METADATA["name"]``
    of the defining module, then the class name.
    """
    declared = getattr(plugin, "name", None)
    if isinstance(declared, str) and declared.strip():
        return declared.strip()
    cls = plugin if isinstance(plugin, type) else type(plugin)
    module = sys.modules.get(cls.__module__)
    metadata = getattr(module, "PLUGIN_METADATA", None)
    if isinstance(metadata, dict) and isinstance(metadata.get("name"), str):
        return str(metadata["name"])
    return cls.__name__


def normalize_plugin_name(name: str) -> str:
    """Canonical registry key: lowercase, hyphens as underscores."""
    return name.strip().replace("-", "_").lower()
