"""
Configuration models for chronica using Pydantic v2 Settings.

Settings are read from keyword arguments or environment variables with the
``CHRONICA_`` prefix and ``__`` as the nested delimiter, e.g.
``CHRONICA_SHIPPER__PERIOD_SECONDS=30s``.
"""

from __future__ import annotations

import re
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationInfo, field_validator
from pydantic_settings import (  # type: ignore[import-not-found]
    BaseSettings,
    SettingsConfigDict,
)

# Keep explicit version to allow schema gating and forward migrations later
LATEST_CONFIG_SCHEMA_VERSION = "1.0"

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h|d)?\s*$", re.IGNORECASE)
_DURATION_UNITS = {
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
    "d": 86400.0,
}


def parse_duration(value: str | int | float) -> float:
    """Parse a duration into seconds.

    Accepts plain numbers (seconds) or strings with a unit suffix:
    ``500ms``, ``60s``, ``5m``, ``1h``, ``1d``.

    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    match = _DURATION_RE.match(value)
    if match is None:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return float(amount) * _DURATION_UNITS[(unit or "s").lower()]


class CoreSettings(BaseModel):
    """Ambient behavior shared by all components."""

    internal_logging_enabled: bool = Field(
        default=False,
        description="Emit DEBUG/INFO diagnostics in addition to warnings",
    )
    enable_metrics: bool = Field(
        default=False,
        description="Enable Prometheus-compatible metrics",
    )
    atexit_close_enabled: bool = Field(
        default=True,
        description="Close registered shippers from an atexit hook",
    )


class ShipperSettings(BaseModel):
    """Scheduling and report shaping."""

    resolve_url: str = Field(
        default="https://chronica.co/resolve",
        description="Endpoint that resolves the concrete delivery host",
    )
    period_seconds: float = Field(
        default=60.0,
        gt=0.0,
        description="Flush period; accepts seconds or strings such as '60s'",
    )
    topic_label: str | None = Field(
        default=None,
        description="Topic header; defaults to the aggregator name",
    )
    max_report_length: int = Field(
        default=2000,
        ge=1,
        description="Maximum report length in characters before truncation",
    )
    aggregator: str = Field(
        default="counting",
        description="Name of the aggregator plugin",
    )
    aggregator_config: dict[str, Any] = Field(
        default_factory=dict,
        description="Options passed to the aggregator constructor",
    )
    min_level: Literal["DEBUG"] = Field(
        default="DEBUG",
        description="Severity threshold (fixed)",
    )

    @field_validator("period_seconds", mode="before")
    @classmethod
    def _parse_period(cls, value: object) -> float:
        if isinstance(value, (str, int, float)):
            return parse_duration(value)
        raise ValueError(f"Invalid duration: {value!r}")

    @field_validator("resolve_url")
    @classmethod
    def _ensure_url(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(("http://", "https://")):
            raise ValueError("resolve_url must be an http(s) URL")
        return value


class TransportSettings(BaseModel):
    """Secure HTTP client material and limits."""

    max_post_length: int = Field(
        default=2000,
        ge=1,
        description="Requests with larger bodies fail without being sent",
    )
    verify: bool | str = Field(
        default=True,
        description="TLS verification flag or CA bundle path",
    )
    cert_file: str | None = Field(default=None, description="Client certificate")
    key_file: str | None = Field(default=None, description="Client private key")
    timeout_seconds: float = Field(default=10.0, gt=0.0)
    headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("verify", mode="before")
    @classmethod
    def _coerce_verify(cls, value: object) -> object:
        # Env values arrive as strings; only a path should stay a string
        if isinstance(value, str) and value.strip().lower() in {
            "1", "true", "yes", "0", "false", "no"
        }:
            return value.strip().lower() in {"1", "true", "yes"}
        return value

    @field_validator("key_file")
    @classmethod
    def _key_requires_cert(
        cls, value: str | None, info: ValidationInfo
    ) -> str | None:
        data = info.data or {}
        if value and not data.get("cert_file"):
            raise ValueError("key_file requires cert_file")
        return value


class Settings(BaseSettings):
    """Top-level configuration model with versioning."""

    schema_version: str = Field(default=LATEST_CONFIG_SCHEMA_VERSION)

    core: CoreSettings = Field(default_factory=CoreSettings)
    shipper: ShipperSettings = Field(default_factory=ShipperSettings)
    transport: TransportSettings = Field(default_factory=TransportSettings)

    model_config = SettingsConfigDict(
        env_prefix="CHRONICA_",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    def to_dict(self) -> dict[str, object]:
        from typing import cast

        return cast(
            dict[str, object],
            self.model_dump(by_alias=True, exclude_none=True),
        )


__all__ = [
    "CoreSettings",
    "Settings",
    "ShipperSettings",
    "TransportSettings",
    "parse_duration",
]
