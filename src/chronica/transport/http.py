"""
HTTPS transport built on a synchronous ``httpx.Client``.

Every request is a plain ``POST`` with ``Content-Type: text/plain``. A call
without a body is a read-only probe (used for endpoint resolution). Bodies
longer than the configured maximum are rejected before anything is sent.
There is no retry: one call, one round trip.

The client itself comes from a factory supplied by the host, which owns
TLS material and timeouts. :func:`client_factory_from_settings` builds one
from :class:`~chronica.core.settings.TransportSettings`.
"""

from __future__ import annotations

import ssl
from typing import Callable, Mapping, Protocol, runtime_checkable

import httpx

from ..core import diagnostics
from ..core.errors import ConfigurationError, PayloadTooLargeError, TransportError
from ..core.settings import TransportSettings

ClientFactory = Callable[[], httpx.Client]

_CONTENT_TYPE = "text/plain"


@runtime_checkable
class Transport(Protocol):
    """Minimal request capability consumed by the resolver and the shipper."""

    def open(self) -> None: ...

    def close(self) -> None: ...

    def post(self, url: str, body: str | None = None) -> str: ...


def build_ssl_context(settings: TransportSettings) -> ssl.SSLContext:
    """Create the TLS context described by ``settings``.

    Raises:
        ConfigurationError: If a CA bundle or client certificate cannot be loaded
    """
    try:
        if settings.verify is False:
            context = ssl.create_default_context()
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        elif isinstance(settings.verify, str):
            context = ssl.create_default_context(cafile=settings.verify)
        else:
            context = ssl.create_default_context()
        if settings.cert_file:
            context.load_cert_chain(settings.cert_file, settings.key_file)
    except (OSError, ssl.SSLError) as exc:
        raise ConfigurationError(
            f"Cannot load transport security material: {exc}",
            cert_file=settings.cert_file,
        ) from exc
    return context


def client_factory_from_settings(settings: TransportSettings) -> ClientFactory:
    def _factory() -> httpx.Client:
        return httpx.Client(
            verify=build_ssl_context(settings),
            timeout=settings.timeout_seconds,
            headers=dict(settings.headers),
        )

    return _factory


class HttpTransport:
    """Authenticated text/plain POST transport."""

    def __init__(
        self,
        client_factory: ClientFactory,
        *,
        max_post_length: int = 2000,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        if max_post_length <= 0:
            raise ValueError("max_post_length must be > 0")
        self._client_factory = client_factory
        self._max_post_length = max_post_length
        self._default_headers = dict(headers or {})
        self._client: httpx.Client | None = None

    @classmethod
    def from_settings(
        cls,
        settings: TransportSettings,
        *,
        client_factory: ClientFactory | None = None,
    ) -> HttpTransport:
        return cls(
            client_factory or client_factory_from_settings(settings),
            max_post_length=settings.max_post_length,
        )

    @property
    def max_post_length(self) -> int:
        return self._max_post_length

    @property
    def is_open(self) -> bool:
        return self._client is not None

    def open(self) -> None:
        """Acquire the client from the factory (idempotent).

        Raises:
            ConfigurationError: If the factory cannot produce a client
        """
        if self._client is not None:
            return
        try:
            self._client = self._client_factory()
        except ConfigurationError:
            raise
        except Exception as exc:
            raise ConfigurationError(f"Cannot create HTTP client: {exc}") from exc

    def close(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            client.close()
        except Exception as exc:
            diagnostics.warn("transport", "client close failed", error=str(exc))

    def post(self, url: str, body: str | None = None) -> str:
        """POST ``body`` (or nothing) to ``url`` and return the trimmed response.

        Raises:
            PayloadTooLargeError: If ``body`` exceeds ``max_post_length``
            TransportError: On network failure or an HTTP error status
        """
        if body is not None and len(body) > self._max_post_length:
            raise PayloadTooLargeError(
                "length exceeded",
                url=url,
                length=len(body),
                max_length=self._max_post_length,
            )
        client = self._client
        if client is None:
            raise TransportError("transport is not open", url=url)

        content = body.encode("utf-8") if body is not None else b""
        headers = dict(self._default_headers)
        headers["Content-Type"] = _CONTENT_TYPE
        headers["Content-Length"] = str(len(content))
        diagnostics.debug("transport", "post", url=url, length=len(content))
        try:
            response = client.post(url, content=content, headers=headers)
        except httpx.HTTPError as exc:
            raise TransportError(
                f"request failed: {exc}", url=url, error_type=type(exc).__name__
            ) from exc
        if response.status_code >= 400:
            raise TransportError(
                f"HTTP {response.status_code}",
                status_code=response.status_code,
                url=url,
                body=response.text[:256],
            )
        return response.text.strip()


__all__ = [
    "ClientFactory",
    "HttpTransport",
    "Transport",
    "build_ssl_context",
    "client_factory_from_settings",
]
