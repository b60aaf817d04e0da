"""Resolve the logical collection address into a delivery endpoint.

The resolve endpoint answers an empty POST with either an ``ERROR...`` line
or the bare host (``host`` or ``host:port``) that accepts reports. The
delivery endpoint is that host plugged into :data:`ENDPOINT_TEMPLATE`.
"""

from __future__ import annotations

from ..core import diagnostics
from ..core.errors import ResolutionError, TransportError
from .http import Transport

ENDPOINT_TEMPLATE = "https://{host}/post"


class Resolver:
    """One-shot resolution; caching is the caller's business."""

    def __init__(self, transport: Transport, *, template: str = ENDPOINT_TEMPLATE) -> None:
        self._transport = transport
        self._template = template

    def resolve(self, resolve_url: str) -> str:
        """Return the delivery endpoint announced by ``resolve_url``.

        Raises:
            ResolutionError: On an ``ERROR`` answer, an empty answer or a
                transport failure
        """
        try:
            response = self._transport.post(resolve_url)
        except TransportError as exc:
            raise ResolutionError(
                f"resolve request failed: {exc.message}",
                resolve_url=resolve_url,
                status_code=exc.status_code,
            ) from exc

        host = response.strip()
        if host.startswith("ERROR"):
            raise ResolutionError(host, resolve_url=resolve_url)
        if not host:
            raise ResolutionError("empty resolve response", resolve_url=resolve_url)

        endpoint = self._template.format(host=host)
        diagnostics.info("resolver", "resolved", resolve_url=resolve_url, endpoint=endpoint)
        return endpoint
