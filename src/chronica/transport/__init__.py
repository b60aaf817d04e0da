from .http import (
    ClientFactory,
    HttpTransport,
    Transport,
    build_ssl_context,
    client_factory_from_settings,
)
from .resolver import ENDPOINT_TEMPLATE, Resolver

__all__ = [
    "ClientFactory",
    "ENDPOINT_TEMPLATE",
    "HttpTransport",
    "Resolver",
    "Transport",
    "build_ssl_context",
    "client_factory_from_settings",
]
