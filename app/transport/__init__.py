"""Outbound transport selection and dispatch."""

from app.transport.config import (
    DIRECT,
    TransportConfig,
    TransportKind,
    mask_proxy_url,
    resolve_transport,
)
from app.transport.dispatcher import (
    RELAY_AUTH_HEADER,
    RELAY_TARGET_HEADER,
    OutboundDispatcher,
    create_dispatcher,
)

__all__ = [
    "DIRECT",
    "TransportConfig",
    "TransportKind",
    "mask_proxy_url",
    "resolve_transport",
    "RELAY_AUTH_HEADER",
    "RELAY_TARGET_HEADER",
    "OutboundDispatcher",
    "create_dispatcher",
]
