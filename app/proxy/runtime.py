"""
Startup snapshot consumed by the proxy routes.

Transport choice and dispatchers are resolved once, when the application
starts, and handed to request handlers through ``app.state`` instead of being
read from the environment per request.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Mapping, Optional

from fastapi import Request

from app.providers.registry import PROVIDERS, ProviderRegistry
from app.proxy.rate_limit import FixedWindowRateLimiter
from app.transport import (
    OutboundDispatcher,
    TransportConfig,
    create_dispatcher,
    resolve_transport,
)
from app.vars import (
    MAX_BODY_BYTES,
    PROXY_AUTH_TOKEN,
    PROXY_OVERRIDES,
    PROXY_URL,
    REQUEST_TIMEOUT,
    SERVICE_NAME,
    SERVICE_VERSION,
)

logger = logging.getLogger("uvicorn.error")


@dataclass
class ProxyRuntime:
    registry: ProviderRegistry
    transports: Dict[str, TransportConfig]
    dispatchers: Dict[str, OutboundDispatcher]
    rate_limiter: FixedWindowRateLimiter
    timeout: float = REQUEST_TIMEOUT
    max_body_bytes: int = MAX_BODY_BYTES
    service: str = SERVICE_NAME
    version: str = SERVICE_VERSION
    started_at: float = field(default_factory=time.monotonic)

    def transport_for(self, provider_key: str) -> TransportConfig:
        return self.transports[provider_key]

    def dispatcher_for(self, provider_key: str) -> OutboundDispatcher:
        return self.dispatchers[provider_key]

    def uptime(self) -> float:
        return time.monotonic() - self.started_at

    def proxy_status(self) -> Dict[str, str]:
        return {key: self.transports[key].describe() for key in self.registry.keys()}

    async def aclose(self) -> None:
        for dispatcher in self.dispatchers.values():
            await dispatcher.aclose()


def build_runtime(
    registry: ProviderRegistry = PROVIDERS,
    overrides: Optional[Mapping[str, str]] = None,
    default_proxy: Optional[str] = None,
    relay_secret: Optional[str] = None,
    timeout: float = REQUEST_TIMEOUT,
    rate_limiter: Optional[FixedWindowRateLimiter] = None,
    max_body_bytes: int = MAX_BODY_BYTES,
    dispatcher_factory: Callable[[TransportConfig, float], OutboundDispatcher] = create_dispatcher,
) -> ProxyRuntime:
    """Resolve every provider's transport and create its dispatcher."""
    overrides = PROXY_OVERRIDES if overrides is None else overrides
    default_proxy = PROXY_URL if default_proxy is None else default_proxy
    relay_secret = PROXY_AUTH_TOKEN if relay_secret is None else relay_secret

    transports: Dict[str, TransportConfig] = {}
    dispatchers: Dict[str, OutboundDispatcher] = {}
    for provider in registry:
        config = resolve_transport(
            provider.key,
            override=overrides.get(provider.key),
            default=default_proxy,
            relay_secret=relay_secret,
        )
        transports[provider.key] = config
        dispatchers[provider.key] = dispatcher_factory(config, timeout)
        if config.is_tunnel:
            logger.info("[PROXY] %s: routing via %s", provider.key, config.describe())

    return ProxyRuntime(
        registry=registry,
        transports=transports,
        dispatchers=dispatchers,
        rate_limiter=rate_limiter or FixedWindowRateLimiter(),
        timeout=timeout,
        max_body_bytes=max_body_bytes,
    )


def get_runtime(request: Request) -> ProxyRuntime:
    """FastAPI dependency returning the snapshot built at startup."""
    return request.app.state.proxy_runtime
