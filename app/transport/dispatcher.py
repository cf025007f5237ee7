"""
Outbound dispatchers.

Every provider gets one dispatcher at startup, built from its resolved
``TransportConfig``. All dispatchers expose the same ``send`` coroutine and
return a fully read ``httpx.Response``, so callers never branch on the
transport kind.
"""

import logging
from typing import Dict, Optional

import httpx

from app.transport import socks
from app.transport.config import TransportConfig, TransportKind

logger = logging.getLogger("uvicorn.error")

RELAY_TARGET_HEADER = "X-Target-URL"
RELAY_AUTH_HEADER = "X-Auth-Token"


class OutboundDispatcher:
    """Sends provider calls straight to the upstream URL."""

    def __init__(
        self,
        config: TransportConfig,
        timeout: float,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        self.timeout = timeout
        self._client = client or self._create_client()

    @property
    def kind(self) -> TransportKind:
        return self.config.kind

    def _client_options(self) -> dict:
        # trust_env is off so HTTP(S)_PROXY variables never override the resolved transport
        return {
            "timeout": httpx.Timeout(self.timeout),
            "follow_redirects": False,
            "trust_env": False,
        }

    def _create_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(**self._client_options())

    def _request_target(self, url: str, headers: Dict[str, str]):
        return url, headers

    async def send(
        self, url: str, headers: Dict[str, str], body: bytes
    ) -> httpx.Response:
        target, outbound_headers = self._request_target(url, headers)
        return await self._client.post(target, headers=outbound_headers, content=body)

    async def aclose(self) -> None:
        await self._client.aclose()


class HttpProxyDispatcher(OutboundDispatcher):
    """Tunnels provider calls through a forward HTTP(S) proxy."""

    def proxy(self) -> httpx.Proxy:
        headers = {}
        if self.config.proxy_authorization:
            headers["Proxy-Authorization"] = self.config.proxy_authorization
        return httpx.Proxy(self.config.endpoint, headers=headers)

    def _client_options(self) -> dict:
        options = super()._client_options()
        options["proxy"] = self.proxy()
        return options


class SocksDispatcher(OutboundDispatcher):
    """Tunnels provider calls through a SOCKS4/5 server."""

    def _client_options(self) -> dict:
        options = super()._client_options()
        options["transport"] = socks.build_socks_transport(self.config)
        return options


class RelayDispatcher(OutboundDispatcher):
    """
    Sends provider calls to the relay service instead of the upstream.

    The real upstream URL travels in ``X-Target-URL``; the shared secret, when
    configured, in ``X-Auth-Token``. The relay strips both before forwarding.
    """

    def _request_target(self, url: str, headers: Dict[str, str]):
        relay_headers = dict(headers)
        relay_headers[RELAY_TARGET_HEADER] = url
        if self.config.relay_secret:
            relay_headers[RELAY_AUTH_HEADER] = self.config.relay_secret
        return self.config.url, relay_headers


_DISPATCHERS = {
    TransportKind.DIRECT: OutboundDispatcher,
    TransportKind.HTTP_PROXY: HttpProxyDispatcher,
    TransportKind.SOCKS5: SocksDispatcher,
    TransportKind.RELAY: RelayDispatcher,
}


def create_dispatcher(
    config: TransportConfig,
    timeout: float,
    client: Optional[httpx.AsyncClient] = None,
) -> OutboundDispatcher:
    """Build the dispatcher matching ``config.kind``."""
    dispatcher_cls = _DISPATCHERS[config.kind]
    return dispatcher_cls(config, timeout, client=client)
