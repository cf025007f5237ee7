"""
Optional SOCKS tunnel support backed by httpx-socks.

SOCKS is a soft dependency: when httpx-socks is not installed the resolver
falls back to a direct connection instead of failing startup.
"""

try:
    from httpx_socks import AsyncProxyTransport
    from python_socks import ProxyConnectionError, ProxyError, ProxyTimeoutError, ProxyType

    SOCKS_ERRORS = (ProxyError, ProxyConnectionError, ProxyTimeoutError)
    SOCKS_AVAILABLE = True
except ImportError:  # pragma: no cover - fallback when httpx-socks not installed
    AsyncProxyTransport = ProxyType = None  # type: ignore
    SOCKS_ERRORS = ()
    SOCKS_AVAILABLE = False


def build_socks_transport(config) -> "AsyncProxyTransport":
    """Create the httpx transport that tunnels through ``config``'s SOCKS server."""
    if not SOCKS_AVAILABLE:
        raise RuntimeError("httpx-socks is required for SOCKS proxies")

    proxy_type = ProxyType.SOCKS4 if config.socks_version == 4 else ProxyType.SOCKS5
    return AsyncProxyTransport(
        proxy_type=proxy_type,
        proxy_host=config.host,
        proxy_port=config.port,
        username=config.username,
        password=config.password,
    )
