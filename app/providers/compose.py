"""
Builds the outbound URL and header set for a provider call.
"""

from typing import Dict

from app.providers.headers import (
    AUTHORIZATION_HEADER,
    CONTENT_TYPE_HEADER,
    DEFAULT_CONTENT_TYPE,
    PASSTHROUGH_HEADERS,
)
from app.providers.models import InboundRequest, PathMode, ProviderSpec

API_PREFIX = "/api"


def build_target_url(request: InboundRequest, provider: ProviderSpec) -> str:
    """
    Construct the upstream URL.

    ``fixed`` providers always receive their base URL. ``subpath`` providers
    receive the base URL (without trailing slash) followed by everything after
    ``/api/{provider}`` in the inbound URL, query string included.
    """
    if provider.path_mode is PathMode.FIXED:
        return provider.base_url

    prefix = f"{API_PREFIX}/{provider.key}"
    path = request.path
    subpath = path[len(prefix):] if path.startswith(prefix) else ""
    if request.query:
        subpath = f"{subpath}?{request.query}"

    return provider.base_url.rstrip("/") + subpath


def build_forward_headers(
    request: InboundRequest, provider: ProviderSpec
) -> Dict[str, str]:
    """
    Prepare headers for the upstream request.

    Only Content-Type, Authorization and the provider passthrough headers are
    retained; everything else the client sent is dropped. The provider's header
    transform, if any, has the final say.
    """
    headers: Dict[str, str] = {
        CONTENT_TYPE_HEADER: request.header("content-type") or DEFAULT_CONTENT_TYPE
    }

    authorization = request.header("authorization")
    if authorization:
        headers[AUTHORIZATION_HEADER] = authorization

    for name in PASSTHROUGH_HEADERS:
        value = request.header(name)
        if value:
            headers[name] = value

    if provider.transform_headers:
        return provider.transform_headers(headers)

    return headers
