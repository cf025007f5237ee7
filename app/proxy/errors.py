"""
Client-facing error taxonomy.

Every failure that leaves the proxy is a ``ProxyError``: a kind from the fixed
set below, an HTTP status and a JSON body with at least an ``error`` field.
Transport exceptions are classified here and never reach the client raw.
"""

import asyncio
import math
from enum import Enum
from typing import Any, Dict, Iterable, Optional

import httpx
from fastapi.responses import JSONResponse

from app.providers.models import ProviderSpec, ValidationFailure
from app.transport import socks
from app.transport.config import TransportKind
from app.utils.exception_logging import find_exception_in_exception_groups

NON_JSON_EXCERPT_CHARS = 500


class ErrorKind(str, Enum):
    UNKNOWN_TARGET = "unknown-target"
    RATE_LIMITED = "rate-limited"
    VALIDATION_FAILED = "validation-failed"
    GATEWAY_TIMEOUT = "gateway-timeout"
    PROXY_UNREACHABLE = "proxy-unreachable"
    BAD_GATEWAY = "bad-gateway"
    INTERNAL_ERROR = "internal-error"
    NON_JSON_UPSTREAM = "non-json-upstream"


class ProxyError(Exception):
    """A classified failure ready to be rendered as a JSON response."""

    def __init__(
        self,
        kind: ErrorKind,
        status_code: int,
        body: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(body.get("error", kind.value))
        self.kind = kind
        self.status_code = status_code
        self.body = body
        self.headers = headers or {}

    def to_response(self) -> JSONResponse:
        return JSONResponse(
            content=self.body, status_code=self.status_code, headers=self.headers
        )


def unknown_provider(provider_key: str, available: Iterable[str]) -> ProxyError:
    return ProxyError(
        ErrorKind.UNKNOWN_TARGET,
        404,
        {
            "error": "Unknown provider",
            "message": f'Provider "{provider_key}" is not supported',
            "availableProviders": list(available),
        },
    )


def rate_limited(provider: ProviderSpec, decision) -> ProxyError:
    retry_after = max(1, math.ceil(decision.reset_after))
    return ProxyError(
        ErrorKind.RATE_LIMITED,
        429,
        {
            "error": f"Too many requests to {provider.name}, please try again later.",
            "retryAfter": retry_after,
            "hint": f"Wait {retry_after} seconds before sending another request",
        },
        headers=decision.headers(),
    )


def validation_failed(failure: ValidationFailure) -> ProxyError:
    return ProxyError(ErrorKind.VALIDATION_FAILED, failure.status_code, failure.body)


def invalid_json_body(detail: str) -> ProxyError:
    return ProxyError(
        ErrorKind.VALIDATION_FAILED,
        400,
        {
            "error": "Invalid JSON body",
            "message": detail,
            "hint": "Send a JSON request body with Content-Type: application/json",
        },
    )


def payload_too_large(limit: int) -> ProxyError:
    return ProxyError(
        ErrorKind.VALIDATION_FAILED,
        413,
        {
            "error": "Payload Too Large",
            "message": f"Request body exceeds {limit} bytes",
            "hint": "Reduce the size of the request body",
        },
    )


def gateway_timeout(provider: ProviderSpec) -> ProxyError:
    return ProxyError(
        ErrorKind.GATEWAY_TIMEOUT,
        504,
        {
            "error": "Gateway Timeout",
            "message": f"Request to {provider.name} API timed out",
            "hint": "Try again or check the provider status",
        },
    )


def proxy_unreachable(provider: ProviderSpec) -> ProxyError:
    return ProxyError(
        ErrorKind.PROXY_UNREACHABLE,
        502,
        {
            "error": "Proxy Connection Failed",
            "message": f"Unable to connect to proxy for {provider.name}",
            "hint": "Check that the proxy server is running and accessible",
        },
    )


def bad_gateway(provider: ProviderSpec) -> ProxyError:
    return ProxyError(
        ErrorKind.BAD_GATEWAY,
        502,
        {
            "error": "Bad Gateway",
            "message": f"Unable to connect to {provider.name} API",
            "hint": f"{provider.name} may be temporarily unavailable",
        },
    )


def internal_error() -> ProxyError:
    return ProxyError(
        ErrorKind.INTERNAL_ERROR,
        500,
        {
            "error": "Internal Proxy Error",
            "message": "An unexpected error occurred",
            "hint": "Contact proxy administrator if this persists",
        },
    )


def non_json_envelope(status_code: int, text: str) -> Dict[str, Any]:
    """Wrap an upstream body that could not be decoded as JSON."""
    return {
        "error": "Non-JSON response from provider",
        "status": status_code,
        "body": text[:NON_JSON_EXCERPT_CHARS],
    }


def _find(exception: BaseException, target_type) -> Optional[BaseException]:
    """Search exception groups and the cause chain for ``target_type``."""
    seen = set()
    current: Optional[BaseException] = exception
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        found = find_exception_in_exception_groups(current, target_type)
        if found is not None:
            return found
        current = current.__cause__ or current.__context__
    return None


def classify_transport_error(
    exception: BaseException,
    provider: ProviderSpec,
    transport_kind: TransportKind = TransportKind.DIRECT,
) -> ProxyError:
    """
    Map an outbound failure to one of the client-facing kinds.

    Order matters: proxy failures win over timeouts raised while talking to
    the proxy, and connect errors only count as upstream failures when no
    tunnel sits in between.
    """
    if _find(exception, (httpx.ProxyError,) + socks.SOCKS_ERRORS):
        return proxy_unreachable(provider)

    if _find(exception, (httpx.TimeoutException, asyncio.TimeoutError)):
        return gateway_timeout(provider)

    if _find(exception, httpx.ConnectError):
        if transport_kind is not TransportKind.DIRECT:
            return proxy_unreachable(provider)
        return bad_gateway(provider)

    if _find(exception, httpx.TransportError):
        return bad_gateway(provider)

    return internal_error()
