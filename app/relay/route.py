"""
Relay service: the optional secondary hop used by ``worker://`` transports.

The proxy POSTs here with the real upstream in ``X-Target-URL`` and the shared
secret in ``X-Auth-Token``. The relay checks the secret, only forwards to
HTTPS targets, strips its own and hop-by-hop headers, and returns the
upstream response verbatim, tagged with ``X-Proxied-By``.
"""

import hmac
import logging
from typing import Dict
from urllib.parse import urlsplit

import httpx
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response
from opentelemetry import trace

from app.transport.dispatcher import RELAY_AUTH_HEADER, RELAY_TARGET_HEADER
from app.utils import token_fingerprint
from app.utils.exception_logging import format_exception_message
from app.vars import RELAY_AUTH_TOKEN, REQUEST_TIMEOUT

router = APIRouter()
tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

RELAY_MARKER = "relay"

# Headers that must not reach the target API
STRIP_HEADERS = {
    RELAY_TARGET_HEADER.lower(),
    RELAY_AUTH_HEADER.lower(),
    "host",
    "content-length",
    "x-forwarded-for",
    "x-forwarded-host",
    "x-forwarded-proto",
    "x-real-ip",
    "forwarded",
    "connection",
    "transfer-encoding",
}

# Not copied back: hop-by-hop headers, plus length/encoding of the already decoded body
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
    "content-length",
    "content-encoding",
}

PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": (
        f"Content-Type, Authorization, {RELAY_TARGET_HEADER}, {RELAY_AUTH_HEADER}, "
        "anthropic-version, x-api-key"
    ),
    "Access-Control-Max-Age": "86400",
}


def _error(status_code: int, error: str, **extra) -> JSONResponse:
    return JSONResponse({"error": error, **extra}, status_code=status_code)


def check_relay_request(request: Request, expected_token: str):
    """Return an error response if the request must not be relayed, else None."""
    if not expected_token:
        return _error(
            500,
            "Relay misconfigured",
            hint="RELAY_AUTH_TOKEN is not set on the relay service",
        )

    token = request.headers.get(RELAY_AUTH_HEADER, "")
    if not token or not hmac.compare_digest(token.encode(), expected_token.encode()):
        logger.warning("[RELAY] Rejected token %s", token_fingerprint(token))
        return _error(401, "Unauthorized", hint=f"Invalid or missing {RELAY_AUTH_HEADER} header")

    target_url = request.headers.get(RELAY_TARGET_HEADER)
    if not target_url:
        return _error(
            400,
            f"Missing {RELAY_TARGET_HEADER} header",
            hint=f"Set {RELAY_TARGET_HEADER} to the API endpoint you want to reach",
        )

    try:
        parts = urlsplit(target_url)
    except ValueError:
        parts = None
    if parts is None or not parts.scheme or not parts.netloc:
        return _error(
            400,
            f"Invalid {RELAY_TARGET_HEADER}",
            hint="Must be a valid URL like https://api.example.com/v1/endpoint",
        )

    if parts.scheme != "https":
        return _error(400, "Only HTTPS targets are allowed")

    return None


def relay_headers(request: Request) -> Dict[str, str]:
    return {
        name: value
        for name, value in request.headers.items()
        if name.lower() not in STRIP_HEADERS
    }


async def forward(request: Request, client: httpx.AsyncClient) -> Response:
    """Forward a validated relay request to its declared target."""
    target_url = request.headers[RELAY_TARGET_HEADER]
    body = await request.body()

    with tracer.start_as_current_span("relay_request") as span:
        span.set_attribute("relay.target_host", urlsplit(target_url).netloc)
        try:
            upstream = await client.post(
                target_url, headers=relay_headers(request), content=body
            )
        except httpx.HTTPError as e:
            logger.error("[RELAY] Upstream request to %s failed: %s", target_url, e)
            span.set_attribute("relay.error", type(e).__name__)
            return _error(
                502,
                "Upstream request failed",
                message=format_exception_message(e),
                target=target_url,
            )

        span.set_attribute("relay.status_code", upstream.status_code)

    headers = {
        name: value
        for name, value in upstream.headers.items()
        if name.lower() not in HOP_BY_HOP_HEADERS
    }
    headers["Access-Control-Allow-Origin"] = "*"
    headers["X-Proxied-By"] = RELAY_MARKER

    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        headers=headers,
    )


@router.options("/{path:path}")
async def relay_preflight(path: str) -> Response:
    return Response(status_code=204, headers=PREFLIGHT_HEADERS)


@router.api_route("/{path:path}", methods=["GET", "PUT", "DELETE", "PATCH", "HEAD"])
async def relay_method_not_allowed(path: str) -> JSONResponse:
    return _error(405, "Method not allowed", hint=f"Use POST with {RELAY_TARGET_HEADER} header")


@router.post("/{path:path}")
async def relay(path: str, request: Request) -> Response:
    rejection = check_relay_request(request, request.app.state.relay_token)
    if rejection is not None:
        return rejection
    return await forward(request, request.app.state.relay_client)


def default_relay_token() -> str:
    return RELAY_AUTH_TOKEN


def default_relay_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(REQUEST_TIMEOUT),
        follow_redirects=False,
        trust_env=False,
    )
