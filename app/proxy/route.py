import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from app.providers.compose import API_PREFIX
from app.providers.models import InboundRequest
from app.proxy import errors
from app.proxy.cors import preflight_headers
from app.proxy.errors import ProxyError
from app.proxy.runtime import ProxyRuntime, get_runtime
from app.proxy.service import ProxyService
from app.utils import client_address

router = APIRouter()
logger = logging.getLogger("uvicorn.error")


def _raw_path(request: Request) -> str:
    """Request path as sent by the client, percent-encoding intact."""
    raw_path = request.scope.get("raw_path")
    if raw_path:
        return raw_path.split(b"?", 1)[0].decode("latin-1")
    return request.url.path


async def read_limited_body(request: Request, limit: int) -> bytes:
    """
    Read the request body, refusing it as soon as it exceeds ``limit`` bytes.

    A declared Content-Length over the limit is rejected before anything is
    read; otherwise the stream is consumed chunk by chunk.
    """
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        raise errors.payload_too_large(limit)

    chunks = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > limit:
            logger.warning(
                "[PROXY] Request body from %s exceeds %d bytes",
                client_address(request),
                limit,
            )
            raise errors.payload_too_large(limit)
        chunks.append(chunk)
    return b"".join(chunks)


async def build_inbound_request(
    request: Request, provider: str, max_body_bytes: int
) -> InboundRequest:
    return InboundRequest(
        provider_key=provider,
        path=_raw_path(request),
        query=request.url.query,
        headers={name.lower(): value for name, value in request.headers.items()},
        body=await read_limited_body(request, max_body_bytes),
        client=client_address(request),
        method=request.method,
    )


@router.get("/health")
async def health(runtime: ProxyRuntime = Depends(get_runtime)):
    return {
        "status": "ok",
        "service": runtime.service,
        "version": runtime.version,
        "uptime": runtime.uptime(),
        "providers": runtime.registry.keys(),
        "proxy": runtime.proxy_status(),
        "rateLimit": runtime.rate_limiter.stats(),
    }


@router.get(f"{API_PREFIX}/info")
async def api_info(runtime: ProxyRuntime = Depends(get_runtime)):
    providers = {
        provider.key: {
            "name": provider.name,
            "endpoint": provider.endpoint,
            "target": provider.base_url,
        }
        for provider in runtime.registry
    }
    return {
        "service": runtime.service,
        "description": "Multi-provider CORS proxy for AI APIs",
        "version": runtime.version,
        "endpoints": {
            "health": "GET /health",
            "info": f"GET {API_PREFIX}/info",
            "providers": providers,
        },
        "usage": {
            "description": f"Send POST request to {API_PREFIX}/{{provider}}/... with your API key",
            "examples": {
                "yandex": {
                    "url": f"{API_PREFIX}/yandex",
                    "method": "POST",
                    "headers": {"Authorization": "Api-Key YOUR_KEY"},
                    "body": {
                        "modelUri": "gpt://FOLDER_ID/yandexgpt-lite",
                        "messages": [{"role": "user", "text": "Hello!"}],
                    },
                },
                "claude": {
                    "url": f"{API_PREFIX}/claude/messages",
                    "method": "POST",
                    "headers": {
                        "Authorization": "Bearer YOUR_KEY",
                        "anthropic-version": "2023-06-01",
                    },
                    "body": {
                        "model": "claude-3-5-haiku-20241022",
                        "max_tokens": 100,
                        "messages": [{"role": "user", "content": "Hello!"}],
                    },
                },
                "groq": {
                    "url": f"{API_PREFIX}/groq/chat/completions",
                    "method": "POST",
                    "headers": {"Authorization": "Bearer YOUR_KEY"},
                    "body": {
                        "model": "llama-3.3-70b-versatile",
                        "messages": [{"role": "user", "content": "Hello!"}],
                    },
                },
            },
        },
    }


@router.post(f"{API_PREFIX}/{{provider}}")
@router.post(f"{API_PREFIX}/{{provider}}/{{subpath:path}}")
async def proxy_provider(
    provider: str,
    request: Request,
    runtime: ProxyRuntime = Depends(get_runtime),
) -> JSONResponse:
    """Forward a POST to the provider named in the path."""
    try:
        inbound = await build_inbound_request(request, provider, runtime.max_body_bytes)
    except ProxyError as e:
        return e.to_response()
    return await ProxyService(runtime).handle(inbound)


@router.options("/{path:path}")
async def preflight(path: str) -> Response:
    """Answer CORS preflights that arrive without an Origin header."""
    return Response(status_code=204, headers=preflight_headers())
