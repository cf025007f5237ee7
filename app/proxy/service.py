"""
Request orchestration for proxied provider calls.

One call runs through a fixed sequence and stops at the first failing step:

1. resolve the provider          -> unknown-target
2. rate limit (client, provider) -> rate-limited
3. body checks and validation    -> validation-failed
4. compose upstream URL/headers
5. dispatch under the deadline   -> gateway-timeout / proxy-unreachable / bad-gateway / internal-error
6. decode the body, wrapping non-JSON payloads
7. relay upstream status and body unchanged
"""

import asyncio
import json
import logging
import time
from dataclasses import replace
from typing import Any

import httpx
from fastapi.responses import JSONResponse
from opentelemetry import trace

from app.providers.compose import build_forward_headers, build_target_url
from app.providers.models import InboundRequest, ProviderSpec
from app.proxy import errors
from app.proxy.errors import ProxyError
from app.proxy.runtime import ProxyRuntime
from app.utils.exception_logging import log_exception_with_details
from app.utils.traced_requests import traced_request

logger = logging.getLogger("uvicorn.error")
tracer = trace.get_tracer(__name__)

EMPTY_JSON_BODY = b"{}"


class ProxyService:
    def __init__(self, runtime: ProxyRuntime):
        self.runtime = runtime

    async def handle(self, request: InboundRequest) -> JSONResponse:
        """Run one proxied call, converting every failure into a JSON error."""
        try:
            return await self._proxy(request)
        except ProxyError as e:
            return e.to_response()

    async def _proxy(self, request: InboundRequest) -> JSONResponse:
        provider = self.runtime.registry.lookup(request.provider_key)
        if provider is None:
            raise errors.unknown_provider(
                request.provider_key, self.runtime.registry.keys()
            )

        decision = await self.runtime.rate_limiter.hit(request.client, provider.key)
        if not decision.allowed:
            logger.warning(
                "[PROXY:%s] Rate limit exceeded for %s", provider.key, request.client
            )
            raise errors.rate_limited(provider, decision)

        request = self._parse_body(request)
        if provider.validate_request:
            failure = provider.validate_request(request)
            if failure is not None:
                raise errors.validation_failed(failure)

        target_url = build_target_url(request, provider)
        headers = build_forward_headers(request, provider)
        body = request.body or EMPTY_JSON_BODY

        upstream = await self._dispatch(provider, target_url, headers, body, request.client)
        return JSONResponse(
            content=self._decode(upstream),
            status_code=upstream.status_code,
            headers=decision.headers(),
        )

    def _parse_body(self, request: InboundRequest) -> InboundRequest:
        if len(request.body) > self.runtime.max_body_bytes:
            raise errors.payload_too_large(self.runtime.max_body_bytes)
        if not request.body.strip():
            return replace(request, body=b"", json_body={})
        try:
            parsed = json.loads(request.body)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise errors.invalid_json_body(str(e))
        return replace(request, json_body=parsed)

    async def _dispatch(
        self,
        provider: ProviderSpec,
        target_url: str,
        headers: dict,
        body: bytes,
        client: str,
    ) -> httpx.Response:
        transport = self.runtime.transport_for(provider.key)
        dispatcher = self.runtime.dispatcher_for(provider.key)
        started = time.monotonic()

        with traced_request(
            tracer,
            operation="proxy_request",
            provider=provider.key,
            client=client,
            start_message=f"[PROXY:{provider.key}] -> {provider.name} ({target_url.split('?')[0]})",
            extra_attrs={"proxy.transport": transport.kind.value},
        ) as span:
            try:
                response = await asyncio.wait_for(
                    dispatcher.send(target_url, headers, body),
                    timeout=self.runtime.timeout,
                )
            except Exception as e:
                elapsed_ms = int((time.monotonic() - started) * 1000)
                log_exception_with_details(
                    logger,
                    f"[ERROR:{provider.name}] Proxy error ({elapsed_ms}ms):",
                    e,
                )
                error = errors.classify_transport_error(e, provider, transport.kind)
                span.set_attribute("proxy.error", error.kind.value)
                raise error from e

            elapsed_ms = int((time.monotonic() - started) * 1000)
            span.set_attribute("proxy.status_code", response.status_code)
            logger.info(
                "[PROXY:%s] <- %s: %d (%dms)",
                provider.key,
                provider.name,
                response.status_code,
                elapsed_ms,
            )
            return response

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        """Decode the upstream body as JSON, wrapping anything else."""
        try:
            return response.json()
        except (UnicodeDecodeError, ValueError):
            return errors.non_json_envelope(response.status_code, response.text)
