import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional, Sequence

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from opentelemetry import trace
from prometheus_client import Info
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.providers.compose import API_PREFIX
from app.proxy.cors import PreflightCORSMiddleware
from app.proxy.route import router
from app.proxy.runtime import ProxyRuntime, build_runtime
from app.utils import client_address
from app.utils.exception_logging import log_exception_with_details
from app.vars import OTLP_ENDPOINT, OTLP_HEADERS, PORT, SERVICE_NAME, SERVICE_VERSION

logger = logging.getLogger("uvicorn.error")

try:
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider, ReadableSpan
    from opentelemetry.sdk.trace.export import (
        BatchSpanProcessor,
        SpanExporter,
        SpanExportResult,
    )
    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

    _OTEL_AVAILABLE = True
except ImportError:  # pragma: no cover - fallback when OTEL not installed
    Resource = TracerProvider = ReadableSpan = BatchSpanProcessor = SpanExporter = SpanExportResult = None  # type: ignore
    FastAPIInstrumentor = OTLPSpanExporter = None  # type: ignore
    _OTEL_AVAILABLE = False

# Subset of helmet's defaults that applies to a JSON API
SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "Cross-Origin-Resource-Policy": "same-origin",
    "X-DNS-Prefetch-Control": "off",
}


class FilteringSpanExporter(SpanExporter if _OTEL_AVAILABLE else object):
    """
    Wrapper exporter that drops health probe spans, which would otherwise
    dominate traces of a mostly idle proxy.
    """

    def __init__(self, exporter: SpanExporter):
        self.exporter = exporter

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        filtered_spans = [
            span
            for span in spans
            if not (
                span.attributes
                and span.attributes.get("http.target", span.attributes.get("url.path"))
                == "/health"
            )
        ]
        if filtered_spans:
            return self.exporter.export(filtered_spans)
        return SpanExportResult.SUCCESS

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)


def _available_endpoints(runtime: Optional[ProxyRuntime]) -> list:
    endpoints = ["GET /health", f"GET {API_PREFIX}/info"]
    if runtime is not None:
        endpoints.extend(provider.endpoint for provider in runtime.registry)
    return endpoints


def _log_startup(runtime: ProxyRuntime) -> None:
    logger.info("%s v%s listening on port %s", runtime.service, runtime.version, PORT)
    for provider in runtime.registry:
        transport = runtime.transport_for(provider.key)
        tag = f" [via {transport.kind.value}]" if transport.is_tunnel else ""
        logger.info("  %-10s -> %s%s", provider.key, provider.name, tag)


def create_app(
    runtime_factory: Callable[[], ProxyRuntime] = build_runtime,
) -> FastAPI:
    """Assemble the proxy application around a runtime built at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        runtime = runtime_factory()
        app.state.proxy_runtime = runtime
        _log_startup(runtime)
        try:
            yield
        finally:
            logger.info("Shutting down, closing outbound clients")
            await runtime.aclose()

    app = FastAPI(title=SERVICE_NAME, version=SERVICE_VERSION, lifespan=lifespan)

    @app.middleware("http")
    async def access_log_and_security_headers(request: Request, call_next):
        logger.info(
            "%s %s - IP: %s", request.method, request.url.path, client_address(request)
        )
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    # Added last so it wraps everything and answers preflights first
    app.add_middleware(PreflightCORSMiddleware)

    @app.exception_handler(StarletteHTTPException)
    async def not_found_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code not in (404, 405):
            return JSONResponse({"error": exc.detail}, status_code=exc.status_code)
        runtime = getattr(request.app.state, "proxy_runtime", None)
        return JSONResponse(
            {
                "error": "Not Found",
                "message": f"Endpoint {request.method} {request.url.path} does not exist",
                "availableEndpoints": _available_endpoints(runtime),
            },
            status_code=404,
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        log_exception_with_details(logger, "[FATAL ERROR]", exc)
        return JSONResponse(
            {"error": "Internal Server Error", "message": "An unexpected error occurred"},
            status_code=500,
        )

    app.include_router(router)
    return app


app = create_app()
instrumentator = Instrumentator()

instrumentator.instrument(app).expose(app)

# Configure tracing if OpenTelemetry dependencies are available
if _OTEL_AVAILABLE:
    trace.set_tracer_provider(
        TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
    )
    tracer_provider = trace.get_tracer_provider()
    if OTLP_ENDPOINT:
        otlp_exporter = OTLPSpanExporter(
            endpoint=OTLP_ENDPOINT,
            headers=((OTLP_HEADERS).split(",") if OTLP_HEADERS else None),
        )

        filtering_exporter = FilteringSpanExporter(otlp_exporter)
        span_processor = BatchSpanProcessor(filtering_exporter)
        tracer_provider.add_span_processor(span_processor)

    FastAPIInstrumentor.instrument_app(
        app,
        excluded_urls="",
        server_request_hook=None,
        client_request_hook=None,
    )

app_info = Info("fastapi_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME, "version": SERVICE_VERSION})
