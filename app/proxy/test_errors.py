"""
Tests for transport error classification and error response bodies.
"""

import asyncio
import json

import httpx
import pytest

from app.providers.models import ProviderSpec, ValidationFailure
from app.proxy import errors
from app.proxy.errors import ErrorKind, classify_transport_error
from app.proxy.rate_limit import RateLimitDecision
from app.transport import socks
from app.transport.config import TransportKind

PROVIDER = ProviderSpec(key="groq", name="Groq", base_url="https://api.groq.com/openai/v1")


def _classify(exc, kind=TransportKind.DIRECT):
    return classify_transport_error(exc, PROVIDER, kind)


class TestClassification:
    def test_timeout(self):
        error = _classify(httpx.ReadTimeout("slow"))
        assert error.kind is ErrorKind.GATEWAY_TIMEOUT
        assert error.status_code == 504
        assert error.body["message"] == "Request to Groq API timed out"

    def test_deadline_expiry(self):
        assert _classify(asyncio.TimeoutError()).kind is ErrorKind.GATEWAY_TIMEOUT

    def test_direct_connect_error_is_bad_gateway(self):
        error = _classify(httpx.ConnectError("refused"))
        assert error.kind is ErrorKind.BAD_GATEWAY
        assert error.status_code == 502
        assert error.body["hint"] == "Groq may be temporarily unavailable"

    def test_connect_error_through_tunnel_is_proxy_unreachable(self):
        error = _classify(httpx.ConnectError("refused"), TransportKind.HTTP_PROXY)
        assert error.kind is ErrorKind.PROXY_UNREACHABLE
        assert error.body["error"] == "Proxy Connection Failed"

    def test_httpx_proxy_error(self):
        error = _classify(httpx.ProxyError("407"), TransportKind.HTTP_PROXY)
        assert error.kind is ErrorKind.PROXY_UNREACHABLE

    def test_proxy_error_wins_over_timeout(self):
        try:
            try:
                raise httpx.ProxyError("tunnel failed")
            except httpx.ProxyError as inner:
                raise asyncio.TimeoutError() from inner
        except asyncio.TimeoutError as outer:
            error = _classify(outer, TransportKind.HTTP_PROXY)
        assert error.kind is ErrorKind.PROXY_UNREACHABLE

    def test_socks_error(self):
        pytest.importorskip("python_socks")
        from python_socks import ProxyConnectionError

        error = _classify(ProxyConnectionError("no route"), TransportKind.SOCKS5)
        assert socks.SOCKS_ERRORS
        assert error.kind is ErrorKind.PROXY_UNREACHABLE

    def test_other_transport_error(self):
        error = _classify(httpx.RemoteProtocolError("eof"))
        assert error.kind is ErrorKind.BAD_GATEWAY

    def test_unexpected_error(self):
        error = _classify(RuntimeError("boom"))
        assert error.kind is ErrorKind.INTERNAL_ERROR
        assert error.status_code == 500
        assert error.body == {
            "error": "Internal Proxy Error",
            "message": "An unexpected error occurred",
            "hint": "Contact proxy administrator if this persists",
        }


def test_unknown_provider_lists_available():
    error = errors.unknown_provider("openai", ["groq", "claude"])
    assert error.status_code == 404
    assert error.body == {
        "error": "Unknown provider",
        "message": 'Provider "openai" is not supported',
        "availableProviders": ["groq", "claude"],
    }


def test_rate_limited_carries_retry_after():
    decision = RateLimitDecision(allowed=False, limit=60, remaining=0, reset_after=12.2)
    error = errors.rate_limited(PROVIDER, decision)
    assert error.status_code == 429
    assert error.body["retryAfter"] == 13
    assert error.headers["Retry-After"] == "13"

    response = error.to_response()
    assert response.status_code == 429
    assert response.headers["retry-after"] == "13"
    assert json.loads(response.body)["error"].startswith("Too many requests to Groq")


def test_validation_failure_passes_through():
    failure = ValidationFailure(status_code=401, body={"error": "nope"})
    error = errors.validation_failed(failure)
    assert error.kind is ErrorKind.VALIDATION_FAILED
    assert (error.status_code, error.body) == (401, {"error": "nope"})


def test_non_json_envelope_truncates():
    envelope = errors.non_json_envelope(503, "x" * 600)
    assert envelope["error"] == "Non-JSON response from provider"
    assert envelope["status"] == 503
    assert len(envelope["body"]) == 500
