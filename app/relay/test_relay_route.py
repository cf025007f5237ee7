"""
Tests for the relay service.
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from app.relay.server import create_relay_app
from app.transport.dispatcher import RELAY_AUTH_HEADER, RELAY_TARGET_HEADER

TOKEN = "relay-secret"
TARGET = "https://api.anthropic.com/v1/messages"


@pytest.fixture
def upstream_calls():
    return []


@pytest.fixture
def responder():
    return {
        "fn": lambda request: httpx.Response(
            200,
            json={"id": "msg_1"},
            headers={"x-request-id": "abc", "Connection": "keep-alive"},
        )
    }


@pytest.fixture
def relay_client(upstream_calls, responder):
    def handler(request: httpx.Request) -> httpx.Response:
        upstream_calls.append(request)
        return responder["fn"](request)

    app = create_relay_app(
        token=TOKEN,
        client_factory=lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    with TestClient(app) as client:
        yield client


def relay_headers(**extra):
    headers = {
        RELAY_TARGET_HEADER: TARGET,
        RELAY_AUTH_HEADER: TOKEN,
        "Content-Type": "application/json",
        "x-api-key": "sk-ant",
    }
    headers.update(extra)
    return headers


def test_forwards_to_target(relay_client, upstream_calls):
    response = relay_client.post("/", json={"model": "claude"}, headers=relay_headers())

    assert response.status_code == 200
    assert response.json() == {"id": "msg_1"}
    assert response.headers["x-proxied-by"] == "relay"
    assert response.headers["access-control-allow-origin"] == "*"
    assert response.headers["x-request-id"] == "abc"

    sent = upstream_calls[0]
    assert str(sent.url) == TARGET
    assert sent.headers["x-api-key"] == "sk-ant"
    assert RELAY_TARGET_HEADER not in sent.headers
    assert RELAY_AUTH_HEADER not in sent.headers


def test_forwarding_headers_are_stripped(relay_client, upstream_calls):
    relay_client.post(
        "/",
        json={},
        headers=relay_headers(**{"X-Forwarded-For": "1.2.3.4", "X-Real-IP": "1.2.3.4"}),
    )
    sent = upstream_calls[0]
    assert "x-forwarded-for" not in sent.headers
    assert "x-real-ip" not in sent.headers


def test_upstream_status_passed_through(relay_client, responder):
    responder["fn"] = lambda request: httpx.Response(529, json={"type": "overloaded"})
    response = relay_client.post("/", json={}, headers=relay_headers())
    assert response.status_code == 529
    assert response.json() == {"type": "overloaded"}


@pytest.mark.parametrize(
    "headers, status, error",
    [
        ({RELAY_TARGET_HEADER: TARGET}, 401, "Unauthorized"),
        ({RELAY_TARGET_HEADER: TARGET, RELAY_AUTH_HEADER: "wrong"}, 401, "Unauthorized"),
        ({RELAY_AUTH_HEADER: TOKEN}, 400, f"Missing {RELAY_TARGET_HEADER} header"),
        (
            {RELAY_AUTH_HEADER: TOKEN, RELAY_TARGET_HEADER: "not a url"},
            400,
            f"Invalid {RELAY_TARGET_HEADER}",
        ),
        (
            {RELAY_AUTH_HEADER: TOKEN, RELAY_TARGET_HEADER: "http://169.254.169.254/latest"},
            400,
            "Only HTTPS targets are allowed",
        ),
    ],
)
def test_rejections(relay_client, upstream_calls, headers, status, error):
    response = relay_client.post("/", json={}, headers=headers)
    assert response.status_code == status
    assert response.json()["error"] == error
    assert upstream_calls == []


def test_upstream_failure_gives_502(relay_client, responder):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    responder["fn"] = refuse
    response = relay_client.post("/", json={}, headers=relay_headers())
    assert response.status_code == 502
    data = response.json()
    assert data["error"] == "Upstream request failed"
    assert data["target"] == TARGET


def test_preflight(relay_client):
    response = relay_client.options("/")
    assert response.status_code == 204
    assert RELAY_TARGET_HEADER in response.headers["access-control-allow-headers"]


def test_other_methods_rejected(relay_client):
    response = relay_client.get("/")
    assert response.status_code == 405
    assert response.json()["error"] == "Method not allowed"


def test_missing_token_configuration_refuses_everything():
    app = create_relay_app(
        token="",
        client_factory=lambda: httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200))
        ),
    )
    with TestClient(app) as client:
        response = client.post("/", json={}, headers=relay_headers())
    assert response.status_code == 500
    assert response.json()["error"] == "Relay misconfigured"
