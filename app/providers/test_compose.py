"""
Tests for upstream URL and header composition.
"""

import pytest

from app.providers.compose import build_forward_headers, build_target_url
from app.providers.headers import transform_anthropic_headers
from app.providers.models import InboundRequest, PathMode, ProviderSpec
from app.providers.registry import PROVIDERS


@pytest.fixture
def subpath_provider():
    return ProviderSpec(key="t", name="Test", base_url="https://api.example.com/v1")


def make_request(path, query="", headers=None, provider_key="t"):
    return InboundRequest(
        provider_key=provider_key,
        path=path,
        query=query,
        headers=headers or {},
    )


class TestBuildTargetUrl:
    def test_subpath_with_query(self, subpath_provider):
        request = make_request("/api/t/chat/completions", query="x=1")
        assert (
            build_target_url(request, subpath_provider)
            == "https://api.example.com/v1/chat/completions?x=1"
        )

    def test_subpath_without_remainder(self, subpath_provider):
        request = make_request("/api/t")
        assert build_target_url(request, subpath_provider) == "https://api.example.com/v1"

    def test_trailing_slash_on_base_is_not_doubled(self):
        provider = ProviderSpec(key="t", name="Test", base_url="https://api.example.com/v1/")
        request = make_request("/api/t/models")
        assert build_target_url(request, provider) == "https://api.example.com/v1/models"

    def test_percent_encoding_is_preserved(self, subpath_provider):
        request = make_request("/api/t/files/a%2Fb", query="q=a%20b")
        assert (
            build_target_url(request, subpath_provider)
            == "https://api.example.com/v1/files/a%2Fb?q=a%20b"
        )

    def test_fixed_provider_ignores_path_and_query(self):
        provider = ProviderSpec(
            key="f",
            name="Fixed",
            base_url="https://api.example.com/complete",
            path_mode=PathMode.FIXED,
        )
        request = make_request("/api/f/ignored", query="x=1", provider_key="f")
        assert build_target_url(request, provider) == "https://api.example.com/complete"

    def test_gemini_model_path(self):
        provider = PROVIDERS.lookup("gemini")
        request = make_request(
            "/api/gemini/models/gemini-pro:generateContent",
            query="key=abc",
            provider_key="gemini",
        )
        assert build_target_url(request, provider) == (
            "https://generativelanguage.googleapis.com/v1beta/"
            "models/gemini-pro:generateContent?key=abc"
        )


class TestBuildForwardHeaders:
    def test_defaults_content_type(self, subpath_provider):
        headers = build_forward_headers(make_request("/api/t/x"), subpath_provider)
        assert headers == {"Content-Type": "application/json"}

    def test_only_allowed_headers_are_forwarded(self, subpath_provider):
        request = make_request(
            "/api/t/x",
            headers={
                "content-type": "application/json; charset=utf-8",
                "authorization": "Bearer k",
                "cookie": "session=1",
                "x-forwarded-for": "10.0.0.1",
                "user-agent": "browser",
            },
        )
        headers = build_forward_headers(request, subpath_provider)
        assert headers == {
            "Content-Type": "application/json; charset=utf-8",
            "Authorization": "Bearer k",
        }

    def test_claude_bearer_becomes_api_key(self):
        provider = PROVIDERS.lookup("claude")
        request = make_request(
            "/api/claude/messages",
            headers={
                "authorization": "Bearer sk-ant-1",
                "anthropic-dangerous-direct-browser-access": "true",
            },
            provider_key="claude",
        )
        headers = build_forward_headers(request, provider)
        assert headers["x-api-key"] == "sk-ant-1"
        assert "Authorization" not in headers
        assert headers["anthropic-version"] == "2023-06-01"
        assert "anthropic-dangerous-direct-browser-access" not in headers

    def test_claude_keeps_client_version(self):
        provider = PROVIDERS.lookup("claude")
        request = make_request(
            "/api/claude/messages",
            headers={"authorization": "Bearer k", "anthropic-version": "2024-01-01"},
            provider_key="claude",
        )
        assert build_forward_headers(request, provider)["anthropic-version"] == "2024-01-01"


class TestTransformAnthropicHeaders:
    def test_non_bearer_authorization_is_left_alone(self):
        headers = transform_anthropic_headers({"Authorization": "Basic abc"})
        assert headers["Authorization"] == "Basic abc"
        assert "x-api-key" not in headers

    def test_input_is_not_mutated(self):
        original = {"Authorization": "Bearer k"}
        transform_anthropic_headers(original)
        assert original == {"Authorization": "Bearer k"}
