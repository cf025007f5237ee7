from starlette.datastructures import Headers
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import Response

CORS_ALLOW_ORIGINS = ["*"]
CORS_ALLOW_METHODS = ["GET", "POST", "OPTIONS"]
CORS_ALLOW_HEADERS = [
    "Content-Type",
    "Authorization",
    "anthropic-version",
    "anthropic-dangerous-direct-browser-access",
    "x-api-key",
]
CORS_MAX_AGE = 600


def preflight_headers() -> dict:
    """CORS headers answered to any OPTIONS request."""
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": ", ".join(CORS_ALLOW_METHODS),
        "Access-Control-Allow-Headers": ", ".join(CORS_ALLOW_HEADERS),
        "Access-Control-Max-Age": str(CORS_MAX_AGE),
    }


class PreflightCORSMiddleware(CORSMiddleware):
    """
    CORSMiddleware whose preflights always succeed with an empty 204.

    Starlette rejects preflights asking for unlisted methods or headers with a
    plain-text 400. Browsers enforce the advertised lists themselves, so the
    proxy answers every preflight with the same permissive header set.
    """

    def __init__(self, app, **kwargs):
        kwargs.setdefault("allow_origins", CORS_ALLOW_ORIGINS)
        kwargs.setdefault("allow_methods", CORS_ALLOW_METHODS)
        kwargs.setdefault("allow_headers", CORS_ALLOW_HEADERS)
        kwargs.setdefault("allow_credentials", False)
        kwargs.setdefault("max_age", CORS_MAX_AGE)
        super().__init__(app, **kwargs)

    def preflight_response(self, request_headers: Headers) -> Response:
        return Response(status_code=204, headers=preflight_headers())
