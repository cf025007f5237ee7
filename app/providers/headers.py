from typing import Dict

CONTENT_TYPE_HEADER = "Content-Type"
AUTHORIZATION_HEADER = "Authorization"
ANTHROPIC_VERSION_HEADER = "anthropic-version"
ANTHROPIC_BROWSER_ACCESS_HEADER = "anthropic-dangerous-direct-browser-access"
API_KEY_HEADER = "x-api-key"

DEFAULT_CONTENT_TYPE = "application/json"
DEFAULT_ANTHROPIC_VERSION = "2023-06-01"
BEARER_PREFIX = "Bearer "

# Headers copied verbatim from the client when present
PASSTHROUGH_HEADERS = (
    ANTHROPIC_VERSION_HEADER,
    ANTHROPIC_BROWSER_ACCESS_HEADER,
)


def _pop_case_insensitive(headers: Dict[str, str], name: str) -> None:
    for key in [k for k in headers if k.lower() == name.lower()]:
        headers.pop(key)


def _get_case_insensitive(headers: Dict[str, str], name: str) -> str:
    for key, value in headers.items():
        if key.lower() == name.lower():
            return value
    return ""


def transform_anthropic_headers(headers: Dict[str, str]) -> Dict[str, str]:
    """
    Adapt a forwarded header set to the Anthropic Messages API.

    - ``Authorization: Bearer <key>`` becomes ``x-api-key: <key>``
    - ``anthropic-version`` gets a default when the client omitted it
    - the browser-access marker is dropped, the proxy answers CORS itself
    """
    transformed = dict(headers)

    auth = _get_case_insensitive(transformed, AUTHORIZATION_HEADER)
    if auth.startswith(BEARER_PREFIX):
        transformed[API_KEY_HEADER] = auth[len(BEARER_PREFIX):]
        _pop_case_insensitive(transformed, AUTHORIZATION_HEADER)

    if not _get_case_insensitive(transformed, ANTHROPIC_VERSION_HEADER):
        transformed[ANTHROPIC_VERSION_HEADER] = DEFAULT_ANTHROPIC_VERSION

    _pop_case_insensitive(transformed, ANTHROPIC_BROWSER_ACCESS_HEADER)

    return transformed
