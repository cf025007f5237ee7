"""
Data types shared by the provider registry, the request composer and the
proxy orchestrator.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional


class PathMode(str, Enum):
    """How the upstream URL is derived from the inbound path."""

    FIXED = "fixed"
    SUBPATH = "subpath"


@dataclass(frozen=True)
class InboundRequest:
    """One proxied call as received from the client.

    ``headers`` are keyed by lower-cased header name. ``path`` is the raw
    request path (still percent-encoded) and ``query`` the raw query string
    without the leading ``?``.
    """

    provider_key: str
    path: str
    query: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    json_body: Any = None
    client: str = "unknown"
    method: str = "POST"

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(name.lower(), default)


@dataclass(frozen=True)
class ValidationFailure:
    """Rejection produced by a provider validator."""

    status_code: int
    body: Dict[str, Any]


HeaderTransform = Callable[[Dict[str, str]], Dict[str, str]]
RequestValidator = Callable[[InboundRequest], Optional[ValidationFailure]]


@dataclass(frozen=True)
class ProviderSpec:
    """A single upstream API the proxy can forward to."""

    key: str
    name: str
    base_url: str
    path_mode: PathMode = PathMode.SUBPATH
    transform_headers: Optional[HeaderTransform] = None
    validate_request: Optional[RequestValidator] = None

    @property
    def endpoint(self) -> str:
        if self.path_mode is PathMode.FIXED:
            return f"POST /api/{self.key}"
        return f"POST /api/{self.key}/*"
