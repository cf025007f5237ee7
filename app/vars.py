import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "ai-provider-proxy")
SERVICE_VERSION = os.getenv("SERVICE_VERSION", "2.0.0")
HOST = os.environ.get("HOSTNAME", "")
PORT = os.environ.get("PORT", "3001")

# Seconds before an outbound provider call is aborted
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "120"))
MAX_BODY_BYTES = int(os.getenv("MAX_BODY_BYTES", str(10 * 1024 * 1024)))

RATE_LIMIT_MAX = int(os.getenv("RATE_LIMIT_MAX", "60"))
RATE_LIMIT_WINDOW = float(os.getenv("RATE_LIMIT_WINDOW", "60"))
RATE_LIMIT_IDLE_WINDOWS = int(os.getenv("RATE_LIMIT_IDLE_WINDOWS", "10"))

# Outbound transport: PROXY_{PROVIDER} > PROXY_URL > direct
PROXY_URL = os.getenv("PROXY_URL", "").strip()
PROXY_AUTH_TOKEN = os.getenv("PROXY_AUTH_TOKEN", "")

# Secret expected by the bundled relay service (app.relay.server)
RELAY_AUTH_TOKEN = os.getenv("RELAY_AUTH_TOKEN", "")

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")

_RESERVED_PROXY_VARS = {"PROXY_URL", "PROXY_AUTH_TOKEN"}


def _parse_proxy_overrides(environ) -> dict:
    """Collect PROXY_{PROVIDER} variables keyed by lower-cased provider id."""
    overrides: dict = {}
    for name, value in environ.items():
        if not name.startswith("PROXY_") or name in _RESERVED_PROXY_VARS:
            continue
        provider = name[len("PROXY_"):].strip().lower()
        if provider and value is not None:
            overrides[provider] = value
    return overrides


PROXY_OVERRIDES = _parse_proxy_overrides(os.environ)
