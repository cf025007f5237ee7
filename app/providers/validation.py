"""
Provider-specific request validators.

A validator receives the parsed inbound request and returns ``None`` when the
request may be forwarded, or a ``ValidationFailure`` carrying the status code
and JSON body to send back to the client.
"""

from typing import Optional

from app.providers.models import InboundRequest, ValidationFailure

YANDEX_AUTH_PREFIXES = ("Api-Key ", "Bearer ")
YANDEX_REQUIRED_FIELDS = ("modelUri", "messages")


def validate_yandex_request(request: InboundRequest) -> Optional[ValidationFailure]:
    """Check the Authorization format and the required completion fields."""
    api_key = request.header("authorization", "")

    if not api_key:
        return ValidationFailure(
            status_code=401,
            body={
                "error": "Authorization header is required",
                "hint": 'Include your Yandex Cloud API key: "Authorization: Api-Key YOUR_KEY"',
            },
        )

    if not api_key.startswith(YANDEX_AUTH_PREFIXES):
        return ValidationFailure(
            status_code=401,
            body={
                "error": "Invalid Authorization format",
                "hint": 'Use format: "Api-Key YOUR_KEY" or "Bearer YOUR_IAM_TOKEN"',
            },
        )

    body = request.json_body
    if not isinstance(body, dict):
        return ValidationFailure(
            status_code=400,
            body={
                "error": "Invalid request body",
                "hint": "Send JSON with modelUri, completionOptions, and messages",
            },
        )

    if not all(body.get(name) for name in YANDEX_REQUIRED_FIELDS):
        return ValidationFailure(
            status_code=400,
            body={
                "error": "Missing required fields",
                "hint": "Request must include modelUri and messages",
                "received": list(body.keys()),
            },
        )

    return None
