from typing import Dict, Iterable, Iterator, List, Optional
from urllib.parse import urlparse

from app.providers.headers import transform_anthropic_headers
from app.providers.models import PathMode, ProviderSpec
from app.providers.validation import validate_yandex_request


class ProviderRegistry:
    """Read-only lookup table of upstream providers, keyed by identifier."""

    def __init__(self, providers: Iterable[ProviderSpec]):
        self._providers: Dict[str, ProviderSpec] = {}
        for provider in providers:
            self._check(provider)
            if provider.key in self._providers:
                raise ValueError(f"Duplicate provider identifier: {provider.key}")
            self._providers[provider.key] = provider

    @staticmethod
    def _check(provider: ProviderSpec) -> None:
        parsed = urlparse(provider.base_url)
        if parsed.scheme != "https" or not parsed.netloc:
            raise ValueError(
                f"Provider {provider.key} needs an absolute https base URL, got {provider.base_url!r}"
            )
        if not isinstance(provider.path_mode, PathMode):
            raise ValueError(f"Provider {provider.key} has unknown path mode {provider.path_mode!r}")

    def lookup(self, key: str) -> Optional[ProviderSpec]:
        return self._providers.get(key)

    def keys(self) -> List[str]:
        return list(self._providers)

    def __iter__(self) -> Iterator[ProviderSpec]:
        return iter(self._providers.values())

    def __len__(self) -> int:
        return len(self._providers)

    def __contains__(self, key: object) -> bool:
        return key in self._providers


PROVIDERS = ProviderRegistry(
    [
        ProviderSpec(
            key="yandex",
            name="Yandex Cloud",
            base_url="https://llm.api.cloud.yandex.net/foundationModels/v1/completion",
            path_mode=PathMode.FIXED,
            validate_request=validate_yandex_request,
        ),
        ProviderSpec(
            key="claude",
            name="Anthropic Claude",
            base_url="https://api.anthropic.com/v1",
            path_mode=PathMode.SUBPATH,
            transform_headers=transform_anthropic_headers,
        ),
        ProviderSpec(
            key="gemini",
            name="Google Gemini",
            base_url="https://generativelanguage.googleapis.com/v1beta",
        ),
        ProviderSpec(
            key="groq",
            name="Groq",
            base_url="https://api.groq.com/openai/v1",
        ),
        ProviderSpec(
            key="mistral",
            name="Mistral AI",
            base_url="https://api.mistral.ai/v1",
        ),
        ProviderSpec(
            key="cohere",
            name="Cohere",
            base_url="https://api.cohere.ai/v1",
        ),
    ]
)
