"""Built-in provider registration.

Registers the bundled OpenAI-compatible providers whose API keys are
configured in AISettings:

- OpenAI (chat, embedding, image, speech, transcription)
- Groq, Mistral, DeepSeek (chat)
- Cohere, Jina (rerank)

Registration happens once at application startup.

Example:
    registry = ModelRegistry(settings)
    providers = register_builtin_providers(registry, settings)
    ...
    for provider in providers.values():
        await provider.aclose()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from model_gateway.infra.ai.capabilities.catalog import ModelCatalog
from model_gateway.infra.ai.providers.openai_compat import OpenAICompatibleProvider

if TYPE_CHECKING:
    from model_gateway.core.settings.ai import AISettings
    from model_gateway.infra.ai.capabilities.registry import ModelRegistry

logger = logging.getLogger(__name__)

# provider -> (settings attribute holding the key, base URL)
BUILTIN_ENDPOINTS: dict[str, tuple[str, str]] = {
    "groq": ("groq_api_key", "https://api.groq.com/openai/v1"),
    "mistral": ("mistral_api_key", "https://api.mistral.ai/v1"),
    "deepseek": ("deepseek_api_key", "https://api.deepseek.com/v1"),
    "cohere": ("cohere_api_key", "https://api.cohere.com/v2"),
    "jina": ("jina_api_key", "https://api.jina.ai/v1"),
}


def register_builtin_providers(
    registry: ModelRegistry,
    settings: AISettings,
) -> dict[str, OpenAICompatibleProvider]:
    """Register every built-in provider that has an API key configured.

    Args:
        registry: Registry to register into
        settings: AI settings holding keys, timeout and catalog path

    Returns:
        Registered providers by name; the caller owns closing them
    """
    catalog = ModelCatalog.from_settings(settings)
    providers: dict[str, OpenAICompatibleProvider] = {}
    skipped: list[str] = []

    if settings.openai_api_key is not None:
        providers["openai"] = OpenAICompatibleProvider.from_settings(settings, catalog=catalog)
    else:
        skipped.append("openai")

    for name, (key_field, base_url) in BUILTIN_ENDPOINTS.items():
        api_key = getattr(settings, key_field)
        if api_key is None:
            skipped.append(name)
            continue
        providers[name] = OpenAICompatibleProvider(
            name,
            base_url,
            api_key=api_key.get_secret_value(),
            catalog=catalog,
            timeout=settings.request_timeout,
        )

    for provider in providers.values():
        registry.register_provider(provider.registration())

    logger.info(
        f"Provider registration complete: {len(providers)} registered, {len(skipped)} skipped",
        extra={"registered_providers": list(providers), "skipped_providers": skipped},
    )
    return providers


__all__ = ["BUILTIN_ENDPOINTS", "register_builtin_providers"]
