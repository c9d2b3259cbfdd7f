"""Agent provider — builds PydanticAI model instances per provider name.

Two providers are supported:

- ``openai`` → :class:`OpenAIChatModel` via :class:`OpenAIProvider`
- ``gemini`` → :class:`GoogleModel` via :class:`GoogleProvider`
"""

from __future__ import annotations

import logging

from pydantic_ai.models import Model
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider

from config.settings import get_settings
from errors.exceptions import ProviderError

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("openai", "gemini")


def resolve_provider(provider: str | None) -> str:
    """Lower-cased provider name, defaulting to the configured provider."""
    name = (provider or get_settings().default_provider).strip().lower()
    if name not in SUPPORTED_PROVIDERS:
        raise ProviderError(name, f"unsupported provider, expected one of {SUPPORTED_PROVIDERS}")
    return name


def create_model(provider: str | None = None, model_name: str | None = None) -> Model:
    """Build a PydanticAI model for *provider*.

    Args:
        provider: ``"openai"`` or ``"gemini"``; defaults to ``settings.default_provider``.
        model_name: Provider model id; defaults to the provider's configured model.
            A ``"provider/"`` prefix (LiteLLM convention) is stripped.

    Raises:
        ProviderError: unknown provider.
    """
    settings = get_settings()
    name = resolve_provider(provider)
    model_id = model_name or settings.model_for(name)
    if "/" in model_id:
        model_id = model_id.split("/", 1)[1]

    if name == "gemini":
        from pydantic_ai.models.google import GoogleModel
        from pydantic_ai.providers.google import GoogleProvider

        return GoogleModel(model_id, provider=GoogleProvider(api_key=settings.gemini_api_key))

    return OpenAIChatModel(model_id, provider=OpenAIProvider(api_key=settings.openai_api_key))
