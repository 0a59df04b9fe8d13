"""
Factory for creating AI provider instances.

Uses registry-based configuration for easy extensibility: the provider
``type`` picks the adapter family, everything else comes from ProviderConfig.
"""

from typing import Optional

from feedback_agent.ai.base_provider import BaseProvider
from feedback_agent.config.settings import Settings, get_settings
from feedback_agent.config.providers import (
    ProviderConfig,
    PROVIDER_TYPE_NATIVE_GOOGLE,
    PROVIDER_TYPE_OPENAI_COMPATIBLE,
)
from feedback_agent.core.exceptions import MissingAPIKeyError, ProviderUnavailableError


def resolve_api_key(config: ProviderConfig, settings: Settings) -> str:
    if not config.api_key_attr:
        return ""
    return getattr(settings, config.api_key_attr, "") or ""


def create_ai_provider(config: ProviderConfig, settings: Optional[Settings] = None) -> BaseProvider:
    """
    Create an AI provider instance.

    Args:
        config: Provider configuration (registry entry or stored override)
        settings: Settings holding API keys (default: cached settings)

    Returns:
        Provider instance
    """
    settings = settings or get_settings()
    api_key = resolve_api_key(config, settings)
    if not api_key:
        raise MissingAPIKeyError(
            f"API key required for provider '{config.id}'. "
            f"Set FEEDBACK_AGENT_{(config.api_key_attr or config.id).upper()}"
        )

    if config.type == PROVIDER_TYPE_NATIVE_GOOGLE:
        from feedback_agent.ai.gemini_provider import GeminiProvider
        return GeminiProvider(config, api_key=api_key)

    if config.type == PROVIDER_TYPE_OPENAI_COMPATIBLE:
        from feedback_agent.ai.openai_provider import OpenAIProvider
        return OpenAIProvider(config, api_key=api_key)

    raise ProviderUnavailableError(f"Unknown provider type: {config.type}", {"provider": config.id})
