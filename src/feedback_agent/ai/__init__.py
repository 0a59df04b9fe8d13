"""
AI provider implementations for the feedback agent.

Supports multiple AI backends behind one call shape:
- Google Gemini (native google-genai client)
- Any OpenAI-compatible endpoint (OpenAI, Mistral, ...)

Usage:
    from feedback_agent.ai import ModelRouter

    router = ModelRouter(store)
    provider, model = router.chat_route("assessment")
    text = provider.generate(model, ["STUDENT TEXT FOR EVALUATION:\\n..."])
"""

# Lazy imports keep SDK imports out of modules that only need the router types
__all__ = [
    "OpenAIProvider",
    "GeminiProvider",
    "ModelRouter",
    "TtlCache",
    "create_ai_provider",
]


def OpenAIProvider(*args, **kwargs):
    """Create an OpenAI-compatible provider instance (lazy import)."""
    from .openai_provider import OpenAIProvider as _OpenAIProvider
    return _OpenAIProvider(*args, **kwargs)


def GeminiProvider(*args, **kwargs):
    """Create a Gemini provider instance (lazy import)."""
    from .gemini_provider import GeminiProvider as _GeminiProvider
    return _GeminiProvider(*args, **kwargs)


def ModelRouter(*args, **kwargs):
    """Create a task model router (lazy import)."""
    from .model_router import ModelRouter as _ModelRouter
    return _ModelRouter(*args, **kwargs)


def TtlCache(*args, **kwargs):
    """Create a TTL cache for routing config (lazy import)."""
    from .model_router import TtlCache as _TtlCache
    return _TtlCache(*args, **kwargs)


def create_ai_provider(*args, **kwargs):
    """Create an AI provider from a ProviderConfig (lazy import)."""
    from .provider_factory import create_ai_provider as _create_ai_provider
    return _create_ai_provider(*args, **kwargs)
