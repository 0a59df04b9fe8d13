"""
Configuration module for the feedback agent.

Provides settings, constants, provider registry, and logging configuration.
"""

from feedback_agent.config.settings import get_settings, reload_settings, Settings
from feedback_agent.config.logging_config import setup_structured_logging, InterceptHandler
from feedback_agent.config.providers import (
    PROVIDER_REGISTRY,
    DEFAULT_TASK_MODELS,
    DEFAULT_EMBEDDING_MODEL,
    ProviderConfig,
    ProviderCapabilities,
    ModelTaskConfig,
)

__all__ = [
    'get_settings',
    'reload_settings',
    'Settings',
    'setup_structured_logging',
    'InterceptHandler',
    'PROVIDER_REGISTRY',
    'DEFAULT_TASK_MODELS',
    'DEFAULT_EMBEDDING_MODEL',
    'ProviderConfig',
    'ProviderCapabilities',
    'ModelTaskConfig',
]
