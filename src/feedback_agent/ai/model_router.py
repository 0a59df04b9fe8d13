"""
Per-task model routing.

Which provider and model serve each task (assessment A/B, adjudicator,
feedback, criterion tools, OCR, embeddings) is a stored record merged with
defaults. Both the routing record and the provider list are read through
injected TTL caches that writes invalidate.
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar

from loguru import logger

from feedback_agent.ai.base_provider import BaseProvider
from feedback_agent.ai.provider_factory import create_ai_provider
from feedback_agent.config.constants import MODEL_CONFIG_TTL_S
from feedback_agent.config.providers import (
    DEFAULT_EMBEDDING_MODEL,
    DEFAULT_TASK_MODELS,
    TASK_ASSESSMENT,
    ModelTaskConfig,
    ProviderConfig,
    default_providers,
)
from feedback_agent.config.settings import Settings, get_settings
from feedback_agent.core.exceptions import ProviderUnavailableError
from feedback_agent.storage.document_store import CONFIG, MODEL_PROVIDERS, DocumentStore

T = TypeVar("T")

ROUTING_DOC_ID = "modelRouting"

ProviderFactory = Callable[[ProviderConfig, Settings], BaseProvider]


class TtlCache(Generic[T]):
    """A single cached value with its fetch time."""

    def __init__(self, ttl_s: float = MODEL_CONFIG_TTL_S, clock: Callable[[], float] = time.monotonic):
        self.ttl_s = ttl_s
        self._clock = clock
        self.value: Optional[T] = None
        self.fetched_at: Optional[float] = None
        self._lock = threading.Lock()

    def get(self, loader: Callable[[], T], force: bool = False) -> T:
        with self._lock:
            now = self._clock()
            fresh = self.fetched_at is not None and now - self.fetched_at < self.ttl_s
            if force or not fresh:
                self.value = loader()
                self.fetched_at = now
            return self.value

    def invalidate(self) -> None:
        with self._lock:
            self.value = None
            self.fetched_at = None


@dataclass
class RoutingConfig:
    tasks: Dict[str, ModelTaskConfig] = field(default_factory=lambda: dict(DEFAULT_TASK_MODELS))
    embeddings: ModelTaskConfig = field(default_factory=lambda: DEFAULT_EMBEDDING_MODEL)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tasks": {task: cfg.to_dict() for task, cfg in self.tasks.items()},
            "embeddings": self.embeddings.to_dict(),
        }


def _parse_task_config(raw: Any) -> Optional[ModelTaskConfig]:
    if isinstance(raw, dict) and isinstance(raw.get("provider_id"), str) and isinstance(raw.get("model"), str):
        return ModelTaskConfig(raw["provider_id"], raw["model"])
    return None


def merge_routing_defaults(raw: Optional[Dict[str, Any]]) -> RoutingConfig:
    """Stored routing over defaults; malformed entries are ignored."""
    routing = RoutingConfig()
    for task, cfg in ((raw or {}).get("tasks") or {}).items():
        parsed = _parse_task_config(cfg)
        if parsed:
            routing.tasks[task] = parsed
    embeddings = _parse_task_config((raw or {}).get("embeddings"))
    if embeddings:
        routing.embeddings = embeddings
    return routing


class ModelRouter:
    """Resolves tasks to (provider instance, model name)."""

    def __init__(
        self,
        store: DocumentStore,
        settings: Optional[Settings] = None,
        provider_factory: ProviderFactory = create_ai_provider,
        routing_cache: Optional[TtlCache[RoutingConfig]] = None,
        providers_cache: Optional[TtlCache[List[ProviderConfig]]] = None
    ):
        self.store = store
        self.settings = settings or get_settings()
        self._provider_factory = provider_factory
        self._routing_cache = routing_cache or TtlCache()
        self._providers_cache = providers_cache or TtlCache()
        self._instances: Dict[str, BaseProvider] = {}
        self._instances_lock = threading.Lock()

    # ==================== CONFIG READS ====================

    def get_routing(self, force: bool = False) -> RoutingConfig:
        return self._routing_cache.get(self._load_routing, force=force)

    def _load_routing(self) -> RoutingConfig:
        raw = self.store.get(CONFIG, ROUTING_DOC_ID)
        routing = merge_routing_defaults(raw)
        if raw is None:
            self.store.set(CONFIG, ROUTING_DOC_ID, routing.to_dict())
        return routing

    def get_providers(self, force: bool = False) -> List[ProviderConfig]:
        return self._providers_cache.get(self._load_providers, force=force)

    def _load_providers(self) -> List[ProviderConfig]:
        providers = {p.id: p for p in default_providers()}
        for doc in self.store.list(MODEL_PROVIDERS):
            try:
                providers[doc.id] = ProviderConfig.from_dict({**doc.data, "id": doc.id})
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Ignoring malformed provider record {doc.id}: {e}")
        return list(providers.values())

    def _find_provider(self, provider_id: str) -> Optional[ProviderConfig]:
        return next((p for p in self.get_providers() if p.id == provider_id), None)

    # ==================== RESOLUTION ====================

    def resolve_task_model(self, task: str) -> ModelTaskConfig:
        """Routed model for a chat task; falls back to the task default."""
        routing = self.get_routing()
        config = routing.tasks.get(task) or DEFAULT_TASK_MODELS.get(task) or DEFAULT_TASK_MODELS[TASK_ASSESSMENT]
        provider = self._find_provider(config.provider_id)
        if provider is None or not provider.enabled or not provider.capabilities.chat:
            return DEFAULT_TASK_MODELS.get(task) or DEFAULT_TASK_MODELS[TASK_ASSESSMENT]
        return config

    def resolve_embedding_model(self) -> ModelTaskConfig:
        config = self.get_routing().embeddings
        provider = self._find_provider(config.provider_id)
        if provider is None or not provider.enabled or not provider.capabilities.embeddings:
            return DEFAULT_EMBEDDING_MODEL
        return config

    def get_provider(self, provider_id: str) -> BaseProvider:
        config = self._find_provider(provider_id)
        if config is None or not config.enabled:
            raise ProviderUnavailableError(f"Provider '{provider_id}' is not available", {"provider": provider_id})
        with self._instances_lock:
            instance = self._instances.get(provider_id)
            if instance is None:
                instance = self._provider_factory(config, self.settings)
                self._instances[provider_id] = instance
            return instance

    def chat_route(self, task: str) -> Tuple[BaseProvider, str]:
        config = self.resolve_task_model(task)
        provider = self.get_provider(config.provider_id)
        provider.require("chat")
        return provider, config.model

    def embedding_route(self) -> Tuple[BaseProvider, str]:
        config = self.resolve_embedding_model()
        provider = self.get_provider(config.provider_id)
        provider.require("embeddings")
        return provider, config.model

    # ==================== WRITES ====================

    def update_routing(
        self,
        tasks: Optional[Dict[str, ModelTaskConfig]] = None,
        embeddings: Optional[ModelTaskConfig] = None
    ) -> RoutingConfig:
        routing = self.get_routing(force=True)
        routing.tasks.update(tasks or {})
        if embeddings:
            routing.embeddings = embeddings
        self.store.set(CONFIG, ROUTING_DOC_ID, routing.to_dict())
        self._routing_cache.invalidate()
        logger.info(f"Model routing updated: {sorted((tasks or {}).keys())}")
        return routing

    def upsert_provider(self, config: ProviderConfig) -> None:
        self.store.set(MODEL_PROVIDERS, config.id, config.to_dict())
        self._providers_cache.invalidate()
        with self._instances_lock:
            self._instances.pop(config.id, None)
        logger.info(f"Provider {config.id} saved (enabled={config.enabled})")
