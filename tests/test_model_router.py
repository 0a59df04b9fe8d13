"""
Tests for per-task model routing.
"""

import pytest

from conftest import FakeProvider
from feedback_agent.ai.model_router import ROUTING_DOC_ID, ModelRouter, TtlCache, merge_routing_defaults
from feedback_agent.config.providers import (
    DEFAULT_EMBEDDING_MODEL,
    GEMINI_FLASH,
    GEMINI_PRO,
    ModelTaskConfig,
    ProviderCapabilities,
    ProviderConfig,
)
from feedback_agent.config.settings import Settings
from feedback_agent.core.exceptions import ProviderUnavailableError
from feedback_agent.storage.document_store import CONFIG, MODEL_PROVIDERS


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def created():
    return []


@pytest.fixture
def router(store, created):
    def factory(config, settings):
        provider = FakeProvider()
        provider.config = config
        created.append(config.id)
        return provider

    return ModelRouter(store, Settings(), provider_factory=factory)


def test_defaults_are_seeded_and_routed(router, store, created):
    provider, model = router.chat_route("assessment")

    assert provider.id == "gemini"
    assert model == GEMINI_FLASH
    assert router.chat_route("adjudicator")[1] == GEMINI_PRO
    assert created == ["gemini"]
    assert store.get(CONFIG, ROUTING_DOC_ID)["tasks"]["feedback"]["provider_id"] == "gemini"


def test_unknown_task_uses_assessment_default(router):
    assert router.chat_route("somethingElse")[1] == GEMINI_FLASH


def test_route_to_disabled_provider_falls_back(router):
    router.update_routing(tasks={"assessmentB": ModelTaskConfig("openai", "gpt-4o-mini")})

    provider, model = router.chat_route("assessmentB")

    assert (provider.id, model) == ("gemini", GEMINI_FLASH)


def test_enabled_provider_is_routed(router, created):
    router.update_routing(tasks={"assessmentB": ModelTaskConfig("openai", "gpt-4o-mini")})
    router.upsert_provider(ProviderConfig(
        id="openai",
        base_url="https://api.openai.com/v1",
        api_key_attr="openai_api_key",
        capabilities=ProviderCapabilities(chat=True, embeddings=True, json_mode=True),
    ))

    provider, model = router.chat_route("assessmentB")

    assert (provider.id, model) == ("openai", "gpt-4o-mini")
    assert router.chat_route("assessment")[0].id == "gemini"


def test_embedding_route_requires_capability(router):
    router.update_routing(embeddings=ModelTaskConfig("chat-only", "m"))
    router.upsert_provider(ProviderConfig(id="chat-only", capabilities=ProviderCapabilities(chat=True)))

    provider, model = router.embedding_route()

    assert (provider.id, model) == (DEFAULT_EMBEDDING_MODEL.provider_id, DEFAULT_EMBEDDING_MODEL.model)


def test_disabled_provider_is_unavailable(router):
    with pytest.raises(ProviderUnavailableError):
        router.get_provider("mistral")
    with pytest.raises(ProviderUnavailableError):
        router.get_provider("nope")


def test_malformed_provider_records_are_ignored(router, store):
    store.set(MODEL_PROVIDERS, "broken", {"capabilities": "chat"})

    ids = [p.id for p in router.get_providers(force=True)]

    assert "broken" not in ids
    assert "gemini" in ids


def test_merge_routing_defaults_skips_bad_entries():
    routing = merge_routing_defaults({
        "tasks": {"feedback": {"provider_id": "openai"}, "ocr": {"provider_id": "openai", "model": "gpt-4o"}},
        "embeddings": "text-embedding-3-small",
    })

    assert routing.tasks["feedback"].model == GEMINI_FLASH
    assert routing.tasks["ocr"] == ModelTaskConfig("openai", "gpt-4o")
    assert routing.embeddings == DEFAULT_EMBEDDING_MODEL


def test_ttl_cache_reloads_after_expiry():
    clock = FakeClock()
    cache = TtlCache(ttl_s=60, clock=clock)
    loads = []

    def loader():
        loads.append(clock.now)
        return len(loads)

    assert cache.get(loader) == 1
    clock.now = 59
    assert cache.get(loader) == 1
    clock.now = 61
    assert cache.get(loader) == 2
    cache.invalidate()
    assert cache.get(loader) == 3
    assert cache.get(loader, force=True) == 4
