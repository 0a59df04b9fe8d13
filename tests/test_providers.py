"""
Tests for provider adapters and the provider factory (no network).
"""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from feedback_agent.ai.base_provider import _sanitize_for_logging
from feedback_agent.ai.openai_provider import OpenAIProvider
from feedback_agent.ai.provider_factory import create_ai_provider
from feedback_agent.config.constants import CALL_HISTORY_LIMIT
from feedback_agent.config.providers import PROVIDER_REGISTRY, ProviderCapabilities, ProviderConfig
from feedback_agent.config.settings import Settings
from feedback_agent.core.exceptions import MissingAPIKeyError, ProviderUnavailableError


def completion(text):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))],
        usage=SimpleNamespace(prompt_tokens=12, completion_tokens=3),
    )


def make_provider(json_mode=True):
    client = MagicMock()
    client.chat.completions.create.return_value = completion('{"ok": true}')
    config = ProviderConfig(
        id="openai",
        capabilities=ProviderCapabilities(chat=True, embeddings=True, json_mode=json_mode),
    )
    return OpenAIProvider(config, api_key="unused", client=client), client


def test_generate_joins_parts_and_requests_json():
    provider, client = make_provider()

    result = provider.generate("gpt-4o-mini", ["Del 1", "", "Del 2"], system_instruction="System", json_output=True)

    assert result == '{"ok": true}'
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["messages"] == [
        {"role": "system", "content": "System"},
        {"role": "user", "content": "Del 1\n\nDel 2"},
    ]
    assert kwargs["response_format"] == {"type": "json_object"}
    assert "temperature" not in kwargs
    assert provider.call_history[-1].prompt_tokens == 12
    assert provider.get_token_usage() == {"prompt_tokens": 12, "completion_tokens": 3, "total_tokens": 15, "calls": 1}


def test_call_history_is_bounded_but_usage_is_total():
    provider, _ = make_provider()

    for _ in range(CALL_HISTORY_LIMIT + 5):
        provider.generate("gpt-4o-mini", ["x"])

    assert len(provider.call_history) == CALL_HISTORY_LIMIT
    usage = provider.get_token_usage()
    assert usage["calls"] == CALL_HISTORY_LIMIT + 5
    assert usage["prompt_tokens"] == 12 * (CALL_HISTORY_LIMIT + 5)


def test_json_mode_only_when_supported():
    provider, client = make_provider(json_mode=False)

    provider.generate("mistral-small", ["x"], json_output=True, temperature=0.0)

    kwargs = client.chat.completions.create.call_args.kwargs
    assert "response_format" not in kwargs
    assert kwargs["temperature"] == 0.0


def test_o3_models_skip_zero_temperature():
    provider, client = make_provider()

    provider.generate("o3-mini", ["x"], temperature=0.0)

    assert "temperature" not in client.chat.completions.create.call_args.kwargs


def test_embed_orders_by_index():
    provider, client = make_provider()
    client.embeddings.create.return_value = SimpleNamespace(data=[
        SimpleNamespace(index=1, embedding=[0.2]),
        SimpleNamespace(index=0, embedding=[0.1]),
    ])

    assert provider.embed("text-embedding-3-small", ["a", "b"]) == [[0.1], [0.2]]


def test_require_checks_capability():
    provider, _ = make_provider()
    provider.config.capabilities.embeddings = False

    provider.require("chat")
    with pytest.raises(ProviderUnavailableError):
        provider.require("embeddings")


def test_factory_requires_api_key():
    with pytest.raises(MissingAPIKeyError):
        create_ai_provider(PROVIDER_REGISTRY["openai"], Settings(openai_api_key=""))


def test_factory_builds_openai_compatible_provider():
    provider = create_ai_provider(PROVIDER_REGISTRY["mistral"], Settings(mistral_api_key="mk-test"))

    assert isinstance(provider, OpenAIProvider)
    assert provider.id == "mistral"


def test_factory_rejects_unknown_type():
    config = ProviderConfig(id="x", type="carrier-pigeon", api_key_attr="openai_api_key")
    with pytest.raises(ProviderUnavailableError):
        create_ai_provider(config, Settings(openai_api_key="sk-test"))


def test_secrets_are_masked_in_call_history():
    masked = _sanitize_for_logging("key sk-abcdefghijklmnopqrstuvwxyz and Bearer abcdefghijklmnopqrstuvwxyz")
    assert "abcdefghijklmnopqrstuvwxyz" not in masked
    assert "sk-[REDACTED]" in masked


def test_gemini_sends_parts_as_one_user_turn():
    from feedback_agent.ai.gemini_provider import GeminiProvider

    client = MagicMock()
    client.models.generate_content.return_value = SimpleNamespace(text="svar", usage_metadata=None)
    provider = GeminiProvider(PROVIDER_REGISTRY["gemini"], api_key="unused", client=client)

    assert provider.generate("gemini-2.5-flash", ["REF", "CTX", "TEXT"], system_instruction="S", json_output=True) == "svar"

    kwargs = client.models.generate_content.call_args.kwargs
    assert [p.text for p in kwargs["contents"][0].parts] == ["REF", "CTX", "TEXT"]
    assert kwargs["config"].response_mime_type == "application/json"
    assert kwargs["config"].system_instruction == "S"


def test_gemini_embed_returns_plain_lists():
    from feedback_agent.ai.gemini_provider import GeminiProvider

    client = MagicMock()
    client.models.embed_content.return_value = SimpleNamespace(embeddings=[
        SimpleNamespace(values=[0.5, 0.25]),
        SimpleNamespace(values=None),
    ])
    provider = GeminiProvider(PROVIDER_REGISTRY["gemini"], api_key="unused", client=client)

    assert provider.embed("text-embedding-004", ["a", "b"]) == [[0.5, 0.25], []]
