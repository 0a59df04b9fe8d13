"""
Provider registry and task routing defaults.

All provider-specific settings in one place. Adapters never hardcode
endpoints or capabilities; they receive a ProviderConfig.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, Optional, Any, List


PROVIDER_TYPE_NATIVE_GOOGLE = "native-google"
PROVIDER_TYPE_OPENAI_COMPATIBLE = "openai-compatible"


@dataclass
class ProviderCapabilities:
    """What a provider can be routed to."""
    chat: bool = False
    embeddings: bool = False
    json_mode: bool = False


@dataclass
class ProviderConfig:
    """Configuration for a single AI provider."""
    id: str
    label: str = ""
    type: str = PROVIDER_TYPE_OPENAI_COMPATIBLE
    enabled: bool = True
    base_url: Optional[str] = None
    api_key_attr: Optional[str] = None
    capabilities: ProviderCapabilities = field(default_factory=ProviderCapabilities)
    extra_headers: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProviderConfig":
        caps = data.get("capabilities") or {}
        return cls(
            id=str(data["id"]),
            label=str(data.get("label") or data["id"]),
            type=data.get("type") or PROVIDER_TYPE_OPENAI_COMPATIBLE,
            enabled=data.get("enabled") is not False,
            base_url=data.get("base_url"),
            api_key_attr=data.get("api_key_attr"),
            capabilities=ProviderCapabilities(
                chat=bool(caps.get("chat")),
                embeddings=bool(caps.get("embeddings")),
                json_mode=bool(caps.get("json_mode")),
            ),
            extra_headers=dict(data.get("extra_headers") or {}),
        )


@dataclass
class ModelTaskConfig:
    """Which provider and model serve one task."""
    provider_id: str
    model: str

    def to_dict(self) -> Dict[str, str]:
        return {"provider_id": self.provider_id, "model": self.model}


# Provider metadata - defines how to create each provider
PROVIDER_REGISTRY: Dict[str, ProviderConfig] = {
    "gemini": ProviderConfig(
        id="gemini",
        label="Gemini API",
        type=PROVIDER_TYPE_NATIVE_GOOGLE,
        api_key_attr="gemini_api_key",
        capabilities=ProviderCapabilities(chat=True, embeddings=True, json_mode=True),
    ),
    "openai": ProviderConfig(
        id="openai",
        label="OpenAI",
        type=PROVIDER_TYPE_OPENAI_COMPATIBLE,
        enabled=False,
        base_url="https://api.openai.com/v1",
        api_key_attr="openai_api_key",
        capabilities=ProviderCapabilities(chat=True, embeddings=True, json_mode=True),
    ),
    "mistral": ProviderConfig(
        id="mistral",
        label="Mistral",
        type=PROVIDER_TYPE_OPENAI_COMPATIBLE,
        enabled=False,
        base_url="https://api.mistral.ai/v1",
        api_key_attr="mistral_api_key",
        capabilities=ProviderCapabilities(chat=True, embeddings=True, json_mode=False),
    ),
}

GEMINI_FLASH = "gemini-2.5-flash"
GEMINI_PRO = "gemini-2.5-pro"
GEMINI_EMBEDDING = "text-embedding-004"

TASK_ASSESSMENT = "assessment"
TASK_ASSESSMENT_B = "assessmentB"
TASK_ADJUDICATOR = "adjudicator"
TASK_FEEDBACK = "feedback"
TASK_CRITERION_ANALYZE = "criterionAnalyze"
TASK_CRITERION_IMPROVE = "criterionImprove"
TASK_OCR = "ocr"

DEFAULT_TASK_MODELS: Dict[str, ModelTaskConfig] = {
    TASK_ASSESSMENT: ModelTaskConfig("gemini", GEMINI_FLASH),
    TASK_ASSESSMENT_B: ModelTaskConfig("gemini", GEMINI_FLASH),
    TASK_ADJUDICATOR: ModelTaskConfig("gemini", GEMINI_PRO),
    TASK_FEEDBACK: ModelTaskConfig("gemini", GEMINI_FLASH),
    TASK_CRITERION_ANALYZE: ModelTaskConfig("gemini", GEMINI_FLASH),
    TASK_CRITERION_IMPROVE: ModelTaskConfig("gemini", GEMINI_PRO),
    TASK_OCR: ModelTaskConfig("gemini", GEMINI_FLASH),
}

DEFAULT_EMBEDDING_MODEL = ModelTaskConfig("gemini", GEMINI_EMBEDDING)


def default_providers() -> List[ProviderConfig]:
    """Fresh copies of the registry entries."""
    return [ProviderConfig.from_dict(p.to_dict()) for p in PROVIDER_REGISTRY.values()]
