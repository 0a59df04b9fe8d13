"""
Base provider class for AI API interactions.

A provider is one backend family (Gemini, an OpenAI-compatible endpoint)
tagged with the capabilities it can be routed to: chat, embeddings, and
native JSON mode. Model names are chosen per call by the router, so one
provider instance serves every task routed to it.
"""

import logging
import re
from abc import ABC, abstractmethod
from collections import deque
from io import BytesIO
from typing import Deque, Dict, List, Optional, Sequence

from PIL import Image

from feedback_agent.config.constants import CALL_HISTORY_LIMIT
from feedback_agent.config.providers import ProviderConfig, ProviderCapabilities
from feedback_agent.core.models import AICallResult
from feedback_agent.core.exceptions import ProviderUnavailableError

logger = logging.getLogger(__name__)

OCR_PROMPT = (
    "Transcribe all readable text in this document image exactly as written. "
    "Preserve reading order and paragraph breaks. Output only the text."
)

_SECRET_PATTERNS = [
    (re.compile(r'sk-[a-zA-Z0-9_-]{20,}'), 'sk-[REDACTED]'),
    (re.compile(r'AIza[a-zA-Z0-9_-]{35}'), 'AIza[REDACTED]'),
    (re.compile(r'(Bearer\s+)[a-zA-Z0-9._-]{20,}'), r'\1[REDACTED]'),
    (re.compile(r'(api[_-]?key\s*[=:]\s*["\']?)[a-zA-Z0-9_-]{20,}', re.IGNORECASE), r'\1[REDACTED]'),
]


def _sanitize_for_logging(text: str) -> str:
    """Mask API keys and bearer tokens before text reaches the call history."""
    if not text:
        return text
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def image_to_png_bytes(data: bytes) -> bytes:
    """Re-encode any Pillow-readable image as PNG."""
    with Image.open(BytesIO(data)) as image:
        if image.mode not in ("RGB", "L", "RGBA"):
            image = image.convert("RGB")
        buffer = BytesIO()
        image.save(buffer, format="PNG")
        return buffer.getvalue()


class BaseProvider(ABC):
    """
    Abstract base class for AI providers.

    Subclasses must implement:
    - generate()
    - embed()
    - extract_text_from_image()
    """

    def __init__(self, config: ProviderConfig):
        self.config = config
        # Recent calls only; token totals cover the provider's whole lifetime
        self.call_history: Deque[AICallResult] = deque(maxlen=CALL_HISTORY_LIMIT)
        self._usage = {"prompt_tokens": 0, "completion_tokens": 0, "calls": 0}

    @property
    def id(self) -> str:
        return self.config.id

    @property
    def capabilities(self) -> ProviderCapabilities:
        return self.config.capabilities

    def require(self, capability: str) -> None:
        """Raise if this provider cannot serve the given capability."""
        if not self.config.enabled or not getattr(self.capabilities, capability, False):
            raise ProviderUnavailableError(
                f"Provider '{self.id}' does not support {capability}",
                {"provider": self.id, "capability": capability}
            )

    # ==================== CALL TRACKING ====================

    def _log_call(
        self,
        prompt_type: str,
        model_name: str,
        input_summary: str,
        response_summary: str,
        duration_ms: float,
        prompt_tokens: Optional[int] = None,
        completion_tokens: Optional[int] = None
    ) -> None:
        self.call_history.append(AICallResult(
            prompt_type=prompt_type,
            model_name=model_name,
            input_summary=_sanitize_for_logging(input_summary),
            response_summary=_sanitize_for_logging(response_summary),
            duration_ms=duration_ms,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens
        ))
        self._usage["prompt_tokens"] += prompt_tokens or 0
        self._usage["completion_tokens"] += completion_tokens or 0
        self._usage["calls"] += 1
        logger.debug(f"{self.id}/{model_name} {prompt_type} call took {duration_ms:.0f}ms")

    def get_token_usage(self) -> Dict[str, int]:
        """Get total token usage from all calls."""
        return {
            "prompt_tokens": self._usage["prompt_tokens"],
            "completion_tokens": self._usage["completion_tokens"],
            "total_tokens": self._usage["prompt_tokens"] + self._usage["completion_tokens"],
            "calls": self._usage["calls"]
        }

    # ==================== ABSTRACT METHODS ====================

    @abstractmethod
    def generate(
        self,
        model: str,
        parts: Sequence[str],
        system_instruction: Optional[str] = None,
        temperature: Optional[float] = None,
        json_output: bool = False
    ) -> str:
        """Run one chat completion over ordered text parts and return the text."""

    @abstractmethod
    def embed(self, model: str, texts: List[str]) -> List[List[float]]:
        """Embed texts, one vector per input in order."""

    @abstractmethod
    def extract_text_from_image(self, model: str, image_bytes: bytes, mime_type: str = "image/png") -> str:
        """OCR a single page image."""
