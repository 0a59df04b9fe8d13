"""
OpenAI-compatible API provider.

Works with any OpenAI-compatible API (OpenAI, Mistral, Groq, etc.)
"""

import base64
import time
import logging
from typing import List, Dict, Any, Optional, Sequence

import httpx
from openai import OpenAI
import openai
from tenacity import retry, stop_after_attempt, retry_if_exception_type, wait_exponential

from feedback_agent.ai.base_provider import BaseProvider, OCR_PROMPT, image_to_png_bytes
from feedback_agent.config.providers import ProviderConfig
from feedback_agent.config.constants import MAX_RETRIES, MAX_TOKENS, API_CONNECT_TIMEOUT, API_READ_TIMEOUT

logger = logging.getLogger(__name__)

# Transport failures only; request errors (including token-limit rejections)
# must reach the caller unchanged.
RETRYABLE_EXCEPTIONS = (
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class OpenAIProvider(BaseProvider):
    """
    Provider for OpenAI-compatible APIs.

    Configuration is handled by the factory using config/providers.py registry.
    """

    def __init__(self, config: ProviderConfig, api_key: str, client: Optional[OpenAI] = None):
        super().__init__(config)
        self.client = client or self._create_client(api_key)

    def _create_client(self, api_key: str) -> OpenAI:
        """Create OpenAI client."""
        timeout = httpx.Timeout(
            connect=API_CONNECT_TIMEOUT,
            read=API_READ_TIMEOUT,
            write=API_CONNECT_TIMEOUT,
            pool=API_CONNECT_TIMEOUT
        )

        client_kwargs: Dict[str, Any] = {
            "api_key": api_key,
            "timeout": timeout,
            # Retries are handled by tenacity below and by the grading orchestrator
            "max_retries": 0,
        }
        if self.config.base_url:
            client_kwargs["base_url"] = self.config.base_url
        if self.config.extra_headers:
            client_kwargs["default_headers"] = self.config.extra_headers

        return OpenAI(**client_kwargs)

    # ==================== API CALLS ====================

    def generate(
        self,
        model: str,
        parts: Sequence[str],
        system_instruction: Optional[str] = None,
        temperature: Optional[float] = None,
        json_output: bool = False
    ) -> str:
        """Call the chat completions endpoint with the parts joined as one user message."""
        start_time = time.time()
        messages = []
        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})
        user_text = "\n\n".join(p for p in parts if p)
        if user_text:
            messages.append({"role": "user", "content": user_text})

        kwargs: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_tokens": MAX_TOKENS,
        }
        if temperature is not None:
            # o3 family rejects an explicit temperature of 0
            if not (model.lower().startswith("o3") and temperature == 0):
                kwargs["temperature"] = temperature
        if json_output and self.capabilities.json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        response = self.client.chat.completions.create(**kwargs)
        result = response.choices[0].message.content or ""

        self._log_call(
            prompt_type="chat",
            model_name=model,
            input_summary=f"Chat: {user_text[:80]}...",
            response_summary=result[:200],
            duration_ms=(time.time() - start_time) * 1000,
            prompt_tokens=response.usage.prompt_tokens if response.usage else None,
            completion_tokens=response.usage.completion_tokens if response.usage else None,
        )
        return result

    @retry(
        stop=stop_after_attempt(MAX_RETRIES),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type(RETRYABLE_EXCEPTIONS),
        reraise=True
    )
    def embed(self, model: str, texts: List[str]) -> List[List[float]]:
        """Get embeddings for multiple texts."""
        start_time = time.time()
        response = self.client.embeddings.create(model=model, input=texts)
        vectors = [item.embedding for item in sorted(response.data, key=lambda d: d.index)]
        self._log_call(
            prompt_type="embed",
            model_name=model,
            input_summary=f"Embed {len(texts)} texts",
            response_summary=f"{len(vectors)} vectors",
            duration_ms=(time.time() - start_time) * 1000,
        )
        return vectors

    @retry(
        stop=stop_after_attempt(MAX_RETRIES),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type(RETRYABLE_EXCEPTIONS),
        reraise=True
    )
    def extract_text_from_image(self, model: str, image_bytes: bytes, mime_type: str = "image/png") -> str:
        """OCR via a vision-capable chat model."""
        start_time = time.time()
        b64 = base64.b64encode(image_to_png_bytes(image_bytes)).decode("utf-8")
        content = [
            {"type": "text", "text": OCR_PROMPT},
            {"type": "image_url", "image_url": {"url": f"data:image/png;base64,{b64}", "detail": "high"}},
        ]
        response = self.client.chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": content}],
            max_tokens=MAX_TOKENS,
            temperature=0
        )
        result = response.choices[0].message.content or ""
        self._log_call(
            prompt_type="ocr",
            model_name=model,
            input_summary=f"OCR {mime_type} ({len(image_bytes)} bytes)",
            response_summary=result[:200],
            duration_ms=(time.time() - start_time) * 1000,
        )
        return result
