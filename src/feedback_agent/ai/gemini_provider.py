"""
Google Gemini API provider for chat, embeddings and OCR.

Handles communication with Google's Gemini models through google-genai.
"""

import time
import logging
from typing import Optional, List, Sequence

import google.genai as genai
from google.genai import types as genai_types
from google.genai import errors as genai_errors
from google.api_core import exceptions as google_exceptions
from tenacity import retry, stop_after_attempt, retry_if_exception_type, wait_exponential

from feedback_agent.ai.base_provider import BaseProvider, OCR_PROMPT, image_to_png_bytes
from feedback_agent.config.providers import ProviderConfig
from feedback_agent.config.constants import MAX_RETRIES, MAX_TOKENS

logger = logging.getLogger(__name__)


# Define retryable exceptions for Google API
RETRYABLE_EXCEPTIONS = (
    genai_errors.ServerError,
    google_exceptions.TooManyRequests,  # 429 rate limit
    google_exceptions.ServiceUnavailable,  # 503
    google_exceptions.InternalServerError,  # 500
    google_exceptions.GatewayTimeout,  # 504
    ConnectionError,
)


class GeminiProvider(BaseProvider):
    """
    Provider for Google Gemini API interactions.

    Inherits from BaseProvider for shared call tracking.
    """

    def __init__(self, config: ProviderConfig, api_key: str, client: Optional[genai.Client] = None):
        super().__init__(config)
        self.client = client or genai.Client(api_key=api_key)

    def generate(
        self,
        model: str,
        parts: Sequence[str],
        system_instruction: Optional[str] = None,
        temperature: Optional[float] = None,
        json_output: bool = False
    ) -> str:
        """
        Generate content from ordered text parts.

        Args:
            model: Gemini model name
            parts: Ordered prompt parts (sent as separate parts of one user turn)
            system_instruction: Optional system instruction
            temperature: Optional sampling temperature
            json_output: Ask for application/json output

        Returns:
            Model response text
        """
        start_time = time.time()

        config = genai_types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=temperature,
            max_output_tokens=MAX_TOKENS,
            response_mime_type="application/json" if json_output and self.capabilities.json_mode else None,
        )
        contents = [genai_types.Content(
            role="user",
            parts=[genai_types.Part(text=p) for p in parts if p]
        )]

        response = self.client.models.generate_content(
            model=model,
            contents=contents,
            config=config
        )
        result = response.text or ""

        prompt_tokens = None
        completion_tokens = None
        if getattr(response, 'usage_metadata', None):
            prompt_tokens = getattr(response.usage_metadata, 'prompt_token_count', None)
            completion_tokens = getattr(response.usage_metadata, 'candidates_token_count', None)

        self._log_call(
            prompt_type="chat",
            model_name=model,
            input_summary=f"Chat ({len(parts)} parts): {(parts[-1] if parts else '')[:80]}...",
            response_summary=result[:200],
            duration_ms=(time.time() - start_time) * 1000,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
        )
        return result

    @retry(
        stop=stop_after_attempt(MAX_RETRIES),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(RETRYABLE_EXCEPTIONS),
        reraise=True
    )
    def embed(self, model: str, texts: List[str]) -> List[List[float]]:
        """Get embeddings for multiple texts."""
        start_time = time.time()
        result = self.client.models.embed_content(model=model, contents=texts)
        vectors = [list(e.values or []) for e in (result.embeddings or [])]
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
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(RETRYABLE_EXCEPTIONS),
        reraise=True
    )
    def extract_text_from_image(self, model: str, image_bytes: bytes, mime_type: str = "image/png") -> str:
        """OCR one page image with a multimodal Gemini model."""
        start_time = time.time()
        png = image_to_png_bytes(image_bytes)
        response = self.client.models.generate_content(
            model=model,
            contents=[
                genai_types.Part.from_bytes(data=png, mime_type="image/png"),
                OCR_PROMPT,
            ],
            config=genai_types.GenerateContentConfig(temperature=0),
        )
        result = response.text or ""
        self._log_call(
            prompt_type="ocr",
            model_name=model,
            input_summary=f"OCR {mime_type} ({len(image_bytes)} bytes)",
            response_summary=result[:200],
            duration_ms=(time.time() - start_time) * 1000,
        )
        return result
