"""
Gemini client used by certificate validation and analysis
Single API key from GEMINI_API_KEY, usage counters kept in memory
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import google.generativeai as genai

from app.core import config
from app.core.errors import UpstreamError

logger = logging.getLogger(__name__)


@dataclass
class TokenUsage:
    """Track token usage per process"""
    input_tokens: int = 0
    output_tokens: int = 0
    requests: int = 0
    failures: int = 0
    last_request_at: Optional[datetime] = None

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class GeminiClient:
    api_key: Optional[str]
    model_name: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    _model: Optional[genai.GenerativeModel] = None
    _lock: threading.Lock = field(default_factory=threading.Lock)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key) and self.api_key != "your-gemini-api-key-here"

    def _get_model(self) -> genai.GenerativeModel:
        if not self.is_configured:
            raise UpstreamError("GEMINI_API_KEY is not configured")

        with self._lock:
            if self._model is None:
                genai.configure(api_key=self.api_key)
                self._model = genai.GenerativeModel(self.model_name)
            return self._model

    def _record(self, response, prompt: str):
        input_tokens = len(prompt) // 4
        output_tokens = 0
        usage_metadata = getattr(response, "usage_metadata", None)
        if usage_metadata is not None:
            input_tokens = getattr(usage_metadata, "prompt_token_count", input_tokens) or input_tokens
            output_tokens = getattr(usage_metadata, "candidates_token_count", 0) or 0

        with self._lock:
            self.usage.input_tokens += input_tokens
            self.usage.output_tokens += output_tokens
            self.usage.requests += 1
            self.usage.last_request_at = datetime.utcnow()

        logger.info(
            "Gemini %s | tokens %s+%s | requests %s",
            self.model_name, input_tokens, output_tokens, self.usage.requests
        )

    async def _generate(self, contents, prompt: str) -> str:
        model = self._get_model()
        try:
            response = await model.generate_content_async(contents)
            text = response.text
        except Exception as e:
            with self._lock:
                self.usage.failures += 1
            raise UpstreamError(f"Gemini request failed: {e}")

        self._record(response, prompt)
        return text.strip()

    async def run_text(self, prompt: str) -> str:
        """
        Raises:
            UpstreamError: Not configured, or request failed
        """
        return await self._generate(prompt, prompt)

    async def run_vision(self, prompt: str, image_bytes: bytes, mime_type: str) -> str:
        """
        Send prompt + inline image

        Raises:
            UpstreamError: Not configured, or request failed
        """
        contents = [prompt, {"mime_type": mime_type, "data": image_bytes}]
        return await self._generate(contents, prompt)


# Global client instance
_client: Optional[GeminiClient] = None


def get_gemini_client() -> GeminiClient:
    global _client
    if _client is None:
        _client = GeminiClient(api_key=config.GEMINI_API_KEY, model_name=config.GEMINI_MODEL)
    return _client
