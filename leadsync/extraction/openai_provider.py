"""
OpenAI Extraction Provider - Chat Completions implementation
"""

import logging
import os
from typing import Any, Dict, Optional, Tuple

import openai

from .base import ExtractionProvider

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"


class OpenAIProvider(ExtractionProvider):
    """Lead extraction using OpenAI chat completions in JSON mode."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        ai_config = (config or {}).get("ai", {}) or {}
        self._model = ai_config.get("model") or os.environ.get("OPENAI_MODEL") or DEFAULT_MODEL

        if not os.environ.get("OPENAI_API_KEY"):
            raise ValueError("OPENAI_API_KEY not found. Set it in .env or environment variables.")

        self._client = openai.OpenAI()

    @property
    def provider_name(self) -> str:
        return "openai"

    @property
    def model_name(self) -> str:
        return self._model

    def _generate(self, prompt: str) -> Tuple[str, int, int]:
        try:
            completion = self._client.chat.completions.create(
                model=self._model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=self._max_tokens,
                temperature=self._temperature,
                response_format={"type": "json_object"},
            )
        except openai.OpenAIError as e:
            logger.error(f"OpenAI generation error: {e}")
            raise

        text = completion.choices[0].message.content if completion.choices else None
        if not text:
            raise ValueError("No response from OpenAI")

        usage = completion.usage
        prompt_tokens = usage.prompt_tokens if usage else 0
        completion_tokens = usage.completion_tokens if usage else 0
        return text.strip(), prompt_tokens, completion_tokens
