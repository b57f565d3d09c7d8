"""
Claude Extraction Provider - Anthropic Claude implementation
"""

import logging
import os
from typing import Any, Dict, Optional, Tuple

import anthropic

from .base import ExtractionProvider

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"


class ClaudeProvider(ExtractionProvider):
    """Lead extraction using the Anthropic Messages API."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        ai_config = (config or {}).get("ai", {}) or {}
        self._model = ai_config.get("model") or DEFAULT_MODEL

        if not os.environ.get("ANTHROPIC_API_KEY"):
            raise ValueError(
                "ANTHROPIC_API_KEY not found. Set it in .env or environment variables."
            )

        self._client = anthropic.Anthropic()

    @property
    def provider_name(self) -> str:
        return "claude"

    @property
    def model_name(self) -> str:
        return self._model

    def _generate(self, prompt: str) -> Tuple[str, int, int]:
        try:
            response = self._client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as e:
            logger.error(f"Claude generation error: {e}")
            raise

        text = "".join(block.text for block in response.content if getattr(block, "type", "") == "text")
        usage = response.usage
        return text.strip(), usage.input_tokens or 0, usage.output_tokens or 0
