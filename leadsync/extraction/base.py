"""
Base Extraction Provider - Abstract base class for LLM lead extractors

Concrete providers only implement _generate(); prompt construction,
response parsing and candidate cleanup are shared so every backend
returns leads in the same shape.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

from leadsync.models import ExtractionRequest, ExtractionResult

from .candidates import parse_leads
from .prompts import build_extract_leads_prompt

logger = logging.getLogger(__name__)


class ExtractionProvider(ABC):
    """
    Abstract base class for extraction providers.

    Args:
        config: Full configuration dict; reads the 'ai' section
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        ai_config = (config or {}).get("ai", {}) or {}
        self._max_tokens = int(ai_config.get("max_tokens", 1000))
        self._temperature = float(ai_config.get("temperature", 0.1))
        self._max_email_chars = int(ai_config.get("max_email_chars", 8000))

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider name (e.g., 'claude', 'openai')."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Model identifier recorded on every ExtractionJob."""

    @abstractmethod
    def _generate(self, prompt: str) -> Tuple[str, int, int]:
        """
        Send a prompt to the model.

        Returns:
            (response text, prompt tokens, completion tokens)
        """

    def extract(self, request: ExtractionRequest) -> ExtractionResult:
        """
        Classify the links of one email into lead candidates.

        Raises:
            ValueError: the model response holds no usable JSON
            Exception: SDK errors propagate to the caller unchanged
        """
        prompt = build_extract_leads_prompt(
            request.email_text,
            request.links,
            request.custom_instructions,
            max_chars=self._max_email_chars,
        )
        text, tokens_input, tokens_output = self._generate(prompt)
        leads = parse_leads(self._parse_json_response(text))

        logger.info(
            f"{self.provider_name} extracted {len(leads)} leads from email {request.email_id} "
            f"({tokens_input} in / {tokens_output} out tokens)"
        )
        return ExtractionResult(leads=leads, tokens_input=tokens_input, tokens_output=tokens_output)

    def _parse_json_response(self, text: str) -> Any:
        """
        Extract JSON from a model response that might include markdown fences or preamble.

        Example:
            >>> provider._parse_json_response('```json\\n{"leads": []}\\n```')
            {'leads': []}

        Raises:
            ValueError: If no valid JSON can be extracted
        """
        if not text:
            raise ValueError("Empty response text")

        text = text.strip()

        try:
            return json.loads(text)
        except json.JSONDecodeError:
            pass

        for pattern in (r"```json\s*([\s\S]*?)\s*```", r"```\s*([\s\S]*?)\s*```"):
            match = re.search(pattern, text)
            if match:
                try:
                    return json.loads(match.group(1))
                except json.JSONDecodeError:
                    pass

        # Outermost braces, then brackets
        for pattern in (r"\{[\s\S]*\}", r"\[[\s\S]*\]"):
            match = re.search(pattern, text)
            if match:
                try:
                    return json.loads(match.group())
                except json.JSONDecodeError:
                    pass

        raise ValueError(
            f"Could not extract valid JSON from response. Raw text (first 500 chars): {text[:500]}"
        )
