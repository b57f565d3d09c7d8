"""
Extraction Package - LLM-backed classification of email links into job leads

Usage:
    from leadsync.extraction import get_provider, run_extraction

    provider = get_provider()  # reads ai.provider from config.yaml
    result, job = run_extraction(provider, request)
"""

from .adapter import run_extraction
from .base import ExtractionProvider
from .candidates import generate_dedupe_key, parse_leads, prefilter_links
from .factory import PROVIDERS, get_provider, has_provider_key
from .prompts import PROMPT_VERSION, build_extract_leads_prompt

__all__ = [
    "ExtractionProvider",
    "PROMPT_VERSION",
    "PROVIDERS",
    "build_extract_leads_prompt",
    "generate_dedupe_key",
    "get_provider",
    "has_provider_key",
    "parse_leads",
    "prefilter_links",
    "run_extraction",
]
