"""
Extraction Provider Factory - Creates the configured provider

Reads 'ai.provider' from the configuration and instantiates the matching
provider class, importing its SDK only when it is selected.
"""

import importlib
import logging
import os
from typing import Any, Dict, Optional

from .base import ExtractionProvider

logger = logging.getLogger(__name__)

# Registry of available providers
PROVIDERS = {
    "claude": "leadsync.extraction.claude.ClaudeProvider",
    "openai": "leadsync.extraction.openai_provider.OpenAIProvider",
}

PROVIDER_ENV_VARS = {
    "claude": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
}

DEFAULT_PROVIDER = "claude"


def get_provider(config: Optional[Dict[str, Any]] = None) -> ExtractionProvider:
    """
    Get the configured extraction provider instance.

    Args:
        config: Optional configuration dict. If not provided, reads from
                leadsync.config.get_config()

    Raises:
        ValueError: If the provider is unknown or its API key is missing
        ImportError: If the provider's package is not installed

    Example:
        >>> get_provider({"ai": {"provider": "openai"}}).provider_name
        'openai'
    """
    if config is None:
        from leadsync.config import get_config

        config = get_config().to_dict()

    provider_name = str((config.get("ai") or {}).get("provider", DEFAULT_PROVIDER)).lower()

    if provider_name not in PROVIDERS:
        available = ", ".join(PROVIDERS.keys())
        raise ValueError(f"Unknown AI provider: '{provider_name}'. Available providers: {available}")

    module_path, class_name = PROVIDERS[provider_name].rsplit(".", 1)
    try:
        module = importlib.import_module(module_path)
    except ImportError as e:
        logger.error(f"Failed to import {provider_name} provider: {e}")
        raise ImportError(
            f"Failed to load {provider_name} provider. "
            f"Ensure the required package is installed. Error: {e}"
        ) from e

    return getattr(module, class_name)(config)


def has_provider_key(provider_name: str) -> bool:
    """True when the API key environment variable for a provider is set."""
    env_var = PROVIDER_ENV_VARS.get(provider_name)
    return bool(env_var and os.environ.get(env_var))
