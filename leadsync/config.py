"""
Configuration Loader - Reads and validates config.yaml

Secrets (API keys, CRON_SECRET) come from the environment / .env file;
everything else lives in config.yaml next to the project root.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from leadsync.exceptions import ConfigError

APP_DIR = Path(__file__).parent.parent
DEFAULT_CONFIG_PATH = APP_DIR / "config.yaml"

SUPPORTED_PROVIDERS = ("claude", "openai")


class Config:
    """Configuration manager for the lead sync service."""

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration from YAML file.

        Args:
            config_path: Path to config.yaml (defaults to <project>/config.yaml)
        """
        self.config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        self._config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        if not self.config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {self.config_path}\n"
                f"Copy config.example.yaml to config.yaml and adjust it."
            )

        with open(self.config_path, "r") as f:
            config = yaml.safe_load(f) or {}

        self._validate_config(config)
        return config

    def _validate_config(self, config: Dict[str, Any]) -> None:
        """Validate required sections and value ranges."""
        if not isinstance(config, dict):
            raise ConfigError("config.yaml must contain a mapping at the top level")

        for section in ("gmail", "ai"):
            if not isinstance(config.get(section), dict):
                raise ConfigError(f"Missing required config section: {section}")

        provider = str(config["ai"].get("provider", "claude")).lower()
        if provider not in SUPPORTED_PROVIDERS:
            raise ConfigError(
                f"Unknown ai.provider '{provider}'. Supported: {', '.join(SUPPORTED_PROVIDERS)}"
            )

        sync = config.get("sync") or {}
        for key in ("max_fetch", "max_workers"):
            value = sync.get(key)
            if value is not None and (not isinstance(value, int) or value < 1):
                raise ConfigError(f"sync.{key} must be a positive integer, got {value!r}")

        temperature = config["ai"].get("temperature")
        if temperature is not None and not 0 <= float(temperature) <= 2:
            raise ConfigError(f"ai.temperature must be between 0 and 2, got {temperature}")

    # ===== GMAIL =====

    @property
    def gmail_token_dir(self) -> Path:
        """Directory holding one authorized-user token file per user."""
        token_dir = Path(self._config["gmail"].get("token_dir", "tokens"))
        return token_dir if token_dir.is_absolute() else APP_DIR / token_dir

    @property
    def gmail_calls_per_minute(self) -> int:
        return int(self._config["gmail"].get("calls_per_minute", 240))

    # ===== SYNC =====

    @property
    def max_fetch(self) -> int:
        """Messages listed by a full label scan."""
        return self.get("sync.max_fetch", 20)

    @property
    def max_workers(self) -> int:
        return self.get("sync.max_workers", 1)

    # ===== AI =====
    # model, max_tokens, temperature and max_email_chars are read by the
    # extraction providers from to_dict()

    @property
    def ai_provider(self) -> str:
        return str(self._config["ai"].get("provider", "claude")).lower()

    # ===== DATABASE =====

    @property
    def database_path(self) -> Optional[Path]:
        path = self.get("database.path")
        if not path:
            return None
        path = Path(path)
        return path if path.is_absolute() else APP_DIR / path

    # ===== SECRETS =====

    @property
    def cron_secret(self) -> Optional[str]:
        return os.environ.get("CRON_SECRET") or None

    # ===== UTILITY METHODS =====

    def to_dict(self) -> Dict[str, Any]:
        """Return a copy of the raw configuration dictionary."""
        return dict(self._config)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation key.

        Example: config.get('sync.max_fetch')
        """
        value: Any = self._config
        for k in key.split("."):
            if not isinstance(value, dict):
                return default
            value = value.get(k)
            if value is None:
                return default
        return value


# Global config instance
_config: Optional[Config] = None


def get_config(config_path: Optional[Path] = None) -> Config:
    """
    Get global configuration instance.
    Creates instance on first call, then returns cached instance.
    """
    global _config
    if _config is None:
        _config = Config(config_path)
    return _config


def reset_config() -> None:
    """Drop the cached instance so the next get_config() reads from disk."""
    global _config
    _config = None
