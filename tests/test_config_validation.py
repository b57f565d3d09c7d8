"""
Tests for configuration loading and validation.

Ensures that config.yaml is properly validated and sync, Gmail and
extraction settings are correctly loaded.
"""

import tempfile
from pathlib import Path

import pytest
import yaml

from leadsync.config import Config, get_config, reset_config
from leadsync.exceptions import ConfigError


def write_config(data):
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        yaml.dump(data, f)
        return Path(f.name)


def test_config_requires_gmail_section():
    """Test that config validation requires gmail section."""
    config_path = write_config({"ai": {"provider": "claude"}})

    try:
        with pytest.raises(ValueError, match="Missing required config section: gmail"):
            Config(config_path=config_path)
    finally:
        config_path.unlink()


def test_config_requires_ai_section():
    config_path = write_config({"gmail": {"token_dir": "tokens"}})

    try:
        with pytest.raises(ConfigError, match="Missing required config section: ai"):
            Config(config_path=config_path)
    finally:
        config_path.unlink()


def test_config_rejects_unknown_provider():
    config_path = write_config({"gmail": {}, "ai": {"provider": "gemini"}})

    try:
        with pytest.raises(ConfigError, match="Unknown ai.provider 'gemini'"):
            Config(config_path=config_path)
    finally:
        config_path.unlink()


@pytest.mark.parametrize("value", [0, -3, "ten"])
def test_config_rejects_invalid_max_fetch(value):
    config_path = write_config({"gmail": {}, "ai": {}, "sync": {"max_fetch": value}})

    try:
        with pytest.raises(ConfigError, match="sync.max_fetch must be a positive integer"):
            Config(config_path=config_path)
    finally:
        config_path.unlink()


def test_config_rejects_temperature_out_of_range():
    config_path = write_config({"gmail": {}, "ai": {"temperature": 3}})

    try:
        with pytest.raises(ConfigError, match="ai.temperature"):
            Config(config_path=config_path)
    finally:
        config_path.unlink()


def test_config_loads_valid_config():
    """Test that valid config loads successfully."""
    valid_config = {
        "gmail": {"token_dir": "/var/lib/leadsync/tokens", "calls_per_minute": 120},
        "sync": {"max_fetch": 50, "max_workers": 4},
        "ai": {
            "provider": "OpenAI",
            "model": "gpt-4o-mini",
            "max_tokens": 800,
            "temperature": 0.3,
            "max_email_chars": 4000,
        },
        "database": {"path": "/tmp/leads-test.db"},
    }
    config_path = write_config(valid_config)

    try:
        config = Config(config_path=config_path)

        assert config.gmail_token_dir == Path("/var/lib/leadsync/tokens")
        assert config.gmail_calls_per_minute == 120
        assert config.max_fetch == 50
        assert config.max_workers == 4
        assert config.ai_provider == "openai"
        assert config.database_path == Path("/tmp/leads-test.db")
        assert config.get("sync.max_workers") == 4
        assert config.get("sync.missing.key", "fallback") == "fallback"
    finally:
        config_path.unlink()


def test_config_default_values():
    """Test that config provides sensible defaults for optional fields."""
    config_path = write_config({"gmail": {}, "ai": {}})

    try:
        config = Config(config_path=config_path)

        assert config.gmail_token_dir.name == "tokens"
        assert config.gmail_calls_per_minute == 240
        assert config.max_fetch == 20
        assert config.max_workers == 1
        assert config.ai_provider == "claude"
        assert config.database_path is None
    finally:
        config_path.unlink()


def test_cron_secret_comes_from_environment(monkeypatch):
    config_path = write_config({"gmail": {}, "ai": {}})

    try:
        config = Config(config_path=config_path)
        monkeypatch.delenv("CRON_SECRET", raising=False)
        assert config.cron_secret is None
        monkeypatch.setenv("CRON_SECRET", "s3cret")
        assert config.cron_secret == "s3cret"
    finally:
        config_path.unlink()


def test_get_config_caches_instance(config_file):
    first = get_config(config_file)
    assert get_config() is first
    reset_config()
    assert get_config(config_file) is not first


def test_config_file_not_found():
    """Test that missing config file raises appropriate error."""
    with pytest.raises(FileNotFoundError, match="Config file not found"):
        Config(config_path=Path("/nonexistent/config.yaml"))
