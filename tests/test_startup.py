"""
Tests for start-up validation.
"""

from leadsync.config import get_config
from leadsync.startup import (
    run_startup_validation,
    validate_configuration,
    validate_database,
    validate_environment,
)


def test_missing_config_is_an_error(monkeypatch, tmp_path):
    monkeypatch.setattr("leadsync.config.DEFAULT_CONFIG_PATH", tmp_path / "config.yaml")
    results = validate_configuration()
    assert results[0].passed is False
    assert "Config file not found" in results[0].message


def test_environment_requires_provider_key(config_file, monkeypatch):
    get_config(config_file)
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.setenv("CRON_SECRET", "s3cret")

    results = {r.name: r for r in validate_environment()}

    assert results["Extraction Provider"].passed is False
    assert results["Extraction Provider"].severity == "error"
    assert results["Cron Secret"].passed is True


def test_database_tables_present(temp_db):
    assert validate_database()[0].passed is True


def test_missing_cron_secret_fails_only_in_strict_mode(config_file, temp_db, monkeypatch):
    get_config(config_file)
    monkeypatch.setenv("ANTHROPIC_API_KEY", "test-key")
    monkeypatch.delenv("CRON_SECRET", raising=False)

    passed, results = run_startup_validation(strict=False, log_results=False)
    assert passed is True
    assert any(r.name == "Cron Secret" and r.severity == "warning" for r in results)

    passed, _ = run_startup_validation(strict=True, log_results=False)
    assert passed is False
