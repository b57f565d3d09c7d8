"""
Startup validation and health checks.

Validates environment, configuration, database schema and installed
dependencies before the server starts, and backs the /api/health endpoint.
"""

import importlib.util
import os
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from leadsync.logging_config import get_logger

logger = get_logger(__name__)

REQUIRED_PACKAGES = [
    ("flask", "Flask"),
    ("flask_cors", "flask-cors"),
    ("yaml", "PyYAML"),
    ("dotenv", "python-dotenv"),
    ("bs4", "beautifulsoup4"),
    ("googleapiclient", "google-api-python-client"),
    ("google.oauth2", "google-auth"),
]

PROVIDER_PACKAGES = {"claude": ("anthropic", "anthropic"), "openai": ("openai", "openai")}


class ValidationResult:
    """Result of a validation check."""

    def __init__(
        self,
        name: str,
        passed: bool,
        message: str,
        severity: str = "error",  # error, warning, info
        fix_hint: Optional[str] = None,
    ):
        self.name = name
        self.passed = passed
        self.message = message
        self.severity = severity
        self.fix_hint = fix_hint

    def __str__(self) -> str:
        status = "PASS" if self.passed else self.severity.upper()
        return f"[{status}] {self.name}: {self.message}"

    def to_dict(self) -> Dict:
        return {
            "name": self.name,
            "passed": self.passed,
            "message": self.message,
            "severity": self.severity,
            "fix_hint": self.fix_hint,
        }


def _configured_provider() -> Tuple[Optional[str], Optional[str]]:
    """(provider name, error message) from config.yaml."""
    from leadsync.config import get_config

    try:
        return get_config().ai_provider, None
    except (FileNotFoundError, ValueError) as e:
        return None, str(e)


def validate_configuration() -> List[ValidationResult]:
    provider, error = _configured_provider()
    if error:
        return [
            ValidationResult(
                name="Configuration",
                passed=False,
                message=error.splitlines()[0],
                fix_hint="Copy config.example.yaml to config.yaml",
            )
        ]
    return [
        ValidationResult(
            name="Configuration",
            passed=True,
            message=f"config.yaml loaded (ai.provider={provider})",
            severity="info",
        )
    ]


def validate_environment() -> List[ValidationResult]:
    """
    Validate environment variables.

    The API key of the configured extraction provider is required;
    CRON_SECRET only matters when the HTTP endpoints are used.
    """
    from leadsync.extraction.factory import PROVIDER_ENV_VARS, has_provider_key

    results = []
    provider, _ = _configured_provider()

    if provider:
        env_var = PROVIDER_ENV_VARS[provider]
        if has_provider_key(provider):
            results.append(
                ValidationResult(
                    name="Extraction Provider",
                    passed=True,
                    message=f"{env_var} configured for {provider}",
                    severity="info",
                )
            )
        else:
            results.append(
                ValidationResult(
                    name="Extraction Provider",
                    passed=False,
                    message=f"{env_var} not set for ai.provider '{provider}'",
                    fix_hint=f"Set {env_var} in your .env file",
                )
            )

    if os.environ.get("CRON_SECRET"):
        results.append(
            ValidationResult(name="Cron Secret", passed=True, message="CRON_SECRET set", severity="info")
        )
    else:
        results.append(
            ValidationResult(
                name="Cron Secret",
                passed=False,
                message="CRON_SECRET not set; sync endpoints will reject every request",
                severity="warning",
                fix_hint="Set CRON_SECRET in your .env file",
            )
        )

    return results


def validate_database() -> List[ValidationResult]:
    from leadsync.database import DB_PATH, TABLES, get_table_names

    try:
        existing = set(get_table_names())
    except Exception as e:
        return [
            ValidationResult(
                name="Database",
                passed=False,
                message=f"Cannot open database at {DB_PATH}: {e}",
                fix_hint="Check the database.path setting and directory permissions",
            )
        ]

    missing = [table for table in TABLES if table not in existing]
    if missing:
        return [
            ValidationResult(
                name="Database Schema",
                passed=False,
                message=f"Missing tables: {', '.join(missing)}",
                severity="warning",
                fix_hint="Tables are created automatically when the app starts",
            )
        ]
    return [
        ValidationResult(
            name="Database Schema", passed=True, message=f"All tables present in {DB_PATH}", severity="info"
        )
    ]


def validate_dependencies() -> List[ValidationResult]:
    results = []
    packages = list(REQUIRED_PACKAGES)
    provider, _ = _configured_provider()
    if provider in PROVIDER_PACKAGES:
        packages.append(PROVIDER_PACKAGES[provider])

    for module_name, package_name in packages:
        try:
            found = importlib.util.find_spec(module_name) is not None
        except ModuleNotFoundError:
            found = False
        if not found:
            results.append(
                ValidationResult(
                    name=f"Package: {package_name}",
                    passed=False,
                    message=f"{package_name} is not installed",
                    fix_hint=f"pip install {package_name}",
                )
            )

    if not results:
        results.append(
            ValidationResult(
                name="Dependencies", passed=True, message="All required packages installed", severity="info"
            )
        )
    return results


def run_startup_validation(
    strict: bool = False, log_results: bool = True
) -> Tuple[bool, List[ValidationResult]]:
    """
    Run all startup validations.

    Args:
        strict: If True, treat warnings as errors
        log_results: If True, log validation results

    Returns:
        Tuple of (all_passed, results)
    """
    all_results: List[ValidationResult] = []

    validators = [
        ("Configuration", validate_configuration),
        ("Environment", validate_environment),
        ("Database", validate_database),
        ("Dependencies", validate_dependencies),
    ]

    for category, validator in validators:
        try:
            all_results.extend(validator())
        except Exception as e:
            all_results.append(
                ValidationResult(
                    name=f"{category} Validation",
                    passed=False,
                    message=f"Validation failed with error: {e}",
                )
            )

    if log_results:
        for result in all_results:
            if result.passed or result.severity == "info":
                logger.info(str(result))
            elif result.severity == "error":
                logger.error(str(result))
                if result.fix_hint:
                    logger.error(f"  Hint: {result.fix_hint}")
            else:
                logger.warning(str(result))
                if result.fix_hint:
                    logger.warning(f"  Hint: {result.fix_hint}")

    errors = [r for r in all_results if not r.passed and r.severity == "error"]
    warnings = [r for r in all_results if not r.passed and r.severity == "warning"]

    if errors:
        logger.error(f"Startup validation failed with {len(errors)} error(s)")
        return False, all_results

    if strict and warnings:
        logger.error(f"Startup validation failed with {len(warnings)} warning(s) (strict mode)")
        return False, all_results

    logger.info("Startup validation passed")
    return True, all_results


def get_health_status() -> Dict:
    """
    Get current health status for the health check endpoint.

    Returns:
        {"status": "healthy" | "unhealthy", "timestamp", "checks": {...}}
    """
    status = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "checks": {},
    }

    try:
        from leadsync.database import get_db

        conn = get_db()
        try:
            lead_count = conn.execute("SELECT COUNT(*) FROM job_leads").fetchone()[0]
            synced_users = conn.execute("SELECT COUNT(*) FROM sync_state").fetchone()[0]
        finally:
            conn.close()
        status["checks"]["database"] = {
            "status": "healthy",
            "lead_count": lead_count,
            "synced_users": synced_users,
        }
    except Exception as e:
        status["status"] = "unhealthy"
        status["checks"]["database"] = {"status": "unhealthy", "error": str(e)}

    from leadsync.extraction.factory import has_provider_key

    provider, error = _configured_provider()
    provider_ok = bool(provider) and has_provider_key(provider)
    status["checks"]["extraction_provider"] = {
        "status": "healthy" if provider_ok else "unhealthy",
        "provider": provider,
    }
    if error:
        status["checks"]["extraction_provider"]["error"] = error.splitlines()[0]
    if not provider_ok:
        status["status"] = "unhealthy"

    return status
