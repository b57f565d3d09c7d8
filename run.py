#!/usr/bin/env python3
"""
Lead Sync - Main Entry Point

Uses the application factory pattern via leadsync.create_app().

Usage:
    python run.py

Environment Variables:
    FLASK_ENV: development (default), production, testing
    LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (optional)
    PORT: HTTP port (default 5000)
"""

import os
import sys
from pathlib import Path

APP_DIR = Path(__file__).parent

# Load environment variables from .env file
from dotenv import load_dotenv

load_dotenv(APP_DIR / ".env")

# Initialize logging first
from leadsync.logging_config import get_logger, setup_logging

flask_env = os.environ.get("FLASK_ENV", "development")
log_level = os.environ.get("LOG_LEVEL")
json_logs = flask_env == "production"

setup_logging(level=log_level, json_logs=json_logs)
logger = get_logger(__name__)


def main():
    """Main entry point for the lead sync service."""

    logger.info("=" * 60)
    logger.info("Lead Sync - Starting Up")
    logger.info("=" * 60)

    from leadsync.startup import run_startup_validation

    logger.info("Running startup validation...")
    validation_passed, _ = run_startup_validation(strict=False, log_results=True)

    if not validation_passed:
        logger.error("Startup validation failed. Please fix the errors above.")
        sys.exit(1)

    from leadsync import create_app

    app = create_app()

    from leadsync import database
    from leadsync.config import get_config

    config = get_config()
    port = int(os.environ.get("PORT", 5000))

    logger.info("")
    logger.info("=" * 60)
    logger.info(f"  Environment: {flask_env}")
    logger.info(f"  Configuration: {config.config_path}")
    logger.info(f"  Database: {database.DB_PATH}")
    logger.info(f"  Gmail tokens: {config.gmail_token_dir}")
    logger.info(f"  Extraction provider: {config.ai_provider}")
    logger.info("")
    logger.info(f"  Manual sync: POST http://localhost:{port}/api/sync")
    logger.info(f"  Scheduled sync: POST http://localhost:{port}/api/cron/gmail-sync")
    logger.info(f"  Health Check: http://localhost:{port}/api/health")
    logger.info("=" * 60)
    logger.info("")

    debug_mode = flask_env != "production"
    app.run(debug=debug_mode, host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
