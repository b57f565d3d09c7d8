"""
Lead Sync - Application Factory

Syncs Gmail labels, extracts job leads from the synced messages and
stores them for review.
"""

import logging

from flask import Flask
from flask_cors import CORS

from leadsync import database
from leadsync.config import get_config

logger = logging.getLogger(__name__)


def create_app(config_path=None):
    """
    Application factory for creating Flask app instances.

    Args:
        config_path: Optional path to config.yaml file

    Returns:
        Configured Flask application instance
    """
    # Load environment variables
    from dotenv import load_dotenv

    load_dotenv()

    try:
        config = get_config(config_path)
    except FileNotFoundError as e:
        logger.error(f"Configuration Error: {e}")
        raise

    if config.database_path:
        database.set_db_path(config.database_path)

    app = Flask(__name__)
    CORS(app)

    app.config["LEADSYNC_CONFIG"] = config

    database.init_db()

    register_blueprints(app)

    return app


def register_blueprints(app):
    """Register all Flask blueprints."""
    from leadsync.routes import register_all_blueprints

    register_all_blueprints(app)
