"""
Routes Package - Flask Blueprints for the lead sync service

Blueprint structure:
- sync_bp: POST /api/sync, POST /api/cron/gmail-sync, GET /api/health
- leads_bp: GET /api/leads, PATCH /api/leads/<id>
- settings_bp: GET/PUT /api/settings, GET /api/gmail/labels
"""

import logging

from .leads import leads_bp
from .settings import settings_bp
from .sync import sync_bp

logger = logging.getLogger(__name__)


def register_all_blueprints(app):
    """
    Register all Flask blueprints with the application.

    Args:
        app: Flask application instance
    """
    app.register_blueprint(sync_bp)
    app.register_blueprint(leads_bp)
    app.register_blueprint(settings_bp)
    logger.info("Registered sync, leads and settings blueprints")


__all__ = [
    "register_all_blueprints",
    "leads_bp",
    "settings_bp",
    "sync_bp",
]
