"""
Bearer-secret guard shared by the API blueprints.

Sessions are handled by the surrounding application; these endpoints are
called by the scheduler and trusted services holding CRON_SECRET.
"""

import hmac
import logging
from functools import wraps

from flask import current_app, jsonify, request

logger = logging.getLogger(__name__)


def require_cron_secret(view):
    """Reject requests whose Authorization header is not 'Bearer <CRON_SECRET>'."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            logger.warning(f"Missing or invalid authorization header on {request.path}")
            return jsonify({"error": "Unauthorized"}), 401

        expected = current_app.config["LEADSYNC_CONFIG"].cron_secret
        if not expected:
            logger.error("CRON_SECRET environment variable not set")
            return jsonify({"error": "Server configuration error"}), 500

        if not hmac.compare_digest(auth_header[len("Bearer "):], expected):
            logger.warning(f"Invalid CRON_SECRET token on {request.path}")
            return jsonify({"error": "Forbidden"}), 403

        return view(*args, **kwargs)

    return wrapper
