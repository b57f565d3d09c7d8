"""
Sync routes - manual sync trigger, scheduled sync and health check
"""

import logging
from datetime import datetime, timezone

from flask import Blueprint, jsonify, request

from leadsync import database
from leadsync.exceptions import ConfigError
from leadsync.models import SyncOptions
from leadsync.startup import get_health_status
from leadsync.sync import default_sync_options, sync_watched_labels

from .auth import require_cron_secret

logger = logging.getLogger(__name__)

sync_bp = Blueprint("sync", __name__)


@sync_bp.route("/api/sync", methods=["POST"])
@require_cron_secret
def api_sync():
    """
    Sync a user's watched labels (or an explicit label list).

    Route: POST /api/sync

    Body:
        {"user_id": "u1", "labels": ["INBOX"], "max_fetch": 20}
        labels and max_fetch are optional.

    Returns:
        JSON {"userId", "totals", "labels"}; 400 if user_id is missing or the
        user has no watched labels.
    """
    data = request.get_json(silent=True) or {}
    user_id = data.get("user_id")
    if not user_id:
        return jsonify({"error": "user_id is required"}), 400

    labels = data.get("labels")
    if labels is not None and (
        not isinstance(labels, list) or not all(isinstance(label, str) for label in labels)
    ):
        return jsonify({"error": "labels must be a list of label ids"}), 400

    try:
        options = default_sync_options()
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return jsonify({"error": f"Server configuration error: {e}"}), 500

    max_fetch = data.get("max_fetch")
    if max_fetch is not None:
        if not isinstance(max_fetch, int) or max_fetch < 1:
            return jsonify({"error": "max_fetch must be a positive integer"}), 400
        options = SyncOptions(max_fetch=max_fetch, max_workers=options.max_workers)

    try:
        result = sync_watched_labels(user_id, labels=labels, options=options)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    logger.info(f"Manual sync for {user_id}: {result['totals']['leadsInserted']} new leads")
    return jsonify(result)


@sync_bp.route("/api/cron/gmail-sync", methods=["POST"])
@require_cron_secret
def api_cron_gmail_sync():
    """
    Scheduled sync of every user with watched labels.

    Route: POST /api/cron/gmail-sync

    One user's failure is reported in its entry and does not stop the others.
    """
    users = database.list_users_with_watched_labels()
    results = []
    for user_id in users:
        try:
            results.append(sync_watched_labels(user_id))
        except Exception as e:
            logger.error(f"Scheduled sync failed for {user_id}: {e}")
            results.append({"userId": user_id, "error": str(e)})

    return jsonify(
        {
            "users": len(users),
            "results": results,
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        }
    )


@sync_bp.route("/api/health", methods=["GET"])
def api_health():
    """Health check; 503 when a dependency is unhealthy."""
    status = get_health_status()
    return jsonify(status), 200 if status["status"] == "healthy" else 503
