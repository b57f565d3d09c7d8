"""
Settings routes - per-user extraction instructions, watched labels and the
Gmail label picker
"""

import logging

from flask import Blueprint, jsonify, request

from leadsync import database
from leadsync.email.client import get_gmail_client
from leadsync.exceptions import ProviderError, TransientProviderError

from .auth import require_cron_secret

logger = logging.getLogger(__name__)

settings_bp = Blueprint("settings", __name__)

MAX_INSTRUCTIONS_CHARS = 2000


def _settings_response(settings):
    return {
        "user_id": settings["user_id"],
        "custom_instructions": settings["custom_instructions"] or "",
        "watched_label_ids": settings["watched_label_ids"],
    }


@settings_bp.route("/api/settings", methods=["GET"])
@require_cron_secret
def api_get_settings():
    """
    Route: GET /api/settings?user_id=u1

    Returns defaults (no instructions, no watched labels) for unknown users.
    """
    user_id = request.args.get("user_id")
    if not user_id:
        return jsonify({"error": "user_id is required"}), 400

    return jsonify(_settings_response(database.get_user_settings(user_id)))


@settings_bp.route("/api/settings", methods=["PUT"])
@require_cron_secret
def api_update_settings():
    """
    Replace a user's settings.

    Route: PUT /api/settings

    Body:
        {"user_id": "u1", "custom_instructions": "Only remote roles",
         "watched_label_ids": ["INBOX", "Label_12"]}
    """
    data = request.get_json(silent=True) or {}
    user_id = data.get("user_id")
    if not user_id or not isinstance(user_id, str):
        return jsonify({"error": "user_id is required"}), 400

    label_ids = data.get("watched_label_ids")
    if not isinstance(label_ids, list) or not all(
        isinstance(label_id, str) and label_id for label_id in label_ids
    ):
        return jsonify({"error": "watched_label_ids must be a list of label ids"}), 400

    instructions = data.get("custom_instructions", "")
    if instructions is None:
        instructions = ""
    if not isinstance(instructions, str):
        return jsonify({"error": "custom_instructions must be a string"}), 400
    if len(instructions) > MAX_INSTRUCTIONS_CHARS:
        return jsonify(
            {"error": f"custom_instructions must be at most {MAX_INSTRUCTIONS_CHARS} characters"}
        ), 400

    # Order-preserving dedupe
    label_ids = list(dict.fromkeys(label_ids))
    database.save_user_settings(
        user_id,
        custom_instructions=instructions.strip() or None,
        watched_label_ids=label_ids,
    )
    logger.info(f"Saved settings for {user_id}: {len(label_ids)} watched labels")

    return jsonify(
        {
            "message": "Settings updated successfully",
            "settings": _settings_response(database.get_user_settings(user_id)),
        }
    )


@settings_bp.route("/api/gmail/labels", methods=["GET"])
@require_cron_secret
def api_gmail_labels():
    """
    Route: GET /api/gmail/labels?user_id=u1

    Returns:
        JSON {"labels": [{"id", "name", "type"}], "count": n}; 502 when
        Gmail cannot be reached for the user.
    """
    user_id = request.args.get("user_id")
    if not user_id:
        return jsonify({"error": "user_id is required"}), 400

    try:
        labels = get_gmail_client(user_id).list_labels()
    except TransientProviderError as e:
        logger.warning(f"Gmail unavailable for {user_id}: {e}")
        return jsonify({"error": str(e)}), 502
    except ProviderError as e:
        logger.error(f"Gmail label listing failed for {user_id}: {e}")
        return jsonify({"error": str(e)}), 502

    return jsonify({"labels": labels, "count": len(labels)})
