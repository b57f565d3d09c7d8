"""
Lead routes - list leads for review and move them through review statuses
"""

import logging

from flask import Blueprint, jsonify, request

from leadsync.leads import list_leads, set_lead_status
from leadsync.models import LeadStatus

from .auth import require_cron_secret

logger = logging.getLogger(__name__)

leads_bp = Blueprint("leads", __name__)

VALID_STATUSES = [status.value for status in LeadStatus]


@leads_bp.route("/api/leads", methods=["GET"])
@require_cron_secret
def api_list_leads():
    """
    Route: GET /api/leads?user_id=u1&status=new

    Returns:
        JSON {"leads": [...], "count": n}
    """
    user_id = request.args.get("user_id")
    if not user_id:
        return jsonify({"error": "user_id is required"}), 400

    status = request.args.get("status")
    if status and status not in VALID_STATUSES:
        return jsonify({"error": f"Invalid status. Valid: {', '.join(VALID_STATUSES)}"}), 400

    leads = list_leads(user_id, status=status)
    return jsonify({"leads": leads, "count": len(leads)})


@leads_bp.route("/api/leads/<lead_id>", methods=["PATCH"])
@require_cron_secret
def api_update_lead(lead_id):
    """
    Route: PATCH /api/leads/<lead_id>  body {"status": "rejected"}
    """
    data = request.get_json(silent=True) or {}
    status = data.get("status")
    if status not in VALID_STATUSES:
        return jsonify({"error": f"Invalid status. Valid: {', '.join(VALID_STATUSES)}"}), 400

    if not set_lead_status(lead_id, status):
        return jsonify({"error": "Lead not found"}), 404

    logger.info(f"Lead {lead_id} moved to {status}")
    return jsonify({"id": lead_id, "status": status})
