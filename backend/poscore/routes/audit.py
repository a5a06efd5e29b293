# Overview: Flask API route for reading the audit trail.

from flask import Blueprint, request, jsonify

from ..services import audit_service
from ..time_utils import parse_iso_datetime
from .errors import error_response


audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit-logs")


@audit_bp.get("")
@audit_bp.get("/")
def list_audit_logs_route():
    """
    Most recent audit entries first.

    Query: ?limit=100&action=PROCESS_REFUND&since=2024-01-01T00:00:00Z
    """
    limit = request.args.get("limit", default=100, type=int)
    limit = max(1, min(limit, 500))
    action = request.args.get("action")

    try:
        since = parse_iso_datetime(request.args.get("since"))
    except ValueError:
        return error_response("since must be an ISO-8601 datetime", "VALIDATION_ERROR", 400)

    entries = audit_service.list_entries(limit=limit, action=action, since=since)
    return jsonify({"audit_logs": [entry.to_dict() for entry in entries]}), 200
