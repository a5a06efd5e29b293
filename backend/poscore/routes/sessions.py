# Overview: Flask API routes for cash drawer sessions; parses input and returns JSON responses.

# backend/poscore/routes/sessions.py
"""
Cash Drawer Session API Routes

WHY: Cashier accountability. A till is opened with a counted float, every
cash movement is logged against it, and the close-out count is compared
with what the log says should be in the drawer.

DESIGN:
- Session lifecycle: open -> close (immutable once closed)
- Activity log is append-only (sale, pay-in, pay-out)
- One open session per user
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..services import cash_drawer_service
from ..services.cash_drawer_service import (
    SessionAlreadyOpenError,
    SessionClosedError,
    SessionNotFoundError,
)
from ..validation import ValidationError
from .errors import error_response, internal_error


sessions_bp = Blueprint("sessions", __name__, url_prefix="/api/sessions")


@sessions_bp.post("")
@sessions_bp.post("/")
@require_actor
def open_session_route():
    """
    Open a cash drawer session for the acting user.

    Request body:
    {
        "opening_amount": "100.00"
    }

    Returns:
        201: session opened
        409: user already has an open session
    """
    try:
        data = request.get_json(silent=True) or {}

        session = cash_drawer_service.open_session(g.current_user, data.get("opening_amount"))
        return jsonify({"session": session.to_dict()}), 201

    except SessionAlreadyOpenError as e:
        return error_response(str(e), "SESSION_ALREADY_OPEN", 409, user_id=e.user_id)
    except ValidationError as e:
        return error_response(str(e), "VALIDATION_ERROR", 400)
    except Exception:
        current_app.logger.exception("Failed to open cash drawer session")
        return internal_error()


@sessions_bp.get("/<int:session_id>")
def get_session_route(session_id: int):
    """Session with its activity log and reconciliation summary."""
    session = cash_drawer_service.get_session(session_id)
    if not session:
        return error_response(f"Cash drawer session {session_id} not found", "SESSION_NOT_FOUND", 404)

    summary = cash_drawer_service.summarize_session(session)
    return jsonify({
        "session": session.to_dict(),
        "summary": cash_drawer_service.summary_to_dict(summary),
    }), 200


@sessions_bp.post("/<int:session_id>/activity")
@require_actor
def record_activity_route(session_id: int):
    """
    Append an activity to an open session.

    Request body:
    {
        "type": "sale" | "pay-in" | "pay-out",
        "amount": "25.00",
        "payment_method": "cash",     (required for sale)
        "order_id": "INV-000001",     (optional)
        "notes": "float top-up"       (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}

        session = cash_drawer_service.record_activity(session_id, data, actor=g.current_user)
        return jsonify({"session": session.to_dict()}), 201

    except SessionNotFoundError as e:
        return error_response(str(e), "SESSION_NOT_FOUND", 404)
    except SessionClosedError as e:
        return error_response(str(e), "SESSION_CLOSED", 409)
    except ValidationError as e:
        return error_response(str(e), "VALIDATION_ERROR", 400)
    except Exception:
        current_app.logger.exception("Failed to record cash drawer activity")
        return internal_error()


@sessions_bp.post("/<int:session_id>/close")
@require_actor
def close_session_route(session_id: int):
    """
    Close a session with the counted cash amount.

    Request body:
    {
        "closing_amount": "180.00"
    }

    Returns:
        200: closed session with expected amount and signed difference
        404: unknown session
        409: session already closed
    """
    try:
        data = request.get_json(silent=True) or {}
        counted = data.get("closing_amount", data.get("counted_amount"))

        session = cash_drawer_service.close_session(session_id, counted, actor=g.current_user)
        summary = cash_drawer_service.summarize_session(session)
        return jsonify({
            "session": session.to_dict(),
            "summary": cash_drawer_service.summary_to_dict(summary),
        }), 200

    except SessionNotFoundError as e:
        return error_response(str(e), "SESSION_NOT_FOUND", 404)
    except SessionClosedError as e:
        return error_response(str(e), "SESSION_CLOSED", 409)
    except ValidationError as e:
        return error_response(str(e), "VALIDATION_ERROR", 400)
    except Exception:
        current_app.logger.exception("Failed to close cash drawer session")
        return internal_error()
