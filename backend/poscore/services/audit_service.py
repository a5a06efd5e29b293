# Overview: Audit trail writer; best-effort append that never fails the caller.

"""
Audit Trail Invariants (authoritative)

- Append-only: no updates or deletes of existing entries.
- Written AFTER the business transaction commits, as its own short write.
  An audit failure can therefore never roll back a sale, refund, receipt
  or drawer close.
- Failures are logged on the operational channel and swallowed.
"""

from __future__ import annotations

import logging
from datetime import datetime

from ..extensions import db
from ..models import AuditLogEntry
from ..time_utils import utcnow

logger = logging.getLogger(__name__)


# Action tags
ACTION_PROCESS_PAYMENT = "PROCESS_PAYMENT"
ACTION_PROCESS_REFUND = "PROCESS_REFUND"
ACTION_CREATE_PURCHASE_ORDER = "CREATE_PURCHASE_ORDER"
ACTION_RECEIVE_PURCHASE_ORDER = "RECEIVE_PURCHASE_ORDER"
ACTION_CANCEL_PURCHASE_ORDER = "CANCEL_PURCHASE_ORDER"
ACTION_OPEN_CASH_DRAWER = "OPEN_CASH_DRAWER"
ACTION_CASH_DRAWER_ACTIVITY = "CASH_DRAWER_ACTIVITY"
ACTION_CLOSE_CASH_DRAWER = "CLOSE_CASH_DRAWER"
ACTION_UPDATE_CURRENCIES = "UPDATE_CURRENCIES"


def append(
    actor,
    action: str,
    details: str | None = None,
    *,
    entity_type: str | None = None,
    entity_id=None,
) -> AuditLogEntry | None:
    """
    Append an audit entry; returns None instead of raising on failure.

    `actor` is a User (or None for system actions).
    """
    try:
        entry = AuditLogEntry(
            user_id=actor.id if actor is not None else None,
            user_name=actor.name if actor is not None else None,
            action=action,
            details=details,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            created_at=utcnow(),
        )
        db.session.add(entry)
        db.session.commit()
        return entry
    except Exception:
        db.session.rollback()
        logger.exception("Failed to write audit entry %s for %s %s", action, entity_type, entity_id)
        return None


def list_entries(
    *,
    limit: int = 100,
    action: str | None = None,
    since: datetime | None = None,
) -> list[AuditLogEntry]:
    """Most recent entries first."""
    query = db.session.query(AuditLogEntry)
    if action:
        query = query.filter(AuditLogEntry.action == action)
    if since is not None:
        query = query.filter(AuditLogEntry.created_at >= since)
    return query.order_by(AuditLogEntry.id.desc()).limit(limit).all()
