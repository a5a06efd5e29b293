# Overview: Cash drawer ledger; session open/close, append-only activity log and reconciliation.

"""
Cash Drawer Ledger

LIFECYCLE:
1. open: opening float counted, activities appended
2. closed: cash counted, expected amount and difference frozen

RECONCILIATION:
    expected   = opening + cash_sales + pay_ins - pay_outs
    difference = counted - expected      (signed; never corrected)

Card sales are reported but never part of the cash expectation.

CONCURRENCY:
- "One open session per user" is a partial unique index, not an
  application check; a racing second open fails on insert.
- Every activity bumps the session version, so an activity racing a close
  either lands before the close or is rejected after it.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import CashDrawerSession, CashDrawerActivity
from ..models.registers import (
    SESSION_STATUS_OPEN,
    SESSION_STATUS_CLOSED,
    ACTIVITY_SALE,
    ACTIVITY_PAY_IN,
    ACTIVITY_PAY_OUT,
    ACTIVITY_TYPES,
)
from ..models.sales import PAYMENT_METHODS
from poscore.time_utils import utcnow
from poscore.validation import ValidationError, money_str, parse_decimal
from . import audit_service
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)


class SessionNotFoundError(Exception):
    """Raised when a cash drawer session does not exist."""

    def __init__(self, session_id: int):
        super().__init__(f"Cash drawer session {session_id} not found")
        self.session_id = session_id


class SessionAlreadyOpenError(Exception):
    """Raised when a user opens a second session while one is open."""

    def __init__(self, user_id: int):
        super().__init__(f"User {user_id} already has an open cash drawer session")
        self.user_id = user_id


class SessionClosedError(Exception):
    """Raised when a closed session is modified."""

    def __init__(self, session_id: int):
        super().__init__(f"Cash drawer session {session_id} is closed")
        self.session_id = session_id


class CashDrawerValidationError(ValidationError):
    """Raised when session or activity data fails validation."""
    pass


def summarize_session(session: CashDrawerSession) -> dict:
    """
    Reconciliation breakdown for a session.

    For a closed session, counted amount and difference are the stored values.
    """
    cash_sales = Decimal("0")
    card_sales = Decimal("0")
    pay_ins = Decimal("0")
    pay_outs = Decimal("0")

    for activity in session.activities:
        amount = Decimal(activity.amount)
        if activity.type == ACTIVITY_SALE:
            if activity.payment_method == "cash":
                cash_sales += amount
            else:
                card_sales += amount
        elif activity.type == ACTIVITY_PAY_IN:
            pay_ins += amount
        elif activity.type == ACTIVITY_PAY_OUT:
            pay_outs += amount

    opening = Decimal(session.opening_amount or 0)
    expected = opening + cash_sales + pay_ins - pay_outs

    return {
        "session_id": session.id,
        "status": session.status,
        "opening_amount": opening,
        "cash_sales": cash_sales,
        "card_sales": card_sales,
        "pay_ins": pay_ins,
        "pay_outs": pay_outs,
        "expected_amount": expected,
        "closing_amount": Decimal(session.closing_amount) if session.closing_amount is not None else None,
        "difference": Decimal(session.difference) if session.difference is not None else None,
        "activity_count": len(session.activities),
    }


def summary_to_dict(summary: dict) -> dict:
    """Serialize a reconciliation summary; money as decimal strings."""
    return {
        key: money_str(value) if isinstance(value, Decimal) else value
        for key, value in summary.items()
    }


def get_session(session_id: int) -> CashDrawerSession | None:
    return db.session.get(CashDrawerSession, session_id)


def get_open_session(user_id: int) -> CashDrawerSession | None:
    return (
        db.session.query(CashDrawerSession)
        .filter_by(user_id=user_id, status=SESSION_STATUS_OPEN)
        .first()
    )


def _get_locked(session_id: int) -> CashDrawerSession:
    session = lock_for_update(
        db.session.query(CashDrawerSession).filter_by(id=session_id)
    ).first()
    if not session:
        raise SessionNotFoundError(session_id)
    return session


def open_session(user, opening_amount) -> CashDrawerSession:
    """
    Open a drawer session for a user.

    Raises:
        SessionAlreadyOpenError: the user already has an open session
    """
    opening_amount = parse_decimal(opening_amount, "opening_amount")

    def _op():
        session = CashDrawerSession(
            user_id=user.id,
            status=SESSION_STATUS_OPEN,
            opening_amount=opening_amount,
            opened_at=utcnow(),
            opened_by_name=user.name,
        )
        db.session.add(session)
        try:
            db.session.flush()
        except IntegrityError as exc:
            db.session.rollback()
            raise SessionAlreadyOpenError(user.id) from exc
        db.session.commit()
        return session

    session = run_with_retry(_op)
    logger.info("Opened cash drawer session %s for user %s", session.id, user.id)

    audit_service.append(
        user,
        audit_service.ACTION_OPEN_CASH_DRAWER,
        f"Opened cash drawer with {money_str(opening_amount)}",
        entity_type="cash_drawer_session",
        entity_id=session.id,
    )
    return session


def _validate_activity(activity) -> dict:
    if not isinstance(activity, dict):
        raise CashDrawerValidationError("activity must be an object")

    activity_type = activity.get("type")
    if activity_type not in ACTIVITY_TYPES:
        raise CashDrawerValidationError(f"type must be one of: {', '.join(ACTIVITY_TYPES)}")

    amount = parse_decimal(activity.get("amount"), "amount")
    if amount <= 0:
        raise CashDrawerValidationError("amount must be positive")

    payment_method = activity.get("payment_method", activity.get("paymentMethod"))
    if activity_type == ACTIVITY_SALE:
        if payment_method not in PAYMENT_METHODS:
            raise CashDrawerValidationError(
                f"sale activity requires payment_method in: {', '.join(PAYMENT_METHODS)}"
            )
    else:
        payment_method = None

    return {
        "type": activity_type,
        "amount": amount,
        "payment_method": payment_method,
        "invoice_id": activity.get("order_id", activity.get("invoice_id")),
        "note": activity.get("notes", activity.get("note")),
    }


def record_activity(session_id: int, activity, *, actor=None) -> CashDrawerSession:
    """
    Append an activity to an open session.

    Raises:
        SessionNotFoundError, SessionClosedError, CashDrawerValidationError
    """
    cleaned = _validate_activity(activity)

    def _op():
        session = _get_locked(session_id)
        if session.status != SESSION_STATUS_OPEN:
            raise SessionClosedError(session_id)

        now = utcnow()
        db.session.add(CashDrawerActivity(
            session_id=session.id,
            type=cleaned["type"],
            amount=cleaned["amount"],
            payment_method=cleaned["payment_method"],
            invoice_id=cleaned["invoice_id"],
            note=cleaned["note"],
            occurred_at=now,
            recorded_by_user_id=actor.id if actor is not None else None,
        ))
        session.last_activity_at = now
        db.session.commit()
        return session

    session = run_with_retry(_op)
    logger.debug("Recorded %s of %s on session %s", cleaned["type"], cleaned["amount"], session_id)

    audit_service.append(
        actor,
        audit_service.ACTION_CASH_DRAWER_ACTIVITY,
        f"Recorded {cleaned['type']} of {money_str(cleaned['amount'])}",
        entity_type="cash_drawer_session",
        entity_id=session_id,
    )
    return session


def close_session(session_id: int, counted_amount, *, actor) -> CashDrawerSession:
    """
    Count the drawer and close the session.

    Raises:
        SessionNotFoundError, SessionClosedError (including a second close)
    """
    counted_amount = parse_decimal(counted_amount, "counted_amount")

    def _op():
        session = _get_locked(session_id)
        if session.status != SESSION_STATUS_OPEN:
            raise SessionClosedError(session_id)

        summary = summarize_session(session)
        session.expected_amount = summary["expected_amount"]
        session.closing_amount = counted_amount
        session.difference = counted_amount - summary["expected_amount"]
        session.status = SESSION_STATUS_CLOSED
        session.closed_at = utcnow()
        session.closed_by_name = actor.name if actor is not None else None
        db.session.commit()
        return session

    session = run_with_retry(_op)
    logger.info("Closed cash drawer session %s, difference %s", session.id, session.difference)

    audit_service.append(
        actor,
        audit_service.ACTION_CLOSE_CASH_DRAWER,
        f"Closed cash drawer: counted {money_str(session.closing_amount)}, "
        f"expected {money_str(session.expected_amount)}, difference {money_str(session.difference)}",
        entity_type="cash_drawer_session",
        entity_id=session.id,
    )
    return session


def list_sessions(*, status: str | None = None, limit: int = 50) -> list[CashDrawerSession]:
    query = db.session.query(CashDrawerSession)
    if status:
        query = query.filter(CashDrawerSession.status == status)
    return query.order_by(CashDrawerSession.id.desc()).limit(limit).all()
