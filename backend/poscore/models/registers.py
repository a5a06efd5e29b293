from __future__ import annotations

from ..extensions import db
from poscore.time_utils import to_utc_z
from poscore.validation import money_str


SESSION_STATUS_OPEN = "open"
SESSION_STATUS_CLOSED = "closed"

ACTIVITY_SALE = "sale"
ACTIVITY_PAY_IN = "pay-in"
ACTIVITY_PAY_OUT = "pay-out"
ACTIVITY_TYPES = (ACTIVITY_SALE, ACTIVITY_PAY_IN, ACTIVITY_PAY_OUT)


class CashDrawerSession(db.Model):
    """
    Cash drawer session (one cashier's till from open to close).

    WHY: Cashier accountability. Each session has an opening float, an
    append-only activity log, and a counted close with a signed difference.

    LIFECYCLE:
    - open: activities may be appended
    - closed: counted, difference calculated

    IMMUTABLE: Once closed, session cannot be reopened or modified.
    At most one open session per user (partial unique index).
    """
    __tablename__ = "cash_drawer_sessions"
    __table_args__ = (
        db.Index(
            "uq_cash_drawer_sessions_user_open",
            "user_id",
            unique=True,
            sqlite_where=db.text("status = 'open'"),
            postgresql_where=db.text("status = 'open'"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=SESSION_STATUS_OPEN, index=True)

    opening_amount = db.Column(db.Numeric(14, 4), nullable=False, default=0)
    closing_amount = db.Column(db.Numeric(14, 4), nullable=True)  # Counted cash, set when closing
    expected_amount = db.Column(db.Numeric(14, 4), nullable=True)  # opening + cash sales + pay-ins - pay-outs
    difference = db.Column(db.Numeric(14, 4), nullable=True)  # closing - expected

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    opened_by_name = db.Column(db.String(128), nullable=False)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_by_name = db.Column(db.String(128), nullable=True)

    last_activity_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    activities = db.relationship(
        "CashDrawerActivity",
        backref="session",
        lazy=True,
        order_by="CashDrawerActivity.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "status": self.status,
            "is_open": self.status == SESSION_STATUS_OPEN,
            "opening_amount": money_str(self.opening_amount),
            "closing_amount": money_str(self.closing_amount),
            "expected_amount": money_str(self.expected_amount),
            "difference": money_str(self.difference),
            "opened_at": to_utc_z(self.opened_at),
            "opened_by": self.opened_by_name,
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "closed_by": self.closed_by_name,
            "activities": [a.to_dict() for a in self.activities],
            "version_id": self.version_id,
        }


class CashDrawerActivity(db.Model):
    """
    Append-only cash movement within a session.

    TYPES:
    - sale: takings for an order (payment_method cash or card)
    - pay-in: cash added to the drawer
    - pay-out: cash removed from the drawer

    Amount is always positive; direction comes from the type.
    """
    __tablename__ = "cash_drawer_activities"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_cash_activities_amount_positive"),
        db.Index("ix_cash_activities_session_occurred", "session_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("cash_drawer_sessions.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    amount = db.Column(db.Numeric(14, 4), nullable=False)

    payment_method = db.Column(db.String(16), nullable=True)
    invoice_id = db.Column(db.String(32), nullable=True, index=True)
    note = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    recorded_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "type": self.type,
            "amount": money_str(self.amount),
            "payment_method": self.payment_method,
            "order_id": self.invoice_id,
            "notes": self.note,
            "timestamp": to_utc_z(self.occurred_at),
        }
