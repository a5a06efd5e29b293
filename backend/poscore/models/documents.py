from __future__ import annotations

from ..extensions import db
from poscore.time_utils import to_utc_z


class DocumentSequence(db.Model):
    """
    Per-document-type counter for human-readable identifiers
    (INV-000001, REF-000001, PO-000001).

    Incremented with a single UPDATE so concurrent allocations never collide.
    """
    __tablename__ = "document_sequences"

    document_type = db.Column(db.String(32), primary_key=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )


class AuditLogEntry(db.Model):
    """
    Append-only, best-effort audit trail of mutating operations.

    - Written after the business transaction commits, never inside it.
    - No updates or deletes of existing entries.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_action_created", "action", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=True, index=True)
    user_name = db.Column(db.String(128), nullable=True)

    action = db.Column(db.String(64), nullable=False, index=True)
    details = db.Column(db.Text, nullable=True)

    entity_type = db.Column(db.String(64), nullable=True)
    entity_id = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "action": self.action,
            "details": self.details,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "created_at": to_utc_z(self.created_at),
        }
