from __future__ import annotations

from ..extensions import db
from poscore.time_utils import to_utc_z
from poscore.validation import money_str


PO_STATUS_ORDERED = "Ordered"
PO_STATUS_PARTIALLY_RECEIVED = "Partially Received"
PO_STATUS_RECEIVED = "Received"
PO_STATUS_CANCELLED = "Cancelled"


class PurchaseOrder(db.Model):
    """
    Purchase order placed with a supplier.

    LIFECYCLE:
    - Ordered: nothing received yet
    - Partially Received: some lines (or part of a line) received
    - Received: every line fully received
    - Cancelled: withdrawn before anything was received

    `status` is a cached value of a pure function over the lines'
    quantity_received; the receive service recomputes it on every mutation.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    po_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    # Suppliers are managed by the catalog; only the reference is kept here
    supplier_id = db.Column(db.Integer, nullable=False, index=True)
    supplier_name = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(32), nullable=False, default=PO_STATUS_ORDERED, index=True)
    total_cost = db.Column(db.Numeric(14, 4), nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    lines = db.relationship(
        "PurchaseOrderLine",
        backref="purchase_order",
        lazy=True,
        order_by="PurchaseOrderLine.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.po_number,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier_name,
            "status": self.status,
            "total_cost": money_str(self.total_cost),
            "items": [line.to_dict() for line in self.lines],
            "created_at": to_utc_z(self.created_at),
            "created_by_user_id": self.created_by_user_id,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "version_id": self.version_id,
        }


class PurchaseOrderLine(db.Model):
    """Ordered product line; quantity_received only ever grows, up to quantity."""
    __tablename__ = "purchase_order_lines"
    __table_args__ = (
        db.UniqueConstraint("purchase_order_id", "product_id", name="uq_po_lines_order_product"),
        db.CheckConstraint(
            "quantity_received >= 0 AND quantity_received <= quantity",
            name="ck_po_lines_received_bounds",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=True)

    quantity = db.Column(db.Numeric(14, 3), nullable=False)
    cost_price = db.Column(db.Numeric(14, 4), nullable=False)
    quantity_received = db.Column(db.Numeric(14, 3), nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": money_str(self.quantity),
            "cost_price": money_str(self.cost_price),
            "quantity_received": money_str(self.quantity_received),
        }
