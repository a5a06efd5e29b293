from __future__ import annotations

from ..extensions import db
from poscore.time_utils import to_utc_z
from poscore.validation import money_str


ORDER_STATUS_COMPLETED = "Completed"
ORDER_STATUS_PARTIALLY_REFUNDED = "Partially Refunded"
ORDER_STATUS_FULLY_REFUNDED = "Fully Refunded"

PAYMENT_METHODS = ("cash", "card")


class CompletedOrder(db.Model):
    """
    Completed sale (invoice).

    Created exactly once by the payment processor. Afterwards only the refund
    allocator touches it, and only `status` and `refund_amount`.

    INVARIANTS:
    - total = (subtotal - discount) * (1 + tax_rate) + tip at creation
    - refund_amount <= total (within 0.01)
    - status is derived from refund_amount vs total
    """
    __tablename__ = "completed_orders"
    __table_args__ = (
        db.Index("ix_completed_orders_created", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.String(32), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    cashier_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    cashier_name = db.Column(db.String(128), nullable=False)

    # Base currency the amounts below are denominated in
    currency = db.Column(db.String(8), nullable=False)

    subtotal = db.Column(db.Numeric(14, 4), nullable=False)
    discount = db.Column(db.Numeric(14, 4), nullable=False, default=0)
    tax_rate = db.Column(db.Numeric(6, 4), nullable=False, default=0)
    tax = db.Column(db.Numeric(14, 4), nullable=False)
    tip = db.Column(db.Numeric(14, 4), nullable=False, default=0)
    total = db.Column(db.Numeric(14, 4), nullable=False)

    payment_method = db.Column(db.String(16), nullable=False, index=True)  # cash, card
    status = db.Column(db.String(32), nullable=False, default=ORDER_STATUS_COMPLETED, index=True)
    refund_amount = db.Column(db.Numeric(14, 4), nullable=False, default=0)

    customer_id = db.Column(db.Integer, nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    lines = db.relationship(
        "OrderLine",
        backref="order",
        lazy=True,
        order_by="OrderLine.line_number",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "invoice_id": self.invoice_id,
            "created_at": to_utc_z(self.created_at),
            "cashier_user_id": self.cashier_user_id,
            "cashier": self.cashier_name,
            "currency": self.currency,
            "items": [line.to_dict() for line in self.lines],
            "subtotal": money_str(self.subtotal),
            "discount": money_str(self.discount),
            "tax_rate": money_str(self.tax_rate),
            "tax": money_str(self.tax),
            "tip": money_str(self.tip),
            "total": money_str(self.total),
            "payment_method": self.payment_method,
            "status": self.status,
            "refund_amount": money_str(self.refund_amount),
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "version_id": self.version_id,
        }


class OrderLine(db.Model):
    """
    Immutable product snapshot on a completed order.

    Later catalog price changes never alter these rows.
    """
    __tablename__ = "order_lines"
    __table_args__ = (
        db.UniqueConstraint("order_id", "line_number", name="uq_order_lines_order_line"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("completed_orders.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.Integer, nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(128), nullable=True)
    sell_by = db.Column(db.String(16), nullable=False, default="unit")
    price = db.Column(db.JSON, nullable=False, default=dict)
    purchase_price = db.Column(db.JSON, nullable=False, default=dict)

    quantity = db.Column(db.Numeric(14, 3), nullable=False)
    # Price resolved in the order currency at sale time
    unit_price = db.Column(db.Numeric(14, 4), nullable=False)
    line_total = db.Column(db.Numeric(14, 4), nullable=False)

    def to_dict(self) -> dict:
        return {
            "line_number": self.line_number,
            "id": self.product_id,
            "product_id": self.product_id,
            "name": self.name,
            "category": self.category,
            "sell_by": self.sell_by,
            "price": dict(self.price or {}),
            "purchase_price": dict(self.purchase_price or {}),
            "quantity": money_str(self.quantity),
            "unit_price": money_str(self.unit_price),
            "line_total": money_str(self.line_total),
        }


class RefundTransaction(db.Model):
    """
    Append-only record of one refund against an invoice.

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "refund_transactions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    refund_id = db.Column(db.String(32), nullable=False, unique=True, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("completed_orders.id"), nullable=False, index=True)
    invoice_id = db.Column(db.String(32), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    cashier_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cashier_name = db.Column(db.String(128), nullable=False)

    refund_subtotal = db.Column(db.Numeric(14, 4), nullable=False)
    tax_refund = db.Column(db.Numeric(14, 4), nullable=False)
    total_refund_amount = db.Column(db.Numeric(14, 4), nullable=False)
    stock_restored = db.Column(db.Boolean, nullable=False, default=False)

    order = db.relationship("CompletedOrder", backref=db.backref("refunds", lazy=True))
    lines = db.relationship("RefundLine", backref="refund", lazy=True, order_by="RefundLine.id")

    def to_dict(self) -> dict:
        return {
            "id": self.refund_id,
            "original_invoice_id": self.invoice_id,
            "created_at": to_utc_z(self.created_at),
            "cashier": self.cashier_name,
            "items": [line.to_dict() for line in self.lines],
            "refund_subtotal": money_str(self.refund_subtotal),
            "tax_refund": money_str(self.tax_refund),
            "total_refund_amount": money_str(self.total_refund_amount),
            "stock_restored": self.stock_restored,
        }


class RefundLine(db.Model):
    """Refunded quantity of one order line."""
    __tablename__ = "refund_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    refund_transaction_id = db.Column(
        db.Integer, db.ForeignKey("refund_transactions.id"), nullable=False, index=True
    )
    order_line_id = db.Column(db.Integer, db.ForeignKey("order_lines.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, nullable=False)

    quantity = db.Column(db.Numeric(14, 3), nullable=False)
    unit_price = db.Column(db.Numeric(14, 4), nullable=False)
    line_amount = db.Column(db.Numeric(14, 4), nullable=False)

    order_line = db.relationship("OrderLine")

    def to_dict(self) -> dict:
        line = self.order_line
        return {
            "id": self.product_id,
            "product_id": self.product_id,
            "name": line.name if line else None,
            "quantity": money_str(self.quantity),
            "unit_price": money_str(self.unit_price),
            "line_amount": money_str(self.line_amount),
        }
