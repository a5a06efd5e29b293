# Overview: Purchase-order receiver; accumulates partial deliveries and drives stock upward.

"""
Purchase-Order Receiving Service

WHY: Suppliers deliver in parts. Each delivery increments stock and the
per-line quantity_received, and the PO status follows from the lines alone.

LIFECYCLE:
1. Ordered: created, nothing received
2. Partially Received: at least one delivery, some quantity outstanding
3. Received: every line's quantity_received == quantity
4. Cancelled: withdrawn before anything was received

DESIGN:
- A delivery is a map of product_id -> received quantity.
- One transaction per delivery: any over-receipt rejects the whole delivery.
- A delivery that receives nothing is an error, not a silent success.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from ..extensions import db
from ..models import Product, PurchaseOrder, PurchaseOrderLine
from ..models.purchasing import (
    PO_STATUS_ORDERED,
    PO_STATUS_PARTIALLY_RECEIVED,
    PO_STATUS_RECEIVED,
    PO_STATUS_CANCELLED,
)
from poscore.time_utils import utcnow
from poscore.validation import ValidationError, money_str, parse_decimal, parse_quantity
from . import audit_service
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .stock_service import increment_stock, stock_levels

logger = logging.getLogger(__name__)


class PurchaseOrderNotFoundError(Exception):
    """Raised when a purchase order is not found."""

    def __init__(self, po_id: str):
        super().__init__(f"Purchase order {po_id} not found")
        self.po_id = po_id


class ReceiveValidationError(ValidationError):
    """Raised when purchase order or delivery data fails validation."""
    pass


class PurchaseOrderStateError(Exception):
    """Raised when an operation is invalid for the current purchase order state."""
    pass


class EmptyReceiptError(Exception):
    """Raised when a delivery receives nothing on any line."""
    pass


class OverReceiptError(Exception):
    """Raised when a delivery would take a line past its ordered quantity."""

    def __init__(self, item_id: int, ordered: Decimal, already_received: Decimal, requested: Decimal):
        super().__init__(
            f"Cannot receive {requested} of item {item_id}: "
            f"{already_received} of {ordered} already received"
        )
        self.item_id = item_id
        self.ordered = ordered
        self.already_received = already_received
        self.requested = requested


@dataclass
class ReceiveResult:
    purchase_order: PurchaseOrder
    updated_stock_levels: list[dict]


def derive_purchase_order_status(lines) -> str:
    """
    PO status from per-line receipt state.

    Cancellation is a separate terminal state and is never derived here.
    """
    received_any = False
    all_received = True
    for line in lines:
        received = Decimal(line.quantity_received or 0)
        if received > 0:
            received_any = True
        if received < Decimal(line.quantity):
            all_received = False

    if not received_any:
        return PO_STATUS_ORDERED
    if all_received:
        return PO_STATUS_RECEIVED
    return PO_STATUS_PARTIALLY_RECEIVED


def _parse_product_id(value, field: str) -> int:
    if isinstance(value, bool):
        raise ReceiveValidationError(f"{field} must be an integer product id")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ReceiveValidationError(f"{field} must be an integer product id")


def _parse_received_quantities(received_quantities) -> dict[int, Decimal]:
    # JSON object keys arrive as strings
    if not isinstance(received_quantities, dict) or not received_quantities:
        raise ReceiveValidationError("received_quantities must be a non-empty object of product_id -> quantity")

    parsed = {}
    for key, value in received_quantities.items():
        product_id = _parse_product_id(key, f"received_quantities key {key!r}")
        parsed[product_id] = parse_decimal(value, f"received_quantities[{key}]")
    return parsed


def _get_locked(po_id: str) -> PurchaseOrder:
    purchase_order = lock_for_update(
        db.session.query(PurchaseOrder).filter_by(po_number=po_id)
    ).first()
    if not purchase_order:
        raise PurchaseOrderNotFoundError(po_id)
    return purchase_order


def _check_status_drift(purchase_order: PurchaseOrder) -> None:
    if purchase_order.status == PO_STATUS_CANCELLED:
        return
    expected = derive_purchase_order_status(purchase_order.lines)
    if purchase_order.status != expected:
        logger.warning(
            "Purchase order %s status drift: stored %r, derived %r",
            purchase_order.po_number, purchase_order.status, expected,
        )


def create_purchase_order(
    supplier_id: int,
    items,
    *,
    actor,
    supplier_name: str | None = None,
) -> PurchaseOrder:
    """
    Create a purchase order in Ordered status.

    Args:
        supplier_id: supplier reference
        items: list of {product_id, quantity, cost_price}
        actor: User placing the order
    """
    if isinstance(supplier_id, bool) or not isinstance(supplier_id, int):
        raise ReceiveValidationError("supplier_id must be an integer")
    if not isinstance(items, list) or not items:
        raise ReceiveValidationError("At least one item is required")

    cleaned = []
    seen = set()
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ReceiveValidationError(f"items[{index}] must be an object")
        product_id = _parse_product_id(raw.get("product_id", raw.get("productId")), f"items[{index}].product_id")
        if product_id in seen:
            raise ReceiveValidationError(f"Product {product_id} appears more than once")
        seen.add(product_id)

        product = db.session.get(Product, product_id)
        if product is None:
            raise ReceiveValidationError(f"Product {product_id} not found")

        quantity = parse_quantity(raw.get("quantity"), f"items[{index}].quantity", sell_by=product.sell_by)
        cost_price = parse_decimal(raw.get("cost_price", raw.get("costPrice")), f"items[{index}].cost_price")
        cleaned.append((product, quantity, cost_price))

    def _op():
        purchase_order = PurchaseOrder(
            po_number=next_document_number(document_type="PURCHASE_ORDER", prefix="PO"),
            supplier_id=supplier_id,
            supplier_name=supplier_name,
            status=PO_STATUS_ORDERED,
            total_cost=sum((q * c for _, q, c in cleaned), Decimal("0")),
            created_at=utcnow(),
            created_by_user_id=actor.id if actor is not None else None,
        )
        db.session.add(purchase_order)
        db.session.flush()

        for product, quantity, cost_price in cleaned:
            db.session.add(PurchaseOrderLine(
                purchase_order_id=purchase_order.id,
                product_id=product.id,
                product_name=product.name,
                quantity=quantity,
                cost_price=cost_price,
                quantity_received=Decimal("0"),
            ))

        db.session.commit()
        return purchase_order

    purchase_order = run_with_retry(_op)
    logger.info("Created purchase order %s for supplier %s", purchase_order.po_number, supplier_id)

    audit_service.append(
        actor,
        audit_service.ACTION_CREATE_PURCHASE_ORDER,
        f"Created purchase order {purchase_order.po_number} "
        f"({len(cleaned)} items, total cost {money_str(purchase_order.total_cost)})",
        entity_type="purchase_order",
        entity_id=purchase_order.po_number,
    )
    return purchase_order


def receive_purchase_order(po_id: str, received_quantities, *, actor) -> ReceiveResult:
    """
    Apply one delivery to a purchase order.

    Raises:
        PurchaseOrderNotFoundError: unknown PO
        PurchaseOrderStateError: cancelled or already fully received
        ReceiveValidationError: negative quantity or product not on the order
        EmptyReceiptError: nothing received on any line
        OverReceiptError: a line would exceed its ordered quantity
    """
    requested = _parse_received_quantities(received_quantities)

    def _op():
        purchase_order = _get_locked(po_id)
        _check_status_drift(purchase_order)

        if purchase_order.status == PO_STATUS_CANCELLED:
            raise PurchaseOrderStateError(f"Purchase order {po_id} is cancelled")
        if derive_purchase_order_status(purchase_order.lines) == PO_STATUS_RECEIVED:
            raise PurchaseOrderStateError(f"Purchase order {po_id} is already fully received")

        lines_by_product = {line.product_id: line for line in purchase_order.lines}
        for product_id in requested:
            if product_id not in lines_by_product:
                raise ReceiveValidationError(f"Product {product_id} is not on purchase order {po_id}")

        deliveries = [(pid, qty) for pid, qty in requested.items() if qty > 0]
        if not deliveries:
            raise EmptyReceiptError(f"Delivery for {po_id} receives nothing")

        adjusted: dict[int, Decimal] = {}
        for product_id, quantity in deliveries:
            line = lines_by_product[product_id]
            product = db.session.get(Product, product_id)
            if product is not None:
                quantity = parse_quantity(
                    quantity, f"received_quantities[{product_id}]", sell_by=product.sell_by
                )
            ordered = Decimal(line.quantity)
            already = Decimal(line.quantity_received or 0)
            if already + quantity > ordered:
                raise OverReceiptError(product_id, ordered, already, quantity)

            adjusted[product_id] = increment_stock(product_id, quantity)
            line.quantity_received = already + quantity

        purchase_order.status = derive_purchase_order_status(purchase_order.lines)
        db.session.commit()
        return purchase_order, adjusted

    purchase_order, adjusted = run_with_retry(_op)
    logger.info("Received delivery on %s (status %s)", purchase_order.po_number, purchase_order.status)

    audit_service.append(
        actor,
        audit_service.ACTION_RECEIVE_PURCHASE_ORDER,
        f"Received {len(adjusted)} items on purchase order {purchase_order.po_number}, "
        f"status {purchase_order.status}",
        entity_type="purchase_order",
        entity_id=purchase_order.po_number,
    )
    return ReceiveResult(purchase_order=purchase_order, updated_stock_levels=stock_levels(adjusted))


def cancel_purchase_order(po_id: str, *, actor) -> PurchaseOrder:
    """Cancel a purchase order that has not received anything yet."""

    def _op():
        purchase_order = _get_locked(po_id)
        if purchase_order.status == PO_STATUS_CANCELLED:
            raise PurchaseOrderStateError(f"Purchase order {po_id} is already cancelled")
        if derive_purchase_order_status(purchase_order.lines) != PO_STATUS_ORDERED:
            raise PurchaseOrderStateError(
                f"Purchase order {po_id} has received stock and cannot be cancelled"
            )

        purchase_order.status = PO_STATUS_CANCELLED
        purchase_order.cancelled_at = utcnow()
        purchase_order.cancelled_by_user_id = actor.id if actor is not None else None
        db.session.commit()
        return purchase_order

    purchase_order = run_with_retry(_op)
    logger.info("Cancelled purchase order %s", purchase_order.po_number)

    audit_service.append(
        actor,
        audit_service.ACTION_CANCEL_PURCHASE_ORDER,
        f"Cancelled purchase order {purchase_order.po_number}",
        entity_type="purchase_order",
        entity_id=purchase_order.po_number,
    )
    return purchase_order


def get_purchase_order(po_id: str) -> PurchaseOrder | None:
    return db.session.query(PurchaseOrder).filter_by(po_number=po_id).first()
