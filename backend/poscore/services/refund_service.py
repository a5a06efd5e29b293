# Overview: Refund allocator; proportional tax share, cumulative refund tracking and optional restock.

"""
Refund Processing Service

WHY: Refunds must be valued at the ORIGINAL sale price (the order's
immutable line snapshot), never the live catalog price, and must never let
the cumulative refund exceed what was paid.

ALLOCATION:
- refund_subtotal = sum(original unit price * requested quantity)
- proportion      = refund_subtotal / order.subtotal   (0 when subtotal <= 0)
- tax_refund      = order.tax * proportion
- total_refund    = refund_subtotal + tax_refund

The tax share is taken from the order rather than recomputed per item, so a
per-order discount is shared out the same way.

BOUNDS:
- Requested quantity may not exceed the remaining refundable quantity
  (original - sum of all prior refunds of that line). Rejected, never clamped.
- Cumulative refund_amount never exceeds order.total; a refund larger than
  the remainder is capped at it. The tip is never refunded, so a fully
  returned order with a tip stays Partially Refunded.
- Prices are read in the currency the order was sold in. Asking for any
  other base currency is rejected, since subtotal, tax and refund_amount
  are all stored in that currency.

STATUS (pure function of refund_amount vs total):
- 0                  -> Completed
- 0 < amount < total -> Partially Refunded
- amount ~= total    -> Fully Refunded
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func

from ..extensions import db
from ..models import CompletedOrder, RefundTransaction, RefundLine
from ..models.sales import (
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_PARTIALLY_REFUNDED,
    ORDER_STATUS_FULLY_REFUNDED,
)
from poscore.time_utils import utcnow
from poscore.validation import (
    WEIGHT_PLACES,
    ValidationError,
    is_close,
    money_str,
    parse_decimal,
    parse_quantity,
)
from . import audit_service, currency_service
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .stock_service import increment_stock, stock_levels

logger = logging.getLogger(__name__)


class OrderNotFoundError(Exception):
    """Raised when the original invoice does not exist."""

    def __init__(self, invoice_id: str):
        super().__init__(f"Order {invoice_id} not found")
        self.invoice_id = invoice_id


class RefundValidationError(ValidationError):
    """Raised when a refund request is malformed."""
    pass


class OverRefundError(Exception):
    """Raised when a line is refunded beyond its remaining quantity."""

    def __init__(self, item_id: int, requested: Decimal, remaining: Decimal):
        super().__init__(
            f"Cannot refund {requested} of item {item_id}; only {remaining} remain refundable"
        )
        self.item_id = item_id
        self.requested = requested
        self.remaining = remaining


@dataclass
class RefundResult:
    order: CompletedOrder
    refund: RefundTransaction
    updated_stock_levels: list[dict] | None


def derive_order_status(refund_amount, total) -> str:
    """Order status as a pure function of cumulative refund vs total."""
    refund_amount = Decimal(refund_amount or 0)
    if refund_amount <= 0:
        return ORDER_STATUS_COMPLETED
    if is_close(refund_amount, total) or refund_amount > Decimal(total):
        return ORDER_STATUS_FULLY_REFUNDED
    return ORDER_STATUS_PARTIALLY_REFUNDED


def refunded_quantities(order_id: int) -> dict[int, Decimal]:
    """Sum of refunded quantity per order line across all prior refunds."""
    rows = (
        db.session.query(RefundLine.order_line_id, func.sum(RefundLine.quantity))
        .join(RefundTransaction, RefundLine.refund_transaction_id == RefundTransaction.id)
        .filter(RefundTransaction.order_id == order_id)
        .group_by(RefundLine.order_line_id)
        .all()
    )
    step = Decimal(1).scaleb(-WEIGHT_PLACES)
    return {line_id: Decimal(str(qty or 0)).quantize(step) for line_id, qty in rows}


def _parse_requested(items) -> list[tuple[int, Decimal]]:
    if not isinstance(items, list) or not items:
        raise RefundValidationError("At least one item to refund is required")

    requested: dict[int, Decimal] = {}
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise RefundValidationError(f"items[{index}] must be an object")
        item_id = raw.get("id", raw.get("item_id"))
        if isinstance(item_id, bool) or not isinstance(item_id, int):
            raise RefundValidationError(f"items[{index}].id must be an integer")
        quantity = parse_decimal(raw.get("quantity"), f"items[{index}].quantity")
        if quantity <= 0:
            raise RefundValidationError(f"items[{index}].quantity must be positive")
        requested[item_id] = requested.get(item_id, Decimal("0")) + quantity
    return list(requested.items())


def _check_status_drift(order: CompletedOrder) -> None:
    expected = derive_order_status(order.refund_amount, order.total)
    if order.status != expected:
        logger.warning(
            "Order %s status drift: stored %r, derived %r",
            order.invoice_id, order.status, expected,
        )


def process_refund(
    invoice_id: str,
    items,
    *,
    restock: bool,
    cashier,
    base_currency: str | None = None,
) -> RefundResult:
    """
    Refund a subset of an order's lines.

    Args:
        invoice_id: original invoice
        items: list of {id (product id), quantity}
        restock: return the refunded quantities to stock
        cashier: User processing the refund
        base_currency: currency used to value the snapshot prices; must be
            the currency the order was sold in (the default)

    Raises:
        OrderNotFoundError, RefundValidationError, OverRefundError
    """
    requested = _parse_requested(items)
    table = currency_service.load_currency_table()

    def _op():
        order = lock_for_update(
            db.session.query(CompletedOrder).filter_by(invoice_id=invoice_id)
        ).first()
        if not order:
            raise OrderNotFoundError(invoice_id)

        _check_status_drift(order)
        if base_currency and base_currency != order.currency:
            raise RefundValidationError(
                f"Order {invoice_id} was sold in {order.currency}; refunds are priced in that currency"
            )
        currency = order.currency

        lines_by_product = {line.product_id: line for line in order.lines}
        already_refunded = refunded_quantities(order.id)

        refund_subtotal = Decimal("0")
        allocations = []
        for item_id, quantity in requested:
            line = lines_by_product.get(item_id)
            if line is None:
                raise RefundValidationError(f"Item {item_id} is not part of order {invoice_id}")
            quantity = parse_quantity(quantity, f"Refund quantity for item {item_id}", sell_by=line.sell_by)

            remaining = Decimal(line.quantity) - already_refunded.get(line.id, Decimal("0"))
            if quantity > remaining:
                raise OverRefundError(item_id, quantity, remaining)

            unit_price = currency_service.resolve_price(line.price, currency, order.currency, table)
            if unit_price is None:
                unit_price = Decimal(line.unit_price)
            line_amount = unit_price * quantity
            refund_subtotal += line_amount
            allocations.append((line, quantity, unit_price, line_amount))

        subtotal = Decimal(order.subtotal)
        proportion = refund_subtotal / subtotal if subtotal > 0 else Decimal("0")
        tax_refund = Decimal(order.tax) * proportion
        total_refund = refund_subtotal + tax_refund

        previous = Decimal(order.refund_amount or 0)
        remaining_money = max(Decimal(order.total) - previous, Decimal("0"))

        total_refund = min(total_refund, remaining_money)

        adjusted = None
        if restock:
            adjusted = {}
            for line, quantity, _, _ in allocations:
                adjusted[line.product_id] = increment_stock(line.product_id, quantity)

        new_refund_amount = previous + total_refund
        order.refund_amount = new_refund_amount
        order.status = derive_order_status(new_refund_amount, order.total)

        refund = RefundTransaction(
            refund_id=next_document_number(document_type="REFUND", prefix="REF"),
            order_id=order.id,
            invoice_id=order.invoice_id,
            created_at=utcnow(),
            cashier_user_id=cashier.id,
            cashier_name=cashier.name,
            refund_subtotal=refund_subtotal,
            tax_refund=tax_refund,
            total_refund_amount=total_refund,
            stock_restored=bool(restock),
        )
        db.session.add(refund)
        db.session.flush()

        for line, quantity, unit_price, line_amount in allocations:
            db.session.add(RefundLine(
                refund_transaction_id=refund.id,
                order_line_id=line.id,
                product_id=line.product_id,
                quantity=quantity,
                unit_price=unit_price,
                line_amount=line_amount,
            ))

        db.session.commit()
        return order, refund, adjusted

    order, refund, adjusted = run_with_retry(_op)
    logger.info(
        "Refunded %s against %s (status %s)",
        refund.total_refund_amount, order.invoice_id, order.status,
    )

    audit_service.append(
        cashier,
        audit_service.ACTION_PROCESS_REFUND,
        f"Refunded {money_str(refund.total_refund_amount)} on invoice {order.invoice_id} "
        f"({'restocked' if refund.stock_restored else 'not restocked'})",
        entity_type="refund_transaction",
        entity_id=refund.refund_id,
    )

    return RefundResult(
        order=order,
        refund=refund,
        updated_stock_levels=stock_levels(adjusted) if adjusted is not None else None,
    )


def list_refunds(invoice_id: str) -> list[RefundTransaction]:
    return (
        db.session.query(RefundTransaction)
        .filter_by(invoice_id=invoice_id)
        .order_by(RefundTransaction.id)
        .all()
    )
