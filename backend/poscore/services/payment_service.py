# Overview: Sale/payment processor; totals, stock decrement and order creation in one transaction.

"""
Sale/Payment Processing Service

WHY: A sale mutates money and inventory together. Either every line is
decremented and the invoice exists, or nothing happened at all.

ALGORITHM (one atomic transaction):
1. subtotal = sum(price_in_base(item) * quantity)
2. subtotal_after_discount = subtotal - discount   (flat amount, not clamped)
3. tax = subtotal_after_discount * tax_rate
   total = subtotal_after_discount + tax + tip
4. Stock ledger decrement per line; InsufficientStockError aborts everything
5. Allocate invoice id, persist CompletedOrder (status Completed, refund 0)
6. After commit: audit entry (best-effort)

PRICING:
- Price maps on incoming items are a snapshot from the till and are trusted.
- Items without a price map are priced from the live catalog.
- The snapshot is frozen on the order lines; later catalog edits never
  touch a historical order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from ..extensions import db
from ..models import CompletedOrder, OrderLine, Product
from ..models.sales import ORDER_STATUS_COMPLETED, PAYMENT_METHODS
from poscore.time_utils import utcnow
from poscore.validation import ValidationError, parse_decimal, parse_quantity, money_str
from . import audit_service, currency_service
from .concurrency import run_with_retry
from .document_service import next_document_number
from .stock_service import decrement_stock, stock_levels

logger = logging.getLogger(__name__)


class SaleValidationError(ValidationError):
    """Raised when a sale request is malformed."""
    pass


@dataclass
class SaleLineInput:
    product_id: int
    quantity: Decimal
    name: str
    category: str | None
    sell_by: str
    price: dict
    purchase_price: dict


@dataclass
class SaleTotals:
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    tip: Decimal
    total: Decimal
    unit_prices: list[Decimal] = field(default_factory=list)


@dataclass
class SaleResult:
    order: CompletedOrder
    updated_stock_levels: list[dict]


def _snapshot_price_map(price_map) -> dict:
    """Normalize a price map to {code: decimal string} for storage."""
    if price_map is None:
        return {}
    if not isinstance(price_map, dict):
        raise SaleValidationError("price must be an object keyed by currency code")
    return {
        str(code): money_str(parse_decimal(value, f"price[{code}]"))
        for code, value in price_map.items()
        if value is not None
    }


def normalize_items(items) -> list[SaleLineInput]:
    """
    Validate raw item dicts and freeze their product snapshot.

    Items may omit `price`; those are looked up in the catalog.
    """
    if not isinstance(items, list) or not items:
        raise SaleValidationError("At least one order item is required")

    seen: set[int] = set()
    lines = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise SaleValidationError(f"items[{index}] must be an object")

        product_id = raw.get("id", raw.get("product_id"))
        if isinstance(product_id, bool) or not isinstance(product_id, int):
            raise SaleValidationError(f"items[{index}].id must be an integer product id")
        if product_id in seen:
            raise SaleValidationError(f"Product {product_id} appears more than once; merge the lines")
        seen.add(product_id)

        if raw.get("price") is None:
            product = db.session.get(Product, product_id)
            if product is None:
                raise SaleValidationError(f"Product {product_id} not found")
            name, category, sell_by = product.name, product.category, product.sell_by
            price, purchase_price = product.price, product.purchase_price
        else:
            name = raw.get("name") or f"Product {product_id}"
            category = raw.get("category")
            sell_by = raw.get("sell_by", raw.get("sellBy", "unit"))
            price = raw.get("price")
            purchase_price = raw.get("purchase_price", raw.get("purchasePrice"))

        if sell_by not in ("unit", "weight"):
            raise SaleValidationError(f"items[{index}].sell_by must be 'unit' or 'weight'")

        quantity = parse_quantity(raw.get("quantity"), f"items[{index}].quantity", sell_by=sell_by)

        lines.append(SaleLineInput(
            product_id=product_id,
            quantity=quantity,
            name=name,
            category=category,
            sell_by=sell_by,
            price=_snapshot_price_map(price),
            purchase_price=_snapshot_price_map(purchase_price),
        ))
    return lines


def calculate_totals(
    lines: list[SaleLineInput],
    *,
    tax_rate: Decimal,
    base_currency: str,
    tip: Decimal,
    discount: Decimal,
    table,
) -> SaleTotals:
    """Pure totals computation for a set of validated lines."""
    subtotal = Decimal("0")
    unit_prices = []
    for line in lines:
        unit_price = currency_service.resolve_price(line.price, base_currency, base_currency, table)
        if unit_price is None:
            raise SaleValidationError(
                f"Product {line.product_id} has no price in base currency {base_currency}"
            )
        unit_prices.append(unit_price)
        subtotal += unit_price * line.quantity

    subtotal_after_discount = subtotal - discount
    tax = subtotal_after_discount * tax_rate
    total = subtotal_after_discount + tax + tip
    return SaleTotals(
        subtotal=subtotal,
        discount=discount,
        tax=tax,
        tip=tip,
        total=total,
        unit_prices=unit_prices,
    )


def process_sale(
    items,
    *,
    tax_rate,
    base_currency: str,
    cashier,
    payment_method: str,
    tip=0,
    discount=0,
    customer_id: int | None = None,
    customer_name: str | None = None,
) -> SaleResult:
    """
    Complete a sale: decrement stock for every line and persist the invoice.

    Args:
        items: list of {id, quantity, price?, purchase_price?, name?, category?, sell_by?}
        tax_rate: fraction, e.g. 0.08
        base_currency: currency the order is denominated in
        cashier: User processing the sale
        payment_method: "cash" or "card"
        tip, discount: flat amounts in base currency

    Returns:
        SaleResult with the new order and post-decrement stock per product

    Raises:
        SaleValidationError: malformed request
        InsufficientStockError: any line lacks stock (nothing is persisted)
    """
    if payment_method not in PAYMENT_METHODS:
        raise SaleValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")

    tax_rate = parse_decimal(tax_rate, "tax_rate")
    tip = parse_decimal(tip or 0, "tip")
    discount = parse_decimal(discount or 0, "discount")

    lines = normalize_items(items)
    table = currency_service.load_currency_table()
    totals = calculate_totals(
        lines,
        tax_rate=tax_rate,
        base_currency=base_currency,
        tip=tip,
        discount=discount,
        table=table,
    )

    def _op():
        adjusted: dict[int, Decimal] = {}
        for line in lines:
            adjusted[line.product_id] = decrement_stock(line.product_id, line.quantity)

        invoice_id = next_document_number(document_type="INVOICE", prefix="INV")
        order = CompletedOrder(
            invoice_id=invoice_id,
            created_at=utcnow(),
            cashier_user_id=cashier.id,
            cashier_name=cashier.name,
            currency=base_currency,
            subtotal=totals.subtotal,
            discount=totals.discount,
            tax_rate=tax_rate,
            tax=totals.tax,
            tip=totals.tip,
            total=totals.total,
            payment_method=payment_method,
            status=ORDER_STATUS_COMPLETED,
            refund_amount=Decimal("0"),
            customer_id=customer_id,
            customer_name=customer_name,
        )
        db.session.add(order)
        db.session.flush()

        for number, (line, unit_price) in enumerate(zip(lines, totals.unit_prices), start=1):
            db.session.add(OrderLine(
                order_id=order.id,
                line_number=number,
                product_id=line.product_id,
                name=line.name,
                category=line.category,
                sell_by=line.sell_by,
                price=line.price,
                purchase_price=line.purchase_price,
                quantity=line.quantity,
                unit_price=unit_price,
                line_total=unit_price * line.quantity,
            ))

        db.session.commit()
        return order, adjusted

    order, adjusted = run_with_retry(_op)
    logger.info("Processed sale %s total=%s lines=%d", order.invoice_id, totals.total, len(lines))

    audit_service.append(
        cashier,
        audit_service.ACTION_PROCESS_PAYMENT,
        f"Processed payment for invoice {order.invoice_id}, total {money_str(totals.total)} "
        f"{base_currency} ({payment_method})",
        entity_type="completed_order",
        entity_id=order.invoice_id,
    )

    return SaleResult(order=order, updated_stock_levels=stock_levels(adjusted))


def get_order(invoice_id: str) -> CompletedOrder | None:
    return db.session.query(CompletedOrder).filter_by(invoice_id=invoice_id).first()
