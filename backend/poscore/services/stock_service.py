# Overview: Stock ledger; the only writer of Product.stock.

"""
Stock Ledger Invariants (authoritative)

- Product.stock is never negative.
- A decrement is ONE conditional UPDATE:
      UPDATE products SET stock = stock - :q WHERE id = :id AND stock >= :q
  Never read-then-write from application code: two concurrent sales would
  both see enough stock and both apply.
- Concurrent writers on one product are serialized by the store's row lock,
  not by an application lock.
- Increments (receiving, restock) have no precondition.
- The ledger never commits. The caller's transaction owns commit/rollback,
  so an InsufficientStockError rolls back every adjustment made before it.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func, update

from ..extensions import db
from ..models import Product
from ..validation import WEIGHT_PLACES


class ProductNotFoundError(Exception):
    """Raised when a stock adjustment targets an unknown product."""

    def __init__(self, product_id: int):
        super().__init__(f"Product {product_id} not found")
        self.product_id = product_id


class InsufficientStockError(Exception):
    """Raised when a decrement would drive stock below zero."""

    def __init__(self, product_id: int, requested: Decimal, available: Decimal | None):
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {requested}, available {available}"
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


# Stores without a native decimal type (SQLite) keep stock as a binary
# float; every write is rounded back to the gram and comparisons allow
# half a gram of slack so 0.3 - 0.1 - 0.1 still covers a sale of 0.1.
STOCK_TOLERANCE = Decimal(5).scaleb(-(WEIGHT_PLACES + 1))


def _rounded(expr):
    return func.round(expr, WEIGHT_PLACES, type_=Product.stock.type)


def _current_stock(product_id: int) -> Decimal | None:
    # Column query: bypasses the identity map and reads the row as written
    value = db.session.query(Product.stock).filter(Product.id == product_id).scalar()
    return Decimal(value) if value is not None else None


def adjust_stock(product_id: int, delta) -> Decimal:
    """
    Apply a stock delta atomically and return the new stock level.

    Raises:
        InsufficientStockError: decrement larger than current stock
        ProductNotFoundError: unknown product
    """
    delta = Decimal(delta)
    if delta == 0:
        current = _current_stock(product_id)
        if current is None:
            raise ProductNotFoundError(product_id)
        return current

    stmt = update(Product).where(Product.id == product_id)
    if delta < 0:
        quantity = -delta
        stmt = stmt.where(Product.stock >= quantity - STOCK_TOLERANCE).values(
            stock=_rounded(Product.stock - quantity)
        )
    else:
        stmt = stmt.values(stock=_rounded(Product.stock + delta))

    result = db.session.execute(stmt.execution_options(synchronize_session="fetch"))
    if not result.rowcount:
        available = _current_stock(product_id)
        if available is None:
            raise ProductNotFoundError(product_id)
        raise InsufficientStockError(product_id, -delta, available)

    return _current_stock(product_id)


def decrement_stock(product_id: int, quantity) -> Decimal:
    """Remove `quantity` units; fails rather than going negative."""
    return adjust_stock(product_id, -Decimal(quantity))


def increment_stock(product_id: int, quantity) -> Decimal:
    """Add `quantity` units (receiving, restocking)."""
    return adjust_stock(product_id, Decimal(quantity))


def stock_levels(adjusted: dict[int, Decimal]) -> list[dict]:
    """Shape post-adjustment stock for API results."""
    return [{"id": pid, "stock": stock} for pid, stock in adjusted.items()]
