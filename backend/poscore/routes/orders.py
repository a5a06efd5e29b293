# Overview: Flask API routes for sales and refunds; parses input and returns JSON responses.

# backend/poscore/routes/orders.py
"""
Order API Routes

WHY: The till submits a basket once; the backend owns totals, stock and
invoice numbering so two tills can never oversell the same product.

DESIGN:
- POST /payment completes a sale in one transaction
- POST /refund refunds part or all of an invoice
- Tax rate and base currency come from business settings unless the
  request supplies them
- When session_id is given the sale is also recorded on that cash drawer
  session, after the sale has committed
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..services import payment_service, refund_service, currency_service, cash_drawer_service
from ..services.payment_service import SaleValidationError
from ..services.refund_service import OrderNotFoundError, OverRefundError
from ..services.stock_service import InsufficientStockError, ProductNotFoundError
from ..services.cash_drawer_service import SessionClosedError, SessionNotFoundError
from ..validation import ValidationError, money_str
from .errors import error_response, internal_error


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _stock_levels_to_json(levels):
    if levels is None:
        return None
    return [{"id": level["id"], "stock": money_str(level["stock"])} for level in levels]


def _display_total(amount, display_code: str | None, base_code: str) -> dict | None:
    if not display_code:
        return None
    table = currency_service.load_currency_table()
    display = currency_service.to_display(amount, display_code, base_code, table)
    display["amount"] = money_str(display["amount"])
    return display


def _record_sale_activity(session_id, order) -> str | None:
    """Attach a completed sale to a drawer session; returns a warning on failure."""
    try:
        cash_drawer_service.record_activity(
            session_id,
            {
                "type": "sale",
                "amount": order.total,
                "payment_method": order.payment_method,
                "order_id": order.invoice_id,
            },
            actor=g.current_user,
        )
        return None
    except (SessionNotFoundError, SessionClosedError, ValidationError) as e:
        current_app.logger.warning("Sale %s not recorded on session %s: %s", order.invoice_id, session_id, e)
        return str(e)


# =============================================================================
# SALES
# =============================================================================

@orders_bp.post("/payment")
@require_actor
def process_payment_route():
    """
    Complete a sale.

    Request body:
    {
        "items": [{"id": 1, "quantity": 2, "price": {"USD": "10.00"}, ...}],
        "payment_method": "cash" | "card",
        "tip": "5.00",                (optional)
        "discount": "10.00",          (optional)
        "customer_id": 7,             (optional)
        "customer_name": "Ana",       (optional)
        "session_id": 3,              (optional)
        "display_currency": "EUR"     (optional)
    }

    Returns:
        201: order and post-sale stock levels
        400: invalid input
        409: insufficient stock
    """
    try:
        data = request.get_json(silent=True) or {}

        # Tax rate and currency come from business settings only
        if "tax_rate" in data or "currency" in data:
            return error_response(
                "tax_rate and currency are set in business settings, not per sale",
                "VALIDATION_ERROR", 400,
            )

        settings = currency_service.get_business_settings()
        tax_rate = settings.tax_rate
        base_currency = settings.currency

        result = payment_service.process_sale(
            data.get("items"),
            tax_rate=tax_rate,
            base_currency=base_currency,
            cashier=g.current_user,
            payment_method=data.get("payment_method"),
            tip=data.get("tip", 0),
            discount=data.get("discount", 0),
            customer_id=data.get("customer_id"),
            customer_name=data.get("customer_name"),
        )

        body = {
            "order": result.order.to_dict(),
            "updated_stock_levels": _stock_levels_to_json(result.updated_stock_levels),
        }

        display = _display_total(result.order.total, data.get("display_currency"), base_currency)
        if display:
            body["display_total"] = display

        session_id = data.get("session_id")
        if session_id is not None:
            warning = _record_sale_activity(session_id, result.order)
            if warning:
                body["session_warning"] = warning

        return jsonify(body), 201

    except InsufficientStockError as e:
        return error_response(
            str(e), "INSUFFICIENT_STOCK", 409,
            product_id=e.product_id, requested=e.requested, available=e.available,
        )
    except ProductNotFoundError as e:
        return error_response(str(e), "VALIDATION_ERROR", 400, product_id=e.product_id)
    except ValidationError as e:
        return error_response(str(e), "VALIDATION_ERROR", 400)
    except Exception:
        current_app.logger.exception("Failed to process payment")
        return internal_error()


# =============================================================================
# REFUNDS
# =============================================================================

@orders_bp.post("/refund")
@require_actor
def process_refund_route():
    """
    Refund items of a completed order.

    Request body:
    {
        "invoice_id": "INV-000001",
        "items": [{"id": 1, "quantity": 1}],
        "restock": true,
        "base_currency": "USD"        (optional, must match the order currency)
    }

    Returns:
        201: updated order, refund transaction and restocked levels
        400: invalid input
        404: unknown invoice
        409: quantity exceeds what remains refundable
    """
    try:
        data = request.get_json(silent=True) or {}

        invoice_id = data.get("invoice_id")
        if not invoice_id:
            return error_response("invoice_id required", "VALIDATION_ERROR", 400)

        result = refund_service.process_refund(
            invoice_id,
            data.get("items"),
            restock=bool(data.get("restock", False)),
            cashier=g.current_user,
            base_currency=data.get("base_currency"),
        )

        return jsonify({
            "order": result.order.to_dict(),
            "refund": result.refund.to_dict(),
            "updated_stock_levels": _stock_levels_to_json(result.updated_stock_levels),
        }), 201

    except OrderNotFoundError as e:
        return error_response(str(e), "ORDER_NOT_FOUND", 404, invoice_id=e.invoice_id)
    except OverRefundError as e:
        return error_response(
            str(e), "OVER_REFUND", 409,
            item_id=e.item_id, requested=e.requested, remaining=e.remaining,
        )
    except ValidationError as e:
        return error_response(str(e), "VALIDATION_ERROR", 400)
    except Exception:
        current_app.logger.exception("Failed to process refund")
        return internal_error()


# =============================================================================
# LOOKUP
# =============================================================================

@orders_bp.get("/<invoice_id>")
def get_order_route(invoice_id: str):
    order = payment_service.get_order(invoice_id)
    if not order:
        return error_response(f"Order {invoice_id} not found", "ORDER_NOT_FOUND", 404)
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.get("/<invoice_id>/refunds")
def list_refunds_route(invoice_id: str):
    order = payment_service.get_order(invoice_id)
    if not order:
        return error_response(f"Order {invoice_id} not found", "ORDER_NOT_FOUND", 404)
    refunds = refund_service.list_refunds(invoice_id)
    return jsonify({"refunds": [r.to_dict() for r in refunds]}), 200
