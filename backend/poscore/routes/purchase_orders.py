# Overview: Flask API routes for purchase orders; parses input and returns JSON responses.

# backend/poscore/routes/purchase_orders.py
"""
Purchase Order API Routes

DESIGN:
- Create a purchase order (status: Ordered)
- Receive deliveries as product_id -> quantity maps; partial deliveries accumulate
- Cancel only while nothing has been received
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..services import receive_service
from ..services.receive_service import (
    PurchaseOrderNotFoundError,
    PurchaseOrderStateError,
    EmptyReceiptError,
    OverReceiptError,
)
from ..validation import ValidationError, money_str
from .errors import error_response, internal_error


purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


@purchase_orders_bp.post("")
@purchase_orders_bp.post("/")
@require_actor
def create_purchase_order_route():
    """
    Create a purchase order.

    Request body:
    {
        "supplier_id": 3,
        "supplier_name": "Acme Foods",   (optional)
        "items": [{"product_id": 1, "quantity": 10, "cost_price": "2.50"}]
    }
    """
    try:
        data = request.get_json(silent=True) or {}

        purchase_order = receive_service.create_purchase_order(
            data.get("supplier_id"),
            data.get("items"),
            actor=g.current_user,
            supplier_name=data.get("supplier_name"),
        )
        return jsonify({"purchase_order": purchase_order.to_dict()}), 201

    except ValidationError as e:
        return error_response(str(e), "VALIDATION_ERROR", 400)
    except Exception:
        current_app.logger.exception("Failed to create purchase order")
        return internal_error()


@purchase_orders_bp.get("/<po_id>")
def get_purchase_order_route(po_id: str):
    purchase_order = receive_service.get_purchase_order(po_id)
    if not purchase_order:
        return error_response(f"Purchase order {po_id} not found", "PURCHASE_ORDER_NOT_FOUND", 404)
    return jsonify({"purchase_order": purchase_order.to_dict()}), 200


@purchase_orders_bp.post("/<po_id>/receive")
@require_actor
def receive_purchase_order_route(po_id: str):
    """
    Receive a delivery against a purchase order.

    Request body:
    {
        "received_quantities": {"1": 4, "2": 0}
    }

    Returns:
        200: updated purchase order and stock levels
        400: invalid input or empty delivery
        404: unknown purchase order
        409: over-receipt, or order cancelled / already received
    """
    try:
        data = request.get_json(silent=True) or {}

        result = receive_service.receive_purchase_order(
            po_id,
            data.get("received_quantities"),
            actor=g.current_user,
        )
        return jsonify({
            "purchase_order": result.purchase_order.to_dict(),
            "updated_stock_levels": [
                {"id": level["id"], "stock": money_str(level["stock"])}
                for level in result.updated_stock_levels
            ],
        }), 200

    except PurchaseOrderNotFoundError as e:
        return error_response(str(e), "PURCHASE_ORDER_NOT_FOUND", 404, po_id=e.po_id)
    except OverReceiptError as e:
        return error_response(
            str(e), "OVER_RECEIPT", 409,
            item_id=e.item_id, ordered=e.ordered,
            already_received=e.already_received, requested=e.requested,
        )
    except EmptyReceiptError as e:
        return error_response(str(e), "EMPTY_RECEIPT", 400)
    except PurchaseOrderStateError as e:
        return error_response(str(e), "PURCHASE_ORDER_STATE", 409)
    except ValidationError as e:
        return error_response(str(e), "VALIDATION_ERROR", 400)
    except Exception:
        current_app.logger.exception("Failed to receive purchase order")
        return internal_error()


@purchase_orders_bp.post("/<po_id>/cancel")
@require_actor
def cancel_purchase_order_route(po_id: str):
    try:
        purchase_order = receive_service.cancel_purchase_order(po_id, actor=g.current_user)
        return jsonify({"purchase_order": purchase_order.to_dict()}), 200

    except PurchaseOrderNotFoundError as e:
        return error_response(str(e), "PURCHASE_ORDER_NOT_FOUND", 404, po_id=e.po_id)
    except PurchaseOrderStateError as e:
        return error_response(str(e), "PURCHASE_ORDER_STATE", 409)
    except Exception:
        current_app.logger.exception("Failed to cancel purchase order")
        return internal_error()
