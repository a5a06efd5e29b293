from decimal import Decimal

import pytest

from poscore.extensions import db
from poscore.models import AuditLogEntry, Product
from poscore.models.purchasing import (
    PO_STATUS_ORDERED,
    PO_STATUS_PARTIALLY_RECEIVED,
    PO_STATUS_RECEIVED,
    PO_STATUS_CANCELLED,
)
from poscore.services import audit_service, receive_service
from poscore.services.receive_service import (
    EmptyReceiptError,
    OverReceiptError,
    PurchaseOrderNotFoundError,
    PurchaseOrderStateError,
    ReceiveValidationError,
)
from poscore.validation import ValidationError

from conftest import make_product


def _stock(product_id):
    db.session.expire_all()
    return Decimal(db.session.get(Product, product_id).stock)


@pytest.fixture
def purchase_order(db_session, cashier, product):
    return receive_service.create_purchase_order(
        7,
        [{"product_id": product.id, "quantity": 10, "cost_price": "4.00"}],
        actor=cashier,
        supplier_name="Paper Supply Co",
    )


def test_create_purchase_order(db_session, cashier, purchase_order, product):
    assert purchase_order.po_number == "PO-000001"
    assert purchase_order.status == PO_STATUS_ORDERED
    assert purchase_order.total_cost == Decimal("40")
    assert purchase_order.lines[0].product_name == product.name
    assert purchase_order.lines[0].quantity_received == Decimal("0")

    entry = db_session.query(AuditLogEntry).one()
    assert entry.action == audit_service.ACTION_CREATE_PURCHASE_ORDER


def test_two_deliveries_complete_the_order(db_session, cashier, purchase_order, product):
    first = receive_service.receive_purchase_order("PO-000001", {str(product.id): 4}, actor=cashier)
    assert first.purchase_order.status == PO_STATUS_PARTIALLY_RECEIVED
    assert first.purchase_order.lines[0].quantity_received == Decimal("4")
    assert first.updated_stock_levels == [{"id": product.id, "stock": Decimal("14")}]

    second = receive_service.receive_purchase_order("PO-000001", {product.id: 6}, actor=cashier)
    assert second.purchase_order.status == PO_STATUS_RECEIVED
    assert second.purchase_order.lines[0].quantity_received == Decimal("10")
    assert _stock(product.id) == Decimal("20")


def test_over_receipt_rejects_whole_delivery(db_session, cashier, product):
    other = make_product(db_session, "Pens", "2.00", "0")
    receive_service.create_purchase_order(
        7,
        [
            {"product_id": product.id, "quantity": 5, "cost_price": "4.00"},
            {"product_id": other.id, "quantity": 2, "cost_price": "1.00"},
        ],
        actor=cashier,
    )

    with pytest.raises(OverReceiptError) as exc_info:
        receive_service.receive_purchase_order("PO-000001", {product.id: 5, other.id: 3}, actor=cashier)

    assert exc_info.value.item_id == other.id
    assert _stock(product.id) == Decimal("10")
    assert _stock(other.id) == Decimal("0")

    po = receive_service.get_purchase_order("PO-000001")
    assert po.status == PO_STATUS_ORDERED
    assert all(line.quantity_received == 0 for line in po.lines)


def test_empty_delivery_is_an_error(db_session, cashier, purchase_order, product):
    with pytest.raises(EmptyReceiptError):
        receive_service.receive_purchase_order("PO-000001", {product.id: 0}, actor=cashier)
    assert receive_service.get_purchase_order("PO-000001").status == PO_STATUS_ORDERED


def test_negative_quantity_is_rejected(db_session, cashier, purchase_order, product):
    with pytest.raises(ValidationError):
        receive_service.receive_purchase_order("PO-000001", {product.id: -1}, actor=cashier)


def test_product_not_on_order(db_session, cashier, purchase_order):
    with pytest.raises(ReceiveValidationError):
        receive_service.receive_purchase_order("PO-000001", {"9999": 1}, actor=cashier)


def test_unknown_purchase_order(db_session, cashier):
    with pytest.raises(PurchaseOrderNotFoundError):
        receive_service.receive_purchase_order("PO-404404", {"1": 1}, actor=cashier)


def test_fully_received_order_rejects_more_deliveries(db_session, cashier, purchase_order, product):
    receive_service.receive_purchase_order("PO-000001", {product.id: 10}, actor=cashier)
    with pytest.raises(PurchaseOrderStateError):
        receive_service.receive_purchase_order("PO-000001", {product.id: 1}, actor=cashier)


def test_cancel_before_receipt(db_session, cashier, purchase_order, product):
    cancelled = receive_service.cancel_purchase_order("PO-000001", actor=cashier)
    assert cancelled.status == PO_STATUS_CANCELLED
    assert cancelled.cancelled_at is not None

    with pytest.raises(PurchaseOrderStateError):
        receive_service.receive_purchase_order("PO-000001", {product.id: 1}, actor=cashier)


def test_cannot_cancel_after_receipt(db_session, cashier, purchase_order, product):
    receive_service.receive_purchase_order("PO-000001", {product.id: 2}, actor=cashier)
    with pytest.raises(PurchaseOrderStateError):
        receive_service.cancel_purchase_order("PO-000001", actor=cashier)


@pytest.mark.parametrize("items", [
    [],
    [{"product_id": 1, "quantity": 0, "cost_price": "1"}],
    [{"product_id": 424242, "quantity": 1, "cost_price": "1"}],
])
def test_create_rejects_bad_items(db_session, cashier, items):
    with pytest.raises(ValidationError):
        receive_service.create_purchase_order(7, items, actor=cashier)


def test_unit_sold_product_receives_whole_units_only(db_session, cashier, purchase_order, product):
    with pytest.raises(ValidationError):
        receive_service.receive_purchase_order(
            purchase_order.po_number, {str(product.id): "2.5"}, actor=cashier,
        )
    assert _stock(product.id) == Decimal("10")

    with pytest.raises(ValidationError):
        receive_service.create_purchase_order(
            7, [{"product_id": product.id, "quantity": "1.5", "cost_price": "4"}], actor=cashier,
        )


def test_weight_sold_product_receives_fractional_quantities(db_session, cashier, weighed_product):
    po = receive_service.create_purchase_order(
        7, [{"product_id": weighed_product.id, "quantity": "2.25", "cost_price": "1.20"}], actor=cashier,
    )

    result = receive_service.receive_purchase_order(
        po.po_number, {str(weighed_product.id): "2.25"}, actor=cashier,
    )

    assert result.purchase_order.status == PO_STATUS_RECEIVED
    assert _stock(weighed_product.id) == Decimal("27.75")
