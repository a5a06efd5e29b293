"""
HTTP API tests through the Flask test client.

Money travels as decimal strings; errors carry a machine-readable code.
"""

from decimal import Decimal

import pytest

from conftest import actor_headers, make_product, sale_item


# =============================================================================
# ACTOR RESOLUTION
# =============================================================================

def test_mutating_route_requires_actor(client, db_session, settings, product):
    response = client.post("/api/orders/payment", json={"items": [sale_item(product, 1)]})
    assert response.status_code == 401
    assert response.json["code"] == "UNAUTHENTICATED"


def test_inactive_actor_is_rejected(client, db_session, settings, cashier, product):
    cashier.is_active = False
    db_session.commit()

    response = client.post(
        "/api/orders/payment",
        json={"items": [sale_item(product, 1)], "payment_method": "cash"},
        headers=actor_headers(cashier),
    )
    assert response.status_code == 401


# =============================================================================
# ORDERS
# =============================================================================

def test_payment_uses_business_settings(client, db_session, settings, cashier):
    widget = make_product(db_session, "Widget", "25.00", "20")

    response = client.post(
        "/api/orders/payment",
        json={
            "items": [sale_item(widget, 4)],
            "payment_method": "cash",
            "tip": "5",
            "discount": "10",
            "display_currency": "CLP",
        },
        headers=actor_headers(cashier),
    )

    assert response.status_code == 201
    order = response.json["order"]
    assert order["invoice_id"] == "INV-000001"
    assert order["total"] == "102.2"
    assert order["tax_rate"] == "0.08"
    assert order["status"] == "Completed"
    assert response.json["updated_stock_levels"] == [{"id": widget.id, "stock": "16"}]
    assert response.json["display_total"] == {
        "currency": "CLP", "symbol": "CLP", "decimals": 0, "amount": "95046",
    }


def test_payment_insufficient_stock(client, db_session, settings, cashier, product):
    response = client.post(
        "/api/orders/payment",
        json={"items": [sale_item(product, 11)], "payment_method": "card"},
        headers=actor_headers(cashier),
    )

    assert response.status_code == 409
    body = response.json
    assert body["code"] == "INSUFFICIENT_STOCK"
    assert body["product_id"] == product.id
    assert body["requested"] == "11"
    assert body["available"] == "10"


def test_payment_validation_error(client, db_session, settings, cashier, product):
    response = client.post(
        "/api/orders/payment",
        json={"items": [sale_item(product, 0)], "payment_method": "cash"},
        headers=actor_headers(cashier),
    )
    assert response.status_code == 400
    assert response.json["code"] == "VALIDATION_ERROR"


@pytest.mark.parametrize("override", [{"tax_rate": "0"}, {"currency": "EUR"}])
def test_payment_rejects_per_sale_tax_or_currency(client, db_session, settings, cashier, product, override):
    response = client.post(
        "/api/orders/payment",
        json={"items": [sale_item(product, 1)], "payment_method": "cash", **override},
        headers=actor_headers(cashier),
    )
    assert response.status_code == 400
    assert response.json["code"] == "VALIDATION_ERROR"
    assert client.get("/api/orders/INV-000001").status_code == 404


def test_refund_in_foreign_currency_is_rejected(client, db_session, settings, cashier, product):
    sale = client.post(
        "/api/orders/payment",
        json={"items": [sale_item(product, 1)], "payment_method": "cash"},
        headers=actor_headers(cashier),
    )

    response = client.post(
        "/api/orders/refund",
        json={
            "invoice_id": sale.json["order"]["invoice_id"],
            "items": [{"id": product.id, "quantity": 1}],
            "base_currency": "MXN",
        },
        headers=actor_headers(cashier),
    )
    assert response.status_code == 400
    assert response.json["code"] == "VALIDATION_ERROR"


def test_payment_records_sale_on_session(client, db_session, settings, cashier, product):
    opened = client.post("/api/sessions", json={"opening_amount": "50"}, headers=actor_headers(cashier))
    session_id = opened.json["session"]["id"]

    response = client.post(
        "/api/orders/payment",
        json={"items": [sale_item(product, 2)], "payment_method": "cash", "session_id": session_id},
        headers=actor_headers(cashier),
    )
    assert response.status_code == 201
    assert "session_warning" not in response.json

    report = client.get(f"/api/sessions/{session_id}")
    activities = report.json["session"]["activities"]
    assert len(activities) == 1
    assert activities[0]["order_id"] == "INV-000001"
    assert activities[0]["amount"] == "21.6"
    assert report.json["summary"]["expected_amount"] == "71.6"


def test_payment_on_closed_session_still_completes(client, db_session, settings, cashier, product):
    opened = client.post("/api/sessions", json={"opening_amount": "50"}, headers=actor_headers(cashier))
    session_id = opened.json["session"]["id"]
    client.post(f"/api/sessions/{session_id}/close", json={"closing_amount": "50"}, headers=actor_headers(cashier))

    response = client.post(
        "/api/orders/payment",
        json={"items": [sale_item(product, 1)], "payment_method": "cash", "session_id": session_id},
        headers=actor_headers(cashier),
    )
    assert response.status_code == 201
    assert "closed" in response.json["session_warning"]


def test_refund_flow(client, db_session, settings, cashier):
    mug = make_product(db_session, "Mug", "20.00", "10")
    plate = make_product(db_session, "Plate", "20.00", "10")
    sale = client.post(
        "/api/orders/payment",
        json={
            "items": [sale_item(mug, 4), sale_item(plate, 1)],
            "payment_method": "card", "tip": "5", "discount": "10",
        },
        headers=actor_headers(cashier),
    )
    invoice_id = sale.json["order"]["invoice_id"]

    response = client.post(
        "/api/orders/refund",
        json={"invoice_id": invoice_id, "items": [{"id": mug.id, "quantity": 1}], "restock": True},
        headers=actor_headers(cashier),
    )
    assert response.status_code == 201
    assert response.json["refund"]["total_refund_amount"] == "21.44"
    assert response.json["order"]["status"] == "Partially Refunded"
    assert response.json["updated_stock_levels"] == [{"id": mug.id, "stock": "7"}]

    over = client.post(
        "/api/orders/refund",
        json={"invoice_id": invoice_id, "items": [{"id": plate.id, "quantity": 2}]},
        headers=actor_headers(cashier),
    )
    assert over.status_code == 409
    assert over.json["code"] == "OVER_REFUND"
    assert over.json["remaining"] == "1"

    refunds = client.get(f"/api/orders/{invoice_id}/refunds")
    assert [r["id"] for r in refunds.json["refunds"]] == ["REF-000001"]


def test_refund_unknown_order(client, db_session, settings, cashier):
    response = client.post(
        "/api/orders/refund",
        json={"invoice_id": "INV-000404", "items": [{"id": 1, "quantity": 1}]},
        headers=actor_headers(cashier),
    )
    assert response.status_code == 404
    assert response.json["code"] == "ORDER_NOT_FOUND"


def test_get_order_not_found(client, db_session):
    response = client.get("/api/orders/INV-000404")
    assert response.status_code == 404


# =============================================================================
# PURCHASE ORDERS
# =============================================================================

def test_purchase_order_lifecycle(client, db_session, cashier, product):
    created = client.post(
        "/api/purchase-orders",
        json={"supplier_id": 3, "items": [{"product_id": product.id, "quantity": 10, "cost_price": "4"}]},
        headers=actor_headers(cashier),
    )
    assert created.status_code == 201
    po_id = created.json["purchase_order"]["id"]
    assert created.json["purchase_order"]["status"] == "Ordered"

    first = client.post(
        f"/api/purchase-orders/{po_id}/receive",
        json={"received_quantities": {str(product.id): 4}},
        headers=actor_headers(cashier),
    )
    assert first.status_code == 200
    assert first.json["purchase_order"]["status"] == "Partially Received"

    over = client.post(
        f"/api/purchase-orders/{po_id}/receive",
        json={"received_quantities": {str(product.id): 7}},
        headers=actor_headers(cashier),
    )
    assert over.status_code == 409
    assert over.json["code"] == "OVER_RECEIPT"

    empty = client.post(
        f"/api/purchase-orders/{po_id}/receive",
        json={"received_quantities": {str(product.id): 0}},
        headers=actor_headers(cashier),
    )
    assert empty.status_code == 400
    assert empty.json["code"] == "EMPTY_RECEIPT"

    second = client.post(
        f"/api/purchase-orders/{po_id}/receive",
        json={"received_quantities": {str(product.id): 6}},
        headers=actor_headers(cashier),
    )
    assert second.json["purchase_order"]["status"] == "Received"
    assert second.json["updated_stock_levels"] == [{"id": product.id, "stock": "20"}]

    cancel = client.post(f"/api/purchase-orders/{po_id}/cancel", headers=actor_headers(cashier))
    assert cancel.status_code == 409


def test_receive_unknown_purchase_order(client, db_session, cashier):
    response = client.post(
        "/api/purchase-orders/PO-000404/receive",
        json={"received_quantities": {"1": 1}},
        headers=actor_headers(cashier),
    )
    assert response.status_code == 404
    assert response.json["code"] == "PURCHASE_ORDER_NOT_FOUND"


# =============================================================================
# CASH DRAWER SESSIONS
# =============================================================================

def test_session_lifecycle(client, db_session, cashier):
    opened = client.post("/api/sessions", json={"opening_amount": "100"}, headers=actor_headers(cashier))
    assert opened.status_code == 201
    session_id = opened.json["session"]["id"]

    again = client.post("/api/sessions", json={"opening_amount": "100"}, headers=actor_headers(cashier))
    assert again.status_code == 409
    assert again.json["code"] == "SESSION_ALREADY_OPEN"

    activity = client.post(
        f"/api/sessions/{session_id}/activity",
        json={"type": "pay-out", "amount": "30", "notes": "supplier cash"},
        headers=actor_headers(cashier),
    )
    assert activity.status_code == 201

    closed = client.post(
        f"/api/sessions/{session_id}/close", json={"closing_amount": "75"}, headers=actor_headers(cashier),
    )
    assert closed.status_code == 200
    assert closed.json["session"]["expected_amount"] == "70"
    assert closed.json["session"]["difference"] == "5"
    assert closed.json["summary"]["pay_outs"] == "30"

    twice = client.post(
        f"/api/sessions/{session_id}/close", json={"closing_amount": "75"}, headers=actor_headers(cashier),
    )
    assert twice.status_code == 409
    assert twice.json["code"] == "SESSION_CLOSED"

    late = client.post(
        f"/api/sessions/{session_id}/activity",
        json={"type": "pay-in", "amount": "1"},
        headers=actor_headers(cashier),
    )
    assert late.status_code == 409


def test_unknown_session(client, db_session, cashier):
    assert client.get("/api/sessions/999").status_code == 404
    response = client.post("/api/sessions/999/close", json={"closing_amount": "1"}, headers=actor_headers(cashier))
    assert response.status_code == 404


# =============================================================================
# CURRENCIES, AUDIT, HEALTH
# =============================================================================

def test_currency_endpoints(client, db_session, settings, cashier):
    listed = client.get("/api/currencies")
    assert listed.status_code == 200
    assert listed.json["base_currency"] == "USD"
    assert {c["code"] for c in listed.json["currencies"]} >= {"USD", "EUR", "CLP"}

    updated = client.put(
        "/api/currencies",
        json=[{"code": "EUR", "name": "Euro", "symbol": "€", "rate": "0.5", "decimals": 2}],
        headers=actor_headers(cashier),
    )
    assert updated.status_code == 200
    assert updated.json["rates_updated_at"] is not None

    converted = client.get("/api/currencies/convert?amount=10&from=USD&to=EUR")
    assert converted.json["converted"] == "5"

    bad = client.put("/api/currencies", json=[{"code": "EUR", "rate": "0"}], headers=actor_headers(cashier))
    assert bad.status_code == 400


def test_fetch_rates_with_disabled_source(client, db_session, settings, cashier):
    response = client.post("/api/currencies/fetch-rates", headers=actor_headers(cashier))
    assert response.status_code == 200
    assert response.json["refreshed"] is False
    assert response.json["source_enabled"] is False


def test_audit_log_lists_recent_first(client, db_session, settings, cashier, product):
    client.post("/api/sessions", json={"opening_amount": "10"}, headers=actor_headers(cashier))
    client.post(
        "/api/orders/payment",
        json={"items": [sale_item(product, 1)], "payment_method": "cash"},
        headers=actor_headers(cashier),
    )

    response = client.get("/api/audit-logs")
    actions = [entry["action"] for entry in response.json["audit_logs"]]
    assert actions == ["PROCESS_PAYMENT", "OPEN_CASH_DRAWER"]

    filtered = client.get("/api/audit-logs?action=OPEN_CASH_DRAWER")
    assert len(filtered.json["audit_logs"]) == 1

    future = client.get("/api/audit-logs?since=2999-01-01T00:00:00Z")
    assert future.json["audit_logs"] == []

    bad = client.get("/api/audit-logs?since=yesterday")
    assert bad.status_code == 400


@pytest.mark.parametrize("seeded, expected", [(False, "degraded"), (True, "healthy")])
def test_health(client, db_session, request, seeded, expected):
    if seeded:
        request.getfixturevalue("settings")
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json["status"] == expected
