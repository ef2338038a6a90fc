"""
HTTP boundary tests: status codes and the {"error", "message", "details"} shape.
"""


def _create_order(client, product, quantity=1, **headers):
    return client.post(
        "/api/orders",
        json={
            "customer_name": "Walk-in",
            "payment_method": "cash",
            "total_amount": 0.01,
            "items": [{"product_id": product.id, "quantity": quantity}],
        },
        headers=headers,
    )


def test_health(client, db_session):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.get_json()["checks"]["database"]["status"] == "healthy"


def test_create_and_fetch_order(client, db_session, make_product):
    product = make_product(sale_price="5.00", stock={"A-1": 3})

    response = _create_order(client, product, 2, **{"X-User-Id": "clerk-1"})

    assert response.status_code == 201
    body = response.get_json()
    assert body["total_amount"] == 10.0

    detail = client.get(f"/api/orders/{body['id']}").get_json()
    assert detail["status"] == "pending"
    assert detail["total_items"] == 2

    stock = client.get(f"/api/inventory/{product.id}").get_json()
    assert stock["total_on_hand"] == 1

    movements = client.get(f"/api/inventory/movements?product_id={product.id}").get_json()
    assert [m["performed_by"] for m in movements["items"]] == ["clerk-1"]


def test_insufficient_stock_error_shape(client, db_session, make_product):
    product = make_product(stock={"A-1": 1})

    response = _create_order(client, product, 5)

    assert response.status_code == 409
    assert response.get_json() == {
        "error": "INSUFFICIENT_STOCK",
        "message": "Insufficient stock for Widget: requested 5, available 1",
        "details": {"product_id": product.id, "requested": 5, "available": 1},
    }


def test_blank_actor_header_is_rejected(client, db_session, make_product):
    product = make_product(stock={"A-1": 1})

    response = _create_order(client, product, 1, **{"X-User-Id": "   "})

    assert response.status_code == 400
    assert response.get_json()["error"] == "VALIDATION_ERROR"


def test_invalid_transition_over_http(client, db_session, make_product):
    product = make_product(stock={"A-1": 1})
    order_id = _create_order(client, product).get_json()["id"]

    response = client.patch(f"/api/orders/{order_id}/status", json={"status": "delivered"})

    assert response.status_code == 409
    assert response.get_json()["error"] == "INVALID_ORDER_TRANSITION"


def test_unknown_order_is_404(client, db_session):
    response = client.get("/api/orders/does-not-exist")

    assert response.status_code == 404
    assert response.get_json()["error"] == "ORDER_NOT_FOUND"


def test_invoice_order_over_http(client, db_session, make_product, tax_rate):
    product = make_product(sale_price="100.00", stock={"A-1": 1})
    order_id = _create_order(client, product).get_json()["id"]

    response = client.post(
        f"/api/orders/{order_id}/invoice",
        json={"payments": [{"method": "cash", "amount": 60}, {"method": "card", "amount": 70}]},
    )
    assert response.status_code == 400
    assert response.get_json()["error"] == "PAYMENTS_EXCEED_TOTAL"

    response = client.post(f"/api/orders/{order_id}/invoice", json={})
    assert response.status_code == 201
    invoice = response.get_json()
    assert invoice["total_amount"] == 121.0

    again = client.post(f"/api/orders/{order_id}/invoice", json={})
    assert again.status_code == 409

    authorized = client.post(f"/api/invoices/{invoice['id']}/authorize")
    assert authorized.status_code == 200
    assert authorized.get_json()["status"] == "authorized"


def test_return_flow_over_http(client, db_session, make_product):
    product = make_product(stock={"General": 0})

    created = client.post("/api/returns", json={
        "customer_name": "Walk-in",
        "items": [{"product_id": product.id, "quantity": 1, "unit_price": 8}],
    })
    assert created.status_code == 201
    return_id = created.get_json()["id"]

    approved = client.post(f"/api/returns/{return_id}/approve")
    assert approved.status_code == 200
    assert approved.get_json()["total_amount"] == 8.0

    again = client.post(f"/api/returns/{return_id}/approve")
    assert again.status_code == 409
    assert again.get_json()["error"] == "RETURN_ALREADY_APPROVED"

    notes = client.get("/api/returns/credit-notes").get_json()
    assert len(notes["items"]) == 1


def test_reception_flow_over_http(client, db_session, make_product):
    product = make_product()

    created = client.post("/api/receptions", json={
        "supplier_id": "sup-1",
        "items": [{"product_id": product.id, "quantity_received": 2, "location_assigned": "R-1"}],
    })
    assert created.status_code == 201

    approved = client.post(f"/api/receptions/{created.get_json()['id']}/approve")
    assert approved.status_code == 200
    assert approved.get_json()["received_quantity"] == 2

    missing = client.post("/api/receptions/nope/approve")
    assert missing.status_code == 404


def test_unexpected_errors_are_masked(client, db_session, monkeypatch):
    from backoffice.services import order_service

    def boom(*args, **kwargs):
        raise RuntimeError("driver exploded")

    monkeypatch.setattr(order_service, "get_order_summary", boom)

    response = client.get("/api/orders/any")

    assert response.status_code == 500
    assert response.get_json() == {"error": "Internal server error"}
