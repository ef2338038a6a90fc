from decimal import Decimal

import pytest

from backoffice.errors import (
    INVALID_ORDER_TRANSITION,
    INVALID_PAYMENT_AMOUNT,
    INVOICE_NOT_FOUND,
    INVOICE_WITHOUT_ITEMS,
    ORDER_ALREADY_INVOICED,
    ORDER_NOT_FOUND,
    PAYMENTS_EXCEED_TOTAL,
)
from backoffice.models import Client, Invoice, InvoiceItem, Order, OrderItem, Transaction
from backoffice.services import invoice_service, order_service, payment_service
from backoffice.services.invoice_service import InvoiceError
from backoffice.services.payment_service import PaymentError
from backoffice.validation import ValidationError


# =============================================================================
# PAYMENT NORMALIZATION
# =============================================================================

def test_split_payments_over_total_are_rejected():
    with pytest.raises(PaymentError) as exc:
        payment_service.normalize_payments(
            [{"method": "cash", "amount": 60}, {"method": "card", "amount": 50}], 100
        )
    assert exc.value.code == PAYMENTS_EXCEED_TOTAL


@pytest.mark.parametrize("payments, status, paid", [
    ([{"method": "cash", "amount": 100}], "paid", Decimal("100.00")),
    ([{"method": "cash", "amount": 40}], "partial", Decimal("40.00")),
    ([{"method": "cash", "amount": "99.995"}], "paid", Decimal("100.00")),
    (None, "paid", Decimal("100.00")),
])
def test_payment_status_resolution(payments, status, paid):
    result = payment_service.normalize_payments(payments, 100)
    assert result.payment_status == status
    assert result.paid_amount == paid


@pytest.mark.parametrize("amount", [0, -5, "abc", None, True])
def test_invalid_split_amounts(amount):
    with pytest.raises(PaymentError) as exc:
        payment_service.normalize_payments([{"method": "cash", "amount": amount}], 100)
    assert exc.value.code == INVALID_PAYMENT_AMOUNT


def test_missing_method_falls_back():
    result = payment_service.normalize_payments([{"amount": 10}], 10, fallback_method="Card")
    assert result.primary_method == "card"
    assert [s.to_dict() for s in result.payments] == [{"method": "card", "amount": 10.0}]


def test_zero_total_without_payments_is_pending():
    result = payment_service.normalize_payments([], 0)
    assert result.payments == []
    assert result.payment_status == "pending"


# =============================================================================
# FROM ORDER
# =============================================================================

@pytest.fixture
def order_factory(db_session, make_product, tax_rate):
    def _make(quantity=2, price="50.00", client_id=None):
        product = make_product(sale_price=price, stock={"A-1": 20})
        return order_service.create_order(
            client_id=client_id,
            customer_name="Walk-in",
            items=[{"product_id": product.id, "quantity": quantity}],
            payment_method="cash",
        )["id"]

    return _make


def test_fully_paid_invoice_completes_order(db_session, order_factory):
    order_id = order_factory(quantity=2, price="50.00")

    result = invoice_service.create_invoice_from_order(order_id)

    assert result["net_amount"] == 100.0
    assert result["vat_amount"] == 21.0
    assert result["total_amount"] == 121.0
    assert result["payment_status"] == "paid"
    assert result["display_number"] == "B-0001-00000001"
    order = db_session.get(Order, order_id)
    assert order.status == "completed"
    assert order.invoice_id == result["id"]


def test_partially_paid_invoice_keeps_order_status(db_session, order_factory):
    order_id = order_factory(quantity=1, price="100.00")

    result = invoice_service.create_invoice_from_order(
        order_id, {"payments": [{"method": "cash", "amount": 50}]}
    )

    assert result["payment_status"] == "partial"
    order = db_session.get(Order, order_id)
    assert (order.status, order.payment_status) == ("pending", "partial")


def test_order_is_invoiced_once(db_session, order_factory):
    order_id = order_factory()
    invoice_service.create_invoice_from_order(order_id)

    with pytest.raises(InvoiceError) as exc:
        invoice_service.create_invoice_from_order(order_id)

    assert (exc.value.code, exc.value.status_code) == (ORDER_ALREADY_INVOICED, 409)
    assert db_session.query(Invoice).count() == 1


def test_invoice_unknown_order(db_session):
    with pytest.raises(InvoiceError) as exc:
        invoice_service.create_invoice_from_order("missing")
    assert (exc.value.code, exc.value.status_code) == (ORDER_NOT_FOUND, 404)


def test_picked_quantities_are_invoiced(db_session, order_factory):
    order_id = order_factory(quantity=4, price="10.00")
    item = db_session.query(OrderItem).filter_by(order_id=order_id).one()
    order_service.pick_order_item(item.id, 3)

    result = invoice_service.create_invoice_from_order(order_id)

    assert result["net_amount"] == 30.0
    line = db_session.query(InvoiceItem).filter_by(invoice_id=result["id"]).one()
    assert line.quantity == 3
    assert line.vat_rate == Decimal("21.00")


def test_client_identity_is_snapshotted(db_session, order_factory, make_client):
    client = make_client(name="Acme Retail", tax_id="30-1", address="Main St 1", tax_condition="RI")
    order_id = order_factory(client_id=client.id)

    result = invoice_service.create_invoice_from_order(order_id)

    db_session.get(Client, client.id).name = "Renamed"
    db_session.commit()
    invoice = db_session.get(Invoice, result["id"])
    assert (invoice.client_name, invoice.client_tax_id, invoice.client_tax_condition) == ("Acme Retail", "30-1", "RI")


def test_overpayment_rolls_back_the_invoice(db_session, order_factory):
    order_id = order_factory(quantity=1, price="10.00")

    with pytest.raises(PaymentError):
        invoice_service.create_invoice_from_order(
            order_id, {"payments": [{"method": "cash", "amount": 500}]}
        )

    assert db_session.query(Invoice).count() == 0
    assert db_session.get(Order, order_id).invoice_id is None
    # the number was never consumed
    assert invoice_service.create_invoice_from_order(order_id)["invoice_number"] == 1


def test_one_ledger_row_per_split(db_session, order_factory):
    order_id = order_factory(quantity=1, price="100.00")

    result = invoice_service.create_invoice_from_order(order_id, {
        "payments": [{"method": "cash", "amount": 21}, {"method": "card", "amount": 100}],
    })

    rows = db_session.query(Transaction).filter_by(reference_id=result["id"]).all()
    assert sorted((r.payment_method, r.amount) for r in rows) == [
        ("card", Decimal("100.00")),
        ("cash", Decimal("21.00")),
    ]
    assert all(r.type == "sale" for r in rows)
    assert result["payment_method"] == "cash"


# =============================================================================
# MANUAL
# =============================================================================

def test_manual_invoice_applies_line_discount(db_session):
    result = invoice_service.create_manual_invoice({
        "customer_name": "Walk-in",
        "items": [
            {"description": "Repair", "quantity": 2, "unit_price": "100.00", "discount_percentage": 10},
            {"description": "Cable", "quantity": 1, "unit_price": "10.00", "vat_rate": "10.5"},
        ],
        "payments": [{"method": "cash", "amount": "50"}],
    })

    # 180.00 @21% + 10.00 @10.5%
    assert result["net_amount"] == 190.0
    assert result["vat_amount"] == 38.85
    assert result["total_amount"] == 228.85
    assert result["payment_status"] == "partial"
    assert result["client_name"] == "Walk-in"


def test_manual_invoice_without_client_is_final_consumer(db_session):
    result = invoice_service.create_manual_invoice({
        "items": [{"description": "Service", "quantity": 1, "unit_price": 10}],
    })

    assert result["client_name"] == invoice_service.FINAL_CONSUMER


@pytest.mark.parametrize("items", [None, [], "nope"])
def test_manual_invoice_requires_items(db_session, items):
    with pytest.raises(InvoiceError) as exc:
        invoice_service.create_manual_invoice({"items": items})
    assert (exc.value.code, exc.value.status_code) == (INVOICE_WITHOUT_ITEMS, 400)


def test_manual_invoice_numbers_per_type_and_pos(db_session):
    line = [{"description": "x", "quantity": 1, "unit_price": 1}]
    a = invoice_service.create_manual_invoice({"items": line, "invoice_type": "A"})
    b1 = invoice_service.create_manual_invoice({"items": line})
    b2 = invoice_service.create_manual_invoice({"items": line, "point_of_sale": 2})
    b3 = invoice_service.create_manual_invoice({"items": line})

    assert [a["display_number"], b1["display_number"], b2["display_number"], b3["display_number"]] == [
        "A-0001-00000001", "B-0001-00000001", "B-0002-00000001", "B-0001-00000002",
    ]


# =============================================================================
# AUTHORIZATION / READ
# =============================================================================

def test_authorize_is_idempotent(db_session):
    invoice_id = invoice_service.create_manual_invoice({
        "items": [{"description": "x", "quantity": 1, "unit_price": 1}],
    })["id"]

    first = invoice_service.authorize_invoice(invoice_id)
    second = invoice_service.authorize_invoice(invoice_id)

    assert first["status"] == "authorized"
    assert len(first["authorization_code"]) == 14
    assert first["authorization_code"].isdigit()
    assert second["authorization_code"] == first["authorization_code"]
    assert second["authorization_expires_on"] == first["authorization_expires_on"]


def test_get_invoice(db_session):
    invoice_id = invoice_service.create_manual_invoice({
        "items": [{"description": "x", "quantity": 1, "unit_price": 1}],
    })["id"]

    payload = invoice_service.get_invoice(invoice_id)
    assert len(payload["items"]) == 1

    with pytest.raises(InvoiceError) as exc:
        invoice_service.get_invoice("missing")
    assert exc.value.code == INVOICE_NOT_FOUND


@pytest.mark.parametrize("status_path", [("cancelled",), ("picking", "packed", "delivered", "returned")])
def test_terminal_orders_cannot_be_invoiced(db_session, order_factory, status_path):
    order_id = order_factory(quantity=1, price="10.00")
    for status in status_path:
        order_service.transition_order_status(order_id, status)

    with pytest.raises(InvoiceError) as exc:
        invoice_service.create_invoice_from_order(order_id, {})

    assert (exc.value.code, exc.value.status_code) == (INVALID_ORDER_TRANSITION, 409)
    order = db_session.get(Order, order_id)
    assert (order.status, order.invoice_id) == (status_path[-1], None)
    assert db_session.query(Invoice).count() == 0


def test_manual_invoice_cannot_link_cancelled_order(db_session, order_factory):
    order_id = order_factory()
    order_service.transition_order_status(order_id, "cancelled")

    with pytest.raises(InvoiceError) as exc:
        invoice_service.create_manual_invoice({
            "order_id": order_id,
            "items": [{"description": "x", "quantity": 1, "unit_price": 1}],
        })

    assert exc.value.code == INVALID_ORDER_TRANSITION
    assert db_session.get(Order, order_id).status == "cancelled"


@pytest.mark.parametrize("field, value", [
    ("discount_percentage", "NaN"),
    ("vat_rate", "NaN"),
    ("unit_price", "NaN"),
    ("unit_price", "abc"),
    ("unit_price", "Infinity"),
    ("vat_rate", "-1"),
    ("discount_percentage", "150"),
])
def test_manual_invoice_rejects_bad_numbers(db_session, field, value):
    line = {"description": "x", "quantity": 1, "unit_price": 1, field: value}

    with pytest.raises(ValidationError):
        invoice_service.create_manual_invoice({"items": [line]})

    assert db_session.query(Invoice).count() == 0
