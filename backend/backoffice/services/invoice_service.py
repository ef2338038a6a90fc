# Overview: Invoicing; issue invoices from orders or manual lines, and authorize them.

"""
Invoicing

RULES:
- An order is invoiced at most once (orders.invoice_id is unique and checked
  under the order row lock).
- Invoice numbers come from the document sequencer inside the same
  transaction, so a rolled-back invoice never burns a number.
- Client identity is copied onto the invoice at issuance.
- Amounts are rounded to cents at every boundary: line, net, vat, total.
- An invoiced order moves to 'completed' only when fully paid.
"""

from __future__ import annotations

import secrets
from datetime import timedelta
from decimal import Decimal, InvalidOperation

from flask import current_app

from ..errors import (
    DomainError,
    INVALID_ORDER_TRANSITION,
    INVOICE_NOT_FOUND,
    INVOICE_WITHOUT_ITEMS,
    ORDER_ALREADY_INVOICED,
    ORDER_NOT_FOUND,
    ORDER_WITHOUT_ITEMS,
)
from ..extensions import db
from ..models import Client, Invoice, InvoiceItem, Order, OrderItem
from ..money import ZERO_MONEY, to_decimal, to_money
from ..time_utils import utcnow
from ..validation import ValidationError, parse_positive_int
from . import document_service, payment_service, settings_service
from .audit_service import record_audit
from .concurrency import atomic, lock_for_update
from .identifier_service import new_id
from .order_service import STATUS_CANCELLED, STATUS_COMPLETED, STATUS_RETURNED


STATUS_ISSUED = "issued"
STATUS_AUTHORIZED = "authorized"

FINAL_CONSUMER = "Consumidor Final"
DEFAULT_LINE_VAT_RATE = Decimal("21")
DEFAULT_ITEM_DESCRIPTION = "Product"


class InvoiceError(DomainError):
    default_code = INVOICE_NOT_FOUND
    default_status = 404


def _invoice_header(options: dict) -> tuple[str, int]:
    invoice_type = str(options.get("invoice_type") or current_app.config.get("DEFAULT_INVOICE_TYPE") or "B")
    invoice_type = invoice_type.strip().upper()
    raw_pos = options.get("point_of_sale") or current_app.config.get("DEFAULT_POINT_OF_SALE") or 1
    try:
        point_of_sale = parse_positive_int(raw_pos, "point_of_sale")
    except ValueError as e:
        raise ValidationError(str(e), details={"point_of_sale": raw_pos})
    return invoice_type, point_of_sale


def _client_snapshot(client_id, fallback_name: str | None) -> dict:
    client = None
    if client_id:
        client = db.session.query(Client).filter(Client.id == client_id).first()
    if client is None:
        return {
            "client_id": None,
            "client_name": fallback_name or FINAL_CONSUMER,
            "client_tax_id": None,
            "client_address": None,
            "client_tax_condition": FINAL_CONSUMER,
        }
    return {
        "client_id": client.id,
        "client_name": client.name or fallback_name or FINAL_CONSUMER,
        "client_tax_id": client.tax_id,
        "client_address": client.address,
        "client_tax_condition": client.tax_condition or FINAL_CONSUMER,
    }


def _lock_uninvoiced_order(order_id) -> Order:
    order = lock_for_update(
        db.session.query(Order).filter(Order.id == order_id, Order.deleted_at.is_(None))
    ).first()
    if order is None:
        raise InvoiceError("Order not found", code=ORDER_NOT_FOUND, status_code=404)
    if order.invoice_id:
        raise InvoiceError(
            "Order already invoiced",
            code=ORDER_ALREADY_INVOICED,
            status_code=409,
            details={"invoice_id": order.invoice_id},
        )
    if order.status in (STATUS_CANCELLED, STATUS_RETURNED):
        raise InvoiceError(
            f"Cannot invoice an order that is {order.status}",
            code=INVALID_ORDER_TRANSITION,
            status_code=409,
            details={"status": order.status},
        )
    return order


def _persist_invoice(
    *,
    header: dict,
    lines: list[dict],
    net: Decimal,
    vat: Decimal,
    total: Decimal,
    payments: payment_service.NormalizedPayments,
    order: Order | None,
    notes: str | None,
    user_id,
) -> Invoice:
    invoice_type, point_of_sale = header["invoice_type"], header["point_of_sale"]
    number = document_service.next_invoice_number(invoice_type, point_of_sale)
    snapshot = header["client"]

    invoice = Invoice(
        id=new_id(),
        order_id=order.id if order is not None else None,
        invoice_type=invoice_type,
        point_of_sale=point_of_sale,
        invoice_number=number,
        net_amount=net,
        vat_amount=vat,
        exempt_amount=ZERO_MONEY,
        total_amount=total,
        status=STATUS_ISSUED,
        payment_method=payments.primary_method,
        payment_status=payments.payment_status,
        paid_amount=payments.paid_amount,
        notes=notes,
        created_by=str(user_id) if user_id is not None else None,
        issue_date=utcnow(),
        **snapshot,
    )
    db.session.add(invoice)
    db.session.flush()

    for line in lines:
        db.session.add(InvoiceItem(id=new_id(), invoice_id=invoice.id, **line))

    payment_service.register_invoice_payments(
        invoice_id=invoice.id,
        client_id=snapshot["client_id"],
        invoice_label=invoice.display_number,
        payments=payments.payments,
    )

    if order is not None:
        order.invoice_id = invoice.id
        order.payment_status = payments.payment_status
        if payments.payment_status == payment_service.PAYMENT_STATUS_PAID:
            order.status = STATUS_COMPLETED
        order.updated_at = utcnow()

    db.session.flush()
    return invoice


def _summary(invoice: Invoice) -> dict:
    return {
        "id": invoice.id,
        "invoice_type": invoice.invoice_type,
        "point_of_sale": invoice.point_of_sale,
        "invoice_number": invoice.invoice_number,
        "display_number": invoice.display_number,
        "status": invoice.status,
        "client_name": invoice.client_name,
        "net_amount": float(invoice.net_amount),
        "vat_amount": float(invoice.vat_amount),
        "total_amount": float(invoice.total_amount),
        "paid_amount": float(invoice.paid_amount),
        "payment_status": invoice.payment_status,
        "payment_method": invoice.payment_method,
        "order_id": invoice.order_id,
    }


# =============================================================================
# FROM ORDER
# =============================================================================

def create_invoice_from_order(order_id, options: dict | None = None, user_id=None) -> dict:
    """
    Invoice an order's lines at the prices snapshotted when it was placed.

    Picked quantities win over ordered quantities once picking has started.
    options: invoice_type, point_of_sale, payments, notes.
    """
    options = options or {}
    with atomic():
        order = _lock_uninvoiced_order(order_id)

        items = (
            db.session.query(OrderItem)
            .filter(OrderItem.order_id == order.id)
            .order_by(OrderItem.created_at.asc(), OrderItem.id.asc())
            .all()
        )
        if not items:
            raise InvoiceError("Order has no items", code=ORDER_WITHOUT_ITEMS, status_code=400)

        invoice_type, point_of_sale = _invoice_header(options)
        tax_rate = settings_service.get_tax_rate()
        line_vat_rate = (tax_rate * 100).quantize(Decimal("0.01"))

        lines: list[dict] = []
        net = ZERO_MONEY
        for item in items:
            qty = int(item.picked_quantity) if int(item.picked_quantity or 0) > 0 else int(item.quantity)
            unit_price = to_money(item.unit_price)
            base = to_money(unit_price * qty)
            line_vat = to_money(base * tax_rate)
            net += base
            product = item.product
            name = product.name if product else DEFAULT_ITEM_DESCRIPTION
            lines.append({
                "product_id": item.product_id,
                "description": name,
                "product_name": name,
                "sku": product.sku if product else None,
                "quantity": qty,
                "unit_price": unit_price,
                "discount_percentage": ZERO_MONEY,
                "vat_rate": line_vat_rate,
                "vat_amount": line_vat,
                "total_line": to_money(base + line_vat),
            })

        net = to_money(net)
        vat = to_money(net * tax_rate)
        total = to_money(net + vat)

        payments = payment_service.normalize_payments(
            options.get("payments"), total, order.payment_method or payment_service.DEFAULT_METHOD
        )
        header = {
            "invoice_type": invoice_type,
            "point_of_sale": point_of_sale,
            "client": _client_snapshot(order.client_id, order.customer_name),
        }
        invoice = _persist_invoice(
            header=header,
            lines=lines,
            net=net,
            vat=vat,
            total=total,
            payments=payments,
            order=order,
            notes=options.get("notes"),
            user_id=user_id,
        )

        result = _summary(invoice)
        record_audit(
            action="GENERATE_INVOICE",
            entity_type="invoice",
            entity_id=invoice.id,
            user_id=user_id,
            new_values={
                "order_id": order.id,
                "number": invoice.display_number,
                "total_amount": str(total),
                "paid_amount": str(payments.paid_amount),
                "payment_status": payments.payment_status,
            },
        )
    return result


# =============================================================================
# MANUAL
# =============================================================================

def _manual_line(raw, idx: int) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError(f"items[{idx}] must be an object")
    try:
        qty = parse_positive_int(raw.get("quantity"), f"items[{idx}].quantity")
        unit_price = to_money(raw.get("unit_price"))
        discount = to_decimal(
            raw.get("discount_percentage") if raw.get("discount_percentage") is not None else raw.get("discount"),
            ZERO_MONEY,
        )
        vat_rate = to_decimal(raw.get("vat_rate"), DEFAULT_LINE_VAT_RATE)
    except (ValueError, TypeError, InvalidOperation) as e:
        raise ValidationError(f"items[{idx}] is invalid: {e}", details={"index": idx})

    for field, value in (("unit_price", unit_price), ("discount_percentage", discount), ("vat_rate", vat_rate)):
        if not value.is_finite():
            raise ValidationError(f"items[{idx}].{field} must be a finite number", details={"index": idx})

    if unit_price < 0:
        raise ValidationError(f"items[{idx}].unit_price cannot be negative", details={"index": idx})
    if discount < 0 or discount > 100:
        raise ValidationError(f"items[{idx}].discount_percentage must be between 0 and 100", details={"index": idx})
    if vat_rate < 0:
        raise ValidationError(f"items[{idx}].vat_rate cannot be negative", details={"index": idx})

    base = to_money(unit_price * qty * (Decimal("1") - discount / Decimal("100")))
    line_vat = to_money(base * vat_rate / Decimal("100"))
    description = raw.get("description") or raw.get("product_name") or DEFAULT_ITEM_DESCRIPTION
    return {
        "product_id": raw.get("product_id") or None,
        "description": str(description)[:255],
        "product_name": str(raw.get("product_name") or description)[:255],
        "sku": raw.get("sku") or None,
        "quantity": qty,
        "unit_price": unit_price,
        "discount_percentage": discount,
        "vat_rate": vat_rate,
        "vat_amount": line_vat,
        "total_line": to_money(base + line_vat),
        "_base": base,
    }


def create_manual_invoice(data: dict | None, user_id=None) -> dict:
    """
    Issue an invoice from caller-supplied lines (counter sales, services).

    data: client_id, customer_name, items[{description, quantity, unit_price,
    discount_percentage, vat_rate, product_id, sku}], payments,
    payment_method, invoice_type, point_of_sale, order_id, notes.
    """
    data = data or {}
    with atomic():
        raw_items = data.get("items") or []
        if not isinstance(raw_items, list) or not raw_items:
            raise InvoiceError("Invoice must contain items", code=INVOICE_WITHOUT_ITEMS, status_code=400)

        order = None
        if data.get("order_id"):
            order = _lock_uninvoiced_order(data["order_id"])

        invoice_type, point_of_sale = _invoice_header(data)
        lines = [_manual_line(raw, idx) for idx, raw in enumerate(raw_items)]

        net = to_money(sum((line.pop("_base") for line in lines), ZERO_MONEY))
        vat = to_money(sum((line["vat_amount"] for line in lines), ZERO_MONEY))
        total = to_money(net + vat)

        payments = payment_service.normalize_payments(
            data.get("payments"), total, data.get("payment_method") or payment_service.DEFAULT_METHOD
        )
        header = {
            "invoice_type": invoice_type,
            "point_of_sale": point_of_sale,
            "client": _client_snapshot(data.get("client_id"), data.get("customer_name")),
        }
        invoice = _persist_invoice(
            header=header,
            lines=lines,
            net=net,
            vat=vat,
            total=total,
            payments=payments,
            order=order,
            notes=data.get("notes"),
            user_id=user_id,
        )

        result = _summary(invoice)
        record_audit(
            action="CREATE_MANUAL_INVOICE",
            entity_type="invoice",
            entity_id=invoice.id,
            user_id=user_id,
            new_values={
                "number": invoice.display_number,
                "total_amount": str(total),
                "paid_amount": str(payments.paid_amount),
                "payment_status": payments.payment_status,
            },
        )
    return result


# =============================================================================
# AUTHORIZATION / READ
# =============================================================================

def _authorization_code() -> str:
    # 14 digits, first digit never zero
    return str(10_000_000_000_000 + secrets.randbelow(90_000_000_000_000))


def authorize_invoice(invoice_id, user_id=None) -> dict:
    """Attach an authorization code; calling it again returns the invoice unchanged."""
    with atomic():
        invoice = lock_for_update(
            db.session.query(Invoice).filter(Invoice.id == invoice_id, Invoice.deleted_at.is_(None))
        ).first()
        if invoice is None:
            raise InvoiceError("Invoice not found", code=INVOICE_NOT_FOUND, status_code=404)
        if invoice.status == STATUS_AUTHORIZED:
            return invoice.to_dict()

        validity_days = int(current_app.config.get("AUTHORIZATION_VALIDITY_DAYS") or 10)
        invoice.status = STATUS_AUTHORIZED
        invoice.authorization_code = _authorization_code()
        invoice.authorization_expires_on = utcnow().date() + timedelta(days=validity_days)
        db.session.flush()

        result = invoice.to_dict()
        record_audit(
            action="AUTHORIZE_INVOICE",
            entity_type="invoice",
            entity_id=invoice.id,
            user_id=user_id,
            new_values={
                "authorization_code": invoice.authorization_code,
                "authorization_expires_on": result["authorization_expires_on"],
            },
        )
    return result


def get_invoice(invoice_id) -> dict:
    invoice = (
        db.session.query(Invoice)
        .filter(Invoice.id == invoice_id, Invoice.deleted_at.is_(None))
        .first()
    )
    if invoice is None:
        raise InvoiceError("Invoice not found", code=INVOICE_NOT_FOUND, status_code=404)
    payload = invoice.to_dict()
    payload["items"] = [item.to_dict() for item in invoice.items]
    return payload
