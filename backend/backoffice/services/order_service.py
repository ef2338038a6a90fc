# Overview: Order lifecycle engine; order creation, status graph, dispatch, delivery, and picking.

"""
Order Lifecycle

STATE MACHINE:
    pending    -> picking, cancelled
    picking    -> packed, cancelled
    packed     -> dispatched, delivered, cancelled
    dispatched -> delivered, cancelled
    delivered  -> completed, returned
    completed  -> returned
    cancelled, returned: terminal

RULES:
1. Requesting the current status is an accepted no-op.
2. Legacy names are accepted: confirmed == picking, paid == packed.
3. Stock is allocated when the order is created and given back ONLY when
   the order moves to cancelled.
4. The order row is locked before its items or any stock bucket.
5. total_amount is computed from current sale prices at creation; any total
   the caller sends is ignored.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from ..errors import (
    DomainError,
    INVALID_ORDER_TRANSITION,
    ORDER_ITEM_NOT_FOUND,
    ORDER_NOT_FOUND,
    PRODUCT_NOT_FOUND,
    PRODUCT_PRICE_MISSING,
)
from ..extensions import db
from ..models import Order, OrderItem, Product
from ..money import ZERO_MONEY, to_money
from ..time_utils import parse_iso_datetime, utcnow
from ..validation import ValidationError, parse_positive_int
from . import inventory_service, repository
from .audit_service import record_audit
from .concurrency import atomic, lock_for_update
from .identifier_service import new_id


STATUS_PENDING = "pending"
STATUS_PICKING = "picking"
STATUS_PACKED = "packed"
STATUS_DISPATCHED = "dispatched"
STATUS_DELIVERED = "delivered"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
STATUS_RETURNED = "returned"

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_PENDING: frozenset({STATUS_PICKING, STATUS_CANCELLED}),
    STATUS_PICKING: frozenset({STATUS_PACKED, STATUS_CANCELLED}),
    STATUS_PACKED: frozenset({STATUS_DISPATCHED, STATUS_DELIVERED, STATUS_CANCELLED}),
    STATUS_DISPATCHED: frozenset({STATUS_DELIVERED, STATUS_CANCELLED}),
    STATUS_DELIVERED: frozenset({STATUS_COMPLETED, STATUS_RETURNED}),
    STATUS_COMPLETED: frozenset({STATUS_RETURNED}),
    STATUS_CANCELLED: frozenset(),
    STATUS_RETURNED: frozenset(),
}

STATUS_ALIASES = {
    "confirmed": STATUS_PICKING,
    "paid": STATUS_PACKED,
}

SHIPPING_PICKUP = "pickup"
DEFAULT_PAYMENT_METHOD = "cash"


class OrderError(DomainError):
    default_code = INVALID_ORDER_TRANSITION
    default_status = 409


def normalize_status(value) -> str:
    status = str(value or "").strip().lower()
    return STATUS_ALIASES.get(status, status)


def can_transition(from_status: str, to_status: str) -> bool:
    if from_status == to_status:
        return True
    return to_status in ALLOWED_TRANSITIONS.get(from_status, frozenset())


def _validate_transition(order: Order, requested) -> str:
    target = normalize_status(requested)
    if target not in ALLOWED_TRANSITIONS or not can_transition(order.status, target):
        raise OrderError(
            f"Cannot move order from '{order.status}' to '{requested}'",
            code=INVALID_ORDER_TRANSITION,
            status_code=409,
            details={"from": order.status, "to": str(requested)},
        )
    return target


def _lock_order(order_id) -> Order:
    order = lock_for_update(
        db.session.query(Order).filter(Order.id == order_id, Order.deleted_at.is_(None))
    ).first()
    if order is None:
        raise OrderError("Order not found", code=ORDER_NOT_FOUND, status_code=404)
    return order


def _apply_status(order: Order, target: str, user_id=None) -> bool:
    """Write the validated target; returns False when it was a no-op."""
    if order.status == target:
        return False
    if target == STATUS_CANCELLED:
        inventory_service.reverse_allocations_for(order.id, performed_by=user_id)
    order.status = target
    order.updated_at = utcnow()
    return True


def _parse_datetime_field(data: dict, key: str):
    raw = data.get(key)
    if raw in (None, ""):
        return None
    try:
        return parse_iso_datetime(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an ISO-8601 datetime", details={"field": key})


def _text(data: dict, key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


# =============================================================================
# CREATE
# =============================================================================

def _resolve_lines(items) -> list[tuple[Product, int]]:
    if not isinstance(items, list) or not items:
        raise ValidationError("Order must contain at least one item")

    lines: list[tuple[Product, int]] = []
    for idx, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        product_id = raw.get("product_id")
        try:
            qty = parse_positive_int(raw.get("quantity"), f"items[{idx}].quantity")
        except ValueError as e:
            raise inventory_service.InventoryError(str(e), details={"index": idx})

        product = repository.products.get(product_id) if product_id else None
        if product is None:
            raise OrderError(
                f"Product {product_id} not found",
                code=PRODUCT_NOT_FOUND,
                status_code=404,
                details={"product_id": product_id},
            )
        if product.sale_price is None:
            raise OrderError(
                f"Product {product.name} has no sale price",
                code=PRODUCT_PRICE_MISSING,
                status_code=400,
                details={"product_id": product.id},
            )
        lines.append((product, qty))
    return lines


def create_order(
    client_id,
    customer_name,
    items,
    payment_method,
    shipping_address=None,
    user_id=None,
) -> dict:
    """
    Create a pending order and allocate its stock, as one unit.

    Either the order, every line, and every stock deduction are persisted,
    or none of them are.
    """
    with atomic():
        lines = _resolve_lines(items)

        client = None
        if client_id:
            client = repository.clients.get(client_id)
            if client is None:
                raise ValidationError("Client not found", details={"client_id": client_id})

        name = (str(customer_name).strip() if customer_name else "") or (client.name if client else None)
        total = ZERO_MONEY
        for product, qty in lines:
            total += to_money(to_money(product.sale_price) * qty)
        total = to_money(total)

        order = Order(
            id=new_id(),
            client_id=client.id if client else None,
            customer_name=name,
            total_amount=total,
            status=STATUS_PENDING,
            payment_status="pending",
            payment_method=(str(payment_method).strip().lower() if payment_method else "") or DEFAULT_PAYMENT_METHOD,
            shipping_address=shipping_address,
        )
        db.session.add(order)
        db.session.flush()

        for product, qty in lines:
            inventory_service.allocate(
                product.id,
                qty,
                inventory_service.REFERENCE_ORDER,
                order.id,
                performed_by=user_id,
                product_name=product.name,
            )
            db.session.add(OrderItem(
                id=new_id(),
                order_id=order.id,
                product_id=product.id,
                quantity=qty,
                unit_price=to_money(product.sale_price),
                picked_quantity=0,
            ))
        db.session.flush()

        result = {"id": order.id, "total_amount": float(total)}
        record_audit(
            action="CREATE_ORDER",
            entity_type="order",
            entity_id=order.id,
            user_id=user_id,
            new_values={"total_amount": str(total), "items": len(lines), "status": STATUS_PENDING},
        )
    return result


# =============================================================================
# STATUS TRANSITIONS
# =============================================================================

def transition_order_status(order_id, requested_status, user_id=None) -> dict:
    with atomic():
        order = _lock_order(order_id)
        previous = order.status
        target = _validate_transition(order, requested_status)
        changed = _apply_status(order, target, user_id)
        db.session.flush()
        result = order.to_dict()
        if changed:
            record_audit(
                action="UPDATE_ORDER_STATUS",
                entity_type="order",
                entity_id=order.id,
                user_id=user_id,
                old_values={"status": previous},
                new_values={"status": target},
            )
    return result


def dispatch_order(order_id, data: dict | None, user_id=None) -> dict:
    """
    Ship an order. Store pickups go straight to delivered.
    """
    data = data or {}
    with atomic():
        order = _lock_order(order_id)
        previous = order.status

        shipping_method = _text(data, "shipping_method") or order.shipping_method
        is_pickup = (shipping_method or "").lower() == SHIPPING_PICKUP
        target = _validate_transition(order, STATUS_DELIVERED if is_pickup else STATUS_DISPATCHED)
        estimated = _parse_datetime_field(data, "estimated_delivery")

        now = utcnow()
        order.shipping_method = shipping_method
        order.tracking_number = _text(data, "tracking_number") or order.tracking_number
        if estimated is not None:
            order.estimated_delivery = estimated
        order.shipping_address = _text(data, "shipping_address") or order.shipping_address
        order.recipient_name = _text(data, "recipient_name") or order.recipient_name
        order.recipient_dni = _text(data, "recipient_dni") or order.recipient_dni
        order.dispatched_at = now
        if is_pickup:
            order.delivered_at = now
        _apply_status(order, target, user_id)
        db.session.flush()

        result = order.to_dict()
        record_audit(
            action="DISPATCH_ORDER",
            entity_type="order",
            entity_id=order.id,
            user_id=user_id,
            old_values={"status": previous},
            new_values={"status": target, "shipping_method": shipping_method},
        )
    return result


def deliver_order(order_id, data: dict | None, user_id=None) -> dict:
    data = data or {}
    with atomic():
        order = _lock_order(order_id)
        previous = order.status
        target = _validate_transition(order, STATUS_DELIVERED)

        order.recipient_name = _text(data, "recipient_name") or order.recipient_name
        order.recipient_dni = _text(data, "recipient_dni") or order.recipient_dni
        order.delivery_notes = _text(data, "delivery_notes") or order.delivery_notes
        order.delivered_at = utcnow()
        _apply_status(order, target, user_id)
        db.session.flush()

        result = order.to_dict()
        record_audit(
            action="DELIVER_ORDER",
            entity_type="order",
            entity_id=order.id,
            user_id=user_id,
            old_values={"status": previous},
            new_values={"status": target},
        )
    return result


# =============================================================================
# PICKING
# =============================================================================

def _picked_value(value, quantity: int) -> int:
    """Clamp a picked count into [0, quantity]; anything unreadable is 0."""
    if isinstance(value, bool) or value is None:
        return 0
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return 0
    if parsed.is_nan():
        return 0
    if parsed.is_infinite():
        return quantity if parsed > 0 else 0
    return max(0, min(int(parsed), quantity))


def pick_order_item(item_id, picked_quantity, user_id=None) -> dict:
    """Record how many units of a line were picked, clamped to [0, quantity]."""
    with atomic():
        order_id = (
            db.session.query(OrderItem.order_id).filter(OrderItem.id == item_id).scalar()
        )
        if order_id is None:
            raise OrderError("Order item not found", code=ORDER_ITEM_NOT_FOUND, status_code=404)

        # Parent order first, then the line
        _lock_order(order_id)
        item = lock_for_update(
            db.session.query(OrderItem).filter(OrderItem.id == item_id)
        ).first()

        previous = item.picked_quantity
        item.picked_quantity = _picked_value(picked_quantity, int(item.quantity))
        db.session.flush()

        result = item.to_dict()
        record_audit(
            action="PICK_ORDER_ITEM",
            entity_type="order_item",
            entity_id=item.id,
            user_id=user_id,
            old_values={"picked_quantity": previous},
            new_values={"picked_quantity": item.picked_quantity},
        )
    return result


# =============================================================================
# READ SIDE
# =============================================================================

def get_order(order_id) -> Order:
    order = repository.orders.get(order_id)
    if order is None:
        raise OrderError("Order not found", code=ORDER_NOT_FOUND, status_code=404)
    return order


def get_order_summary(order_id) -> dict:
    order = get_order(order_id)
    items = list(order.items)
    total_items = sum(int(i.quantity) for i in items)
    total_picked = sum(int(i.picked_quantity or 0) for i in items)
    completion = round(total_picked * 100.0 / total_items, 2) if total_items else 0.0

    summary = order.to_dict()
    summary.update({
        "items": [i.to_dict() for i in items],
        "total_items": total_items,
        "total_picked": total_picked,
        "completion_percent": completion,
    })
    return summary


def list_orders(
    filters: dict | None = None,
    *,
    page: int = 1,
    per_page: int | None = None,
    order_by: str = "created_at",
    descending: bool = True,
) -> dict:
    return repository.orders.page(
        filters,
        page=page,
        per_page=per_page,
        order_by=order_by,
        descending=descending,
    )
