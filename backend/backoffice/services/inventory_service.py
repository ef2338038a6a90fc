# Overview: Inventory ledger; per-location stock buckets plus the append-only movement log.

"""
Inventory Ledger Invariants (authoritative)

Stock model:
- On-hand quantity lives in InventoryRecord rows, one per (product, location).
- A bucket never goes negative (DB CHECK constraint backs the service check).
- Every change to a bucket appends an InventoryMovement row in the SAME
  transaction. Movements are never updated or deleted.

Allocation (sales):
- Buckets with quantity > 0 are locked, then consumed largest-first, with
  location name as the tie-break so the same state always allocates the same way.
- Availability is checked across all buckets BEFORE any write.

Compensation (cancellation):
- Reversal replays the 'sale' movements recorded for the order and puts each
  unit back into the bucket it came from.
- Orders with no recorded movements fall back to the default location.

Every function here runs inside the caller's atomic() block and never commits.
"""

from __future__ import annotations

from collections import OrderedDict

from flask import current_app
from sqlalchemy import func

from ..errors import DomainError, INSUFFICIENT_STOCK, INVALID_QUANTITY
from ..extensions import db
from ..models import InventoryMovement, InventoryRecord, OrderItem
from ..models.inventory import (
    MOVEMENT_DAMAGE,
    MOVEMENT_RESTOCK,
    MOVEMENT_RETURN,
    MOVEMENT_RECEPTION,
    MOVEMENT_SALE,
)
from ..money import to_money
from ..validation import parse_positive_int
from .concurrency import lock_for_update
from .identifier_service import new_id

REFERENCE_ORDER = "order"

REASON_ORDER_DEDUCTION = "Order stock deduction"
REASON_ORDER_CANCELLATION = "Order cancellation restock"

INBOUND_MOVEMENT_TYPES = {MOVEMENT_RESTOCK, MOVEMENT_RECEPTION, MOVEMENT_RETURN}


class InventoryError(DomainError):
    default_code = INVALID_QUANTITY
    default_status = 400


def default_location() -> str:
    return current_app.config.get("DEFAULT_STOCK_LOCATION") or "General"


def _quantity(value) -> int:
    try:
        return parse_positive_int(value, "quantity")
    except ValueError as e:
        raise InventoryError(str(e), code=INVALID_QUANTITY, details={"quantity": value})


def _append_movement(**fields) -> InventoryMovement:
    movement = InventoryMovement(id=new_id(), **fields)
    db.session.add(movement)
    return movement


# =============================================================================
# WRITE SIDE
# =============================================================================

def allocate(
    product_id: str,
    quantity,
    reference_type: str,
    reference_id: str,
    performed_by=None,
    product_name: str | None = None,
) -> list[tuple[str, int]]:
    """
    Deduct `quantity` units of a product across its locations.

    Returns the (location, quantity) pairs actually consumed, in consumption
    order. Raises INSUFFICIENT_STOCK (409) without touching any row when
    the product's total on-hand is short.
    """
    qty = _quantity(quantity)

    buckets = lock_for_update(
        db.session.query(InventoryRecord)
        .filter(
            InventoryRecord.product_id == product_id,
            InventoryRecord.quantity > 0,
            InventoryRecord.deleted_at.is_(None),
        )
        .order_by(InventoryRecord.quantity.desc(), InventoryRecord.location.asc())
    ).all()

    available = sum(b.quantity for b in buckets)
    if available < qty:
        label = product_name or product_id
        raise InventoryError(
            f"Insufficient stock for {label}: requested {qty}, available {available}",
            code=INSUFFICIENT_STOCK,
            status_code=409,
            details={"product_id": product_id, "requested": qty, "available": available},
        )

    consumed: list[tuple[str, int]] = []
    remaining = qty
    for bucket in buckets:
        if remaining <= 0:
            break
        take = min(bucket.quantity, remaining)
        bucket.quantity -= take
        remaining -= take
        consumed.append((bucket.location, take))
        _append_movement(
            type=MOVEMENT_SALE,
            product_id=product_id,
            from_location=bucket.location,
            to_location=None,
            quantity=take,
            reason=REASON_ORDER_DEDUCTION,
            reference_type=reference_type,
            reference_id=reference_id,
            performed_by=performed_by,
        )

    db.session.flush()
    return consumed


def restock(
    product_id: str,
    quantity,
    location: str | None,
    reference_type: str,
    reference_id,
    unit_cost=0,
    movement_type: str = MOVEMENT_RESTOCK,
    reason: str | None = None,
    performed_by=None,
) -> InventoryRecord:
    """Add units to one (product, location) bucket, creating it on first use."""
    qty = _quantity(quantity)
    if movement_type not in INBOUND_MOVEMENT_TYPES:
        raise InventoryError(f"Movement type '{movement_type}' cannot add stock")
    location = (location or "").strip() or default_location()

    record = lock_for_update(
        db.session.query(InventoryRecord).filter(
            InventoryRecord.product_id == product_id,
            InventoryRecord.location == location,
        )
    ).first()

    if record is None:
        record = InventoryRecord(id=new_id(), product_id=product_id, location=location, quantity=0)
        db.session.add(record)
    record.quantity = (record.quantity or 0) + qty
    record.deleted_at = None

    _append_movement(
        type=movement_type,
        product_id=product_id,
        from_location=None,
        to_location=location,
        quantity=qty,
        unit_cost=to_money(unit_cost),
        reason=reason,
        reference_type=reference_type,
        reference_id=reference_id,
        performed_by=performed_by,
    )
    db.session.flush()
    return record


def record_damage(
    product_id: str,
    quantity,
    reference_type: str,
    reference_id,
    unit_cost=0,
    reason: str | None = None,
    performed_by=None,
) -> InventoryMovement:
    """Log units written off without ever entering sellable stock."""
    qty = _quantity(quantity)
    movement = _append_movement(
        type=MOVEMENT_DAMAGE,
        product_id=product_id,
        from_location=None,
        to_location=None,
        quantity=qty,
        unit_cost=to_money(unit_cost),
        reason=reason,
        reference_type=reference_type,
        reference_id=reference_id,
        performed_by=performed_by,
    )
    db.session.flush()
    return movement


def reverse_allocations_for(order_id: str, performed_by=None) -> list[tuple[str, str, int]]:
    """
    Put an order's allocated stock back where it came from.

    Returns (product_id, location, quantity) for every bucket restocked.
    """
    rows = (
        db.session.query(
            InventoryMovement.product_id,
            InventoryMovement.from_location,
            func.sum(InventoryMovement.quantity),
        )
        .filter(
            InventoryMovement.type == MOVEMENT_SALE,
            InventoryMovement.reference_type == REFERENCE_ORDER,
            InventoryMovement.reference_id == order_id,
        )
        .group_by(InventoryMovement.product_id, InventoryMovement.from_location)
        .order_by(InventoryMovement.product_id.asc(), InventoryMovement.from_location.asc())
        .all()
    )

    buckets: "OrderedDict[tuple[str, str], int]" = OrderedDict()
    if rows:
        for product_id, location, qty in rows:
            buckets[(product_id, location or default_location())] = int(qty or 0)
    else:
        # Orders placed before movements were recorded
        fallback = default_location()
        items = db.session.query(OrderItem).filter(OrderItem.order_id == order_id).all()
        for item in items:
            key = (item.product_id, fallback)
            buckets[key] = buckets.get(key, 0) + int(item.quantity or 0)

    restored: list[tuple[str, str, int]] = []
    for (product_id, location), qty in buckets.items():
        if qty <= 0:
            continue
        restock(
            product_id,
            qty,
            location,
            REFERENCE_ORDER,
            order_id,
            movement_type=MOVEMENT_RESTOCK,
            reason=REASON_ORDER_CANCELLATION,
            performed_by=performed_by,
        )
        restored.append((product_id, location, qty))
    return restored


# =============================================================================
# READ SIDE
# =============================================================================

def get_stock_levels(product_id: str) -> list[dict]:
    rows = (
        db.session.query(InventoryRecord)
        .filter(InventoryRecord.product_id == product_id, InventoryRecord.deleted_at.is_(None))
        .order_by(InventoryRecord.location.asc())
        .all()
    )
    return [row.to_dict() for row in rows]


def get_total_on_hand(product_id: str) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(InventoryRecord.quantity), 0))
        .filter(InventoryRecord.product_id == product_id, InventoryRecord.deleted_at.is_(None))
        .scalar()
    )
    return int(total or 0)


def list_movements(
    product_id: str | None = None,
    type: str | None = None,
    reference_id: str | None = None,
    limit: int = 200,
) -> list[dict]:
    q = db.session.query(InventoryMovement)
    if product_id:
        q = q.filter(InventoryMovement.product_id == product_id)
    if type:
        q = q.filter(InventoryMovement.type == type)
    if reference_id:
        q = q.filter(InventoryMovement.reference_id == reference_id)
    rows = (
        q.order_by(InventoryMovement.created_at.asc(), InventoryMovement.id.asc())
        .limit(max(1, min(int(limit or 200), 1000)))
        .all()
    )
    return [row.to_dict() for row in rows]
