# Overview: Supplier receptions; record goods received and post them into stock on approval.

from __future__ import annotations

from datetime import date

from ..errors import (
    DomainError,
    RECEPTION_ALREADY_APPROVED,
    RECEPTION_HAS_NO_ITEMS,
    RECEPTION_NOT_FOUND,
)
from ..extensions import db
from ..models import Reception, ReceptionItem
from ..models.inventory import MOVEMENT_RECEPTION
from ..time_utils import utcnow
from ..validation import ValidationError, parse_money
from . import document_service, inventory_service, repository
from .audit_service import record_audit
from .concurrency import atomic, lock_for_update
from .identifier_service import new_id


STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"

REFERENCE_RECEPTION = "reception"


class ReceptionError(DomainError):
    default_code = RECEPTION_NOT_FOUND
    default_status = 404


def _non_negative_int(value, field: str) -> int:
    if value in (None, ""):
        return 0
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a whole number")
    try:
        parsed = int(str(value).strip())
    except ValueError:
        raise ValidationError(f"{field} must be a whole number")
    if parsed < 0:
        raise ValidationError(f"{field} cannot be negative")
    return parsed


def _parse_item(raw, idx: int) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError(f"items[{idx}] must be an object")
    product = repository.products.get(raw.get("product_id")) if raw.get("product_id") else None
    if product is None:
        raise ValidationError(f"items[{idx}].product_id is unknown", details={"index": idx})

    expiration = raw.get("expiration_date")
    if expiration:
        try:
            expiration = date.fromisoformat(str(expiration)[:10])
        except ValueError:
            raise ValidationError(f"items[{idx}].expiration_date must be YYYY-MM-DD", details={"index": idx})
    else:
        expiration = None

    unit_cost = parse_money(raw.get("unit_cost"), f"items[{idx}].unit_cost", details={"index": idx})

    return {
        "product_id": product.id,
        "quantity_expected": _non_negative_int(raw.get("quantity_expected"), f"items[{idx}].quantity_expected"),
        "quantity_received": _non_negative_int(raw.get("quantity_received"), f"items[{idx}].quantity_received"),
        "unit_cost": unit_cost,
        "location_assigned": (str(raw.get("location_assigned") or "").strip() or inventory_service.default_location()),
        "batch_number": raw.get("batch_number") or None,
        "expiration_date": expiration,
        "notes": raw.get("notes") or None,
    }


def _with_items(reception: Reception) -> dict:
    payload = reception.to_dict()
    payload["items"] = [item.to_dict() for item in reception.items]
    return payload


def create_reception(data: dict | None, user_id=None) -> dict:
    data = data or {}
    with atomic():
        supplier_id = data.get("supplier_id")
        if not supplier_id:
            raise ValidationError("supplier_id is required")

        raw_items = data.get("items") or []
        if not isinstance(raw_items, list):
            raise ValidationError("items must be a list")
        items = [_parse_item(raw, idx) for idx, raw in enumerate(raw_items)]

        reception = Reception(
            id=new_id(),
            reception_number=document_service.next_reception_number(utcnow().year),
            purchase_order_id=data.get("purchase_order_id") or None,
            supplier_id=str(supplier_id),
            remito_number=data.get("remito_number") or None,
            status=STATUS_PENDING,
            notes=data.get("notes") or None,
            created_by=str(user_id) if user_id is not None else None,
        )
        db.session.add(reception)
        db.session.flush()

        for fields in items:
            db.session.add(ReceptionItem(id=new_id(), reception_id=reception.id, **fields))
        db.session.flush()

        result = _with_items(reception)
        record_audit(
            action="CREATE_RECEPTION",
            entity_type="reception",
            entity_id=reception.id,
            user_id=user_id,
            new_values={"reception_number": reception.reception_number, "items": len(items)},
        )
    return result


def approve_reception(reception_id, user_id=None) -> dict:
    """Post every received quantity into its assigned location, once."""
    with atomic():
        reception = lock_for_update(
            db.session.query(Reception).filter(Reception.id == reception_id, Reception.deleted_at.is_(None))
        ).first()
        if reception is None:
            raise ReceptionError("Reception not found", code=RECEPTION_NOT_FOUND, status_code=404)
        if reception.status == STATUS_APPROVED:
            raise ReceptionError("Reception already approved", code=RECEPTION_ALREADY_APPROVED, status_code=409)

        items = (
            db.session.query(ReceptionItem)
            .filter(ReceptionItem.reception_id == reception.id)
            .order_by(ReceptionItem.id.asc())
            .all()
        )
        if not items:
            raise ReceptionError("Reception has no items", code=RECEPTION_HAS_NO_ITEMS, status_code=400)

        received = 0
        for item in items:
            if int(item.quantity_received or 0) <= 0:
                continue
            inventory_service.restock(
                item.product_id,
                item.quantity_received,
                item.location_assigned or inventory_service.default_location(),
                REFERENCE_RECEPTION,
                reception.id,
                unit_cost=item.unit_cost,
                movement_type=MOVEMENT_RECEPTION,
                reason=f"Reception {reception.reception_number}",
                performed_by=user_id,
            )
            received += int(item.quantity_received)

        reception.status = STATUS_APPROVED
        reception.approved_by = str(user_id) if user_id is not None else None
        reception.approved_at = utcnow()
        db.session.flush()

        result = _with_items(reception)
        result["received_quantity"] = received
        record_audit(
            action="APPROVE_RECEPTION",
            entity_type="reception",
            entity_id=reception.id,
            user_id=user_id,
            old_values={"status": STATUS_PENDING},
            new_values={"status": STATUS_APPROVED, "received_quantity": received},
        )
    return result


def get_reception(reception_id) -> dict:
    reception = repository.receptions.get(reception_id)
    if reception is None:
        raise ReceptionError("Reception not found", code=RECEPTION_NOT_FOUND, status_code=404)
    return _with_items(reception)
