# Overview: Client returns; creation, approval into restock + credit note, and rejection.

"""
Client Returns & Credit Notes

LIFECYCLE:
    pending -> approved   (restock sellable units, log damaged ones, issue credit)
    pending -> rejected   (nothing touched)

RULES:
1. Approval happens at most once. The return row is locked first, then its
   items, then the client, and the credit note reference is unique per return.
2. Every check runs before any write: a failed approval leaves stock,
   credit notes, ledger, and the client balance untouched.
3. Sellable units go back into the default location as a 'return' movement.
   Anything else is logged as 'damage' and never re-enters stock.
4. The credit note amount equals the approved return total, and the client's
   running balance is decreased by exactly that amount.
"""

from __future__ import annotations

from ..errors import (
    DomainError,
    RETURN_ALREADY_APPROVED,
    RETURN_INVALID_STATE,
    RETURN_NOT_FOUND,
    RETURN_TOTAL_INVALID,
    RETURN_WITHOUT_ITEMS,
)
from ..extensions import db
from ..models import Client, ClientReturn, ClientReturnItem, CreditNote
from ..models.inventory import MOVEMENT_RETURN
from ..money import ZERO_MONEY, to_money
from ..time_utils import utcnow
from ..validation import ValidationError, parse_money, parse_positive_int
from . import document_service, inventory_service, payment_service, repository
from .audit_service import record_audit
from .concurrency import atomic, lock_for_update
from .identifier_service import new_id


STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
STATUS_CANCELLED = "cancelled"

CONDITION_SELLABLE = "sellable"
CONDITION_DAMAGED = "damaged"

REFERENCE_CLIENT_RETURN = "client_return"
CREDIT_NOTE_REFERENCE = "return"


class ReturnError(DomainError):
    default_code = RETURN_NOT_FOUND
    default_status = 404


def _return_items(return_id) -> list[ClientReturnItem]:
    return (
        db.session.query(ClientReturnItem)
        .filter(ClientReturnItem.return_id == return_id)
        .order_by(ClientReturnItem.id.asc())
        .all()
    )


def _with_items(row: ClientReturn) -> dict:
    payload = row.to_dict()
    payload["items"] = [item.to_dict() for item in _return_items(row.id)]
    return payload


def create_return(data: dict | None, user_id=None) -> dict:
    data = data or {}
    with atomic():
        raw_items = data.get("items") or []
        if not isinstance(raw_items, list):
            raise ValidationError("items must be a list")

        items = []
        for idx, raw in enumerate(raw_items):
            if not isinstance(raw, dict):
                raise ValidationError(f"items[{idx}] must be an object")
            product = repository.products.get(raw.get("product_id")) if raw.get("product_id") else None
            if product is None:
                raise ValidationError(f"items[{idx}].product_id is unknown", details={"index": idx})
            try:
                qty = parse_positive_int(raw.get("quantity"), f"items[{idx}].quantity")
            except ValueError as e:
                raise ValidationError(str(e), details={"index": idx})
            unit_price = parse_money(raw.get("unit_price"), f"items[{idx}].unit_price", details={"index": idx})
            condition = str(raw.get("condition_status") or CONDITION_SELLABLE).strip().lower()
            items.append((product.id, qty, condition, unit_price))

        client_id = data.get("client_id") or None
        if client_id and repository.clients.get(client_id) is None:
            raise ValidationError("Client not found", details={"client_id": client_id})

        row = ClientReturn(
            id=new_id(),
            client_id=client_id,
            customer_name=data.get("customer_name"),
            order_id=data.get("order_id") or None,
            reason=data.get("reason"),
            status=STATUS_PENDING,
            created_by=str(user_id) if user_id is not None else None,
        )
        db.session.add(row)
        db.session.flush()

        total = ZERO_MONEY
        for product_id, qty, condition, unit_price in items:
            db.session.add(ClientReturnItem(
                id=new_id(),
                return_id=row.id,
                product_id=product_id,
                quantity=qty,
                condition_status=condition,
                unit_price=unit_price,
            ))
            total += unit_price * qty
        row.total_amount = to_money(total)
        db.session.flush()

        result = _with_items(row)
        record_audit(
            action="CREATE_RETURN",
            entity_type="client_return",
            entity_id=row.id,
            user_id=user_id,
            new_values={"total_amount": str(row.total_amount), "items": len(items)},
        )
    return result


def approve_return(return_id, user_id=None) -> dict:
    """
    Approve a pending return.

    Returns return_id, credit_note_id, credit_note_number, total_amount,
    restocked_quantity, discarded_quantity.
    """
    with atomic():
        row = lock_for_update(
            db.session.query(ClientReturn).filter(
                ClientReturn.id == return_id, ClientReturn.deleted_at.is_(None)
            )
        ).first()
        if row is None:
            raise ReturnError("Return not found", code=RETURN_NOT_FOUND, status_code=404)
        if row.status == STATUS_APPROVED:
            raise ReturnError("Return already approved", code=RETURN_ALREADY_APPROVED, status_code=409)
        if row.status in (STATUS_REJECTED, STATUS_CANCELLED):
            raise ReturnError(
                f"Return cannot be approved while {row.status}",
                code=RETURN_INVALID_STATE,
                status_code=400,
                details={"status": row.status},
            )

        items = lock_for_update(
            db.session.query(ClientReturnItem)
            .filter(ClientReturnItem.return_id == row.id)
            .order_by(ClientReturnItem.id.asc())
        ).all()
        if not items:
            raise ReturnError("Return has no items", code=RETURN_WITHOUT_ITEMS, status_code=400)

        total = to_money(row.total_amount)
        if total <= 0:
            total = to_money(sum((to_money(i.unit_price) * int(i.quantity) for i in items), ZERO_MONEY))
        if total <= 0:
            raise ReturnError(
                "Return total must be greater than zero to issue a credit note",
                code=RETURN_TOTAL_INVALID,
                status_code=400,
            )

        client = None
        if row.client_id:
            client = lock_for_update(
                db.session.query(Client).filter(Client.id == row.client_id)
            ).first()

        restocked = 0
        discarded = 0
        location = inventory_service.default_location()
        for item in items:
            if (item.condition_status or CONDITION_SELLABLE) == CONDITION_SELLABLE:
                inventory_service.restock(
                    item.product_id,
                    item.quantity,
                    location,
                    REFERENCE_CLIENT_RETURN,
                    row.id,
                    unit_cost=item.unit_price,
                    movement_type=MOVEMENT_RETURN,
                    reason="Client return approved - restocked",
                    performed_by=user_id,
                )
                restocked += int(item.quantity)
            else:
                inventory_service.record_damage(
                    item.product_id,
                    item.quantity,
                    REFERENCE_CLIENT_RETURN,
                    row.id,
                    unit_cost=item.unit_price,
                    reason="Client return approved - non sellable",
                    performed_by=user_id,
                )
                discarded += int(item.quantity)

        number = document_service.next_credit_note_number(utcnow().year)
        note = CreditNote(
            id=new_id(),
            number=number,
            client_id=row.client_id,
            customer_name=row.customer_name,
            reference_type=CREDIT_NOTE_REFERENCE,
            reference_id=row.id,
            amount=total,
            status="issued",
            notes=f"Issued on approval of client return {row.id}",
        )
        db.session.add(note)
        db.session.flush()

        payment_service.record_adjustment(
            amount=total,
            description=f"Credit note {number} for client return",
            reference_id=note.id,
            client_id=row.client_id,
        )
        if client is not None:
            client.current_account_balance = to_money(client.current_account_balance) - total

        row.status = STATUS_APPROVED
        row.total_amount = total
        row.approved_by = str(user_id) if user_id is not None else None
        row.approved_at = utcnow()
        db.session.flush()

        result = {
            "return_id": row.id,
            "credit_note_id": note.id,
            "credit_note_number": number,
            "total_amount": float(total),
            "restocked_quantity": restocked,
            "discarded_quantity": discarded,
        }
        record_audit(
            action="APPROVE_RETURN",
            entity_type="client_return",
            entity_id=row.id,
            user_id=user_id,
            old_values={"status": STATUS_PENDING},
            new_values=result,
        )
    return result


def reject_return(return_id, reason=None, user_id=None) -> dict:
    with atomic():
        row = lock_for_update(
            db.session.query(ClientReturn).filter(
                ClientReturn.id == return_id, ClientReturn.deleted_at.is_(None)
            )
        ).first()
        if row is None:
            raise ReturnError("Return not found", code=RETURN_NOT_FOUND, status_code=404)
        if row.status == STATUS_APPROVED:
            raise ReturnError("Return already approved", code=RETURN_ALREADY_APPROVED, status_code=409)
        if row.status != STATUS_PENDING:
            raise ReturnError(
                f"Return cannot be rejected while {row.status}",
                code=RETURN_INVALID_STATE,
                status_code=400,
                details={"status": row.status},
            )

        row.status = STATUS_REJECTED
        row.rejected_by = str(user_id) if user_id is not None else None
        row.rejected_at = utcnow()
        row.rejection_reason = reason
        db.session.flush()

        result = row.to_dict()
        record_audit(
            action="REJECT_RETURN",
            entity_type="client_return",
            entity_id=row.id,
            user_id=user_id,
            old_values={"status": STATUS_PENDING},
            new_values={"status": STATUS_REJECTED, "reason": reason},
        )
    return result


def get_return(return_id) -> dict:
    row = repository.client_returns.get(return_id)
    if row is None:
        raise ReturnError("Return not found", code=RETURN_NOT_FOUND, status_code=404)
    return _with_items(row)


def list_credit_notes(filters: dict | None = None) -> list[dict]:
    rows = repository.credit_notes.find_all(filters, order_by="created_at", descending=True)
    return [row.to_dict() for row in rows]


def get_credit_note_for_return(return_id) -> CreditNote | None:
    return (
        db.session.query(CreditNote)
        .filter(CreditNote.reference_type == CREDIT_NOTE_REFERENCE, CreditNote.reference_id == return_id)
        .first()
    )
