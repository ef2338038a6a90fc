from decimal import Decimal

import pytest

from backoffice.errors import (
    RETURN_ALREADY_APPROVED,
    RETURN_INVALID_STATE,
    RETURN_NOT_FOUND,
    RETURN_TOTAL_INVALID,
    RETURN_WITHOUT_ITEMS,
)
from backoffice.extensions import db
from backoffice.models import Client, ClientReturn, ClientReturnItem, CreditNote, InventoryMovement, Transaction
from backoffice.services import return_service
from backoffice.services.identifier_service import new_id
from backoffice.services.return_service import ReturnError
from backoffice.validation import ValidationError


@pytest.fixture
def pending_return(db_session, make_product, make_client):
    """A return of 3 sellable + 2 damaged units at 10.00 for a client owing 100.00."""
    product = make_product(stock={"General": 1})
    client = make_client(balance="100.00")
    created = return_service.create_return({
        "client_id": client.id,
        "customer_name": client.name,
        "reason": "Wrong size",
        "items": [
            {"product_id": product.id, "quantity": 3, "unit_price": "10.00"},
            {"product_id": product.id, "quantity": 2, "unit_price": "10.00", "condition_status": "damaged"},
        ],
    })
    return created, product, client


def test_create_return_sums_total(db_session, pending_return):
    created, product, _ = pending_return

    assert created["status"] == "pending"
    assert created["total_amount"] == 50.0
    assert sorted(i["condition_status"] for i in created["items"]) == ["damaged", "sellable"]


def test_create_return_rejects_unknown_product(db_session):
    with pytest.raises(ValidationError):
        return_service.create_return({"items": [{"product_id": "missing", "quantity": 1}]})
    assert db_session.query(ClientReturn).count() == 0


def test_approve_restocks_sellable_and_logs_damage(db_session, pending_return, stock):
    created, product, client = pending_return

    result = return_service.approve_return(created["id"], user_id="u-1")

    assert result["restocked_quantity"] == 3
    assert result["discarded_quantity"] == 2
    assert stock(product.id) == {"General": 4}

    damage = db_session.query(InventoryMovement).filter_by(type="damage").all()
    assert [(m.quantity, m.reference_id) for m in damage] == [(2, created["id"])]
    restock = db_session.query(InventoryMovement).filter_by(type="return").one()
    assert restock.quantity == 3

    note = db_session.query(CreditNote).one()
    assert note.amount == Decimal("50.00")
    assert (note.reference_type, note.reference_id) == ("return", created["id"])
    assert note.number.startswith("NC-") and note.number.endswith("-0001")
    assert result["credit_note_number"] == note.number

    assert db_session.get(Client, client.id).current_account_balance == Decimal("50.00")
    adjustment = db_session.query(Transaction).filter_by(type="adjustment").one()
    assert adjustment.reference_id == note.id
    assert db_session.get(ClientReturn, created["id"]).status == "approved"


def test_second_approval_is_rejected_without_side_effects(db_session, pending_return, stock):
    created, product, client = pending_return
    return_service.approve_return(created["id"])

    with pytest.raises(ReturnError) as exc:
        return_service.approve_return(created["id"])

    assert (exc.value.code, exc.value.status_code) == (RETURN_ALREADY_APPROVED, 409)
    assert db_session.query(CreditNote).count() == 1
    assert stock(product.id) == {"General": 4}
    assert db_session.get(Client, client.id).current_account_balance == Decimal("50.00")


def test_rejected_return_cannot_be_approved(db_session, pending_return, stock):
    created, product, _ = pending_return
    rejected = return_service.reject_return(created["id"], reason="Outside window")
    assert rejected["status"] == "rejected"

    with pytest.raises(ReturnError) as exc:
        return_service.approve_return(created["id"])

    assert (exc.value.code, exc.value.status_code) == (RETURN_INVALID_STATE, 400)
    assert stock(product.id) == {"General": 1}
    assert db_session.query(CreditNote).count() == 0


def test_reject_twice_is_invalid(db_session, pending_return):
    created, _, _ = pending_return
    return_service.reject_return(created["id"])

    with pytest.raises(ReturnError) as exc:
        return_service.reject_return(created["id"])
    assert exc.value.code == RETURN_INVALID_STATE


def test_return_without_items(db_session):
    row = ClientReturn(id=new_id(), status="pending", total_amount=Decimal("10.00"))
    db.session.add(row)
    db.session.commit()

    with pytest.raises(ReturnError) as exc:
        return_service.approve_return(row.id)
    assert exc.value.code == RETURN_WITHOUT_ITEMS


def test_zero_total_cannot_be_credited(db_session, make_product, stock):
    product = make_product(stock={"General": 1})
    created = return_service.create_return({
        "items": [{"product_id": product.id, "quantity": 2, "unit_price": 0}],
    })

    with pytest.raises(ReturnError) as exc:
        return_service.approve_return(created["id"])

    assert exc.value.code == RETURN_TOTAL_INVALID
    assert stock(product.id) == {"General": 1}
    assert db_session.query(InventoryMovement).count() == 0


def test_unknown_return(db_session):
    with pytest.raises(ReturnError) as exc:
        return_service.approve_return("missing")
    assert (exc.value.code, exc.value.status_code) == (RETURN_NOT_FOUND, 404)


def test_credit_note_lookup(db_session, pending_return):
    created, _, client = pending_return
    assert return_service.get_credit_note_for_return(created["id"]) is None

    return_service.approve_return(created["id"])

    assert return_service.get_credit_note_for_return(created["id"]).amount == Decimal("50.00")
    notes = return_service.list_credit_notes({"client_id": client.id})
    assert [n["reference_id"] for n in notes] == [created["id"]]


@pytest.mark.parametrize("unit_price", ["abc", "NaN", "Infinity", "-1"])
def test_create_return_rejects_bad_unit_price(db_session, make_product, unit_price):
    product = make_product()

    with pytest.raises(ValidationError):
        return_service.create_return({
            "items": [{"product_id": product.id, "quantity": 1, "unit_price": unit_price}],
        })

    assert db_session.query(ClientReturn).count() == 0


def test_approve_locks_header_items_then_client(db_session, pending_return, monkeypatch):
    created, _, _ = pending_return
    locked = []
    real_lock = return_service.lock_for_update

    def recording_lock(query):
        locked.append(query.column_descriptions[0]["entity"])
        return real_lock(query)

    monkeypatch.setattr(return_service, "lock_for_update", recording_lock)
    return_service.approve_return(created["id"])

    assert locked == [ClientReturn, ClientReturnItem, Client]
