import json

import pytest

from backoffice.models import AuditLog
from backoffice.services import audit_service, order_service
from backoffice.services.concurrency import atomic


def test_audit_row_is_written_after_commit(db_session, make_product):
    product = make_product(stock={"A-1": 5})

    result = order_service.create_order(
        None, "Walk-in", [{"product_id": product.id, "quantity": 2}], "cash", user_id="clerk-7",
    )

    rows = audit_service.list_audit("order", result["id"])
    assert [r["action"] for r in rows] == ["CREATE_ORDER"]
    row = db_session.query(AuditLog).one()
    assert row.user_id == "clerk-7"
    assert json.loads(row.new_values)["status"] == "pending"


def test_no_audit_row_on_rollback(db_session):
    with pytest.raises(RuntimeError):
        with atomic():
            audit_service.record_audit(action="NEVER", entity_type="order", entity_id="x")
            raise RuntimeError("abort")

    assert db_session.query(AuditLog).count() == 0


def test_failed_operation_leaves_no_audit(db_session, make_product):
    product = make_product(stock={"A-1": 1})

    with pytest.raises(Exception):
        order_service.create_order(None, "Walk-in", [{"product_id": product.id, "quantity": 9}], "cash")

    assert db_session.query(AuditLog).count() == 0


def test_audit_outside_transaction_writes_immediately(db_session):
    audit_service.record_audit(action="PING", entity_type="system", old_values={"a": 1})

    row = db_session.query(AuditLog).one()
    assert (row.action, row.entity_id, json.loads(row.old_values)) == ("PING", None, {"a": 1})


def test_audit_failure_does_not_raise(db_session, app, caplog):
    # entity_type is NOT NULL: the insert fails and is only logged
    audit_service.write_audit(action="BROKEN", entity_type=None)

    assert db_session.query(AuditLog).count() == 0
    assert "Audit write failed" in caplog.text
