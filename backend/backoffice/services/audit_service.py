# Overview: Best-effort audit trail written after the business transaction commits.

from __future__ import annotations

import json

from flask import current_app

from ..extensions import db
from ..models import AuditLog
from .concurrency import after_commit


def _dump(values) -> str | None:
    if values is None:
        return None
    return json.dumps(values, default=str, sort_keys=True)


def write_audit(
    *,
    action: str,
    entity_type: str,
    entity_id=None,
    user_id=None,
    old_values: dict | None = None,
    new_values: dict | None = None,
    ip_address: str | None = None,
) -> None:
    """
    Append one audit row in its own transaction.

    Failures are logged and discarded: the audit trail must never undo or
    block a business operation that already committed.
    """
    try:
        db.session.add(AuditLog(
            user_id=str(user_id) if user_id is not None else None,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            old_values=_dump(old_values),
            new_values=_dump(new_values),
            ip_address=ip_address,
        ))
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.warning(
            "Audit write failed: action=%s entity=%s:%s", action, entity_type, entity_id,
            exc_info=True,
        )


def record_audit(
    *,
    action: str,
    entity_type: str,
    entity_id=None,
    user_id=None,
    old_values: dict | None = None,
    new_values: dict | None = None,
) -> None:
    """Queue an audit row to be written once the current atomic() block commits."""
    after_commit(lambda: write_audit(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        old_values=old_values,
        new_values=new_values,
    ))


def list_audit(entity_type: str, entity_id) -> list[dict]:
    rows = (
        db.session.query(AuditLog)
        .filter(AuditLog.entity_type == entity_type, AuditLog.entity_id == str(entity_id))
        .order_by(AuditLog.id.asc())
        .all()
    )
    return [row.to_dict() for row in rows]
