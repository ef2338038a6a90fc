# Overview: Document sequencer; duplicate-free numbering for invoices, credit notes, and receptions.

from __future__ import annotations

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import CreditNote, DocumentSequence, Invoice, Reception
from .concurrency import lock_for_update


CREDIT_NOTE_PREFIX = "NC"
RECEPTION_PREFIX = "REC"


def invoice_scope(invoice_type: str, point_of_sale: int) -> str:
    return f"invoice:{str(invoice_type).strip().upper()}:{int(point_of_sale)}"


def format_invoice_number(invoice_type: str, point_of_sale: int, invoice_number: int) -> str:
    """B-0001-00000042"""
    return f"{invoice_type}-{int(point_of_sale):04d}-{int(invoice_number):08d}"


def _ensure_sequence_row(scope: str) -> None:
    """
    Insert the counter row if it does not exist yet.

    A concurrent insert of the same scope loses on the primary key; the
    savepoint keeps the caller's transaction usable in that case.
    """
    if db.session.get(DocumentSequence, scope) is not None:
        return
    try:
        with db.session.begin_nested():
            db.session.add(DocumentSequence(scope=scope, last_value=0))
    except IntegrityError:
        pass


def next_sequence_value(scope: str, observed_max: int = 0) -> int:
    """
    Allocate the next value for a numbering scope.

    Runs inside the caller's transaction: the counter row stays locked until
    that transaction commits or rolls back, so two issuers on the same scope
    serialize and never see the same value.

    observed_max bootstraps a scope from documents that already exist (e.g.
    rows imported before the counter table was introduced): the result is
    always greater than both the stored counter and observed_max.
    """
    if not scope:
        raise ValueError("scope is required")

    _ensure_sequence_row(scope)

    seq = lock_for_update(
        db.session.query(DocumentSequence).filter(DocumentSequence.scope == scope)
    ).populate_existing().one()

    next_value = max(int(observed_max or 0), int(seq.last_value or 0)) + 1
    seq.last_value = next_value
    db.session.flush()
    return next_value


def next_invoice_number(invoice_type: str, point_of_sale: int) -> int:
    invoice_type = str(invoice_type).strip().upper()
    observed = (
        db.session.query(func.max(Invoice.invoice_number))
        .filter(
            Invoice.invoice_type == invoice_type,
            Invoice.point_of_sale == int(point_of_sale),
        )
        .scalar()
    )
    return next_sequence_value(invoice_scope(invoice_type, point_of_sale), observed or 0)


def _max_suffix(numbers, prefix: str) -> int:
    highest = 0
    for (number,) in numbers:
        tail = (number or "")[len(prefix):]
        if tail.isdigit():
            highest = max(highest, int(tail))
    return highest


def next_credit_note_number(year: int) -> str:
    """NC-{year}-{seq:04d}; the sequence restarts every year."""
    prefix = f"{CREDIT_NOTE_PREFIX}-{int(year)}-"
    existing = (
        db.session.query(CreditNote.number)
        .filter(CreditNote.number.like(f"{prefix}%"))
        .all()
    )
    seq = next_sequence_value(f"credit_note:{int(year)}", _max_suffix(existing, prefix))
    return f"{prefix}{seq:04d}"


def next_reception_number(year: int) -> str:
    prefix = f"{RECEPTION_PREFIX}-{int(year)}-"
    existing = (
        db.session.query(Reception.reception_number)
        .filter(Reception.reception_number.like(f"{prefix}%"))
        .all()
    )
    seq = next_sequence_value(f"reception:{int(year)}", _max_suffix(existing, prefix))
    return f"{prefix}{seq:03d}"
