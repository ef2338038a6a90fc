# Overview: Split-payment normalization and payment-status resolution for invoices.

"""
Payment Reconciliation

WHY: An invoice can be collected with several tenders at once (cash + card).
Every split is validated and rounded before anything is written, so an
invoice is never persisted with payments that exceed what it is worth.

DESIGN PRINCIPLES:
- No splits supplied == the full total was collected with the fallback method
- Each split is rounded to cents and must be strictly positive
- Overpayment beyond the 0.01 rounding tolerance is rejected outright
- Underpayment is allowed and yields a 'partial' status
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

from ..errors import (
    DomainError,
    INVALID_PAYMENT_AMOUNT,
    INVALID_PAYMENT_METHOD,
    PAYMENTS_EXCEED_TOTAL,
)
from ..extensions import db
from ..models import Transaction
from ..money import MONEY_TOLERANCE, ZERO_MONEY, to_money
from .identifier_service import new_id


PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_PARTIAL = "partial"
PAYMENT_STATUS_PAID = "paid"

DEFAULT_METHOD = "cash"

TRANSACTION_SALE = "sale"
TRANSACTION_ADJUSTMENT = "adjustment"


class PaymentError(DomainError):
    default_code = INVALID_PAYMENT_AMOUNT
    default_status = 400


@dataclass
class PaymentSplit:
    method: str
    amount: Decimal

    def to_dict(self) -> dict:
        return {"method": self.method, "amount": float(self.amount)}


@dataclass
class NormalizedPayments:
    payments: list[PaymentSplit] = field(default_factory=list)
    paid_amount: Decimal = ZERO_MONEY
    payment_status: str = PAYMENT_STATUS_PENDING
    primary_method: str = DEFAULT_METHOD


def resolve_payment_status(total, paid) -> str:
    total = to_money(total)
    paid = to_money(paid)
    if paid <= 0:
        return PAYMENT_STATUS_PENDING
    if paid + MONEY_TOLERANCE < total:
        return PAYMENT_STATUS_PARTIAL
    return PAYMENT_STATUS_PAID


def _split_amount(raw, position: int) -> Decimal:
    if isinstance(raw, bool):
        amount = None
    else:
        try:
            amount = to_money(raw)
        except (InvalidOperation, ValueError, TypeError):
            amount = None
    if amount is None or not amount.is_finite() or amount <= 0:
        raise PaymentError(
            f"Invalid payment amount at position {position}",
            code=INVALID_PAYMENT_AMOUNT,
            details={"position": position, "amount": raw if isinstance(raw, (int, float, str)) else None},
        )
    return amount


def normalize_payments(payments, total, fallback_method: str = DEFAULT_METHOD) -> NormalizedPayments:
    total = to_money(total)
    fallback = str(fallback_method or DEFAULT_METHOD).strip().lower() or DEFAULT_METHOD

    if isinstance(payments, list) and payments:
        source = payments
    elif total > 0:
        source = [{"method": fallback, "amount": total}]
    else:
        source = []

    splits: list[PaymentSplit] = []
    for idx, raw in enumerate(source, start=1):
        if not isinstance(raw, dict):
            raise PaymentError(f"Invalid payment at position {idx}", code=INVALID_PAYMENT_AMOUNT)
        amount = _split_amount(raw.get("amount"), idx)

        method = raw.get("method")
        if method is None:
            method = fallback
        method = str(method).strip().lower()
        if not method:
            raise PaymentError(
                f"Invalid payment method at position {idx}",
                code=INVALID_PAYMENT_METHOD,
                details={"position": idx},
            )
        splits.append(PaymentSplit(method=method, amount=amount))

    paid = to_money(sum((s.amount for s in splits), ZERO_MONEY))
    if paid > total + MONEY_TOLERANCE:
        raise PaymentError(
            f"Payments total ({paid}) exceeds document total ({total})",
            code=PAYMENTS_EXCEED_TOTAL,
            details={"paid_amount": float(paid), "total_amount": float(total)},
        )

    return NormalizedPayments(
        payments=splits,
        paid_amount=paid,
        payment_status=resolve_payment_status(total, paid),
        primary_method=splits[0].method if splits else fallback,
    )


def register_invoice_payments(
    *,
    invoice_id: str,
    client_id: str | None,
    invoice_label: str,
    payments: list[PaymentSplit],
) -> list[Transaction]:
    """One 'sale' ledger row per collected split."""
    rows = []
    for split in payments:
        if split.amount <= 0:
            continue
        row = Transaction(
            id=new_id(),
            type=TRANSACTION_SALE,
            amount=to_money(split.amount),
            payment_method=split.method,
            description=f"Invoice payment {invoice_label} ({split.method})",
            reference_id=invoice_id,
            client_id=client_id,
        )
        db.session.add(row)
        rows.append(row)
    db.session.flush()
    return rows


def record_adjustment(*, amount, description: str, reference_id: str, client_id: str | None) -> Transaction:
    row = Transaction(
        id=new_id(),
        type=TRANSACTION_ADJUSTMENT,
        amount=to_money(amount),
        description=description,
        reference_id=reference_id,
        client_id=client_id,
    )
    db.session.add(row)
    db.session.flush()
    return row
