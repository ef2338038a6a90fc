from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Boolean, Date, DateTime, Integer, Numeric, String, Text

from .errors import DomainError, VALIDATION_ERROR
from .money import to_money
from .time_utils import parse_iso_datetime


class ValidationError(DomainError):
    """400-level input problem."""

    default_code = VALIDATION_ERROR
    default_status = 400


@dataclass(frozen=True)
class ColumnPolicy:
    """
    Closed column allowlist for one entity.

    - queryable: columns that may appear in filters and ORDER BY
    - writable: columns a caller may set on create/update
    - required_on_create: columns that must be present on create

    Column names are checked against the model's mapper when a repository is
    built, so a typo in a policy fails at import time, not per request.
    """
    queryable: frozenset[str]
    writable: frozenset[str]
    required_on_create: frozenset[str] = frozenset()

    def check_against(self, model) -> None:
        cols = columns_by_key(model)
        unknown = (self.queryable | self.writable | self.required_on_create) - set(cols)
        if unknown:
            raise TypeError(
                f"Column policy for {model.__tablename__} names unknown columns: {', '.join(sorted(unknown))}"
            )
        if "id" in self.writable:
            raise TypeError(f"Column policy for {model.__tablename__} must not make id writable")


def columns_by_key(model) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped or not stripped.lstrip("-").isdigit():
                raise ValidationError(f"{col.key} must be a plain integer")
            return int(stripped)
        raise ValidationError(f"{col.key} must be an integer")

    # Money / rates
    if isinstance(coltype, Numeric):
        if isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a number")
        try:
            dec = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{col.key} must be a number")
        if not dec.is_finite():
            raise ValidationError(f"{col.key} must be a finite number")
        return dec

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        return bool(value)

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        try:
            dt = parse_iso_datetime(str(value))
        except ValueError:
            raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
        if dt is None:
            raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
        return dt

    if isinstance(coltype, Date):
        if isinstance(value, date):
            return value
        try:
            return date.fromisoformat(str(value).strip())
        except ValueError:
            raise ValidationError(f"{col.key} must be an ISO-8601 date")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model,
    payload: dict,
    policy: ColumnPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming data against:
    - the policy allowlist (writable)
    - SQLAlchemy column metadata (nullable, type, String length)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable:
            raise ValidationError(f"Field not allowed: {k}")

    patch: dict = {}
    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable and val == "":
            raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def parse_positive_int(value, field: str) -> int:
    """
    Strict positive integer parse for quantities.

    Accepts ints and digit strings; rejects bools, floats with a fraction,
    and anything <= 0. Raises ValueError so callers can map it to their own
    domain error code.
    """
    if isinstance(value, bool) or value is None:
        raise ValueError(f"{field} must be a positive integer")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"{field} must be a whole number")
        parsed = int(value)
    elif isinstance(value, (str, Decimal)):
        text_value = str(value).strip()
        if not text_value.isdigit():
            raise ValueError(f"{field} must be a positive integer")
        parsed = int(text_value)
    else:
        raise ValueError(f"{field} must be a positive integer")
    if parsed <= 0:
        raise ValueError(f"{field} must be a positive integer")
    return parsed


def parse_money(value, field: str, details: dict | None = None) -> Decimal:
    """Cent-rounded, finite, non-negative amount; blank reads as zero."""
    try:
        amount = to_money(value)
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field} must be a number", details=details)
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number", details=details)
    if amount < 0:
        raise ValidationError(f"{field} cannot be negative", details=details)
    return amount
