# Overview: Domain error taxonomy shared by services and the JSON boundary.

"""
Every domain failure carries:
- code: machine-readable identifier (stable, used by clients)
- status_code: HTTP-style status class for the boundary layer
- details: structured context (e.g. requested vs available stock)

Services raise these BEFORE any write in their transaction. Anything raised
later (constraint violations, driver errors) still rolls back the whole
transaction, so callers only ever see fully-applied or fully-reverted state.
"""

from __future__ import annotations


# Inventory
INSUFFICIENT_STOCK = "INSUFFICIENT_STOCK"
INVALID_QUANTITY = "INVALID_QUANTITY"

# Orders
INVALID_ORDER_TRANSITION = "INVALID_ORDER_TRANSITION"
ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
ORDER_ITEM_NOT_FOUND = "ORDER_ITEM_NOT_FOUND"
ORDER_ALREADY_INVOICED = "ORDER_ALREADY_INVOICED"
ORDER_WITHOUT_ITEMS = "ORDER_WITHOUT_ITEMS"
PRODUCT_NOT_FOUND = "PRODUCT_NOT_FOUND"
PRODUCT_PRICE_MISSING = "PRODUCT_PRICE_MISSING"

# Payments / invoices
INVALID_PAYMENT_AMOUNT = "INVALID_PAYMENT_AMOUNT"
INVALID_PAYMENT_METHOD = "INVALID_PAYMENT_METHOD"
PAYMENTS_EXCEED_TOTAL = "PAYMENTS_EXCEED_TOTAL"
INVOICE_NOT_FOUND = "INVOICE_NOT_FOUND"
INVOICE_WITHOUT_ITEMS = "INVOICE_WITHOUT_ITEMS"

# Client returns
RETURN_NOT_FOUND = "RETURN_NOT_FOUND"
RETURN_ALREADY_APPROVED = "RETURN_ALREADY_APPROVED"
RETURN_INVALID_STATE = "RETURN_INVALID_STATE"
RETURN_WITHOUT_ITEMS = "RETURN_WITHOUT_ITEMS"
RETURN_TOTAL_INVALID = "RETURN_TOTAL_INVALID"

# Receptions
RECEPTION_NOT_FOUND = "RECEPTION_NOT_FOUND"
RECEPTION_ALREADY_APPROVED = "RECEPTION_ALREADY_APPROVED"
RECEPTION_HAS_NO_ITEMS = "RECEPTION_HAS_NO_ITEMS"

VALIDATION_ERROR = "VALIDATION_ERROR"


class DomainError(Exception):
    """Base class for business-rule failures surfaced to the caller unchanged."""

    default_code = VALIDATION_ERROR
    default_status = 400

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status_code: int | None = None,
        details: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.status_code = status_code or self.default_status
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload

    def __repr__(self) -> str:
        return f"<{type(self).__name__} code={self.code} status={self.status_code} message={self.message!r}>"
