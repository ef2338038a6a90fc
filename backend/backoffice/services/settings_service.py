# Overview: Read-only access to company settings consumed by invoicing.

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from flask import current_app

from ..extensions import db
from ..models import CompanySetting

FALLBACK_TAX_RATE = Decimal("0.21")


def get_company_settings() -> CompanySetting | None:
    return db.session.query(CompanySetting).order_by(CompanySetting.id.asc()).first()


def get_tax_rate() -> Decimal:
    """
    VAT rate as a fraction (0.21 == 21%).

    Lookup order: company_settings row, DEFAULT_TAX_RATE config, 0.21.
    """
    settings = get_company_settings()
    if settings is not None and settings.tax_rate is not None:
        return Decimal(str(settings.tax_rate))

    configured = current_app.config.get("DEFAULT_TAX_RATE")
    if configured not in (None, ""):
        try:
            return Decimal(str(configured))
        except InvalidOperation:
            current_app.logger.warning("Ignoring invalid DEFAULT_TAX_RATE=%r", configured)
    return FALLBACK_TAX_RATE
