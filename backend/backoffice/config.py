# backend/backoffice/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/backoffice.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///backoffice.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Used when company_settings has no row (fraction, 0.21 == 21%)
    DEFAULT_TAX_RATE = os.environ.get("DEFAULT_TAX_RATE", "0.21")

    # Bucket for stock with no assigned location (returns, legacy cancellations)
    DEFAULT_STOCK_LOCATION = os.environ.get("DEFAULT_STOCK_LOCATION", "General")

    DEFAULT_INVOICE_TYPE = os.environ.get("DEFAULT_INVOICE_TYPE", "B")
    DEFAULT_POINT_OF_SALE = int(os.environ.get("DEFAULT_POINT_OF_SALE", "1"))

    # Days an invoice authorization code stays valid
    AUTHORIZATION_VALIDITY_DAYS = int(os.environ.get("AUTHORIZATION_VALIDITY_DAYS", "10"))
