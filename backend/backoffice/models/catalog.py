from __future__ import annotations

from ..extensions import db
from ..money import money_float
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data.

    Reference data owned by the catalog CRUD layer. The fulfillment engine only
    reads it: sale_price is snapshotted onto order lines at creation, and a
    NULL sale_price means the product cannot be sold yet.

    Stock is NOT stored here. On-hand quantity lives in InventoryRecord rows,
    one per (product, location).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_name", "name"),
    )

    id = db.Column(db.String(36), primary_key=True)
    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(128), nullable=True)

    sale_price = db.Column(db.Numeric(12, 2), nullable=True)
    cost_price = db.Column(db.Numeric(12, 2), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="active")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "sale_price": money_float(self.sale_price),
            "cost_price": money_float(self.cost_price),
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }


class Client(db.Model):
    """
    Customer account.

    current_account_balance is a running balance: positive means the client
    owes the business. Approved returns decrease it by the credit note amount.
    """
    __tablename__ = "clients"

    id = db.Column(db.String(36), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    tax_id = db.Column(db.String(32), nullable=True, index=True)
    address = db.Column(db.String(255), nullable=True)
    tax_condition = db.Column(db.String(64), nullable=True)

    credit_limit = db.Column(db.Numeric(12, 2), nullable=True)
    current_account_balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="active")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Client id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "tax_id": self.tax_id,
            "address": self.address,
            "tax_condition": self.tax_condition,
            "credit_limit": money_float(self.credit_limit),
            "current_account_balance": money_float(self.current_account_balance),
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }
