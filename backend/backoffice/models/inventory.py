from __future__ import annotations

from ..extensions import db
from ..money import money_float
from ..time_utils import to_utc_z, to_iso_date


# Movement types (append-only ledger)
MOVEMENT_SALE = "sale"
MOVEMENT_RESTOCK = "restock"
MOVEMENT_RECEPTION = "reception"
MOVEMENT_RETURN = "return"
MOVEMENT_DAMAGE = "damage"
MOVEMENT_MANUAL = "manual"

MOVEMENT_TYPES = {
    MOVEMENT_SALE,
    MOVEMENT_RESTOCK,
    MOVEMENT_RECEPTION,
    MOVEMENT_RETURN,
    MOVEMENT_DAMAGE,
    MOVEMENT_MANUAL,
}


class InventoryRecord(db.Model):
    """
    On-hand quantity of one product at one physical location.

    One row per (product, location). Rows are created lazily the first time
    stock arrives at a location and are never deleted, only zeroed.
    The CHECK constraint is the last line of defense: services validate
    availability before writing.
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.UniqueConstraint("product_id", "location", name="uq_inventory_product_location"),
        db.CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
        db.Index("ix_inventory_product_quantity", "product_id", "quantity"),
    )

    id = db.Column(db.String(36), primary_key=True)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False, index=True)
    location = db.Column(db.String(64), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    min_stock_level = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    product = db.relationship("Product", backref=db.backref("inventory_records", lazy=True))

    def __repr__(self) -> str:
        return f"<InventoryRecord product_id={self.product_id} location={self.location!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "location": self.location,
            "quantity": self.quantity,
            "min_stock_level": self.min_stock_level,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryMovement(db.Model):
    """
    Immutable stock ledger entry.

    quantity is always positive; direction comes from from_location (stock
    leaving a bucket) and to_location (stock arriving). damage movements have
    neither: the units never re-entered sellable stock.

    reference_type/reference_id name the business event (order, reception,
    client_return). Cancellation replays these rows to compensate exactly.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_invmov_reference", "reference_type", "reference_id", "type"),
        db.Index("ix_invmov_product_created", "product_id", "created_at"),
        db.CheckConstraint("quantity > 0", name="ck_invmov_quantity_positive"),
    )

    id = db.Column(db.String(36), primary_key=True)
    type = db.Column(db.String(16), nullable=False, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False, index=True)

    from_location = db.Column(db.String(64), nullable=True)
    to_location = db.Column(db.String(64), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    reason = db.Column(db.String(255), nullable=True)
    reference_type = db.Column(db.String(32), nullable=False, default="manual")
    reference_id = db.Column(db.String(36), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    performed_by = db.Column(db.String(36), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "product_id": self.product_id,
            "from_location": self.from_location,
            "to_location": self.to_location,
            "quantity": self.quantity,
            "unit_cost": money_float(self.unit_cost),
            "reason": self.reason,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "notes": self.notes,
            "performed_by": self.performed_by,
            "created_at": to_utc_z(self.created_at),
        }


# =============================================================================
# RECEPTION (supplier goods received)
# =============================================================================

class Reception(db.Model):
    """
    Goods received from a supplier.

    LIFECYCLE:
    1. pending: created with items, stock untouched
    2. approved: items restocked into their assigned locations (once)
    """
    __tablename__ = "receptions"
    __table_args__ = (
        db.UniqueConstraint("reception_number", name="uq_receptions_number"),
    )

    id = db.Column(db.String(36), primary_key=True)
    reception_number = db.Column(db.String(32), nullable=False)
    purchase_order_id = db.Column(db.String(36), nullable=True, index=True)
    supplier_id = db.Column(db.String(36), nullable=False, index=True)
    remito_number = db.Column(db.String(64), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.String(36), nullable=True)
    approved_by = db.Column(db.String(36), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reception_number": self.reception_number,
            "purchase_order_id": self.purchase_order_id,
            "supplier_id": self.supplier_id,
            "remito_number": self.remito_number,
            "status": self.status,
            "notes": self.notes,
            "created_by": self.created_by,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at),
            "created_at": to_utc_z(self.created_at),
        }


class ReceptionItem(db.Model):
    __tablename__ = "reception_items"

    id = db.Column(db.String(36), primary_key=True)
    reception_id = db.Column(db.String(36), db.ForeignKey("receptions.id"), nullable=False, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False, index=True)

    quantity_expected = db.Column(db.Integer, nullable=False, default=0)
    quantity_received = db.Column(db.Integer, nullable=False)
    unit_cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    location_assigned = db.Column(db.String(64), nullable=True)
    batch_number = db.Column(db.String(64), nullable=True)
    expiration_date = db.Column(db.Date, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    reception = db.relationship("Reception", backref=db.backref("items", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "reception_id": self.reception_id,
            "product_id": self.product_id,
            "quantity_expected": self.quantity_expected,
            "quantity_received": self.quantity_received,
            "unit_cost": money_float(self.unit_cost),
            "location_assigned": self.location_assigned,
            "batch_number": self.batch_number,
            "expiration_date": to_iso_date(self.expiration_date),
            "notes": self.notes,
        }
