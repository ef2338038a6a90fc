from __future__ import annotations

import json

from ..extensions import db
from ..money import money_float
from ..time_utils import to_utc_z


class ClientReturn(db.Model):
    """
    Customer return document.

    LIFECYCLE:
    1. pending: created with items, nothing restocked yet
    2. approved: sellable units restocked, damaged units logged, credit note issued
    3. rejected / cancelled: terminal, can never be approved

    DESIGN PRINCIPLES:
    - total_amount is computed at creation as SUM(quantity * unit_price)
    - approval is the ONLY path that creates a credit note from a return
    - approval happens at most once (credit_notes has a unique reference)
    """
    __tablename__ = "client_returns"
    __table_args__ = (
        db.Index("ix_client_returns_status_created", "status", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True)
    client_id = db.Column(db.String(36), db.ForeignKey("clients.id"), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)
    order_id = db.Column(db.String(36), db.ForeignKey("orders.id"), nullable=True, index=True)

    reason = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    created_by = db.Column(db.String(36), nullable=True)
    approved_by = db.Column(db.String(36), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_by = db.Column(db.String(36), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "customer_name": self.customer_name,
            "order_id": self.order_id,
            "reason": self.reason,
            "status": self.status,
            "total_amount": money_float(self.total_amount),
            "created_by": self.created_by,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at),
            "rejected_by": self.rejected_by,
            "rejected_at": to_utc_z(self.rejected_at),
            "rejection_reason": self.rejection_reason,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ClientReturnItem(db.Model):
    __tablename__ = "client_return_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_client_return_items_quantity_positive"),
    )

    id = db.Column(db.String(36), primary_key=True)
    return_id = db.Column(db.String(36), db.ForeignKey("client_returns.id"), nullable=False, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    # sellable units go back on the shelf; anything else is logged as damage
    condition_status = db.Column(db.String(16), nullable=False, default="sellable")
    unit_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    client_return = db.relationship("ClientReturn", backref=db.backref("items", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_id": self.return_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "condition_status": self.condition_status,
            "unit_price": money_float(self.unit_price),
        }


class CreditNote(db.Model):
    """
    Credit issued to a client. Number format: NC-{year}-{sequence:04d}.
    """
    __tablename__ = "credit_notes"
    __table_args__ = (
        db.UniqueConstraint("number", name="uq_credit_notes_number"),
        db.UniqueConstraint("reference_type", "reference_id", name="uq_credit_notes_reference"),
    )

    id = db.Column(db.String(36), primary_key=True)
    number = db.Column(db.String(32), nullable=False)
    client_id = db.Column(db.String(36), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)

    reference_type = db.Column(db.String(32), nullable=False)
    reference_id = db.Column(db.String(36), nullable=False)

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="issued")
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "number": self.number,
            "client_id": self.client_id,
            "customer_name": self.customer_name,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "amount": money_float(self.amount),
            "status": self.status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class DocumentSequence(db.Model):
    """
    Last issued number per scope (e.g. "invoice:B:1", "credit_note:2025").

    The row is locked FOR UPDATE by the issuing transaction, so two requests on
    the same scope serialize; different scopes never contend.
    """
    __tablename__ = "document_sequences"

    scope = db.Column(db.String(64), primary_key=True)
    last_value = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "scope": self.scope,
            "last_value": self.last_value,
            "updated_at": to_utc_z(self.updated_at),
        }


class AuditLog(db.Model):
    """
    Best-effort audit trail. Written after the business transaction commits;
    a failure here never undoes the business operation.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_entity", "entity_type", "entity_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(36), nullable=True)
    action = db.Column(db.String(64), nullable=False)
    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.String(36), nullable=True)
    old_values = db.Column(db.Text, nullable=True)
    new_values = db.Column(db.Text, nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "old_values": json.loads(self.old_values) if self.old_values else None,
            "new_values": json.loads(self.new_values) if self.new_values else None,
            "ip_address": self.ip_address,
            "created_at": to_utc_z(self.created_at),
        }
