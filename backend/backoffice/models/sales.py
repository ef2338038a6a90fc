from __future__ import annotations

from ..extensions import db
from ..money import money_float
from ..time_utils import to_utc_z, to_iso_date


class Order(db.Model):
    """
    Customer sales order.

    LIFECYCLE (see order_service for the full adjacency table):
        pending -> picking -> packed -> dispatched -> delivered -> completed
    with cancellation and return branches.

    total_amount is computed once at creation from current sale prices and is
    never silently recomputed afterward.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_created", "status", "created_at"),
        db.Index("ix_orders_client", "client_id"),
    )

    id = db.Column(db.String(36), primary_key=True)
    client_id = db.Column(db.String(36), db.ForeignKey("clients.id"), nullable=True)
    customer_name = db.Column(db.String(255), nullable=True)

    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="pending")
    payment_method = db.Column(db.String(32), nullable=False, default="cash")

    # Shipping
    shipping_method = db.Column(db.String(32), nullable=True)
    shipping_address = db.Column(db.String(255), nullable=True)
    tracking_number = db.Column(db.String(64), nullable=True)
    estimated_delivery = db.Column(db.DateTime(timezone=True), nullable=True)
    dispatched_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    recipient_name = db.Column(db.String(255), nullable=True)
    recipient_dni = db.Column(db.String(32), nullable=True)
    delivery_notes = db.Column(db.Text, nullable=True)

    # At most one invoice per order
    invoice_id = db.Column(db.String(36), nullable=True, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    client = db.relationship("Client", backref=db.backref("orders", lazy=True))

    def __repr__(self) -> str:
        return f"<Order id={self.id} status={self.status} total={self.total_amount}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "customer_name": self.customer_name,
            "total_amount": money_float(self.total_amount),
            "status": self.status,
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "shipping_method": self.shipping_method,
            "shipping_address": self.shipping_address,
            "tracking_number": self.tracking_number,
            "estimated_delivery": to_utc_z(self.estimated_delivery),
            "dispatched_at": to_utc_z(self.dispatched_at),
            "delivered_at": to_utc_z(self.delivered_at),
            "recipient_name": self.recipient_name,
            "recipient_dni": self.recipient_dni,
            "delivery_notes": self.delivery_notes,
            "invoice_id": self.invoice_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OrderItem(db.Model):
    """
    Order line.

    unit_price is a snapshot of the product's sale price when the order was
    placed, so later price edits never change what the customer owes.
    picked_quantity is only touched by picking (0..quantity).
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        db.CheckConstraint(
            "picked_quantity >= 0 AND picked_quantity <= quantity",
            name="ck_order_items_picked_range",
        ),
    )

    id = db.Column(db.String(36), primary_key=True)
    order_id = db.Column(db.String(36), db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    picked_quantity = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("items", lazy=True, order_by="OrderItem.created_at"))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "sku": self.product.sku if self.product else None,
            "quantity": self.quantity,
            "unit_price": money_float(self.unit_price),
            "picked_quantity": self.picked_quantity,
        }


# =============================================================================
# INVOICES
# =============================================================================

class Invoice(db.Model):
    """
    Legally-numbered sales document.

    Client identity fields are captured at issuance (client_name, tax id,
    address). They are NOT a live join: editing the client later must never
    alter an issued invoice.

    Display number format: {invoice_type}-{point_of_sale:04d}-{invoice_number:08d}
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint(
            "invoice_type", "point_of_sale", "invoice_number",
            name="uq_invoices_type_pos_number",
        ),
        db.Index("ix_invoices_issue_date", "issue_date"),
    )

    id = db.Column(db.String(36), primary_key=True)
    order_id = db.Column(db.String(36), db.ForeignKey("orders.id"), nullable=True, index=True)

    # Client snapshot
    client_id = db.Column(db.String(36), nullable=True, index=True)
    client_name = db.Column(db.String(255), nullable=False)
    client_tax_id = db.Column(db.String(32), nullable=True)
    client_address = db.Column(db.String(255), nullable=True)
    client_tax_condition = db.Column(db.String(64), nullable=True)

    invoice_type = db.Column(db.String(4), nullable=False)
    point_of_sale = db.Column(db.Integer, nullable=False)
    invoice_number = db.Column(db.Integer, nullable=False)

    net_amount = db.Column(db.Numeric(12, 2), nullable=False)
    vat_amount = db.Column(db.Numeric(12, 2), nullable=False)
    exempt_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="issued", index=True)
    payment_method = db.Column(db.String(32), nullable=True)
    payment_status = db.Column(db.String(16), nullable=False, default="pending")
    paid_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    # Tax-authority handshake
    authorization_code = db.Column(db.String(32), nullable=True)
    authorization_expires_on = db.Column(db.Date, nullable=True)

    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(36), nullable=True)

    issue_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def display_number(self) -> str:
        from ..services.document_service import format_invoice_number
        return format_invoice_number(self.invoice_type, self.point_of_sale, self.invoice_number)

    def __repr__(self) -> str:
        return f"<Invoice id={self.id} number={self.display_number!r} total={self.total_amount}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "client_tax_id": self.client_tax_id,
            "client_address": self.client_address,
            "client_tax_condition": self.client_tax_condition,
            "invoice_type": self.invoice_type,
            "point_of_sale": self.point_of_sale,
            "invoice_number": self.invoice_number,
            "display_number": self.display_number,
            "net_amount": money_float(self.net_amount),
            "vat_amount": money_float(self.vat_amount),
            "exempt_amount": money_float(self.exempt_amount),
            "total_amount": money_float(self.total_amount),
            "status": self.status,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "paid_amount": money_float(self.paid_amount),
            "authorization_code": self.authorization_code,
            "authorization_expires_on": to_iso_date(self.authorization_expires_on),
            "notes": self.notes,
            "created_by": self.created_by,
            "issue_date": to_utc_z(self.issue_date),
            "created_at": to_utc_z(self.created_at),
        }


class InvoiceItem(db.Model):
    __tablename__ = "invoice_items"

    id = db.Column(db.String(36), primary_key=True)
    invoice_id = db.Column(db.String(36), db.ForeignKey("invoices.id"), nullable=False, index=True)
    product_id = db.Column(db.String(36), nullable=True)

    # Product snapshot
    description = db.Column(db.String(255), nullable=False)
    product_name = db.Column(db.String(255), nullable=True)
    sku = db.Column(db.String(64), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    discount_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    vat_rate = db.Column(db.Numeric(5, 2), nullable=False)
    vat_amount = db.Column(db.Numeric(12, 2), nullable=False)
    total_line = db.Column(db.Numeric(12, 2), nullable=False)

    invoice = db.relationship("Invoice", backref=db.backref("items", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "product_id": self.product_id,
            "description": self.description,
            "product_name": self.product_name,
            "sku": self.sku,
            "quantity": self.quantity,
            "unit_price": money_float(self.unit_price),
            "discount_percentage": float(self.discount_percentage or 0),
            "vat_rate": float(self.vat_rate or 0),
            "vat_amount": money_float(self.vat_amount),
            "total_line": money_float(self.total_line),
        }


class Transaction(db.Model):
    """
    Money movement row (one per payment split, or one per credit adjustment).

    type:
    - sale: customer payment collected against an invoice
    - adjustment: compensating entry (credit note issued for a return)
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_reference", "reference_id"),
        db.Index("ix_transactions_client_date", "client_id", "date"),
    )

    id = db.Column(db.String(36), primary_key=True)
    type = db.Column(db.String(16), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    payment_method = db.Column(db.String(32), nullable=True)
    description = db.Column(db.String(255), nullable=True)
    reference_id = db.Column(db.String(36), nullable=True)
    client_id = db.Column(db.String(36), nullable=True)
    supplier_id = db.Column(db.String(36), nullable=True)
    date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "amount": money_float(self.amount),
            "payment_method": self.payment_method,
            "description": self.description,
            "reference_id": self.reference_id,
            "client_id": self.client_id,
            "supplier_id": self.supplier_id,
            "date": to_utc_z(self.date),
        }
