# Overview: Generic record repository; allowlisted CRUD over one ORM model.

"""
Generic Record Repository

WHY: Reference-data CRUD (products, clients, settings...) is thin. Every
entity gets the same get / find / create / update / soft-delete surface, and
the only columns that may ever reach a dynamic filter, ORDER BY, or write are
those named in the entity's ColumnPolicy.

RULES:
- Policies are closed sets checked against the mapper at construction.
- Filter values are always bound parameters (SQLAlchemy expressions).
- Soft-deleted rows (deleted_at IS NOT NULL) are invisible to every read.
- The repository never commits; callers own the transaction (atomic()).
"""

from __future__ import annotations

from typing import Generic, TypeVar

from ..extensions import db
from ..models import (
    Client,
    ClientReturn,
    CreditNote,
    InventoryRecord,
    Invoice,
    Order,
    Product,
    Reception,
)
from ..time_utils import utcnow
from ..validation import ColumnPolicy, ValidationError, validate_payload
from .identifier_service import new_id

ModelT = TypeVar("ModelT", bound=db.Model)

MAX_PER_PAGE = 100
DEFAULT_PER_PAGE = 20


class Repository(Generic[ModelT]):
    def __init__(self, model: type[ModelT], policy: ColumnPolicy):
        policy.check_against(model)
        self.model = model
        self.policy = policy
        self._soft_delete = hasattr(model, "deleted_at")

    def __repr__(self) -> str:
        return f"<Repository {self.model.__tablename__}>"

    def _column(self, name: str):
        if name not in self.policy.queryable:
            raise ValidationError(
                f"Column '{name}' is not allowed for '{self.model.__tablename__}'",
                details={"column": name},
            )
        return getattr(self.model, name)

    def _base_query(self):
        q = db.session.query(self.model)
        if self._soft_delete:
            q = q.filter(self.model.deleted_at.is_(None))
        return q

    def query(self, filters: dict | None = None, *, order_by: str | None = None, descending: bool = False):
        q = self._base_query()
        for key, value in (filters or {}).items():
            q = q.filter(self._column(key) == value)
        if order_by:
            col = self._column(order_by)
            q = q.order_by(col.desc() if descending else col.asc(), self.model.id.asc())
        return q

    def get(self, record_id) -> ModelT | None:
        return self._base_query().filter(self.model.id == record_id).first()

    def find_all(
        self,
        filters: dict | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[ModelT]:
        q = self.query(filters, order_by=order_by, descending=descending)
        if offset:
            q = q.offset(int(offset))
        if limit is not None:
            q = q.limit(int(limit))
        return q.all()

    def page(
        self,
        filters: dict | None = None,
        *,
        page: int = 1,
        per_page: int | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> dict:
        """Paginated listing in the same shape every list endpoint returns."""
        per_page = min(per_page or DEFAULT_PER_PAGE, MAX_PER_PAGE)
        page = max(page or 1, 1)

        q = self.query(filters, order_by=order_by, descending=descending)
        total = q.count()
        total_pages = (total + per_page - 1) // per_page if total > 0 else 1
        rows = q.offset((page - 1) * per_page).limit(per_page).all()

        return {
            "items": [row.to_dict() for row in rows],
            "count": len(rows),
            "pagination": {
                "page": page,
                "per_page": per_page,
                "total": total,
                "total_pages": total_pages,
                "has_next": page < total_pages,
                "has_prev": page > 1,
            },
        }

    def create(self, data: dict) -> ModelT:
        data = dict(data or {})
        record_id = data.pop("id", None) or new_id()
        patch = validate_payload(model=self.model, payload=data, policy=self.policy, partial=False)
        row = self.model(id=record_id, **patch)
        db.session.add(row)
        db.session.flush()
        return row

    def update(self, record_id, data: dict) -> ModelT | None:
        patch = validate_payload(model=self.model, payload=data, policy=self.policy, partial=True)
        row = self.get(record_id)
        if row is None:
            return None
        for key, value in patch.items():
            setattr(row, key, value)
        db.session.flush()
        return row

    def soft_delete(self, record_id) -> bool:
        if not self._soft_delete:
            raise ValidationError(f"'{self.model.__tablename__}' does not support soft delete")
        row = self.get(record_id)
        if row is None:
            return False
        row.deleted_at = utcnow()
        db.session.flush()
        return True


# =============================================================================
# PER-ENTITY REPOSITORIES
# =============================================================================

products = Repository(
    Product,
    ColumnPolicy(
        queryable=frozenset({"id", "sku", "name", "category", "status", "sale_price", "created_at", "updated_at"}),
        writable=frozenset({"sku", "name", "description", "category", "sale_price", "cost_price", "status"}),
        required_on_create=frozenset({"sku", "name"}),
    ),
)

clients = Repository(
    Client,
    ColumnPolicy(
        queryable=frozenset({"id", "name", "email", "tax_id", "status", "created_at", "updated_at"}),
        writable=frozenset({
            "name", "email", "phone", "tax_id", "address", "tax_condition",
            "credit_limit", "status",
        }),
        required_on_create=frozenset({"name"}),
    ),
)

# Orders are created by order_service; the repository only serves reads and
# shipping-field edits. status and total_amount are not writable.
orders = Repository(
    Order,
    ColumnPolicy(
        queryable=frozenset({
            "id", "client_id", "customer_name", "status", "payment_status",
            "total_amount", "created_at", "updated_at",
        }),
        writable=frozenset({"shipping_address", "tracking_number", "delivery_notes"}),
    ),
)

inventory = Repository(
    InventoryRecord,
    ColumnPolicy(
        queryable=frozenset({"id", "product_id", "location", "quantity", "created_at", "updated_at"}),
        writable=frozenset({"min_stock_level"}),
    ),
)

client_returns = Repository(
    ClientReturn,
    ColumnPolicy(
        queryable=frozenset({"id", "client_id", "customer_name", "order_id", "status", "total_amount", "created_at"}),
        writable=frozenset({"reason"}),
    ),
)

credit_notes = Repository(
    CreditNote,
    ColumnPolicy(
        queryable=frozenset({"id", "number", "client_id", "reference_type", "reference_id", "status", "created_at"}),
        writable=frozenset({"notes"}),
    ),
)

invoices = Repository(
    Invoice,
    ColumnPolicy(
        queryable=frozenset({
            "id", "order_id", "client_id", "invoice_type", "point_of_sale", "invoice_number",
            "status", "payment_status", "issue_date", "created_at",
        }),
        writable=frozenset({"notes"}),
    ),
)

receptions = Repository(
    Reception,
    ColumnPolicy(
        queryable=frozenset({"id", "reception_number", "supplier_id", "purchase_order_id", "status", "created_at"}),
        writable=frozenset({"notes", "remito_number"}),
    ),
)
