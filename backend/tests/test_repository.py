from decimal import Decimal

import pytest

from backoffice.models import Product
from backoffice.services import repository
from backoffice.services.repository import Repository
from backoffice.validation import ColumnPolicy, ValidationError


def test_policy_naming_unknown_column_fails_at_construction():
    with pytest.raises(TypeError):
        Repository(Product, ColumnPolicy(queryable=frozenset({"no_such_column"}), writable=frozenset()))


def test_policy_cannot_make_id_writable():
    with pytest.raises(TypeError):
        Repository(Product, ColumnPolicy(queryable=frozenset({"id"}), writable=frozenset({"id"})))


def test_create_assigns_id_and_coerces_types(db_session):
    product = repository.products.create({"sku": "A-1", "name": "  Lamp  ", "sale_price": "19.99"})

    assert len(product.id) == 36
    assert product.name == "Lamp"
    assert product.sale_price == Decimal("19.99")


def test_create_requires_required_fields(db_session):
    with pytest.raises(ValidationError):
        repository.products.create({"name": "No SKU"})


def test_unlisted_filter_or_order_column_is_rejected(db_session):
    with pytest.raises(ValidationError):
        repository.products.find_all({"description": "x"})
    with pytest.raises(ValidationError):
        repository.products.find_all(order_by="cost_price")


def test_update_rejects_non_writable_fields(db_session, make_product):
    product = make_product()
    with pytest.raises(ValidationError):
        repository.products.update(product.id, {"id": "other"})
    with pytest.raises(ValidationError):
        repository.products.update(product.id, {"deleted_at": "2026-01-01T00:00:00Z"})


def test_update_missing_row_returns_none(db_session):
    assert repository.products.update("missing", {"name": "x"}) is None


def test_soft_delete_hides_row_from_reads(db_session, make_product):
    product = make_product(name="Gone")

    assert repository.products.soft_delete(product.id) is True
    db_session.commit()

    assert repository.products.get(product.id) is None
    assert repository.products.find_all({"name": "Gone"}) == []
    assert repository.products.soft_delete(product.id) is False


def test_find_all_filters_orders_and_limits(db_session, make_product):
    make_product(name="B", sale_price="2.00")
    make_product(name="A", sale_price="3.00")
    make_product(name="C", sale_price="1.00")

    rows = repository.products.find_all(order_by="sale_price", descending=True, limit=2)
    assert [r.name for r in rows] == ["A", "B"]

    rows = repository.products.find_all({"name": "C"})
    assert len(rows) == 1


def test_page_returns_pagination_metadata(db_session, make_product):
    for i in range(5):
        make_product(name=f"P{i}")

    result = repository.products.page(page=2, per_page=2, order_by="name")

    assert result["count"] == 2
    assert [item["name"] for item in result["items"]] == ["P2", "P3"]
    assert result["pagination"] == {
        "page": 2,
        "per_page": 2,
        "total": 5,
        "total_pages": 3,
        "has_next": True,
        "has_prev": True,
    }


def test_page_caps_per_page(db_session):
    result = repository.products.page(per_page=1000)
    assert result["pagination"]["per_page"] == 100
