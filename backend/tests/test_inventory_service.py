from decimal import Decimal

import pytest

from backoffice.errors import INSUFFICIENT_STOCK, INVALID_QUANTITY
from backoffice.models import InventoryMovement, Order, OrderItem
from backoffice.services import inventory_service, order_service
from backoffice.services.concurrency import atomic
from backoffice.services.identifier_service import new_id
from backoffice.services.inventory_service import InventoryError


def test_allocate_takes_largest_bucket_first(db_session, make_product, stock):
    product = make_product(stock={"A-1": 2, "B-1": 5, "C-1": 5})

    with atomic():
        consumed = inventory_service.allocate(product.id, 7, "order", "ord-1")

    # equal buckets break the tie by location name
    assert consumed == [("B-1", 5), ("C-1", 2)]
    assert stock(product.id) == {"A-1": 2, "B-1": 0, "C-1": 3}


def test_allocate_writes_one_sale_movement_per_bucket(db_session, make_product):
    product = make_product(stock={"A-1": 1, "B-1": 1})

    with atomic():
        inventory_service.allocate(product.id, 2, "order", "ord-2", performed_by="u-1")

    movements = db_session.query(InventoryMovement).filter_by(reference_id="ord-2").all()
    assert sorted(m.from_location for m in movements) == ["A-1", "B-1"]
    assert all(m.type == "sale" and m.quantity == 1 for m in movements)
    assert all(m.performed_by == "u-1" for m in movements)


def test_allocate_short_stock_changes_nothing(db_session, make_product, stock):
    product = make_product(stock={"A-1": 2, "B-1": 1})

    with pytest.raises(InventoryError) as exc:
        with atomic():
            inventory_service.allocate(product.id, 4, "order", "ord-3")

    assert exc.value.code == INSUFFICIENT_STOCK
    assert exc.value.status_code == 409
    assert exc.value.details == {"product_id": product.id, "requested": 4, "available": 3}
    assert stock(product.id) == {"A-1": 2, "B-1": 1}
    assert db_session.query(InventoryMovement).count() == 0


@pytest.mark.parametrize("quantity", [0, -1, "abc", None, 1.5, True])
def test_allocate_rejects_invalid_quantity(db_session, make_product, quantity):
    product = make_product(stock={"A-1": 5})

    with pytest.raises(InventoryError) as exc:
        with atomic():
            inventory_service.allocate(product.id, quantity, "order", "ord-4")

    assert exc.value.code == INVALID_QUANTITY


def test_restock_creates_missing_bucket(db_session, make_product, stock):
    product = make_product(stock={"A-1": 1})

    with atomic():
        inventory_service.restock(product.id, 4, "Z-9", "reception", "rec-1", unit_cost="2.50",
                                  movement_type="reception")

    assert stock(product.id) == {"A-1": 1, "Z-9": 4}
    movement = db_session.query(InventoryMovement).one()
    assert movement.type == "reception"
    assert movement.to_location == "Z-9"
    assert str(movement.unit_cost) == "2.50"


def test_restock_without_location_uses_default(db_session, make_product, stock):
    product = make_product()

    with atomic():
        inventory_service.restock(product.id, 3, None, "manual", None)

    assert stock(product.id) == {"General": 3}


def test_restock_rejects_outbound_movement_type(db_session, make_product):
    product = make_product()

    with pytest.raises(InventoryError):
        with atomic():
            inventory_service.restock(product.id, 1, "A-1", "manual", None, movement_type="sale")


def test_damage_is_logged_without_touching_stock(db_session, make_product, stock):
    product = make_product(stock={"A-1": 2})

    with atomic():
        inventory_service.record_damage(product.id, 3, "client_return", "ret-1", reason="broken")

    assert stock(product.id) == {"A-1": 2}
    movement = db_session.query(InventoryMovement).one()
    assert (movement.type, movement.quantity, movement.reason) == ("damage", 3, "broken")


def test_reverse_allocations_returns_units_to_their_buckets(db_session, make_product, stock):
    product = make_product(stock={"A-1": 3, "B-1": 4})
    with atomic():
        inventory_service.allocate(product.id, 6, "order", "ord-5")
    assert stock(product.id) == {"A-1": 1, "B-1": 0}

    with atomic():
        restored = inventory_service.reverse_allocations_for("ord-5")

    assert sorted((loc, qty) for _, loc, qty in restored) == [("A-1", 2), ("B-1", 4)]
    assert stock(product.id) == {"A-1": 3, "B-1": 4}


def test_stock_reads(db_session, make_product):
    product = make_product(stock={"B-1": 2, "A-1": 5})

    assert [row["location"] for row in inventory_service.get_stock_levels(product.id)] == ["A-1", "B-1"]
    assert inventory_service.get_total_on_hand(product.id) == 7
    assert inventory_service.get_total_on_hand("missing") == 0


def test_list_movements_filters(db_session, make_product):
    product = make_product(stock={"A-1": 5})
    with atomic():
        inventory_service.allocate(product.id, 2, "order", "ord-6")
        inventory_service.restock(product.id, 1, "A-1", "manual", None)

    assert len(inventory_service.list_movements(product_id=product.id)) == 2
    sales = inventory_service.list_movements(type="sale")
    assert [m["reference_id"] for m in sales] == ["ord-6"]
    assert inventory_service.list_movements(reference_id="nope") == []


def test_cancelling_order_without_sale_movements_restocks_default_location(db_session, make_product, stock):
    product = make_product(stock={"A-1": 2})
    order = Order(id=new_id(), customer_name="Legacy", total_amount=Decimal("30.00"), status="packed")
    db_session.add(order)
    db_session.flush()
    db_session.add(OrderItem(id=new_id(), order_id=order.id, product_id=product.id,
                             quantity=3, unit_price=Decimal("10.00"), picked_quantity=0))
    db_session.commit()

    order_service.transition_order_status(order.id, "cancelled")

    assert stock(product.id) == {"A-1": 2, "General": 3}
    movement = db_session.query(InventoryMovement).one()
    assert (movement.type, movement.to_location, movement.reference_id) == ("restock", "General", order.id)


@pytest.mark.parametrize("interrupt", [KeyboardInterrupt, GeneratorExit])
def test_atomic_rolls_back_on_interrupts(db_session, make_product, stock, interrupt):
    product = make_product(stock={"A-1": 2})

    with pytest.raises(interrupt):
        with atomic():
            inventory_service.restock(product.id, 5, "A-1", "manual", None)
            inventory_service.allocate(product.id, 1, "order", "ord-7")
            raise interrupt()

    assert stock(product.id) == {"A-1": 2}
    assert db_session.query(InventoryMovement).count() == 0
