import sqlite3
from datetime import datetime

import pytest

from database.models import MenuItem, Order, OrderLine, Restaurant, SavedAddress


def _order(customer_id, number="ORD-240307-001", **overrides):
    values = dict(
        order_number=number,
        restaurant_id=1,
        customer_id=customer_id,
        customer_phone="51987654321",
        address="Av. El Sol 123, Cusco",
        payment_method="cash",
        subtotal=55.0,
        delivery_fee=5.0,
        total=60.0,
        created_at=datetime(2024, 3, 7, 20, 15),
    )
    values.update(overrides)
    return Order(**values)


def _lines():
    return [
        OrderLine(menu_item_id=1, name="Pizza Americana", unit_price=25.0, quantity=2, notes="sin cebolla"),
        OrderLine(menu_item_id=4, name="Inca Kola 500ml", unit_price=5.0, quantity=1),
    ]


@pytest.mark.parametrize("hour, expected", [
    (13, ["Pizzería Don Mario", "Pollería El Inka"]),
    (1, ["Pollería El Inka"]),
    (5, []),
])
def test_open_restaurants_follow_opening_hours(db_manager, hour, expected):
    restaurants = db_manager.list_open_restaurants(datetime(2024, 3, 7, hour, 0))

    assert [r.name for r in restaurants] == expected


def test_seed_is_idempotent(tmp_path):
    from database.manager import DeliveryDatabaseManager

    path = str(tmp_path / "seed.db")
    DeliveryDatabaseManager(path)
    manager = DeliveryDatabaseManager(path)

    assert manager.get_database_stats()['restaurants_count'] == 2


def test_inactive_restaurants_are_hidden(empty_db_manager):
    empty_db_manager.add_restaurant(Restaurant(id=None, name="Abierto"))
    empty_db_manager.add_restaurant(Restaurant(id=None, name="Cerrado", active=False))

    assert [r.name for r in empty_db_manager.list_open_restaurants()] == ["Abierto"]


def test_menu_excludes_unavailable_items(empty_db_manager):
    restaurant = empty_db_manager.add_restaurant(Restaurant(id=None, name="Cevichería"))
    empty_db_manager.add_menu_item(MenuItem(id=None, restaurant_id=restaurant.id, name="Ceviche", price=30.0))
    empty_db_manager.add_menu_item(MenuItem(id=None, restaurant_id=restaurant.id, name="Leche de tigre",
                                            price=15.0, available=False))

    menu = empty_db_manager.list_available_menu(restaurant.id)

    assert [item.name for item in menu] == ["Ceviche"]
    assert menu[0].category is None


def test_find_or_create_customer_is_stable(db_manager):
    first = db_manager.find_or_create_customer("51987654321", "Ana")
    second = db_manager.find_or_create_customer("51987654321", "Otra")

    assert first.id == second.id
    assert second.name == "Ana"
    assert db_manager.find_customer("51900000000") is None


def test_first_saved_address_becomes_default(db_manager):
    customer = db_manager.find_or_create_customer("51987654321", "Ana")

    db_manager.save_address(customer.id, SavedAddress(label="Trabajo", address="Jr. Cusco 400"))
    db_manager.save_address(customer.id, SavedAddress(label="Casa", address="Av. El Sol 123",
                                                      latitude=-13.53, longitude=-71.96))

    addresses = db_manager.list_saved_addresses(customer.id)
    assert [(a.label, a.is_default) for a in addresses] == [("Trabajo", True), ("Casa", False)]
    assert addresses[1].latitude == -13.53


def test_new_default_address_replaces_previous(db_manager):
    customer = db_manager.find_or_create_customer("51987654321", "Ana")
    db_manager.save_address(customer.id, SavedAddress(label="Trabajo", address="Jr. Cusco 400"))

    db_manager.save_address(customer.id, SavedAddress(label="Casa", address="Av. El Sol 123", is_default=True))

    addresses = db_manager.list_saved_addresses(customer.id)
    assert [(a.label, a.is_default) for a in addresses] == [("Casa", True), ("Trabajo", False)]


def test_create_order_persists_lines(db_manager):
    customer = db_manager.find_or_create_customer("51987654321", "Ana")

    order = db_manager.create_order(_order(customer.id, reference="puerta verde"), _lines())

    assert order.id is not None
    assert [line.order_id for line in order.lines] == [order.id, order.id]

    stored = db_manager.get_order("ORD-240307-001")
    assert stored.total == 60.0
    assert stored.reference == "puerta verde"
    assert stored.created_at == datetime(2024, 3, 7, 20, 15)
    assert [(l.quantity, l.notes) for l in stored.lines] == [(2, "sin cebolla"), (1, None)]


def test_create_order_is_atomic(db_manager):
    customer = db_manager.find_or_create_customer("51987654321", "Ana")
    broken_lines = _lines() + [OrderLine(menu_item_id=9, name=None, unit_price=1.0, quantity=1)]

    with pytest.raises(sqlite3.IntegrityError):
        db_manager.create_order(_order(customer.id), broken_lines)

    stats = db_manager.get_database_stats()
    assert stats['orders_count'] == 0
    assert stats['order_items_count'] == 0


def test_order_history_most_recent_first(db_manager):
    customer = db_manager.find_or_create_customer("51987654321", "Ana")
    db_manager.create_order(_order(customer.id, "ORD-240307-001"), _lines())
    db_manager.create_order(_order(customer.id, "ORD-240308-002", total=42.0), _lines())

    history = db_manager.get_order_history("51987654321")

    assert [h['order_number'] for h in history] == ["ORD-240308-002", "ORD-240307-001"]
    assert db_manager.get_database_stats()['total_revenue'] == 102.0
