# database/manager.py
"""
SQLite-backed repository for restaurants, menus, customers, addresses and orders
"""
import sqlite3
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, List, Optional

from utils.helpers import is_within_opening_hours
from .models import (
    DatabaseSchema, Restaurant, MenuItem, Customer, SavedAddress, Order, OrderLine
)

logger = logging.getLogger(__name__)


class DeliveryRepository(ABC):
    """Data capabilities the conversation flow depends on."""

    @abstractmethod
    def list_open_restaurants(self, now: Optional[datetime] = None) -> List[Restaurant]:
        raise NotImplementedError

    @abstractmethod
    def get_restaurant(self, restaurant_id: int) -> Optional[Restaurant]:
        raise NotImplementedError

    @abstractmethod
    def list_available_menu(self, restaurant_id: int) -> List[MenuItem]:
        raise NotImplementedError

    @abstractmethod
    def find_customer(self, phone: str) -> Optional[Customer]:
        raise NotImplementedError

    @abstractmethod
    def find_or_create_customer(self, phone: str, display_name: Optional[str] = None) -> Customer:
        raise NotImplementedError

    @abstractmethod
    def list_saved_addresses(self, customer_id: int) -> List[SavedAddress]:
        """Saved addresses, default entries first."""
        raise NotImplementedError

    @abstractmethod
    def save_address(self, customer_id: int, address: SavedAddress) -> SavedAddress:
        raise NotImplementedError

    @abstractmethod
    def create_order(self, order: Order, lines: List[OrderLine]) -> Order:
        """Persist the order and its lines; raises on failure."""
        raise NotImplementedError

    @abstractmethod
    def get_order(self, order_number: str) -> Optional[Order]:
        raise NotImplementedError


class DeliveryDatabaseManager(DeliveryRepository):
    """Thread-safe SQLite repository"""

    def __init__(self, db_path: str = "musuq_delivery.db", seed_demo_data: bool = True):
        self.db_path = db_path
        self.seed_demo_data = seed_demo_data
        self._db_lock = threading.RLock()

        self.init_database()

        logger.info(f"✅ Database manager initialized ({db_path})")

    @contextmanager
    def get_db_connection(self, timeout: float = 30.0):
        """Get database connection configured for concurrent access"""
        conn = None
        try:
            conn = sqlite3.connect(
                self.db_path,
                timeout=timeout,
                check_same_thread=False
            )
            conn.row_factory = sqlite3.Row

            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute("PRAGMA busy_timeout=30000")

            yield conn

        except sqlite3.OperationalError as e:
            logger.error(f"❌ Database operational error: {e}")
            if conn:
                conn.rollback()
            raise
        except Exception as e:
            logger.error(f"❌ Database error: {e}")
            if conn:
                conn.rollback()
            raise
        finally:
            if conn:
                conn.close()

    def init_database(self):
        """Create tables and seed demo data once"""
        with self._db_lock:
            with self.get_db_connection(timeout=60.0) as conn:
                for table_name, sql in DatabaseSchema.get_table_definitions().items():
                    conn.execute(sql)
                    logger.debug(f"✅ Created/verified table: {table_name}")
                conn.commit()

                if self.seed_demo_data:
                    self._populate_initial_data(conn)

    def _populate_initial_data(self, conn):
        """Populate demo restaurants and menus if the database is empty"""
        try:
            count = conn.execute("SELECT COUNT(*) FROM restaurants").fetchone()[0]
            if count:
                return

            logger.info("📝 Populating demo restaurant data...")

            for restaurant in DatabaseSchema.get_initial_restaurants():
                conn.execute("""
                    INSERT INTO restaurants
                    (id, name, address, description, opens_at, closes_at, latitude, longitude, display_order)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, restaurant)

            for item in DatabaseSchema.get_initial_menu_items():
                conn.execute("""
                    INSERT INTO menu_items (restaurant_id, name, price, category, description)
                    VALUES (?, ?, ?, ?, ?)
                """, item)

            conn.commit()
            logger.info("✅ Demo data populated successfully")

        except Exception as e:
            logger.error(f"❌ Error populating initial data: {e}")
            conn.rollback()
            raise

    # Restaurants and menus
    def add_restaurant(self, restaurant: Restaurant, display_order: int = 0) -> Restaurant:
        """Insert a restaurant (used by seeding scripts and tests)"""
        with self.get_db_connection() as conn:
            cursor = conn.execute("""
                INSERT INTO restaurants
                (name, address, description, opens_at, closes_at, latitude, longitude, active, display_order)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (restaurant.name, restaurant.address, restaurant.description,
                  restaurant.opens_at, restaurant.closes_at, restaurant.latitude,
                  restaurant.longitude, int(restaurant.active), display_order))
            conn.commit()
            restaurant.id = cursor.lastrowid
        return restaurant

    def add_menu_item(self, item: MenuItem) -> MenuItem:
        """Insert a menu item"""
        with self.get_db_connection() as conn:
            cursor = conn.execute("""
                INSERT INTO menu_items (restaurant_id, name, price, category, description, available)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (item.restaurant_id, item.name, item.price, item.category,
                  item.description, int(item.available)))
            conn.commit()
            item.id = cursor.lastrowid
        return item

    def list_open_restaurants(self, now: Optional[datetime] = None) -> List[Restaurant]:
        """Active restaurants whose opening hours include the current time"""
        now = now or datetime.now()
        with self.get_db_connection() as conn:
            rows = conn.execute("""
                SELECT id, name, address, description, opens_at, closes_at, latitude, longitude, active
                FROM restaurants
                WHERE active = 1
                ORDER BY display_order, id
            """).fetchall()

        restaurants = [self._row_to_restaurant(row) for row in rows]
        return [r for r in restaurants if is_within_opening_hours(r.opens_at, r.closes_at, now.time())]

    def get_restaurant(self, restaurant_id: int) -> Optional[Restaurant]:
        with self.get_db_connection() as conn:
            row = conn.execute("""
                SELECT id, name, address, description, opens_at, closes_at, latitude, longitude, active
                FROM restaurants WHERE id = ?
            """, (restaurant_id,)).fetchone()
        return self._row_to_restaurant(row) if row else None

    def list_available_menu(self, restaurant_id: int) -> List[MenuItem]:
        """Available menu items for a restaurant, in insertion order"""
        with self.get_db_connection() as conn:
            rows = conn.execute("""
                SELECT id, restaurant_id, name, price, category, description, available
                FROM menu_items
                WHERE restaurant_id = ? AND available = 1
                ORDER BY id
            """, (restaurant_id,)).fetchall()

        return [
            MenuItem(
                id=row['id'],
                restaurant_id=row['restaurant_id'],
                name=row['name'],
                price=row['price'],
                category=row['category'],
                description=row['description'],
                available=bool(row['available'])
            )
            for row in rows
        ]

    # Customers and addresses
    def find_customer(self, phone: str) -> Optional[Customer]:
        with self.get_db_connection() as conn:
            row = conn.execute(
                "SELECT id, phone, name, created_at FROM customers WHERE phone = ?", (phone,)
            ).fetchone()
        return self._row_to_customer(row) if row else None

    def find_or_create_customer(self, phone: str, display_name: Optional[str] = None) -> Customer:
        """Look up a customer by phone, creating the profile if absent"""
        with self.get_db_connection() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO customers (phone, name) VALUES (?, ?)",
                (phone, display_name)
            )
            conn.commit()
            row = conn.execute(
                "SELECT id, phone, name, created_at FROM customers WHERE phone = ?", (phone,)
            ).fetchone()
        return self._row_to_customer(row)

    def list_saved_addresses(self, customer_id: int) -> List[SavedAddress]:
        with self.get_db_connection() as conn:
            rows = conn.execute("""
                SELECT id, customer_id, label, address, reference, latitude, longitude, is_default
                FROM saved_addresses
                WHERE customer_id = ?
                ORDER BY is_default DESC, id
            """, (customer_id,)).fetchall()

        return [
            SavedAddress(
                id=row['id'],
                customer_id=row['customer_id'],
                label=row['label'],
                address=row['address'],
                reference=row['reference'],
                latitude=row['latitude'],
                longitude=row['longitude'],
                is_default=bool(row['is_default'])
            )
            for row in rows
        ]

    def save_address(self, customer_id: int, address: SavedAddress) -> SavedAddress:
        """Store an address; the customer's first address becomes the default"""
        with self.get_db_connection() as conn:
            existing = conn.execute(
                "SELECT COUNT(*) FROM saved_addresses WHERE customer_id = ?", (customer_id,)
            ).fetchone()[0]
            is_default = address.is_default or existing == 0

            if is_default and existing:
                conn.execute(
                    "UPDATE saved_addresses SET is_default = 0 WHERE customer_id = ?", (customer_id,)
                )

            cursor = conn.execute("""
                INSERT INTO saved_addresses
                (customer_id, label, address, reference, latitude, longitude, is_default)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (customer_id, address.label, address.address, address.reference,
                  address.latitude, address.longitude, int(is_default)))
            conn.commit()

        address.id = cursor.lastrowid
        address.customer_id = customer_id
        address.is_default = is_default
        logger.info(f"📍 Saved address '{address.label}' for customer {customer_id}")
        return address

    # Orders
    def create_order(self, order: Order, lines: List[OrderLine]) -> Order:
        """Persist an order and its line items in one transaction"""
        created_at = order.created_at or datetime.now()

        with self.get_db_connection() as conn:
            conn.execute("BEGIN IMMEDIATE TRANSACTION")

            cursor = conn.execute("""
                INSERT INTO orders
                (order_number, restaurant_id, customer_id, customer_phone, address, reference,
                 latitude, longitude, payment_method, subtotal, delivery_fee, distance_km,
                 eta_minutes, total, status, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (order.order_number, order.restaurant_id, order.customer_id, order.customer_phone,
                  order.address, order.reference, order.latitude, order.longitude,
                  order.payment_method, order.subtotal, order.delivery_fee, order.distance_km,
                  order.eta_minutes, order.total, order.status, created_at.isoformat()))
            order_id = cursor.lastrowid

            persisted_lines = []
            for line in lines:
                line_cursor = conn.execute("""
                    INSERT INTO order_items (order_id, menu_item_id, name, unit_price, quantity, notes)
                    VALUES (?, ?, ?, ?, ?, ?)
                """, (order_id, line.menu_item_id, line.name, line.unit_price, line.quantity, line.notes))
                persisted_lines.append(OrderLine(
                    id=line_cursor.lastrowid,
                    order_id=order_id,
                    menu_item_id=line.menu_item_id,
                    name=line.name,
                    unit_price=line.unit_price,
                    quantity=line.quantity,
                    notes=line.notes
                ))

            conn.commit()

        order.id = order_id
        order.created_at = created_at
        order.lines = persisted_lines
        logger.info(f"✅ Order {order.order_number} stored with {len(persisted_lines)} items")
        return order

    def get_order(self, order_number: str) -> Optional[Order]:
        """Load an order with its line items by order number"""
        with self.get_db_connection() as conn:
            row = conn.execute(
                "SELECT * FROM orders WHERE order_number = ? ORDER BY id DESC LIMIT 1", (order_number,)
            ).fetchone()
            if not row:
                return None
            item_rows = conn.execute(
                "SELECT * FROM order_items WHERE order_id = ? ORDER BY id", (row['id'],)
            ).fetchall()

        return self._row_to_order(row, item_rows)

    def get_order_history(self, phone: str, limit: int = 20) -> List[Dict]:
        """Most recent orders for a phone number"""
        with self.get_db_connection() as conn:
            rows = conn.execute("""
                SELECT order_number, restaurant_id, total, status, created_at
                FROM orders
                WHERE customer_phone = ?
                ORDER BY id DESC
                LIMIT ?
            """, (phone, limit)).fetchall()
        return [dict(row) for row in rows]

    def get_database_stats(self) -> Dict:
        """Row counts per table"""
        try:
            with self.get_db_connection() as conn:
                stats = {}
                for table in DatabaseSchema.get_table_definitions():
                    stats[f"{table}_count"] = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]

                total_revenue = conn.execute("SELECT SUM(total) FROM orders").fetchone()[0]
                stats['total_revenue'] = round(total_revenue or 0, 2)
                return stats

        except Exception as e:
            logger.error(f"❌ Error getting database stats: {e}")
            return {}

    # Row mappers
    @staticmethod
    def _row_to_restaurant(row) -> Restaurant:
        return Restaurant(
            id=row['id'],
            name=row['name'],
            address=row['address'],
            description=row['description'],
            opens_at=row['opens_at'],
            closes_at=row['closes_at'],
            latitude=row['latitude'],
            longitude=row['longitude'],
            active=bool(row['active'])
        )

    @staticmethod
    def _row_to_customer(row) -> Customer:
        created_at = row['created_at']
        return Customer(
            id=row['id'],
            phone=row['phone'],
            name=row['name'],
            created_at=datetime.fromisoformat(created_at) if created_at else None
        )

    @staticmethod
    def _row_to_order(row, item_rows) -> Order:
        return Order(
            id=row['id'],
            order_number=row['order_number'],
            restaurant_id=row['restaurant_id'],
            customer_id=row['customer_id'],
            customer_phone=row['customer_phone'],
            address=row['address'],
            reference=row['reference'],
            latitude=row['latitude'],
            longitude=row['longitude'],
            payment_method=row['payment_method'],
            subtotal=row['subtotal'],
            delivery_fee=row['delivery_fee'],
            distance_km=row['distance_km'],
            eta_minutes=row['eta_minutes'],
            total=row['total'],
            status=row['status'],
            created_at=datetime.fromisoformat(row['created_at']),
            lines=[
                OrderLine(
                    id=item['id'],
                    order_id=item['order_id'],
                    menu_item_id=item['menu_item_id'],
                    name=item['name'],
                    unit_price=item['unit_price'],
                    quantity=item['quantity'],
                    notes=item['notes']
                )
                for item in item_rows
            ]
        )
