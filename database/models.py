"""
Database Models and Schema Definitions for Musuq Delivery WhatsApp Bot
"""
from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass, field
from datetime import datetime

from utils.constants import DeliveryDefaults, OrderStatus


@dataclass
class Restaurant:
    """Restaurant data model"""
    id: int
    name: str
    address: Optional[str] = None
    description: Optional[str] = None
    opens_at: Optional[str] = None  # HH:MM
    closes_at: Optional[str] = None  # HH:MM
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    active: bool = True

    @property
    def hours(self) -> Optional[str]:
        if self.opens_at and self.closes_at:
            return f"{self.opens_at} - {self.closes_at}"
        return None


@dataclass
class MenuItem:
    """Menu item data model"""
    id: int
    restaurant_id: int
    name: str
    price: float
    category: Optional[str] = None
    description: Optional[str] = None
    available: bool = True


@dataclass
class Customer:
    """Customer profile data model"""
    id: int
    phone: str
    name: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class SavedAddress:
    """Address stored in a customer's address book"""
    label: str
    address: str
    reference: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_default: bool = False
    id: Optional[int] = None
    customer_id: Optional[int] = None


@dataclass
class DeliveryAddress:
    """Address the current order will be delivered to"""
    text: str
    reference: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


@dataclass
class DeliveryEstimate:
    """Fee, distance and ETA for shipping an order"""
    fee: float = DeliveryDefaults.FALLBACK_FEE
    distance_km: float = DeliveryDefaults.FALLBACK_DISTANCE_KM
    eta_minutes: int = DeliveryDefaults.FALLBACK_ETA_MINUTES


@dataclass
class CartLine:
    """One line of the cart; identical items are kept as separate lines"""
    menu_item_id: int
    name: str
    unit_price: float
    quantity: int
    notes: Optional[str] = None

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity


@dataclass
class OrderLine:
    """Persisted order line item"""
    menu_item_id: int
    name: str
    unit_price: float
    quantity: int
    notes: Optional[str] = None
    id: Optional[int] = None
    order_id: Optional[int] = None

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity


@dataclass
class Order:
    """Placed order"""
    order_number: str
    restaurant_id: int
    customer_id: int
    customer_phone: str
    address: str
    payment_method: str
    subtotal: float
    delivery_fee: float
    total: float
    reference: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    distance_km: float = 0
    eta_minutes: int = DeliveryDefaults.FALLBACK_ETA_MINUTES
    status: str = OrderStatus.PENDING
    lines: List[OrderLine] = field(default_factory=list)
    created_at: Optional[datetime] = None
    id: Optional[int] = None


class DatabaseSchema:
    """Database schema definitions"""

    @staticmethod
    def get_table_definitions() -> Dict[str, str]:
        """Get all table creation SQL statements"""
        return {
            'restaurants': """
                CREATE TABLE IF NOT EXISTS restaurants (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    address TEXT,
                    description TEXT,
                    opens_at TEXT,
                    closes_at TEXT,
                    latitude REAL,
                    longitude REAL,
                    active BOOLEAN DEFAULT 1,
                    display_order INTEGER DEFAULT 0,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """,

            'menu_items': """
                CREATE TABLE IF NOT EXISTS menu_items (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    restaurant_id INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    price REAL NOT NULL,
                    category TEXT,
                    description TEXT,
                    available BOOLEAN DEFAULT 1,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (restaurant_id) REFERENCES restaurants (id)
                )
            """,

            'customers': """
                CREATE TABLE IF NOT EXISTS customers (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    phone TEXT NOT NULL UNIQUE,
                    name TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """,

            'saved_addresses': """
                CREATE TABLE IF NOT EXISTS saved_addresses (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    customer_id INTEGER NOT NULL,
                    label TEXT NOT NULL,
                    address TEXT NOT NULL,
                    reference TEXT,
                    latitude REAL,
                    longitude REAL,
                    is_default BOOLEAN DEFAULT 0,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (customer_id) REFERENCES customers (id)
                )
            """,

            'orders': """
                CREATE TABLE IF NOT EXISTS orders (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    order_number TEXT NOT NULL,
                    restaurant_id INTEGER NOT NULL,
                    customer_id INTEGER NOT NULL,
                    customer_phone TEXT NOT NULL,
                    address TEXT NOT NULL,
                    reference TEXT,
                    latitude REAL,
                    longitude REAL,
                    payment_method TEXT NOT NULL,
                    subtotal REAL NOT NULL,
                    delivery_fee REAL NOT NULL,
                    distance_km REAL DEFAULT 0,
                    eta_minutes INTEGER,
                    total REAL NOT NULL,
                    status TEXT NOT NULL DEFAULT 'PENDING',
                    created_at TIMESTAMP NOT NULL,
                    FOREIGN KEY (restaurant_id) REFERENCES restaurants (id),
                    FOREIGN KEY (customer_id) REFERENCES customers (id)
                )
            """,

            'order_items': """
                CREATE TABLE IF NOT EXISTS order_items (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    order_id INTEGER NOT NULL,
                    menu_item_id INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    unit_price REAL NOT NULL,
                    quantity INTEGER NOT NULL,
                    notes TEXT,
                    FOREIGN KEY (order_id) REFERENCES orders (id)
                )
            """,
        }

    @staticmethod
    def get_initial_restaurants() -> List[Tuple]:
        """Demo restaurants: (id, name, address, description, opens_at, closes_at, lat, lng, display_order)"""
        return [
            (1, 'Pizzería Don Mario', 'Av. El Sol 245, Cusco', 'Pizzas a la leña',
             '11:00', '23:00', -13.5226, -71.9673, 1),
            (2, 'Pollería El Inka', 'Calle Plateros 310, Cusco', 'Pollo a la brasa',
             '12:00', '02:00', -13.5162, -71.9791, 2),
        ]

    @staticmethod
    def get_initial_menu_items() -> List[Tuple]:
        """Demo menu: (restaurant_id, name, price, category, description)"""
        return [
            (1, 'Pizza Americana', 25.00, 'Pizzas', 'Jamón y queso'),
            (1, 'Pizza Hawaiana', 28.50, 'Pizzas', 'Jamón, queso y piña'),
            (1, 'Lasaña de carne', 22.00, 'Pastas', None),
            (1, 'Inca Kola 500ml', 5.00, 'Bebidas', None),
            (1, 'Chicha morada 1L', 8.00, 'Bebidas', None),
            (2, '1/4 Pollo a la brasa', 18.00, 'Pollos', 'Con papas y ensalada'),
            (2, '1/2 Pollo a la brasa', 32.00, 'Pollos', 'Con papas y ensalada'),
            (2, 'Pollo entero', 58.00, 'Pollos', 'Con papas familiares'),
            (2, 'Porción de papas', 9.00, None, None),
            (2, 'Gaseosa 1.5L', 10.00, 'Bebidas', None),
        ]
