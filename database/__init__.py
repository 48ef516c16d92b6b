"""Database management module"""

from .manager import DeliveryRepository, DeliveryDatabaseManager
from .models import (
    DatabaseSchema, Restaurant, MenuItem, Customer, SavedAddress,
    DeliveryAddress, DeliveryEstimate, CartLine, Order, OrderLine
)

__all__ = [
    'DeliveryRepository', 'DeliveryDatabaseManager', 'DatabaseSchema',
    'Restaurant', 'MenuItem', 'Customer', 'SavedAddress', 'DeliveryAddress',
    'DeliveryEstimate', 'CartLine', 'Order', 'OrderLine'
]
