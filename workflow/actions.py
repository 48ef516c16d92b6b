import logging
from datetime import datetime
from typing import Optional

from database.models import Order, OrderLine
from utils.constants import OrderStatus
from utils.helpers import cart_subtotal, generate_order_number
from utils.logging import log_order_event

logger = logging.getLogger(__name__)


class OrderPlacementError(Exception):
    """Raised when an order cannot be built or persisted"""


class OrderManager:
    """Turns a completed conversation session into a persisted order"""

    def __init__(self, repository):
        self.db = repository

    def place_order(self, phone_number: str, customer_name: Optional[str], session) -> Order:
        """Persist the session's order; raises OrderPlacementError on any failure"""
        self._validate_session(session)

        try:
            customer = self.db.find_or_create_customer(phone_number, customer_name)
            session.customer_id = customer.id

            subtotal = cart_subtotal(session.cart)
            estimate = session.delivery_estimate
            address = session.delivery_address

            order = Order(
                order_number=generate_order_number(),
                restaurant_id=session.restaurant.id,
                customer_id=customer.id,
                customer_phone=phone_number,
                address=address.text,
                reference=address.reference,
                latitude=address.latitude,
                longitude=address.longitude,
                payment_method=session.payment_method,
                subtotal=subtotal,
                delivery_fee=estimate.fee,
                distance_km=estimate.distance_km,
                eta_minutes=estimate.eta_minutes,
                total=subtotal + estimate.fee,
                status=OrderStatus.PENDING,
                created_at=datetime.now()
            )

            lines = [
                OrderLine(
                    menu_item_id=line.menu_item_id,
                    name=line.name,
                    unit_price=line.unit_price,
                    quantity=line.quantity,
                    notes=line.notes
                )
                for line in session.cart
            ]

            persisted = self.db.create_order(order, lines)

        except Exception as e:
            logger.error(f"❌ Error placing order for {phone_number}: {e}")
            raise OrderPlacementError(str(e)) from e

        if persisted is None:
            raise OrderPlacementError("Order repository returned no order")

        log_order_event(persisted.order_number, phone_number, 'placed',
                        restaurant=persisted.restaurant_id, total=f"{persisted.total:.2f}",
                        payment=persisted.payment_method)
        return persisted

    @staticmethod
    def _validate_session(session):
        missing = []
        if not session.restaurant:
            missing.append('restaurant')
        if not session.cart:
            missing.append('cart')
        if not session.delivery_address:
            missing.append('delivery_address')
        if not session.payment_method:
            missing.append('payment_method')
        if session.delivery_estimate is None:
            missing.append('delivery_estimate')

        if missing:
            raise OrderPlacementError(f"Session is missing: {', '.join(missing)}")
