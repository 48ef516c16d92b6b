# workflow/handlers.py - conversation state machine for the ordering flow

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from database.models import CartLine, DeliveryAddress, SavedAddress
from delivery.estimator import DeliveryFeeEstimator
from utils.constants import (
    AddressLabels, APIConfig, ConversationStates, DeliveryDefaults, ErrorMessages,
    Keywords, PaymentMethods, SubStates
)
from utils.helpers import clean_text_input, safe_int, truncate_message
from utils.logging import log_message_flow
from utils.order_formatter import OrderFormatter, group_menu_by_category
from utils.thread_safe_session import ConversationSession, ThreadSafeSessionManager
from .actions import OrderManager, OrderPlacementError

logger = logging.getLogger(__name__)


class MessageHandler:
    """Drives one customer's conversation through the ordering states"""

    def __init__(self, repository, session_manager: ThreadSafeSessionManager,
                 estimator: Optional[DeliveryFeeEstimator] = None,
                 order_manager: Optional[OrderManager] = None,
                 address_book_enabled: bool = True,
                 interactive_prompts_enabled: bool = True,
                 support_phone: str = '+51 999 999 999'):
        self.db = repository
        self.sessions = session_manager
        self.estimator = estimator or DeliveryFeeEstimator()
        self.orders = order_manager or OrderManager(repository)
        self.address_book_enabled = address_book_enabled
        self.interactive_prompts_enabled = interactive_prompts_enabled
        self.support_phone = support_phone

        self._state_handlers = {
            ConversationStates.START: self._handle_start,
            ConversationStates.SELECTING_RESTAURANT: self._handle_restaurant_selection,
            ConversationStates.ADDING_ITEMS: self._handle_adding_items,
            ConversationStates.CONFIRMING_CART: self._handle_cart_confirmation,
            ConversationStates.MANAGING_ADDRESS: self._handle_managing_address,
            ConversationStates.SELECTING_SAVED_ADDRESS: self._handle_saved_address_selection,
            ConversationStates.ENTERING_NEW_ADDRESS: self._handle_new_address,
            ConversationStates.CONFIRMING_LOCATION_REFERENCE: self._handle_location_reference,
            ConversationStates.SELECTING_PAYMENT: self._handle_payment_selection,
            ConversationStates.ORDER_ACTIVE: self._handle_order_active,
        }

    def handle_inbound_message(self, phone_number: str, text: str, display_name: Optional[str] = None,
                               coordinates: Optional[Tuple[float, float]] = None) -> Dict[str, Any]:
        """Process one inbound message and return the reply"""
        text = clean_text_input(text or '')
        session = self.sessions.get_session(phone_number, display_name)
        previous_state = session.state

        try:
            response = self._route_to_correct_handler(session, text, coordinates)
        except Exception as e:
            # The session is only written back on success, so it stays as it was
            logger.error(f"❌ Error handling message for {phone_number} at {previous_state}: {e}")
            log_message_flow(phone_number, previous_state, 'error', success=False)
            return self._create_response(ErrorMessages.SYSTEM_ERROR)

        self.sessions.save_session(session)
        log_message_flow(phone_number, previous_state, session.state)
        return response

    def _route_to_correct_handler(self, session: ConversationSession, text: str,
                                  coordinates: Optional[Tuple[float, float]]) -> Dict:
        # Global commands apply in every state; a shared location is never a command
        if coordinates is None:
            command = text.lower()
            if command in Keywords.RESTART:
                self.sessions.reset_session(session)
                return self._handle_start(session, text, None)
            if command in Keywords.HELP:
                return self._create_response(OrderFormatter.format_help())

        handler = self._state_handlers.get(session.state)
        if handler is None:
            logger.warning(f"⚠️ Unknown state {session.state} for {session.phone_number}, restarting")
            session.reset()
            handler = self._handle_start

        return handler(session, text, coordinates)

    # START
    def _handle_start(self, session: ConversationSession, text: str, coordinates) -> Dict:
        restaurants = self.db.list_open_restaurants()

        if not restaurants:
            logger.info(f"ℹ️ No open restaurants for {session.phone_number}")
            session.transition(ConversationStates.START)
            return self._create_response(OrderFormatter.format_no_restaurants())

        session.restaurant_candidates = list(restaurants)
        session.transition(ConversationStates.SELECTING_RESTAURANT)
        return self._create_response(
            OrderFormatter.format_restaurant_list(restaurants, session.customer_name)
        )

    # SELECTING_RESTAURANT
    def _handle_restaurant_selection(self, session: ConversationSession, text: str, coordinates) -> Dict:
        candidates = session.restaurant_candidates
        number = self._parse_selection(text, len(candidates))

        if number is None:
            return self._create_response(
                OrderFormatter.format_invalid_selection(text, len(candidates)) + "\n\n" +
                OrderFormatter.format_restaurant_list(candidates)
            )

        restaurant = candidates[number - 1]
        menu_items = self.db.list_available_menu(restaurant.id)

        if not menu_items:
            return self._create_response(
                OrderFormatter.format_empty_menu(restaurant) + "\n\n" +
                OrderFormatter.format_restaurant_list(candidates)
            )

        session.restaurant = restaurant
        session.menu_candidates = self._number_menu(menu_items)
        session.cart = []
        session.transition(ConversationStates.ADDING_ITEMS)

        logger.info(f"🍽️ {session.phone_number} selected restaurant {restaurant.name}")
        return self._create_response(OrderFormatter.format_menu(restaurant, session.menu_candidates))

    @staticmethod
    def _number_menu(menu_items: List) -> List:
        """Flatten the category grouping so position N matches displayed number N"""
        return [item for items in group_menu_by_category(menu_items).values() for item in items]

    # ADDING_ITEMS
    def _handle_adding_items(self, session: ConversationSession, text: str, coordinates) -> Dict:
        command = text.lower()

        if command in Keywords.DONE:
            if not session.cart:
                return self._create_response(
                    "🛒 Tu carrito está vacío. Agrega al menos un plato antes de continuar.\n"
                    "Ejemplo: 1 2 sin cebolla"
                )
            session.transition(ConversationStates.CONFIRMING_CART)
            return self._present_cart_confirmation(session)

        if command in Keywords.VIEW_CART:
            return self._create_response(OrderFormatter.format_cart(session.cart, session.restaurant))

        if command in Keywords.CLEAR_CART:
            session.cart = []
            return self._create_response("🗑️ Carrito vacío. Escribe el número de un plato para agregarlo.")

        parsed = self._parse_item_input(text, len(session.menu_candidates))
        if parsed is None:
            return self._create_response(OrderFormatter.format_item_usage(len(session.menu_candidates)))

        number, quantity, notes = parsed
        item = session.menu_candidates[number - 1]
        line = CartLine(
            menu_item_id=item.id,
            name=item.name,
            unit_price=item.price,
            quantity=quantity,
            notes=notes
        )
        session.cart.append(line)

        return self._create_response(OrderFormatter.format_item_added(line, session.cart))

    @staticmethod
    def _parse_item_input(text: str, menu_size: int) -> Optional[Tuple[int, int, Optional[str]]]:
        """Parse '<item> [quantity] [notes...]'; None when invalid"""
        tokens = text.split()
        if not tokens:
            return None

        number = safe_int(tokens[0])
        if number is None or not 1 <= number <= menu_size:
            return None

        quantity = 1
        note_tokens = tokens[1:]
        if note_tokens:
            explicit = safe_int(note_tokens[0])
            if explicit is not None:
                if explicit < 1:
                    return None
                quantity = explicit
                note_tokens = note_tokens[1:]

        notes = ' '.join(note_tokens) or None
        return number, quantity, notes

    # CONFIRMING_CART
    def _present_cart_confirmation(self, session: ConversationSession) -> Dict:
        text_prompt = OrderFormatter.format_cart_confirmation(session.cart, session.restaurant)
        options = [('1', '✅ Confirmar'), ('2', '✏️ Modificar')]

        if (self.interactive_prompts_enabled and not session.choice_prompt_presented
                and len(options) <= APIConfig.MAX_QUICK_REPLY_BUTTONS):
            session.choice_prompt_presented = True
            return self._create_buttons_response(
                body_text=OrderFormatter.format_cart(session.cart, session.restaurant) +
                "\n\n¿Confirmas tu pedido?",
                options=options,
                fallback_text=text_prompt
            )

        return self._create_response(text_prompt)

    def _handle_cart_confirmation(self, session: ConversationSession, text: str, coordinates) -> Dict:
        answer = text.lower()

        if answer in Keywords.YES:
            session.transition(ConversationStates.MANAGING_ADDRESS)
            return self._handle_managing_address(session, text, coordinates)

        if answer in Keywords.NO:
            session.transition(ConversationStates.ADDING_ITEMS)
            return self._create_response(
                "✏️ Puedes seguir agregando platos.\n\n" +
                OrderFormatter.format_menu(session.restaurant, session.menu_candidates) + "\n\n" +
                OrderFormatter.format_cart(session.cart, session.restaurant)
            )

        return self._present_cart_confirmation(session)

    # MANAGING_ADDRESS
    def _handle_managing_address(self, session: ConversationSession, text: str, coordinates) -> Dict:
        session.saved_addresses = self._load_saved_addresses(session)

        if not session.saved_addresses:
            session.transition(ConversationStates.ENTERING_NEW_ADDRESS)
            return self._create_response(OrderFormatter.format_new_address_prompt(first_time=True))

        session.transition(ConversationStates.SELECTING_SAVED_ADDRESS)
        return self._create_response(OrderFormatter.format_saved_addresses(session.saved_addresses))

    def _load_saved_addresses(self, session: ConversationSession) -> List[SavedAddress]:
        if not self.address_book_enabled:
            return []

        try:
            if session.customer_id is None:
                customer = self.db.find_customer(session.phone_number)
                if customer is None:
                    return []
                session.customer_id = customer.id
            return list(self.db.list_saved_addresses(session.customer_id))
        except Exception as e:
            logger.warning(f"⚠️ Could not load saved addresses for {session.phone_number}: {e}")
            return []

    # SELECTING_SAVED_ADDRESS
    def _handle_saved_address_selection(self, session: ConversationSession, text: str, coordinates) -> Dict:
        if text.lower() in Keywords.NEW_ADDRESS:
            session.transition(ConversationStates.ENTERING_NEW_ADDRESS)
            return self._create_response(OrderFormatter.format_new_address_prompt(first_time=False))

        number = self._parse_selection(text, len(session.saved_addresses))
        if number is None:
            return self._create_response(
                OrderFormatter.format_invalid_selection(text, len(session.saved_addresses)) + "\n\n" +
                OrderFormatter.format_saved_addresses(session.saved_addresses)
            )

        saved = session.saved_addresses[number - 1]
        session.delivery_address = DeliveryAddress(
            text=saved.address,
            reference=saved.reference,
            latitude=saved.latitude,
            longitude=saved.longitude
        )
        session.delivery_estimate = self.estimator.estimate(
            session.restaurant.id, saved.latitude, saved.longitude
        )
        session.transition(ConversationStates.SELECTING_PAYMENT)

        return self._create_response(OrderFormatter.format_payment_menu(
            session.delivery_estimate, intro=f"📍 Entregaremos en *{saved.label}*: {saved.address}"
        ))

    # ENTERING_NEW_ADDRESS
    def _handle_new_address(self, session: ConversationSession, text: str, coordinates) -> Dict:
        if coordinates is not None:
            latitude, longitude = coordinates
            session.delivery_address = DeliveryAddress(
                text=text or f"📍 Ubicación compartida ({latitude:.5f}, {longitude:.5f})",
                latitude=latitude,
                longitude=longitude
            )
        elif len(text) >= DeliveryDefaults.MIN_ADDRESS_LENGTH:
            session.delivery_address = DeliveryAddress(text=text)
        else:
            return self._create_response(OrderFormatter.format_address_too_short())

        session.transition(ConversationStates.CONFIRMING_LOCATION_REFERENCE)
        return self._create_response(OrderFormatter.format_reference_prompt(session.delivery_address))

    # CONFIRMING_LOCATION_REFERENCE
    def _handle_location_reference(self, session: ConversationSession, text: str, coordinates) -> Dict:
        address = session.delivery_address
        if coordinates is not None:
            # Coordinates only; a shared place name is not a reference note
            address.latitude, address.longitude = coordinates
        elif text and text.lower() not in Keywords.SKIP:
            address.reference = text

        session.delivery_estimate = self.estimator.estimate(
            session.restaurant.id, address.latitude, address.longitude
        )

        if self.address_book_enabled:
            session.transition(ConversationStates.SELECTING_PAYMENT, SubStates.AWAITING_SAVE_CHOICE)
            return self._create_response(OrderFormatter.format_save_address_offer(session.delivery_estimate))

        session.transition(ConversationStates.SELECTING_PAYMENT)
        return self._create_response(OrderFormatter.format_payment_menu(session.delivery_estimate))

    # SELECTING_PAYMENT
    def _handle_payment_selection(self, session: ConversationSession, text: str, coordinates) -> Dict:
        if session.substate == SubStates.AWAITING_SAVE_CHOICE:
            return self._handle_save_address_choice(session, text)

        number = self._parse_selection(text, len(PaymentMethods.ORDERED))
        if number is None:
            return self._create_response(
                OrderFormatter.format_invalid_selection(text, len(PaymentMethods.ORDERED)) + "\n\n" +
                OrderFormatter.format_payment_menu()
            )

        session.payment_method = PaymentMethods.ORDERED[number - 1]

        try:
            order = self.orders.place_order(session.phone_number, session.customer_name, session)
        except OrderPlacementError as e:
            logger.error(f"❌ Order placement failed for {session.phone_number}: {e}")
            self.sessions.reset_session(session)
            return self._create_response(ErrorMessages.ORDER_FAILED.format(support_phone=self.support_phone))

        session.active_order = order
        session.transition(ConversationStates.ORDER_ACTIVE)
        return self._create_response(
            OrderFormatter.format_voucher(order, session.restaurant, self.support_phone)
        )

    def _handle_save_address_choice(self, session: ConversationSession, text: str) -> Dict:
        number = self._parse_selection(text, AddressLabels.DECLINE_OPTION)
        if number is None:
            return self._create_response(
                OrderFormatter.format_invalid_selection(text, AddressLabels.DECLINE_OPTION) + "\n\n" +
                OrderFormatter.format_save_address_offer(session.delivery_estimate)
            )

        if number == AddressLabels.DECLINE_OPTION:
            intro = "👌 No guardaremos esta dirección."
        else:
            intro = self._save_delivery_address(session, AddressLabels.SAVE_OPTIONS[number - 1])

        # The choice is consumed here; payment is asked for on the next message
        session.transition(ConversationStates.SELECTING_PAYMENT)
        return self._create_response(OrderFormatter.format_payment_menu(intro=intro))

    def _save_delivery_address(self, session: ConversationSession, label: str) -> str:
        address = session.delivery_address
        try:
            customer = self.db.find_or_create_customer(session.phone_number, session.customer_name)
            session.customer_id = customer.id
            saved = self.db.save_address(customer.id, SavedAddress(
                label=label,
                address=address.text,
                reference=address.reference,
                latitude=address.latitude,
                longitude=address.longitude
            ))
        except Exception as e:
            logger.error(f"❌ Could not save address for {session.phone_number}: {e}")
            return "⚠️ No pudimos guardar la dirección, pero seguimos con tu pedido."

        session.saved_addresses.append(saved)
        return f"💾 Dirección guardada como *{label}*."

    # ORDER_ACTIVE
    def _handle_order_active(self, session: ConversationSession, text: str, coordinates) -> Dict:
        if text.lower() in Keywords.STATUS and session.active_order:
            session.active_order = self._refresh_order(session.active_order)
            return self._create_response(OrderFormatter.format_order_status(session.active_order))

        return self._create_response(OrderFormatter.format_active_order_reminder(session.active_order))

    def _refresh_order(self, order):
        """Latest stored version of the order, or the session copy when the lookup fails"""
        try:
            stored = self.db.get_order(order.order_number)
        except Exception as e:
            logger.warning(f"⚠️ Could not refresh order {order.order_number}: {e}")
            return order
        return stored or order

    # Helpers
    @staticmethod
    def _parse_selection(text: str, max_option: int) -> Optional[int]:
        """1-based selection against a list of max_option entries"""
        number = safe_int(text)
        if number is None or not 1 <= number <= max_option:
            return None
        return number

    @staticmethod
    def _create_response(content: str) -> Dict[str, Any]:
        return {
            'type': 'text',
            'content': truncate_message(content),
            'timestamp': datetime.now().isoformat()
        }

    @staticmethod
    def _create_buttons_response(body_text: str, options: List[Tuple[str, str]],
                                 fallback_text: str) -> Dict[str, Any]:
        """Quick-reply buttons; 'content' carries the equivalent text prompt"""
        return {
            'type': 'interactive_buttons',
            'content': truncate_message(fallback_text),
            'header_text': 'Musuq Delivery',
            'body_text': truncate_message(body_text, 1024),
            'footer_text': 'Responde con un botón o con el número',
            'buttons': [
                {
                    'type': 'reply',
                    'reply': {'id': option_id, 'title': title[:APIConfig.MAX_BUTTON_TITLE_LENGTH]}
                }
                for option_id, title in options
            ],
            'timestamp': datetime.now().isoformat()
        }
