"""Utility functions module"""

from .constants import (
    ConversationStates, SubStates, PaymentMethods, AddressLabels, OrderStatus,
    Keywords, MessageTypes, DeliveryDefaults, APIConfig, ErrorMessages
)
from .helpers import (
    cart_subtotal, cart_item_count, generate_order_number, format_money,
    truncate_message, safe_int, is_within_opening_hours, clean_text_input
)
from .logging import ColoredFormatter, setup_logging, mask_phone, log_message_flow, log_order_event

__all__ = [
    # Constants
    'ConversationStates', 'SubStates', 'PaymentMethods', 'AddressLabels', 'OrderStatus',
    'Keywords', 'MessageTypes', 'DeliveryDefaults', 'APIConfig', 'ErrorMessages',

    # Helpers
    'cart_subtotal', 'cart_item_count', 'generate_order_number', 'format_money',
    'truncate_message', 'safe_int', 'is_within_opening_hours', 'clean_text_input',

    # Logging
    'ColoredFormatter', 'setup_logging', 'mask_phone', 'log_message_flow', 'log_order_event'
]
