# workflow/thread_safe_handlers.py
"""
Thread-safe wrapper around the conversation handler with per-customer isolation
"""
import logging
import time
from typing import Dict, Any
from datetime import datetime

from utils.constants import ErrorMessages
from utils.helpers import truncate_message
from utils.message_validator import MessageValidator
from utils.thread_safe_session import ThreadSafeSessionManager
from workflow.handlers import MessageHandler

logger = logging.getLogger(__name__)


class ThreadSafeMessageHandler:
    """Serializes each customer's messages and turns webhook payloads into handler calls"""

    def __init__(self, message_handler: MessageHandler, session_manager: ThreadSafeSessionManager):
        self.main_handler = message_handler
        self.sessions = session_manager

    def handle_message(self, message_data: Dict[str, Any]) -> Dict[str, Any]:
        """Main message handling with thread safety and user isolation"""

        phone_number = MessageValidator.extract_phone_number(message_data)
        message_id = message_data.get('id', f"msg_{time.time()}")

        if not phone_number:
            logger.warning(f"⚠️ Message without a valid phone number: {message_data.get('from')}")
            return self._create_response(ErrorMessages.SYSTEM_ERROR)

        if self.sessions.is_message_duplicate(phone_number, message_id):
            return {'type': 'duplicate', 'content': '', 'timestamp': datetime.now().isoformat()}

        try:
            with self.sessions.user_session_lock(phone_number):
                return self._process_user_message_safely(phone_number, message_data)

        except TimeoutError:
            logger.error(f"⏰ Timeout acquiring lock for user {phone_number}")
            return self._create_response(ErrorMessages.SERVICE_BUSY)
        except Exception as e:
            logger.error(f"❌ Error processing message for {phone_number}: {e}")
            return self._create_response(ErrorMessages.SYSTEM_ERROR)

    def _process_user_message_safely(self, phone_number: str, message_data: Dict) -> Dict:
        """Process one message while holding the customer's lock"""
        customer_name = MessageValidator.extract_customer_name(message_data)
        coordinates = MessageValidator.extract_location(message_data)

        if coordinates is not None:
            text = MessageValidator.extract_location_label(message_data) or ''
            logger.info(f"📍 Location from {phone_number}: {coordinates}")
        else:
            text = MessageValidator.extract_text(message_data)
            logger.info(f"👤 Processing for {phone_number}: '{text}'")

        return self.main_handler.handle_inbound_message(phone_number, text, customer_name, coordinates)

    @staticmethod
    def _create_response(content: str) -> Dict[str, Any]:
        return {
            'type': 'text',
            'content': truncate_message(content),
            'timestamp': datetime.now().isoformat()
        }
