import re
from typing import Dict, Optional, Tuple

from .constants import MessageTypes


class MessageValidator:
    """Inbound WhatsApp message validation and extraction"""

    SUPPORTED_TYPES = (MessageTypes.TEXT, MessageTypes.LOCATION, MessageTypes.INTERACTIVE, MessageTypes.BUTTON)

    @staticmethod
    def is_valid_message(message_data: Dict) -> bool:
        """Validate incoming WhatsApp message format"""
        if not message_data:
            return False

        if 'from' not in message_data:
            return False

        has_text = 'text' in message_data and 'body' in message_data.get('text', {})
        has_location = 'location' in message_data

        return has_text or has_location

    @staticmethod
    def sanitize_text(text: str) -> str:
        """Sanitize and clean user text input"""
        if not text:
            return ""

        # Remove excessive whitespace
        text = ' '.join(text.split())

        # Limit length to prevent abuse
        if len(text) > 1000:
            text = text[:1000]

        text = re.sub(r'[<>{}]', '', text)

        return text.strip()

    @staticmethod
    def extract_text(message_data: Dict) -> str:
        return MessageValidator.sanitize_text(message_data.get('text', {}).get('body', ''))

    @staticmethod
    def extract_location(message_data: Dict) -> Optional[Tuple[float, float]]:
        """Extract shared coordinates as (latitude, longitude)"""
        location = message_data.get('location')
        if not location:
            return None

        try:
            latitude = float(location['latitude'])
            longitude = float(location['longitude'])
        except (KeyError, TypeError, ValueError):
            return None

        if not (-90 <= latitude <= 90 and -180 <= longitude <= 180):
            return None

        return latitude, longitude

    @staticmethod
    def extract_location_label(message_data: Dict) -> Optional[str]:
        """Name/address WhatsApp attaches to a shared place, if any"""
        location = message_data.get('location') or {}
        parts = [location.get('name'), location.get('address')]
        label = ', '.join(part.strip() for part in parts if part and part.strip())
        return label or None

    @staticmethod
    def extract_phone_number(message_data: Dict) -> Optional[str]:
        """Extract and validate phone number from message"""
        phone = message_data.get('from', '')

        if not phone:
            return None

        phone_cleaned = re.sub(r'[^\d+]', '', phone)

        # At least 8 digits
        if len(phone_cleaned.replace('+', '')) < 8:
            return None

        return phone_cleaned

    @staticmethod
    def extract_customer_name(message_data: Dict) -> str:
        """Extract customer name with fallback"""
        contacts = message_data.get('contacts') or []
        if contacts:
            profile = contacts[0].get('profile', {})
            name = (profile.get('name') or '').strip()
            if name and len(name) <= 50:
                return name

        phone = MessageValidator.extract_phone_number(message_data)
        if phone:
            return f"Cliente {phone[-4:]}"

        return "Cliente"
