"""Helper utility functions"""

import re
import random
import logging
from typing import Optional, Any, Iterable
from datetime import datetime, time as dt_time

from .constants import APIConfig

logger = logging.getLogger(__name__)


def cart_subtotal(cart: Iterable) -> float:
    """Sum of line totals over cart or order lines, unrounded"""
    return sum(line.line_total for line in cart)


def cart_item_count(cart: Iterable) -> int:
    """Total number of units in the cart"""
    return sum(line.quantity for line in cart)


def generate_order_number(now: Optional[datetime] = None) -> str:
    """Generate a human-readable order number: ORD-YYMMDD-RRR"""
    now = now or datetime.now()
    return f"ORD-{now.strftime('%y%m%d')}-{random.randint(0, 999):03d}"


def format_money(amount: float, currency: str = APIConfig.CURRENCY) -> str:
    """Format an amount with two decimals"""
    return f"{currency} {amount:.2f}"


def truncate_message(message: str, max_length: int = APIConfig.MAX_MESSAGE_LENGTH) -> str:
    """Truncate message to WhatsApp limits"""
    if len(message) <= max_length:
        return message

    return message[:max_length - 30] + "... (mensaje recortado)"


def safe_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    """Parse a plain integer, returning default for anything else"""
    if isinstance(value, str):
        value = value.strip()
        if not re.fullmatch(r'[+-]?\d+', value):
            return default
    try:
        return int(value)
    except (ValueError, TypeError):
        return default


def parse_hhmm(value: Optional[str]) -> Optional[dt_time]:
    """Parse an HH:MM string"""
    if not value:
        return None
    try:
        return datetime.strptime(value.strip(), '%H:%M').time()
    except ValueError:
        logger.warning(f"⚠️ Invalid time value: {value}")
        return None


def is_within_opening_hours(opens_at: Optional[str], closes_at: Optional[str],
                            current: dt_time) -> bool:
    """Check opening hours; windows crossing midnight are supported"""
    opens, closes = parse_hhmm(opens_at), parse_hhmm(closes_at)
    if opens is None or closes is None or opens == closes:
        return True

    if opens < closes:
        return opens <= current < closes
    return current >= opens or current < closes


def clean_text_input(text: str) -> str:
    """Clean and sanitize text input"""
    if not text:
        return ""

    # Remove excessive whitespace
    text = ' '.join(text.split())

    if len(text) > 1000:
        text = text[:1000]

    return text.strip()
