import re
from datetime import datetime, time

import pytest

from database.models import CartLine
from utils.helpers import (
    cart_item_count, cart_subtotal, clean_text_input, format_money,
    generate_order_number, is_within_opening_hours, safe_int, truncate_message
)
from utils.logging import mask_phone


def _line(price, quantity, notes=None):
    return CartLine(menu_item_id=1, name="Pizza", unit_price=price, quantity=quantity, notes=notes)


def test_cart_subtotal_sums_lines():
    cart = [_line(25.00, 2), _line(5.00, 1), _line(8.50, 3)]

    assert cart_subtotal(cart) == pytest.approx(80.50)
    assert cart_item_count(cart) == 6


def test_empty_cart_totals_zero():
    assert cart_subtotal([]) == 0
    assert cart_item_count([]) == 0


def test_order_number_format():
    number = generate_order_number(datetime(2024, 3, 7, 12, 30))

    assert re.fullmatch(r"ORD-240307-\d{3}", number)


def test_format_money_two_decimals():
    assert format_money(50) == "S/ 50.00"
    assert format_money(7.5) == "S/ 7.50"


@pytest.mark.parametrize("value, expected", [
    ("3", 3), (" 12 ", 12), ("-2", -2), (4, 4),
    ("1.5", None), ("abc", None), ("", None), (None, None), ("2x", None),
])
def test_safe_int(value, expected):
    assert safe_int(value) == expected


@pytest.mark.parametrize("opens, closes, now, expected", [
    ("11:00", "23:00", time(12, 0), True),
    ("11:00", "23:00", time(23, 0), False),
    ("11:00", "23:00", time(10, 59), False),
    ("12:00", "02:00", time(1, 30), True),
    ("12:00", "02:00", time(23, 59), True),
    ("12:00", "02:00", time(3, 0), False),
    (None, None, time(4, 0), True),
])
def test_opening_hours(opens, closes, now, expected):
    assert is_within_opening_hours(opens, closes, now) is expected


def test_truncate_message_respects_limit():
    long_text = "a" * 5000

    truncated = truncate_message(long_text)

    assert len(truncated) <= 4000
    assert truncated.endswith("(mensaje recortado)")
    assert truncate_message("corto") == "corto"


def test_clean_text_input_collapses_whitespace():
    assert clean_text_input("  1   2  sin   cebolla ") == "1 2 sin cebolla"
    assert clean_text_input(None) == ""


def test_mask_phone_hides_middle_digits():
    assert mask_phone("51987654321") == "5198***321"
    assert mask_phone("12345") == "***45"
    assert mask_phone(None) == "?"
