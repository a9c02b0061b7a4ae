"""
backend/formatters.py

Display formatting for numbers and currency (en-US grouping, USD).

Pure functions, no FastAPI imports. Grouped output rounds the shortest decimal
form half-up (locale number formatting); compact K/M values round the exact
binary value (fixed-point formatting).
"""

from __future__ import annotations

import math
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional, Union

Number = Union[int, float, str, None]

_LEADING_NUMBER = re.compile(r"^\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


def _to_float(value: Any) -> Optional[float]:
    """Parse value leniently (leading numeric prefix); None when not a number."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        num = float(value)
    else:
        match = _LEADING_NUMBER.match(str(value))
        if not match:
            return None
        num = float(match.group(0))
    if math.isnan(num):
        return None
    return num


def _quantize(num: float, places: int) -> Decimal:
    exp = Decimal(1).scaleb(-places)
    try:
        return Decimal(repr(num)).quantize(exp, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # repr() of huge floats carries an exponent the quantize can't hold
        return Decimal(num).quantize(exp, rounding=ROUND_HALF_UP)


def format_number(value: Number) -> str:
    """1234567.891 -> '1,234,567.891'; '' for missing or non-numeric input."""
    num = _to_float(value)
    if num is None:
        return ""
    if math.isinf(num):
        return "∞" if num > 0 else "-∞"

    text = f"{_quantize(num, 3):,f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if text in ("-0", ""):
        return "0"
    return text


def unformat_number(value: Optional[str]) -> str:
    """Strip grouping separators: '1,234.5' -> '1234.5'."""
    if not value:
        return ""
    return value.replace(",", "")


def format_currency(amount: Number, show_decimals: bool = False) -> str:
    """1234.5 -> '$1,235' (or '$1,234.50' with show_decimals); '$0' for missing."""
    num = _to_float(amount)
    if num is None:
        return "$0"
    if math.isinf(num):
        return "$∞" if num > 0 else "-$∞"

    places = 2 if show_decimals else 0
    rounded = _quantize(num, places)
    # Sign comes from the input so -0.4 still shows as '-$0'
    sign = "-" if num < 0 else ""
    return f"{sign}${abs(rounded):,.{places}f}"


def _fixed_one(num: float) -> Decimal:
    # One decimal from the exact binary value: 1.45 is stored below half, so 1.4
    return Decimal(num).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)


def format_compact_currency(amount: Number) -> str:
    """2_500_000 -> '$2.5M', 2_500 -> '$2.5K', smaller values as format_currency."""
    num = _to_float(amount)
    if num is None:
        return format_currency(amount)

    if abs(num) >= 1_000_000:
        return f"${_fixed_one(num / 1_000_000)}M"
    if abs(num) >= 1_000:
        return f"${_fixed_one(num / 1_000)}K"
    return format_currency(num)


def format_percent(rate: Number, digits: int = 1) -> str:
    """Fractional rate to percent: 0.37 -> '37.0%'."""
    num = _to_float(rate)
    if num is None:
        return ""
    return f"{_quantize(num * 100, digits)}%"
