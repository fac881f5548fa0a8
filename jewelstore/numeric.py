"""
jewelstore/numeric.py

Numeric safety helpers for the pricing engine.

Every externally sourced number (database columns, JSON payloads, form input)
passes through safe_number() exactly once before arithmetic. Money is always a
Decimal quantized to cents with ROUND_HALF_UP.

IMPORTANT:
- NaN / Infinity never propagate: they degrade to the fallback (or 0 for money).
- Floats are converted via str() so 0.1 stays 0.1.
"""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def _to_decimal(value: Any) -> Decimal | None:
    """Best-effort conversion. Returns None when value is not a number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        raw = value.strip().replace(",", ".")
        if raw == "":
            return None
        try:
            return Decimal(raw)
        except (InvalidOperation, ValueError):
            return None
    return None


def safe_number(value: Any, fallback: Any = 0) -> Decimal:
    """
    Coerce value to a finite Decimal.

    Returns Decimal(fallback) for None, empty or unparseable strings, booleans,
    NaN and +/-Infinity.
    """
    number = _to_decimal(value)
    if number is None or not number.is_finite():
        return fallback if isinstance(fallback, Decimal) else Decimal(str(fallback))
    return number


def round_price(amount: Any) -> Decimal:
    """Round to 2 decimal places, half-up on the cents boundary. Invalid input yields 0.00."""
    return safe_number(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def percent_of(amount: Decimal, percentage: Decimal) -> Decimal:
    """amount * percentage / 100, rounded to cents."""
    return round_price(amount * (percentage / HUNDRED))


def is_valid_price(value: Any) -> bool:
    """True only for a finite number. Used as the last gate before any write."""
    if isinstance(value, bool):
        return False
    if isinstance(value, Decimal):
        return value.is_finite()
    if isinstance(value, (int, float)):
        return Decimal(str(value)).is_finite()
    return False


def as_number(value: Decimal | None) -> float | int | None:
    """JSON-friendly money/weight value (ints stay ints)."""
    if value is None:
        return None
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def get_field(obj: Any, name: str, default: Any = None) -> Any:
    """Read a field from a mapping or an attribute-bearing object (ORM row, dataclass)."""
    if obj is None:
        return default
    if isinstance(obj, Mapping):
        value = obj.get(name, default)
    else:
        value = getattr(obj, name, default)
    return default if value is None else value
