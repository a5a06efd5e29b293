from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any


# Maximum monetary amount accepted from clients.
# This prevents database overflow issues and nonsensical amounts
MAX_AMOUNT = Decimal("9999999999.9999")

# Tolerance used when comparing accumulated money amounts
MONEY_EPSILON = Decimal("0.01")

# Weight-sold products are measured to the gram
WEIGHT_PLACES = 3


class ValidationError(ValueError):
    """400-level input problem."""


def parse_decimal(value: Any, field: str, *, allow_negative: bool = False) -> Decimal:
    """
    Coerce a JSON number or numeric string into a Decimal.

    Floats go through str() so 0.1 stays 0.1 instead of its binary expansion.
    Booleans, NaN and infinities are rejected.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be a number")
        try:
            result = Decimal(stripped)
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number")
    else:
        raise ValidationError(f"{field} must be a number")

    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    if not allow_negative and result < 0:
        raise ValidationError(f"{field} cannot be negative")
    if abs(result) > MAX_AMOUNT:
        raise ValidationError(f"{field} is too large")
    return result


def parse_quantity(value: Any, field: str, *, sell_by: str = "unit") -> Decimal:
    """
    Validate a line quantity for a product sold by unit or by weight.

    Unit quantities must be whole numbers; weight quantities may carry up to
    three decimal places. Quantities are always strictly positive.
    """
    qty = parse_decimal(value, field)
    if qty <= 0:
        raise ValidationError(f"{field} must be positive")

    if sell_by == "weight":
        if qty != qty.quantize(Decimal(1).scaleb(-WEIGHT_PLACES)):
            raise ValidationError(f"{field} supports at most {WEIGHT_PLACES} decimal places")
    elif qty != qty.to_integral_value():
        raise ValidationError(f"{field} must be a whole number for unit-sold products")
    return qty


def money_str(value: Decimal | None) -> str | None:
    """Serialize a Decimal for JSON output without float rounding."""
    if value is None:
        return None
    return format(Decimal(value).normalize(), "f")


def is_close(a: Decimal, b: Decimal, epsilon: Decimal = MONEY_EPSILON) -> bool:
    """True when two money amounts differ by less than epsilon."""
    return abs(Decimal(a) - Decimal(b)) < epsilon
