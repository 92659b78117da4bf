"""
Rounding Module

Decimal coercion and rounding shared by the schedule builder and the
recalculator. NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from typing import Any

from .errors import ValidationError

# Set global decimal context for financial precision
DECIMAL_DIGITS = 28
getcontext().prec = DECIMAL_DIGITS

# Digits kept free above the principal for balances that grow through underpayment
BALANCE_HEADROOM = 2

ZERO = Decimal('0')
ONE = Decimal('1')


def to_decimal(value: Any, field_name: str = "value") -> Decimal:
    """Convert a value to Decimal, going through str() so floats keep their printed form"""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field_name} must be a number, got {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{field_name} must be a number, got {value!r}")
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be finite, got {value!r}")
    return result


def max_precision(principal: Decimal) -> int:
    """Most decimal places amounts on this principal can carry without overflowing the context"""
    integer_digits = max(principal.adjusted() + 1, 1)
    return DECIMAL_DIGITS - BALANCE_HEADROOM - integer_digits


def precision_unit(precision: int) -> Decimal:
    """Smallest representable amount at the given number of decimal places"""
    return Decimal('0.1') ** precision


def round_amount(value: Decimal, precision: int) -> Decimal:
    """Round half-up to `precision` decimal places"""
    return value.quantize(precision_unit(precision), rounding=ROUND_HALF_UP)
