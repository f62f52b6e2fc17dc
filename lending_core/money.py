"""
Money Helpers

Loan amounts are plain Decimals held at currency precision (2 places).
NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from typing import Union

from .errors import ValidationError

# High precision for intermediate annuity math
getcontext().prec = 28

CENT = Decimal('0.01')
ZERO = Decimal('0.00')

Numeric = Union[Decimal, int, str, float]


def to_decimal(value: Numeric, field_name: str = "amount") -> Decimal:
    """
    Coerce a caller-supplied number to Decimal.

    Floats are converted through their string form so 0.1 stays 0.1.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number, got {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError) as exc:
            raise ValidationError(f"{field_name} must be a number, got {value!r}") from exc
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be finite, got {value!r}")
    return result


def round_money(value: Decimal) -> Decimal:
    """Round to cents, half up"""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: Decimal) -> str:
    """Format for display and storage"""
    return f"{round_money(value):.2f}"


def parse_amount(value: Numeric, field_name: str = "amount") -> Decimal:
    """Validate a strictly positive money amount with at most 2 decimal places"""
    amount = to_decimal(value, field_name)
    if amount <= 0:
        raise ValidationError(f"{field_name} must be positive, got {amount}")
    if round_money(amount) != amount:
        raise ValidationError(f"{field_name} must have at most 2 decimal places, got {amount}")
    return round_money(amount)
