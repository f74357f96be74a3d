"""
Money and quantity arithmetic for draft orders.

Pure functions over Decimal with no I/O. Values keep full precision
internally; rounding to two decimals happens only when formatting for display.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Optional

from orderdesk.core.exceptions import OrderDeskError

ZERO = Decimal("0")
CENTS = Decimal("0.01")


class MoneyError(OrderDeskError, ValueError):
    """Raised when a value cannot be interpreted as an amount or quantity."""

    def __init__(self, message: str, value: Any = None):
        super().__init__(message, value=value)
        self.value = value


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """
    Convert user or API input to Decimal.

    Accepts Decimal, int, float and numeric strings, with either '.' or ','
    as the decimal separator. None and blank strings yield the default.

    Args:
        value: Raw value
        default: Value used for None or blank input

    Returns:
        Decimal amount

    Raises:
        MoneyError: If the value is not numeric
    """
    if value is None:
        return default
    if isinstance(value, bool):
        raise MoneyError("Boolean is not a valid amount", value=value)
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return default
        if "," in text:
            # 1.234,50 -> 1234.50
            text = text.replace(".", "").replace(",", ".")
        try:
            result = Decimal(text)
        except InvalidOperation as e:
            raise MoneyError(f"Invalid amount: {value!r}", value=value) from e
    else:
        raise MoneyError(f"Unsupported amount type: {type(value).__name__}", value=value)

    if not result.is_finite():
        raise MoneyError(f"Amount must be finite: {value!r}", value=value)
    return result


def to_quantity(value: Any, default: int = 0) -> int:
    """
    Convert user or API input to an integer quantity.

    Args:
        value: Raw value
        default: Value used for None or blank input

    Returns:
        Integer quantity (not clamped)

    Raises:
        MoneyError: If the value is not a whole number
    """
    amount = to_decimal(value, default=Decimal(default))
    if amount != amount.to_integral_value():
        raise MoneyError(f"Quantity must be a whole number: {value!r}", value=value)
    return int(amount)


def clamp_non_negative(value: Decimal) -> Decimal:
    """Return value, or zero when value is negative."""
    return value if value > ZERO else ZERO


def line_total(quantity: Any, unit_price: Any) -> Decimal:
    """Quantity times unit price, at full precision."""
    return Decimal(to_quantity(quantity)) * to_decimal(unit_price)


def sum_amounts(values: Iterable[Decimal]) -> Decimal:
    """Sum Decimal values starting from zero."""
    return sum(values, ZERO)


def quantize_display(value: Any) -> Decimal:
    """Round to two decimals, half up, for presentation."""
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def format_amount(value: Any) -> str:
    """
    Format an amount with '.' thousands and ',' decimal separators.

    Example:
        >>> format_amount(Decimal("1234.5"))
        '1.234,50'
    """
    text = f"{quantize_display(value):,.2f}"
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def format_currency(value: Any, symbol: Optional[str] = "R$") -> str:
    """Format an amount prefixed by the currency symbol."""
    amount = format_amount(value)
    return f"{symbol} {amount}" if symbol else amount
