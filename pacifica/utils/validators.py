"""
Input validation utilities.

Validates order fields and stream parameters before anything is signed or
sent over the wire.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Callable

from ..exceptions import ValidationError


# Candle intervals accepted by the candle stream
VALID_INTERVALS = ("1m", "3m", "5m", "15m", "30m", "1h", "2h", "4h", "8h", "12h", "1d")


def validate_symbol(symbol: Any) -> str:
    """
    Validate market symbol.

    Args:
        symbol: Market symbol (e.g. "BTC")

    Returns:
        Symbol with surrounding whitespace removed

    Raises:
        ValidationError: If symbol is empty or not a string
    """
    if not isinstance(symbol, str) or not symbol.strip():
        raise ValidationError("symbol is required")
    return symbol.strip()


def validate_decimal_string(value: Any, field: str, allow_zero: bool = False) -> str:
    """
    Validate a decimal amount that is sent as a string.

    The original text is returned unchanged: the server signs and parses
    exactly what the client sent, so no normalization happens here.

    Args:
        value: Decimal text (str, or Decimal/int which is converted to str)
        field: Field name for error messages
        allow_zero: Accept zero values

    Returns:
        Decimal text

    Raises:
        ValidationError: If value is missing, not numeric, or not positive
    """
    if isinstance(value, (Decimal, int)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{field} is required")

    try:
        number = Decimal(value)
    except InvalidOperation as e:
        raise ValidationError(f"Invalid {field} format: {value}") from e

    if not number.is_finite():
        raise ValidationError(f"{field} must be finite, got {value}")
    if number < 0 or (number == 0 and not allow_zero):
        raise ValidationError(f"{field} must be positive, got {value}")

    return value


def validate_interval(interval: Any) -> str:
    """
    Validate candle interval.

    Raises:
        ValidationError: If interval is not one of VALID_INTERVALS
    """
    if interval not in VALID_INTERVALS:
        raise ValidationError(
            f"invalid interval: {interval} (expected one of {', '.join(VALID_INTERVALS)})"
        )
    return interval


def validate_expiry_window(expiry_window: Any) -> int:
    """Validate signature expiry window in milliseconds (0 selects the default)."""
    if not isinstance(expiry_window, int) or isinstance(expiry_window, bool):
        raise ValidationError(f"expiry_window must be an integer, got {type(expiry_window)}")
    if expiry_window < 0:
        raise ValidationError(f"expiry_window must not be negative, got {expiry_window}")
    return expiry_window


def validate_callback(callback: Any) -> Callable:
    """Validate that a stream callback is callable."""
    if callback is None or not callable(callback):
        raise ValidationError("callback must be callable")
    return callback
