"""Utility modules for Pacifica client."""

from .validators import (
    validate_symbol,
    validate_decimal_string,
    validate_interval,
    validate_expiry_window,
    validate_callback,
    VALID_INTERVALS,
)
from .retry import RetryStrategy, with_retry

__all__ = [
    "validate_symbol",
    "validate_decimal_string",
    "validate_interval",
    "validate_expiry_window",
    "validate_callback",
    "VALID_INTERVALS",
    "RetryStrategy",
    "with_retry",
]
