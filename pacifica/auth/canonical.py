"""
Canonical JSON serialization for request signing.

The signature is computed over this exact byte string, so the server must be
able to rebuild it from the same logical data:
- Object keys sorted at every depth
- Array order preserved
- No insignificant whitespace
"""

from decimal import Decimal
from typing import Any

import orjson
from pydantic import BaseModel

from ..exceptions import ValidationError


def _default(value: Any) -> Any:
    """Serialize types orjson does not handle natively."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    raise TypeError(f"Type is not JSON serializable: {type(value).__name__}")


def canonicalize_bytes(value: Any) -> bytes:
    """
    Serialize value to canonical JSON bytes.

    Args:
        value: Any JSON-representable value (dict, list, str, int, float,
            bool, None, Decimal or pydantic model)

    Returns:
        UTF-8 encoded canonical JSON

    Raises:
        ValidationError: If value contains non-serializable types or
            non-string object keys
    """
    try:
        return orjson.dumps(value, default=_default, option=orjson.OPT_SORT_KEYS)
    except orjson.JSONEncodeError as e:
        raise ValidationError(f"Value is not JSON-representable: {e}") from e


def canonicalize(value: Any) -> str:
    """
    Serialize value to canonical JSON text.

    Example:
        >>> canonicalize({"b": 2, "a": {"d": [1, 2], "c": None}})
        '{"a":{"c":null,"d":[1,2]},"b":2}'
    """
    return canonicalize_bytes(value).decode("utf-8")
