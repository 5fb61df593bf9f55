"""
Order builder with Ed25519 request signing.

Turns typed order requests into signed request bodies for the Pacifica
order endpoints.
"""

from collections.abc import Mapping
from typing import Optional, Dict, Any, Type, TypeVar, Union
import logging

from pydantic import BaseModel, ValidationError as PydanticValidationError

from ..auth.signer import Signer
from ..exceptions import ValidationError
from ..models import (
    CreateLimitOrderRequest,
    CreateMarketOrderRequest,
    CancelOrderRequest,
    SigningOptions,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

# Operation types (signed as header "type")
CREATE_ORDER = "create_order"
CREATE_MARKET_ORDER = "create_market_order"
CANCEL_ORDER = "cancel_order"


def _coerce(model: Type[M], value: Union[M, Mapping, None], what: str) -> M:
    """Validate a model instance or mapping into `model`."""
    if isinstance(value, model):
        return value
    if not isinstance(value, Mapping):
        raise ValidationError(f"{what} must be a {model.__name__} or mapping, got {type(value).__name__}")
    try:
        return model.model_validate(dict(value))
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid {what}: {e.error_count()} error(s)",
            {"errors": e.errors(include_url=False, include_context=False)}
        ) from None


class OrderBuilder:
    """
    Builds and signs order requests for Pacifica.

    Handles:
    - Request validation (nothing is signed when validation fails)
    - Operation payload construction
    - Signing via the shared Signer
    - agent_wallet override after signing
    """

    def __init__(self, signer: Signer, default_expiry_window: int = 0):
        """
        Initialize order builder.

        Args:
            signer: Signer for the trading account
            default_expiry_window: Expiry (ms) used when options leave it at 0
        """
        self.signer = signer
        self.default_expiry_window = default_expiry_window

    def _sign(
        self,
        operation_type: str,
        payload: Dict[str, Any],
        options: Union[SigningOptions, Mapping, None]
    ) -> Dict[str, Any]:
        opts = _coerce(SigningOptions, options if options is not None else {}, "signing options")
        expiry_window = opts.expiry_window or self.default_expiry_window

        request = self.signer.build_signed_request(operation_type, payload, expiry_window)

        # Override is applied after signing; agent_wallet is not part of the signed data
        if opts.agent_wallet:
            request["agent_wallet"] = opts.agent_wallet

        logger.debug(
            f"Signed {operation_type} for {request['account']} "
            f"(symbol={payload.get('symbol')}, expiry={request['expiry_window']}ms)"
        )
        return request

    def build_limit_order(
        self,
        request: Union[CreateLimitOrderRequest, Mapping],
        options: Union[SigningOptions, Mapping, None] = None
    ) -> Dict[str, Any]:
        """
        Build signed limit order request.

        Args:
            request: Limit order fields
            options: Optional signing options

        Returns:
            Signed request body for POST /orders/create

        Raises:
            ValidationError: If order parameters invalid
        """
        order = _coerce(CreateLimitOrderRequest, request, "limit order")
        payload = order.model_dump(mode="json", exclude_none=True)
        return self._sign(CREATE_ORDER, payload, options)

    def build_market_order(
        self,
        request: Union[CreateMarketOrderRequest, Mapping],
        options: Union[SigningOptions, Mapping, None] = None
    ) -> Dict[str, Any]:
        """
        Build signed market order request.

        Raises:
            ValidationError: If order parameters invalid
        """
        order = _coerce(CreateMarketOrderRequest, request, "market order")
        payload = order.model_dump(mode="json", exclude_none=True)
        return self._sign(CREATE_MARKET_ORDER, payload, options)

    def build_cancel_order(
        self,
        request: Union[CancelOrderRequest, Mapping],
        options: Union[SigningOptions, Mapping, None] = None
    ) -> Dict[str, Any]:
        """
        Build signed cancel request (by order_id or client_order_id).

        Absent identifiers are left out of the signed payload.
        """
        cancel = _coerce(CancelOrderRequest, request, "cancel request")
        payload = {
            k: v for k, v in cancel.model_dump(mode="json", exclude_none=True).items()
            if v != ""
        }
        return self._sign(CANCEL_ORDER, payload, options)
