"""
Pacifica exchange REST API.

Signed order endpoints and public market info.
"""

from collections.abc import Mapping
import time
from typing import Optional, List, Union
import logging

from .base import BaseAPIClient
from ..auth.signer import Signer
from ..config import PacificaSettings
from ..exceptions import APIError, AuthenticationError
from ..metrics import Metrics
from ..models import (
    CreateLimitOrderRequest,
    CreateMarketOrderRequest,
    CancelOrderRequest,
    SigningOptions,
    OrderResponse,
    CancelOrderResponse,
    SymbolInfo,
)
from ..trading.order_builder import OrderBuilder

logger = logging.getLogger(__name__)


class ExchangeAPI(BaseAPIClient):
    """
    Pacifica REST client.

    Order endpoints require a signer; market info is public.
    """

    def __init__(
        self,
        settings: PacificaSettings,
        signer: Optional[Signer] = None,
        metrics: Optional[Metrics] = None,
        **kwargs
    ):
        super().__init__(settings.api_url, settings, metrics=metrics, **kwargs)
        self.signer = signer
        self.order_builder = (
            OrderBuilder(signer, settings.default_expiry_window) if signer else None
        )

    def _require_builder(self) -> OrderBuilder:
        if self.order_builder is None:
            raise AuthenticationError("Private key required for trading")
        return self.order_builder

    def create_limit_order(
        self,
        request: Union[CreateLimitOrderRequest, Mapping],
        options: Union[SigningOptions, Mapping, None] = None
    ) -> OrderResponse:
        """
        Place limit order.

        Args:
            request: Limit order fields
            options: Optional signing options

        Returns:
            OrderResponse with the exchange order ID

        Raises:
            ValidationError: If order is invalid (nothing is sent)
            AuthenticationError: If no private key is configured
            APIError: If the exchange rejects the order
        """
        body = self._require_builder().build_limit_order(request, options)
        response = self.post("/orders/create", json_data=body)
        logger.info(f"Limit order placed: {response}")
        return OrderResponse.model_validate(response)

    def create_market_order(
        self,
        request: Union[CreateMarketOrderRequest, Mapping],
        options: Union[SigningOptions, Mapping, None] = None
    ) -> OrderResponse:
        """Place market order."""
        body = self._require_builder().build_market_order(request, options)
        response = self.post("/orders/create_market", json_data=body)
        logger.info(f"Market order placed: {response}")
        return OrderResponse.model_validate(response)

    def cancel_order(
        self,
        request: Union[CancelOrderRequest, Mapping],
        options: Union[SigningOptions, Mapping, None] = None
    ) -> CancelOrderResponse:
        """Cancel order by order_id or client_order_id."""
        body = self._require_builder().build_cancel_order(request, options)
        response = self.post("/orders/cancel", json_data=body)
        logger.info(f"Order cancelled: {response}")
        return CancelOrderResponse.model_validate(response)

    def get_market_info(self) -> List[SymbolInfo]:
        """
        Get specifications of all markets.

        Returns:
            List of SymbolInfo

        Raises:
            APIError: If the response reports success=false
        """
        response = self.get("/info")
        if not isinstance(response, dict) or not response.get("success"):
            error = response.get("error") if isinstance(response, dict) else None
            code = response.get("code") if isinstance(response, dict) else None
            raise APIError(
                f"Market info request failed: {error or response}",
                response=response,
                code=code
            )
        return [SymbolInfo.model_validate(item) for item in response.get("data") or []]

    def health_check(self) -> dict:
        """
        Health check for liveness probes.

        Returns:
            Health status dict
        """
        try:
            start = time.time()
            markets = self.get_market_info()
            latency = time.time() - start
            return {
                "status": "healthy",
                "latency_ms": round(latency * 1000, 2),
                "markets": len(markets),
                "timestamp": time.time()
            }
        except Exception as e:
            return {
                "status": "unhealthy",
                "error": str(e),
                "timestamp": time.time()
            }

