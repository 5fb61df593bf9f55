"""
Main Pacifica client.

Unified interface for trading (signed REST) and market data streams.
Thread-safe, production-ready.
"""

from collections.abc import Mapping
from typing import Optional, List, Callable, Dict, Any, Union
import atexit
import logging
import threading
import time

from .config import get_settings, PacificaSettings
from .models import (
    CreateLimitOrderRequest,
    CreateMarketOrderRequest,
    CancelOrderRequest,
    SigningOptions,
    OrderResponse,
    CancelOrderResponse,
    SymbolInfo,
    OrderBook,
    Prices,
    Trades,
    Candle,
)
from .auth.signer import Signer, load_signer
from .api.exchange import ExchangeAPI
from .api.subscriptions import Subscription
from .api.websocket import WebSocketClient, ConnectionFactory
from .exceptions import AuthenticationError
from .metrics import Metrics, get_metrics

logger = logging.getLogger(__name__)


class PacificaClient:
    """
    Main client for Pacifica operations.

    Features:
    - Ed25519 signed order placement and cancellation
    - Shared WebSocket connection for all market data streams
    - Automatic reconnection with resubscription
    - Typed exceptions

    Usage:
        client = PacificaClient(private_key="<base58 secret>")
        client.create_market_order({
            "symbol": "BTC", "amount": "0.1", "side": "bid", "slippage_percent": "0.5"
        })
        sub = client.subscribe_order_book("BTC", on_book)
    """

    def __init__(
        self,
        settings: Optional[PacificaSettings] = None,
        private_key: Optional[str] = None,
        account: Optional[str] = None,
        metrics: Optional[Metrics] = None,
        ws_connection_factory: Optional[ConnectionFactory] = None
    ):
        """
        Initialize Pacifica client.

        Args:
            settings: Optional settings (loads from env if not provided)
            private_key: Base58 signing key (overrides settings)
            account: Main account address (overrides settings)
            metrics: Optional metrics collector (built from settings if omitted)
            ws_connection_factory: Optional WebSocket dialer (tests)

        Raises:
            AuthenticationError: If the private key cannot be decoded
        """
        self.settings = settings or get_settings()

        self.signer: Optional[Signer] = load_signer(
            private_key or self.settings.private_key,
            account or self.settings.account
        )
        if self.signer is None:
            logger.info("No private key configured: market data only")

        if metrics is None and self.settings.enable_metrics:
            metrics = get_metrics(enabled=True, port=self.settings.metrics_port)
        self.metrics = metrics

        self.exchange = ExchangeAPI(
            settings=self.settings,
            signer=self.signer,
            metrics=self.metrics
        )

        # WebSocket client (lazy initialized)
        self._ws: Optional[WebSocketClient] = None
        self._ws_lock = threading.Lock()
        self._ws_connection_factory = ws_connection_factory

        atexit.register(self.close)

        logger.info("Pacifica client initialized")

    @property
    def account(self) -> Optional[str]:
        return self.signer.account if self.signer else None

    def _require_signer(self) -> Signer:
        if self.signer is None:
            raise AuthenticationError("Private key required for trading")
        return self.signer

    # ========== Trading ==========

    def create_limit_order(
        self,
        request: Union[CreateLimitOrderRequest, Mapping],
        options: Union[SigningOptions, Mapping, None] = None
    ) -> OrderResponse:
        """
        Place limit order.

        Args:
            request: Limit order (model or mapping of fields)
            options: Optional signing options (agent_wallet, expiry_window)

        Returns:
            OrderResponse

        Raises:
            AuthenticationError: If no private key is configured
            ValidationError: If the order is invalid
            APIError: If the exchange rejects it
        """
        self._require_signer()
        return self.exchange.create_limit_order(request, options)

    def create_market_order(
        self,
        request: Union[CreateMarketOrderRequest, Mapping],
        options: Union[SigningOptions, Mapping, None] = None
    ) -> OrderResponse:
        """Place market order."""
        self._require_signer()
        return self.exchange.create_market_order(request, options)

    def cancel_order(
        self,
        request: Union[CancelOrderRequest, Mapping],
        options: Union[SigningOptions, Mapping, None] = None
    ) -> CancelOrderResponse:
        """Cancel order by order_id or client_order_id."""
        self._require_signer()
        return self.exchange.cancel_order(request, options)

    def get_market_info(self) -> List[SymbolInfo]:
        """Get specifications of all markets."""
        return self.exchange.get_market_info()

    # ========== Real-Time WebSocket ==========

    @property
    def websocket(self) -> WebSocketClient:
        """Shared WebSocket client, connected on first use."""
        self._ensure_websocket()
        return self._ws

    def _ensure_websocket(self) -> None:
        """Ensure WebSocket is initialized and connected (thread-safe)."""
        with self._ws_lock:
            if self._ws is None:
                self._ws = WebSocketClient(
                    ws_url=self.settings.ws_url,
                    ping_interval=self.settings.ws_ping_interval,
                    reconnect_base_delay=self.settings.ws_reconnect_base_delay,
                    reconnect_max_delay=self.settings.ws_reconnect_max_delay,
                    connect_timeout=self.settings.ws_connect_timeout,
                    connection_factory=self._ws_connection_factory,
                    metrics=self.metrics,
                    debug=self.settings.ws_debug
                )
            ws = self._ws
        # No-op once connected
        ws.connect()

    def subscribe_order_book(
        self,
        symbol: str,
        callback: Callable[[OrderBook], None],
        agg_level: Optional[int] = None
    ) -> Subscription:
        """
        Subscribe to real-time order book snapshots.

        Args:
            symbol: Market symbol (e.g. "BTC")
            callback: Function called with each OrderBook
            agg_level: Optional price aggregation level

        Returns:
            Subscription handle (call close() to unsubscribe)

        Example:
            >>> def on_book(book):
            ...     print(f"Best bid: {book.bids[0].price}")
            >>> sub = client.subscribe_order_book("BTC", on_book)
        """
        sub = self.websocket.order_book(symbol, callback, agg_level=agg_level)
        logger.info(f"Subscribed to order book for {symbol}")
        return sub

    def subscribe_prices(self, callback: Callable[[Prices], None]) -> Subscription:
        """Subscribe to price snapshots of all markets."""
        sub = self.websocket.prices(callback)
        logger.info("Subscribed to prices")
        return sub

    def subscribe_trades(self, symbol: str, callback: Callable[[Trades], None]) -> Subscription:
        """Subscribe to public trades for symbol."""
        sub = self.websocket.trades(symbol, callback)
        logger.info(f"Subscribed to trades for {symbol}")
        return sub

    def subscribe_candles(
        self,
        symbol: str,
        interval: str,
        callback: Callable[[Candle], None]
    ) -> Subscription:
        """Subscribe to candles for symbol at interval (e.g. "1m")."""
        sub = self.websocket.candle(symbol, interval, callback)
        logger.info(f"Subscribed to {interval} candles for {symbol}")
        return sub

    def is_websocket_connected(self) -> bool:
        """Check if the WebSocket is currently connected."""
        return self._ws is not None and self._ws.connected

    # ========== Monitoring ==========

    def health_check(self) -> Dict[str, Any]:
        """
        Health check for Docker/K8s probes.

        Returns:
            Dict with status, REST connectivity and stream state
        """
        try:
            api_health = self.exchange.health_check()
            ws_stats = self._ws.stats() if self._ws else None

            status = "healthy" if api_health["status"] == "healthy" else "degraded"
            if ws_stats is not None and not ws_stats["connected"]:
                status = "degraded"

            return {
                "status": status,
                "api": api_health,
                "websocket": ws_stats,
                "trading_enabled": self.signer is not None,
                "timestamp": time.time()
            }
        except Exception as e:
            return {
                "status": "unhealthy",
                "error": str(e),
                "timestamp": time.time()
            }

    def close(self) -> None:
        """
        Close client and cleanup resources.

        Safe to call more than once.
        """
        logger.info("Closing Pacifica client...")

        with self._ws_lock:
            ws, self._ws = self._ws, None
        if ws:
            ws.close()

        self.exchange.close()
        atexit.unregister(self.close)
        logger.info("Pacifica client closed gracefully")

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
