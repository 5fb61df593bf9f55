"""
Pacifica Client Library

Thread-safe client for the Pacifica perpetuals exchange:
Ed25519 signed REST trading and multiplexed market data streams.
"""

from .client import PacificaClient
from .config import PacificaSettings, get_settings
from .auth import Signer, SignatureHeader, canonicalize
from .api import WebSocketClient, Subscription
from .models import (
    Side,
    TimeInForce,
    ConnectionState,
    Target,
    CreateLimitOrderRequest,
    CreateMarketOrderRequest,
    CancelOrderRequest,
    SigningOptions,
    OrderResponse,
    CancelOrderResponse,
    SymbolInfo,
    OrderBook,
    Level,
    Prices,
    PriceInfo,
    Trades,
    Trade,
    Candle,
)
from .exceptions import (
    PacificaError,
    APIError,
    AuthenticationError,
    ValidationError,
    RateLimitError,
    TimeoutError,
    WebSocketError,
    WebSocketConnectionError,
    WebSocketDisconnectedError,
)

__version__ = "0.1.0"

__all__ = [
    # Main client
    "PacificaClient",
    "PacificaSettings",
    "get_settings",

    # Signing
    "Signer",
    "SignatureHeader",
    "canonicalize",

    # Streams
    "WebSocketClient",
    "Subscription",

    # Types
    "Side",
    "TimeInForce",
    "ConnectionState",
    "Target",
    "CreateLimitOrderRequest",
    "CreateMarketOrderRequest",
    "CancelOrderRequest",
    "SigningOptions",
    "OrderResponse",
    "CancelOrderResponse",
    "SymbolInfo",
    "OrderBook",
    "Level",
    "Prices",
    "PriceInfo",
    "Trades",
    "Trade",
    "Candle",

    # Exceptions
    "PacificaError",
    "APIError",
    "AuthenticationError",
    "ValidationError",
    "RateLimitError",
    "TimeoutError",
    "WebSocketError",
    "WebSocketConnectionError",
    "WebSocketDisconnectedError",
]
