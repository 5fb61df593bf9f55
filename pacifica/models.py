"""
Type definitions for Pacifica client.

Uses Pydantic for runtime validation and type safety.
Order amounts stay strings on the wire (they are signed verbatim); stream
payload numbers are parsed to Decimal.
"""

from enum import Enum
from typing import Optional, Any, List
from decimal import Decimal
from pydantic import BaseModel, Field, field_validator, model_validator, ConfigDict, RootModel

from .utils.validators import validate_symbol, validate_decimal_string


# Stream channels
CHANNEL_ORDER_BOOK = "book"
CHANNEL_PRICES = "prices"
CHANNEL_TRADES = "trades"
CHANNEL_CANDLE = "candle"


def stream_key(*parts: str) -> str:
    """Join channel and discriminators into a StreamKey."""
    return ":".join(parts)


class Side(str, Enum):
    """Order side."""
    BID = "bid"
    ASK = "ask"


class TimeInForce(str, Enum):
    """Time in force for limit orders."""
    GTC = "GTC"  # Good-til-cancelled
    IOC = "IOC"  # Immediate-or-cancel
    ALO = "ALO"  # Add-liquidity-only (post only)


class ConnectionState(str, Enum):
    """WebSocket connection state."""
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    RECONNECTING = "RECONNECTING"
    CLOSED = "CLOSED"


# Request Models
class Target(BaseModel):
    """Take profit / stop loss attached to an order."""
    stop_price: str = Field(..., description="Trigger price")
    limit_price: Optional[str] = Field(None, description="Limit price once triggered")
    client_order_id: Optional[str] = Field(None, description="Client order ID (UUID)")

    @field_validator("stop_price")
    @classmethod
    def validate_stop_price(cls, v: Any) -> str:
        return validate_decimal_string(v, "stop_price")

    @field_validator("limit_price")
    @classmethod
    def validate_limit_price(cls, v: Any) -> Optional[str]:
        if v is None:
            return v
        return validate_decimal_string(v, "limit_price")


class _OrderBase(BaseModel):
    model_config = ConfigDict(use_enum_values=True, extra="forbid")

    symbol: str = Field(..., description="Market symbol, e.g. BTC")
    amount: str = Field(..., description="Order amount in base asset")
    side: Side = Field(..., description="bid or ask")
    reduce_only: bool = Field(default=False, description="Only reduce an open position")
    client_order_id: Optional[str] = Field(None, description="Client order ID (UUID)")
    take_profit: Optional[Target] = None
    stop_loss: Optional[Target] = None

    @field_validator("symbol")
    @classmethod
    def validate_symbol(cls, v: Any) -> str:
        return validate_symbol(v)

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Any) -> str:
        return validate_decimal_string(v, "amount")


class CreateLimitOrderRequest(_OrderBase):
    """Limit order placement request."""
    price: str = Field(..., description="Limit price")
    tif: TimeInForce = Field(default=TimeInForce.GTC, description="Time in force")

    @field_validator("price")
    @classmethod
    def validate_price(cls, v: Any) -> str:
        return validate_decimal_string(v, "price")


class CreateMarketOrderRequest(_OrderBase):
    """Market order placement request."""
    slippage_percent: str = Field(..., description="Max slippage in percent, e.g. 0.5")

    @field_validator("slippage_percent")
    @classmethod
    def validate_slippage(cls, v: Any) -> str:
        return validate_decimal_string(v, "slippage_percent")


class CancelOrderRequest(BaseModel):
    """Order cancellation request (by exchange or client order ID)."""
    model_config = ConfigDict(extra="forbid")

    symbol: str
    order_id: Optional[int] = None
    client_order_id: Optional[str] = None

    @field_validator("symbol")
    @classmethod
    def validate_symbol(cls, v: Any) -> str:
        return validate_symbol(v)

    @model_validator(mode="after")
    def require_identifier(self) -> "CancelOrderRequest":
        if self.order_id is None and not self.client_order_id:
            raise ValueError("either order_id or client_order_id is required")
        return self


class SigningOptions(BaseModel):
    """Optional signing parameters for authenticated requests."""
    agent_wallet: Optional[str] = Field(None, description="Override agent_wallet field")
    expiry_window: int = Field(default=0, ge=0, description="Signature validity (ms), 0 = default")


# Response Models
class OrderResponse(BaseModel):
    """Order placement response."""
    order_id: int


class CancelOrderResponse(BaseModel):
    """Order cancellation response."""
    success: bool


class APIErrorBody(BaseModel):
    """Error body returned on non-success responses."""
    error: str
    code: int


class SymbolInfo(BaseModel):
    """Market specification from /info."""
    symbol: str
    tick_size: Decimal
    min_tick: Optional[Decimal] = None
    max_tick: Optional[Decimal] = None
    lot_size: Decimal
    max_leverage: int
    isolated_only: bool = False
    min_order_size: Optional[Decimal] = None
    max_order_size: Optional[Decimal] = None
    funding_rate: Optional[Decimal] = None
    next_funding_rate: Optional[Decimal] = None


# Stream Models
class Level(BaseModel):
    """Aggregated order book level."""
    amount: Decimal = Field(..., alias="a")
    price: Decimal = Field(..., alias="p")
    orders: int = Field(..., alias="n")

    model_config = ConfigDict(populate_by_name=True)


class OrderBook(BaseModel):
    """Order book snapshot: levels[0] are bids, levels[1] are asks."""
    symbol: str = Field(..., alias="s")
    levels: List[List[Level]] = Field(..., alias="l")
    time: int = Field(..., alias="t")

    model_config = ConfigDict(populate_by_name=True)

    @property
    def bids(self) -> List[Level]:
        return self.levels[0] if self.levels else []

    @property
    def asks(self) -> List[Level]:
        return self.levels[1] if len(self.levels) > 1 else []

    def stream_key(self) -> str:
        return stream_key(CHANNEL_ORDER_BOOK, self.symbol)


class PriceInfo(BaseModel):
    """Price snapshot for one market."""
    symbol: str
    mark: Decimal
    oracle: Optional[Decimal] = None
    mid: Optional[Decimal] = None
    funding: Optional[Decimal] = None
    next_funding: Optional[Decimal] = None
    open_interest: Optional[Decimal] = None
    volume_24h: Optional[Decimal] = None
    yesterday_price: Optional[Decimal] = None
    timestamp: int


class Prices(RootModel[List[PriceInfo]]):
    """Price snapshots for all markets."""

    def __iter__(self):
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)

    def __getitem__(self, index: int) -> PriceInfo:
        return self.root[index]

    def stream_key(self) -> str:
        return stream_key(CHANNEL_PRICES)


class Trade(BaseModel):
    """Public trade."""
    symbol: str = Field(..., alias="s")
    amount: Decimal = Field(..., alias="a")
    price: Decimal = Field(..., alias="p")
    side: str = Field(..., alias="d", description="e.g. open_long, close_short")
    trade_cause: str = Field(..., alias="tc", description="normal, market_liquidation, ...")
    timestamp: int = Field(..., alias="t")
    account: Optional[str] = Field(None, alias="u")
    history_id: Optional[int] = Field(None, alias="h")

    model_config = ConfigDict(populate_by_name=True)


class Trades(RootModel[List[Trade]]):
    """Batch of public trades for one market."""

    @model_validator(mode="after")
    def single_symbol(self) -> "Trades":
        if not self.root:
            raise ValueError("trade batch is empty")
        symbols = {trade.symbol for trade in self.root}
        if len(symbols) != 1:
            raise ValueError(f"trade batch mixes symbols: {sorted(symbols)}")
        return self

    def __iter__(self):
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)

    def __getitem__(self, index: int) -> Trade:
        return self.root[index]

    @property
    def symbol(self) -> str:
        return self.root[0].symbol

    def stream_key(self) -> str:
        return stream_key(CHANNEL_TRADES, self.symbol)


class Candle(BaseModel):
    """OHLCV candle."""
    start_time: int = Field(..., alias="t")
    end_time: int = Field(..., alias="T")
    symbol: str = Field(..., alias="s")
    interval: str = Field(..., alias="i")
    open: Decimal = Field(..., alias="o")
    close: Decimal = Field(..., alias="c")
    high: Decimal = Field(..., alias="h")
    low: Decimal = Field(..., alias="l")
    volume: Decimal = Field(..., alias="v")
    trades: int = Field(default=0, alias="n")

    model_config = ConfigDict(populate_by_name=True)

    def stream_key(self) -> str:
        return stream_key(CHANNEL_CANDLE, self.symbol, self.interval)


# Subscription parameter models (sent as "params" of subscribe/unsubscribe)
class OrderBookSubscription(BaseModel):
    source: str = CHANNEL_ORDER_BOOK
    symbol: str
    agg_level: Optional[int] = None

    def key(self) -> str:
        return stream_key(CHANNEL_ORDER_BOOK, self.symbol)


class PricesSubscription(BaseModel):
    source: str = CHANNEL_PRICES

    def key(self) -> str:
        return stream_key(CHANNEL_PRICES)


class TradesSubscription(BaseModel):
    source: str = CHANNEL_TRADES
    symbol: str

    def key(self) -> str:
        return stream_key(CHANNEL_TRADES, self.symbol)


class CandleSubscription(BaseModel):
    source: str = CHANNEL_CANDLE
    symbol: str
    interval: str

    def key(self) -> str:
        return stream_key(CHANNEL_CANDLE, self.symbol, self.interval)
