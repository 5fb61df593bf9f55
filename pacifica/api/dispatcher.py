"""
Inbound message routing.

Decodes `{channel, data}` envelopes into typed models and delivers them to
the subscribers of the StreamKey the model reports.
"""

from typing import Any, Callable, Dict, Optional
import logging

from pydantic import ValidationError as PydanticValidationError

from .subscriptions import SubscriptionRegistry
from ..metrics import Metrics
from ..models import (
    CHANNEL_ORDER_BOOK,
    CHANNEL_PRICES,
    CHANNEL_TRADES,
    CHANNEL_CANDLE,
    OrderBook,
    Prices,
    Trades,
    Candle,
)

logger = logging.getLogger(__name__)

# Decoded values must expose stream_key()
Decoder = Callable[[Any], Any]

# Acknowledgements and keepalive replies carry no stream data
CONTROL_CHANNELS = frozenset({"pong", "subscribe", "unsubscribe"})

DEFAULT_DECODERS: Dict[str, Decoder] = {
    CHANNEL_ORDER_BOOK: OrderBook.model_validate,
    CHANNEL_PRICES: Prices.model_validate,
    CHANNEL_TRADES: Trades.model_validate,
    CHANNEL_CANDLE: Candle.model_validate,
}


class Dispatcher:
    """
    Per-channel decoder table plus fan-out into the registry.

    Nothing raised while decoding leaves dispatch(): unknown channels and
    undecodable payloads are logged and dropped so the read loop keeps going.
    """

    def __init__(self, registry: SubscriptionRegistry, metrics: Optional[Metrics] = None):
        self.registry = registry
        self.metrics = metrics
        self._decoders: Dict[str, Decoder] = dict(DEFAULT_DECODERS)

    def register(self, channel: str, decoder: Decoder) -> None:
        """Register (or replace) the decoder for channel."""
        self._decoders[channel] = decoder

    def dispatch(self, envelope: Any) -> int:
        """
        Decode one inbound envelope and deliver it.

        Args:
            envelope: Parsed frame, expected as {"channel": str, "data": ...}

        Returns:
            Number of callbacks invoked (0 when dropped)
        """
        if not isinstance(envelope, dict):
            logger.warning(f"Dropping frame that is not an object: {type(envelope).__name__}")
            return 0

        channel = envelope.get("channel")
        if not isinstance(channel, str):
            logger.warning(f"Dropping frame without channel: {str(envelope)[:200]}")
            return 0

        if channel in CONTROL_CHANNELS:
            logger.debug(f"Control message on {channel}: {envelope.get('data')}")
            return 0

        decoder = self._decoders.get(channel)
        if decoder is None:
            logger.warning(f"No decoder for channel {channel}, dropping message")
            return 0

        if self.metrics:
            self.metrics.track_ws_message(channel)

        try:
            message = decoder(envelope.get("data"))
        except (PydanticValidationError, ValueError, TypeError) as e:
            logger.warning(f"Failed to decode {channel} message: {e}")
            if self.metrics:
                self.metrics.track_decode_error(channel)
            return 0

        return self.registry.deliver(message.stream_key(), message)
