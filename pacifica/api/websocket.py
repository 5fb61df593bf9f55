"""
WebSocket client for real-time market data.

One connection serves every stream subscription. Interest is reference
counted per StreamKey (see subscriptions.py) and replayed after reconnects.

Threads per client:
- read thread (per connection): recv, decode, dispatch
- ping thread (per connection): keepalive every `ping_interval` seconds
- reconnect thread (short-lived): exponential backoff until connected or closed
"""

import threading
import time
from typing import Any, Callable, Dict, List, Optional
import logging

import orjson
import websocket
from pydantic import BaseModel

from .dispatcher import Dispatcher
from .subscriptions import Subscription, SubscriptionRegistry
from ..exceptions import (
    PacificaError,
    WebSocketError,
    WebSocketConnectionError,
    WebSocketDisconnectedError,
)
from ..metrics import Metrics
from ..models import (
    ConnectionState,
    OrderBookSubscription,
    PricesSubscription,
    TradesSubscription,
    CandleSubscription,
    OrderBook,
    Prices,
    Trades,
    Candle,
)
from ..utils.retry import RetryStrategy
from ..utils.validators import validate_symbol, validate_interval, validate_callback

logger = logging.getLogger(__name__)

DEFAULT_WS_URL = "wss://ws.pacifica.fi/ws"
DEFAULT_PING_INTERVAL = 50.0  # seconds

# Errors raised by websocket-client on dial, send and recv
TRANSPORT_ERRORS = (websocket.WebSocketException, OSError)

ConnectionFactory = Callable[[str, float], Any]


def _create_connection(url: str, timeout: float) -> websocket.WebSocket:
    conn = websocket.create_connection(url, timeout=timeout)
    # Reads block until the next frame; keepalive is our own ping thread
    conn.settimeout(None)
    return conn


class WebSocketClient:
    """
    WebSocket client for Pacifica market data streams.

    Provides:
    - Order book, prices, trades and candle streams
    - One upstream subscription per stream, shared by all subscribers
    - Automatic reconnection with exponential backoff and resubscription
    - Thread-safe subscribe/unsubscribe from any thread

    Example:
        >>> with WebSocketClient() as ws:
        ...     sub = ws.order_book("BTC", lambda book: print(book.bids[0]))
        ...     time.sleep(10)
        ...     sub.close()
    """

    def __init__(
        self,
        ws_url: str = DEFAULT_WS_URL,
        ping_interval: float = DEFAULT_PING_INTERVAL,
        reconnect_base_delay: float = 1.0,
        reconnect_max_delay: float = 60.0,
        connect_timeout: float = 10.0,
        connection_factory: Optional[ConnectionFactory] = None,
        metrics: Optional[Metrics] = None,
        debug: bool = False
    ):
        """
        Initialize WebSocket client.

        Args:
            ws_url: WebSocket URL
            ping_interval: Keepalive interval (seconds)
            reconnect_base_delay: First reconnect backoff delay (seconds)
            reconnect_max_delay: Backoff cap (seconds)
            connect_timeout: Dial timeout (seconds)
            connection_factory: Callable(url, timeout) returning an object
                with send(text), recv() and close(); defaults to
                websocket.create_connection
            metrics: Optional metrics collector
            debug: Log every frame sent and received
        """
        self.ws_url = ws_url
        self.ping_interval = ping_interval
        self.connect_timeout = connect_timeout
        self.metrics = metrics
        self.debug = debug

        self._connection_factory = connection_factory or _create_connection
        self._backoff = RetryStrategy(
            max_retries=0,
            base_delay=reconnect_base_delay,
            max_delay=reconnect_max_delay,
            exponential_base=2.0,
            jitter=False
        )

        self.registry = SubscriptionRegistry(
            self._send_subscribe,
            self._send_unsubscribe,
            on_change=self._streams_changed
        )
        self.dispatcher = Dispatcher(self.registry, metrics=metrics)

        # Guards _conn, _state, _generation and _threads
        self._lock = threading.Lock()
        # One connect/reconnect attempt at a time
        self._connect_lock = threading.Lock()
        # One frame on the wire at a time
        self._write_lock = threading.Lock()
        self._closed = threading.Event()

        self._conn: Any = None
        self._state = ConnectionState.DISCONNECTED
        self._generation = 0
        self._threads: List[threading.Thread] = []
        self._reconnect_thread: Optional[threading.Thread] = None

        # Monitoring
        self._connected_at: Optional[float] = None
        self._total_messages_received = 0
        self._total_reconnections = 0

        logger.info(f"Initialized WebSocketClient: {self.ws_url}")

    # ========== Connection lifecycle ==========

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        with self._lock:
            return self._state

    @property
    def connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    def connect(self) -> "WebSocketClient":
        """
        Connect and replay active subscriptions.

        No-op when already connected, and while reconnecting: the reconnect
        thread owns recovery and replays every registered stream.

        Returns:
            Self for chaining

        Raises:
            WebSocketConnectionError: If the dial or resubscription fails
            WebSocketError: If the client was closed
        """
        with self._connect_lock:
            if self._closed.is_set():
                raise WebSocketError("WebSocket client is closed")
            if self.state != ConnectionState.DISCONNECTED:
                return self
            self._establish()
        return self

    def _establish(self) -> None:
        """Dial, resubscribe and start the connection threads (connect lock held)."""
        with self._lock:
            reconnecting = self._state == ConnectionState.RECONNECTING
            if not reconnecting:
                self._state = ConnectionState.CONNECTING
        fallback = ConnectionState.RECONNECTING if reconnecting else ConnectionState.DISCONNECTED

        logger.info(f"Connecting to {self.ws_url}")
        try:
            conn = self._connection_factory(self.ws_url, self.connect_timeout)
        except TRANSPORT_ERRORS as e:
            self._set_state_unless_closed(fallback)
            raise WebSocketConnectionError(f"Failed to connect to {self.ws_url}: {e}") from e

        with self._lock:
            if self._closed.is_set():
                closed_meanwhile = True
            else:
                closed_meanwhile = False
                self._generation += 1
                generation = self._generation
                self._conn = conn
        if closed_meanwhile:
            self._close_quietly(conn)
            raise WebSocketError("WebSocket client closed while connecting")

        try:
            self.registry.resubscribe_all()
        except PacificaError as e:
            with self._lock:
                if self._conn is conn:
                    self._conn = None
            self._close_quietly(conn)
            self._set_state_unless_closed(fallback)
            raise WebSocketConnectionError(f"Resubscribe failed: {e}") from e

        reader = threading.Thread(
            target=self._read_loop,
            args=(conn, generation),
            daemon=True,
            name=f"pacifica-ws-reader-{generation}"
        )
        pinger = threading.Thread(
            target=self._ping_loop,
            args=(generation,),
            daemon=True,
            name=f"pacifica-ws-ping-{generation}"
        )

        with self._lock:
            if self._closed.is_set():
                return
            self._state = ConnectionState.CONNECTED
            self._connected_at = time.time()
            self._threads = [reader, pinger]
            if reconnecting:
                self._total_reconnections += 1

        reader.start()
        pinger.start()
        if reconnecting and self.metrics:
            self.metrics.track_reconnect()
        logger.info(f"WebSocket connected ({len(self.registry)} active stream(s))")

    def _set_state_unless_closed(self, state: ConnectionState) -> None:
        with self._lock:
            if self._state != ConnectionState.CLOSED:
                self._state = state

    @staticmethod
    def _close_quietly(conn: Any) -> None:
        if conn is None:
            return
        try:
            conn.close()
        except TRANSPORT_ERRORS as e:
            logger.debug(f"Error closing connection: {e}")

    def _handle_connection_loss(self, generation: int, reason: str) -> bool:
        """
        Tear down connection `generation` and start reconnecting.

        Both connection threads may report the same loss; only the first
        report for a generation acts on it.
        """
        with self._lock:
            if (self._closed.is_set()
                    or generation != self._generation
                    or self._state != ConnectionState.CONNECTED):
                return False
            self._state = ConnectionState.RECONNECTING
            conn = self._conn
            self._conn = None
            self._connected_at = None
            thread = threading.Thread(
                target=self._reconnect_loop,
                daemon=True,
                name="pacifica-ws-reconnect"
            )
            self._reconnect_thread = thread

        logger.warning(f"WebSocket connection lost ({reason}), reconnecting")
        self._close_quietly(conn)
        thread.start()
        return True

    def _reconnect_loop(self) -> None:
        """Retry connecting with backoff until connected or closed."""
        attempt = 0
        while not self._closed.is_set():
            with self._connect_lock:
                if self._closed.is_set():
                    return
                if self.state == ConnectionState.CONNECTED:
                    return
                try:
                    self._establish()
                except WebSocketError as e:
                    delay = self._backoff.delay_for(attempt)
                    attempt += 1
                    logger.warning(f"Reconnect attempt {attempt} failed: {e}. Retrying in {delay:.1f}s")
                else:
                    if self.state == ConnectionState.CONNECTED:
                        logger.info(f"Reconnected after {attempt + 1} attempt(s)")
                    return

            if self._closed.wait(delay):
                return

    def close(self) -> None:
        """
        Close the connection and drop every subscription.

        Idempotent. Subscriber unsubscribe hooks still run, without network I/O.
        """
        with self._lock:
            if self._state == ConnectionState.CLOSED:
                return
            self._state = ConnectionState.CLOSED
            self._closed.set()
            conn = self._conn
            self._conn = None
            reconnect_thread = self._reconnect_thread

        logger.info("Closing WebSocket client...")
        self._close_quietly(conn)

        current = threading.current_thread()
        if reconnect_thread and reconnect_thread is not current:
            reconnect_thread.join(timeout=self.connect_timeout + 1.0)

        with self._lock:
            threads = list(self._threads)
        for thread in threads:
            if thread is not current and thread.is_alive():
                thread.join(timeout=5.0)

        self.registry.clear()
        if self.metrics:
            self.metrics.set_active_streams(0)
        logger.info("WebSocket client closed")

    def __enter__(self) -> "WebSocketClient":
        return self.connect()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ========== Connection threads ==========

    def _read_loop(self, conn: Any, generation: int) -> None:
        while not self._closed.is_set():
            try:
                raw = conn.recv()
            except TRANSPORT_ERRORS as e:
                self._handle_connection_loss(generation, f"read error: {e}")
                return

            if not raw:
                # Close frames surface as empty reads
                if not getattr(conn, "connected", True):
                    self._handle_connection_loss(generation, "closed by server")
                    return
                continue

            self._total_messages_received += 1
            if self.debug:
                logger.debug(f"[<] {raw}")

            try:
                envelope = orjson.loads(raw)
            except orjson.JSONDecodeError as e:
                logger.warning(f"Failed to parse message: {e}")
                continue

            try:
                self.dispatcher.dispatch(envelope)
            except Exception as e:
                logger.error(f"Dispatch error: {e}", exc_info=True)

    def _ping_loop(self, generation: int) -> None:
        while not self._closed.wait(self.ping_interval):
            with self._lock:
                if generation != self._generation or self._state != ConnectionState.CONNECTED:
                    return
            try:
                self._write_json({"method": "ping"})
            except WebSocketError as e:
                logger.error(f"Failed to send ping: {e}")
                self._handle_connection_loss(generation, "ping failed")
                return

    # ========== Outbound commands ==========

    def _write_json(self, frame: Dict[str, Any]) -> None:
        text = orjson.dumps(frame).decode("utf-8")
        with self._write_lock:
            with self._lock:
                conn = self._conn
            if conn is None:
                raise WebSocketDisconnectedError("WebSocket is not connected")
            if self.debug:
                logger.debug(f"[>] {text}")
            try:
                conn.send(text)
            except TRANSPORT_ERRORS as e:
                raise WebSocketDisconnectedError(f"WebSocket write failed: {e}") from e

    def _send_subscribe(self, params: Dict[str, Any]) -> None:
        self._write_json({"method": "subscribe", "params": params})

    def _streams_changed(self, count: int) -> None:
        if self.metrics:
            self.metrics.set_active_streams(count)

    def _send_unsubscribe(self, params: Dict[str, Any]) -> None:
        if self._closed.is_set():
            return
        self._write_json({"method": "unsubscribe", "params": params})

    # ========== Subscriptions ==========

    def subscribe(self, payload: BaseModel, callback: Callable[[Any], None]) -> Subscription:
        """
        Subscribe to the stream described by payload.

        Args:
            payload: Subscription params model exposing key()
            callback: Called with each decoded message of the stream

        Returns:
            Subscription handle (close() to unsubscribe)

        Raises:
            ValidationError: If callback is not callable
            WebSocketError: If the client was closed
        """
        if self._closed.is_set():
            raise WebSocketError("WebSocket client is closed")
        params = payload.model_dump(exclude_none=True)
        subscription = self.registry.subscribe(payload.key(), params, callback)
        if self._closed.is_set():
            # close() ran while registering; its clear() may have missed this group
            subscription.close()
            raise WebSocketError("WebSocket client is closed")
        return subscription

    def order_book(
        self,
        symbol: str,
        callback: Callable[[OrderBook], None],
        agg_level: Optional[int] = None
    ) -> Subscription:
        """Subscribe to order book snapshots for symbol."""
        validate_callback(callback)
        payload = OrderBookSubscription(symbol=validate_symbol(symbol), agg_level=agg_level)
        return self.subscribe(payload, callback)

    def prices(self, callback: Callable[[Prices], None]) -> Subscription:
        """Subscribe to price snapshots of all markets."""
        validate_callback(callback)
        return self.subscribe(PricesSubscription(), callback)

    def trades(self, symbol: str, callback: Callable[[Trades], None]) -> Subscription:
        """Subscribe to public trades for symbol."""
        validate_callback(callback)
        payload = TradesSubscription(symbol=validate_symbol(symbol))
        return self.subscribe(payload, callback)

    def candle(
        self,
        symbol: str,
        interval: str,
        callback: Callable[[Candle], None]
    ) -> Subscription:
        """
        Subscribe to candles for symbol.

        Args:
            symbol: Market symbol
            interval: One of 1m 3m 5m 15m 30m 1h 2h 4h 8h 12h 1d
            callback: Called with each Candle

        Raises:
            ValidationError: If interval is not supported
        """
        validate_callback(callback)
        payload = CandleSubscription(
            symbol=validate_symbol(symbol),
            interval=validate_interval(interval)
        )
        return self.subscribe(payload, callback)

    # ========== Monitoring ==========

    def stats(self) -> dict:
        """
        Get connection statistics for monitoring.

        Returns:
            dict: state, uptime, active streams, message and reconnect counts
        """
        with self._lock:
            state = self._state
            connected_at = self._connected_at
            generation = self._generation

        return {
            "state": state.value,
            "connected": state == ConnectionState.CONNECTED,
            "uptime_seconds": int(time.time() - connected_at) if connected_at else None,
            "active_streams": len(self.registry),
            "subscribers": self.registry.subscriber_count(),
            "total_messages_received": self._total_messages_received,
            "total_reconnections": self._total_reconnections,
            "connection_generation": generation,
        }
