"""
Shared fixtures: signers and an in-memory WebSocket transport.
"""

import queue
import threading
import time

import orjson
import pytest
import websocket

from pacifica.auth.signer import Signer
from pacifica.api.websocket import WebSocketClient


_CLOSED = object()


class FakeConnection:
    """In-memory stand-in for a websocket-client connection."""

    def __init__(self):
        self.sent = []
        self.connected = True
        self.fail_sends = False
        self._inbox = queue.Queue()
        self._lock = threading.Lock()

    def send(self, text):
        if not self.connected or self.fail_sends:
            raise websocket.WebSocketConnectionClosedException("socket is already closed.")
        with self._lock:
            self.sent.append(orjson.loads(text))

    def recv(self):
        item = self._inbox.get()
        if item is _CLOSED:
            self.connected = False
            raise websocket.WebSocketConnectionClosedException("Connection to remote host was lost.")
        return item

    def close(self):
        self.connected = False
        self._inbox.put(_CLOSED)

    # Test controls
    def push(self, frame):
        """Queue an inbound frame (dict/list are JSON encoded)."""
        if not isinstance(frame, str):
            frame = orjson.dumps(frame).decode("utf-8")
        self._inbox.put(frame)

    def drop(self):
        """Simulate the server going away."""
        self._inbox.put(_CLOSED)

    def commands(self, method=None):
        with self._lock:
            frames = list(self.sent)
        if method is None:
            return frames
        return [frame for frame in frames if frame.get("method") == method]


class FakeDialer:
    """Connection factory that records dials and can fail the first N."""

    def __init__(self, failures=0):
        self.failures = failures
        self.attempts = 0
        self.connections = []
        self.dial_times = []

    def __call__(self, url, timeout):
        self.attempts += 1
        self.dial_times.append(time.monotonic())
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionRefusedError("connection refused")
        conn = FakeConnection()
        self.connections.append(conn)
        return conn

    @property
    def current(self):
        return self.connections[-1]


def _wait_until(predicate, timeout=2.0, interval=0.01):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def signer():
    """Signer with a fresh random keypair."""
    return Signer.generate(account="MainAccount1111111111111111111111111111111")


@pytest.fixture
def wait_until():
    return _wait_until


@pytest.fixture
def dialer():
    return FakeDialer()


@pytest.fixture
def make_ws_client():
    """Build WebSocketClients with fast timings; all are closed on teardown."""
    clients = []

    def factory(dialer, **kwargs):
        options = {
            "ws_url": "wss://test.invalid/ws",
            "ping_interval": 60.0,
            "reconnect_base_delay": 0.01,
            "reconnect_max_delay": 0.05,
            "connect_timeout": 1.0,
            "connection_factory": dialer,
        }
        options.update(kwargs)
        client = WebSocketClient(**options)
        clients.append(client)
        return client

    yield factory

    for client in clients:
        client.close()


@pytest.fixture
def book_frame():
    def build(symbol="BTC", time_ms=1700000000000):
        return {
            "channel": "book",
            "data": {
                "s": symbol,
                "l": [
                    [{"a": "1.5", "p": "100000", "n": 3}],
                    [{"a": "0.7", "p": "100010", "n": 1}],
                ],
                "t": time_ms,
            },
        }
    return build
