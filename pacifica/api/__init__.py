"""API modules for Pacifica client."""

from .base import BaseAPIClient
from .exchange import ExchangeAPI
from .subscriptions import Subscription, SubscriptionRegistry
from .dispatcher import Dispatcher
from .websocket import WebSocketClient

__all__ = [
    "BaseAPIClient",
    "ExchangeAPI",
    "Subscription",
    "SubscriptionRegistry",
    "Dispatcher",
    "WebSocketClient",
]
