"""Order construction for Pacifica client."""

from .order_builder import OrderBuilder, CREATE_ORDER, CREATE_MARKET_ORDER, CANCEL_ORDER

__all__ = ["OrderBuilder", "CREATE_ORDER", "CREATE_MARKET_ORDER", "CANCEL_ORDER"]
