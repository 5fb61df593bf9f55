"""
Tests for the exchange REST client.

The HTTP session is a real requests.Session with request() mocked out.
"""

from unittest.mock import Mock, patch

import orjson
import pytest
import requests

from pacifica.api.exchange import ExchangeAPI
from pacifica.auth.signer import RESERVED_FIELDS, SignatureHeader
from pacifica.config import PacificaSettings
from pacifica.exceptions import (
    APIError,
    AuthenticationError,
    RateLimitError,
    TimeoutError,
    ValidationError,
)
from pacifica.models import SymbolInfo


def _response(status_code=200, body=None, text=None, headers=None):
    response = Mock()
    response.status_code = status_code
    if text is None:
        text = orjson.dumps(body).decode("utf-8")
    response.text = text
    response.content = text.encode("utf-8")
    response.headers = headers or {}
    return response


MARKET_ORDER = {"symbol": "BTC", "amount": "0.1", "side": "bid", "slippage_percent": "0.5"}

MARKET_INFO = {
    "success": True,
    "data": [
        {
            "symbol": "BTC",
            "tick_size": "1",
            "lot_size": "0.00001",
            "max_leverage": 50,
            "isolated_only": False,
            "min_order_size": "10",
            "max_order_size": "1000000",
        },
        {
            "symbol": "ETH",
            "tick_size": "0.1",
            "lot_size": "0.0001",
            "max_leverage": 50,
            "isolated_only": False,
        },
    ],
    "error": None,
    "code": None,
}


@pytest.fixture
def settings():
    return PacificaSettings(_env_file=None, api_url="https://api.test.invalid/api/v1", max_retries=2)


@pytest.fixture
def session():
    session = requests.Session()
    session.request = Mock()
    return session


@pytest.fixture
def api(settings, signer, session):
    return ExchangeAPI(settings, signer=signer, session=session)


class TestOrders:
    """Signed order endpoints."""

    def test_market_order_request(self, api, session, signer):
        session.request.return_value = _response(200, {"order_id": 12345})

        result = api.create_market_order(MARKET_ORDER, {"expiry_window": 5000})

        assert result.order_id == 12345
        kwargs = session.request.call_args.kwargs
        assert kwargs["method"] == "POST"
        assert kwargs["url"] == "https://api.test.invalid/api/v1/orders/create_market"

        body = orjson.loads(kwargs["data"])
        assert body["symbol"] == "BTC"
        assert body["expiry_window"] == 5000
        assert body["account"] == signer.account

        operation = {k: v for k, v in body.items() if k not in RESERVED_FIELDS}
        header = SignatureHeader(body["timestamp"], body["expiry_window"], "create_market_order")
        assert signer.verify_signature(signer.signing_message(header, operation), body["signature"])

    def test_limit_order_endpoint(self, api, session):
        session.request.return_value = _response(200, {"order_id": 7})
        api.create_limit_order({"symbol": "ETH", "price": "3800", "amount": "1", "side": "ask"})
        assert session.request.call_args.kwargs["url"].endswith("/orders/create")

    def test_cancel_order(self, api, session):
        session.request.return_value = _response(200, {"success": True})
        result = api.cancel_order({"symbol": "BTC", "order_id": 12345})
        assert result.success is True
        assert session.request.call_args.kwargs["url"].endswith("/orders/cancel")
        assert orjson.loads(session.request.call_args.kwargs["data"])["order_id"] == 12345

    def test_rejection_carries_error_code(self, api, session):
        session.request.return_value = _response(400, {"error": "Insufficient balance", "code": 402})

        with pytest.raises(APIError) as exc_info:
            api.create_market_order(MARKET_ORDER)

        assert exc_info.value.status_code == 400
        assert exc_info.value.code == 402
        assert "Insufficient balance" in str(exc_info.value)
        # Signed requests are never retried
        assert session.request.call_count == 1

    def test_server_error_with_plain_body(self, api, session):
        session.request.return_value = _response(500, text="upstream unavailable")

        with pytest.raises(APIError) as exc_info:
            api.create_market_order(MARKET_ORDER)

        assert exc_info.value.status_code == 500
        assert exc_info.value.response == "upstream unavailable"
        assert session.request.call_count == 1

    def test_unauthorized(self, api, session):
        session.request.return_value = _response(401, {"error": "Invalid signature", "code": 401})
        with pytest.raises(AuthenticationError):
            api.create_market_order(MARKET_ORDER)

    def test_rate_limited(self, api, session):
        session.request.return_value = _response(
            429, {"error": "Too many requests", "code": 429}, headers={"Retry-After": "2"}
        )
        with pytest.raises(RateLimitError) as exc_info:
            api.cancel_order({"symbol": "BTC", "order_id": 1})
        assert exc_info.value.retry_after == 2.0

    def test_invalid_order_not_sent(self, api, session):
        with pytest.raises(ValidationError):
            api.create_market_order(dict(MARKET_ORDER, amount="0"))
        session.request.assert_not_called()

    def test_trading_requires_signer(self, settings, session):
        api = ExchangeAPI(settings, session=session)
        with pytest.raises(AuthenticationError):
            api.create_market_order(MARKET_ORDER)
        session.request.assert_not_called()


class TestMarketInfo:
    """Public /info endpoint."""

    def test_success(self, api, session):
        session.request.return_value = _response(200, MARKET_INFO)

        markets = api.get_market_info()

        assert [m.symbol for m in markets] == ["BTC", "ETH"]
        assert isinstance(markets[0], SymbolInfo)
        assert str(markets[0].lot_size) == "0.00001"
        assert markets[1].min_order_size is None
        kwargs = session.request.call_args.kwargs
        assert kwargs["method"] == "GET"
        assert kwargs["url"] == "https://api.test.invalid/api/v1/info"

    def test_envelope_failure(self, api, session):
        session.request.return_value = _response(
            200, {"success": False, "data": None, "error": "maintenance", "code": 503}
        )
        with pytest.raises(APIError) as exc_info:
            api.get_market_info()
        assert exc_info.value.code == 503

    def test_retries_server_errors(self, api, session):
        session.request.side_effect = [
            _response(500, text="busy"),
            _response(502, text="bad gateway"),
            _response(200, MARKET_INFO),
        ]
        with patch("pacifica.utils.retry.time.sleep") as sleep:
            markets = api.get_market_info()
        assert len(markets) == 2
        assert session.request.call_count == 3
        assert sleep.call_count == 2

    def test_timeout(self, session, signer):
        settings = PacificaSettings(_env_file=None, max_retries=0)
        api = ExchangeAPI(settings, signer=signer, session=session)
        session.request.side_effect = requests.exceptions.Timeout("read timed out")
        with pytest.raises(TimeoutError):
            api.get_market_info()

    def test_connection_error_is_api_error(self, session):
        settings = PacificaSettings(_env_file=None, max_retries=0)
        api = ExchangeAPI(settings, session=session)
        session.request.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.raises(APIError):
            api.get_market_info()

    def test_health_check(self, api, session):
        session.request.return_value = _response(200, MARKET_INFO)
        health = api.health_check()
        assert health["status"] == "healthy"
        assert health["markets"] == 2

    def test_health_check_unhealthy(self, session):
        settings = PacificaSettings(_env_file=None, max_retries=0)
        api = ExchangeAPI(settings, session=session)
        session.request.return_value = _response(500, text="down")
        assert api.health_check()["status"] == "unhealthy"


class TestMetrics:

    def test_requests_recorded(self, settings, session):
        metrics = Mock()
        api = ExchangeAPI(settings, session=session, metrics=metrics)
        session.request.return_value = _response(200, MARKET_INFO)

        api.get_market_info()

        metrics.track_api_request.assert_called_once_with("GET", "/info", "200")
        metrics.track_api_latency.assert_called_once()
