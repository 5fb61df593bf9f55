"""Tests for signed order request construction."""

import pytest

from pacifica.auth.signer import RESERVED_FIELDS, SignatureHeader
from pacifica.exceptions import ValidationError
from pacifica.models import CreateLimitOrderRequest, SigningOptions
from pacifica.trading.order_builder import (
    OrderBuilder,
    CREATE_ORDER,
    CREATE_MARKET_ORDER,
    CANCEL_ORDER,
)


def _verify(signer, operation_type, request):
    """Rebuild the signed message from a request body and check it."""
    operation = {k: v for k, v in request.items() if k not in RESERVED_FIELDS}
    header = SignatureHeader(request["timestamp"], request["expiry_window"], operation_type)
    return signer.verify_signature(signer.signing_message(header, operation), request["signature"])


@pytest.fixture
def builder(signer):
    return OrderBuilder(signer)


class TestLimitOrder:

    def test_payload_and_signature(self, builder, signer):
        request = builder.build_limit_order({
            "symbol": "BTC",
            "price": "100000",
            "amount": "0.1",
            "side": "bid",
            "client_order_id": "f47ac10b-58cc-4372-a567-0e02b2c3d479",
        })

        assert request["symbol"] == "BTC"
        assert request["price"] == "100000"
        assert request["side"] == "bid"
        assert request["tif"] == "GTC"
        assert request["reduce_only"] is False
        assert request["account"] == signer.account
        assert request["expiry_window"] == 30000
        assert "take_profit" not in request
        assert _verify(signer, CREATE_ORDER, request)

    def test_accepts_model_instance(self, builder, signer):
        order = CreateLimitOrderRequest(symbol="ETH", price="3800", amount="1", side="ask", tif="ALO")
        request = builder.build_limit_order(order)
        assert request["tif"] == "ALO"
        assert _verify(signer, CREATE_ORDER, request)

    def test_nested_target_without_empty_fields(self, builder, signer):
        request = builder.build_limit_order({
            "symbol": "BTC",
            "price": "100000",
            "amount": "0.1",
            "side": "bid",
            "take_profit": {"stop_price": "110000"},
            "stop_loss": {"stop_price": "95000", "limit_price": "94900"},
        })
        assert request["take_profit"] == {"stop_price": "110000"}
        assert request["stop_loss"] == {"stop_price": "95000", "limit_price": "94900"}
        assert _verify(signer, CREATE_ORDER, request)

    @pytest.mark.parametrize("field,value", [
        ("price", "0"),
        ("price", "abc"),
        ("amount", "-1"),
        ("side", "buy"),
        ("tif", "FOK"),
        ("symbol", ""),
    ])
    def test_invalid_field_rejected(self, builder, field, value):
        order = {"symbol": "BTC", "price": "100000", "amount": "0.1", "side": "bid"}
        order[field] = value
        with pytest.raises(ValidationError):
            builder.build_limit_order(order)

    def test_missing_and_unknown_fields_rejected(self, builder):
        with pytest.raises(ValidationError) as exc_info:
            builder.build_limit_order({"symbol": "BTC", "amount": "0.1", "side": "bid"})
        assert exc_info.value.details["errors"]

        with pytest.raises(ValidationError):
            builder.build_limit_order({
                "symbol": "BTC", "price": "1", "amount": "0.1", "side": "bid", "signature": "x"
            })

    def test_non_mapping_rejected(self, builder):
        with pytest.raises(ValidationError):
            builder.build_limit_order(["BTC", "1", "0.1"])


class TestMarketOrder:

    def test_payload_and_signature(self, builder, signer):
        request = builder.build_market_order(
            {"symbol": "BTC", "amount": "0.1", "side": "bid", "slippage_percent": "0.5", "reduce_only": True},
            {"expiry_window": 5000},
        )
        assert request["slippage_percent"] == "0.5"
        assert request["reduce_only"] is True
        assert request["expiry_window"] == 5000
        assert "price" not in request
        assert _verify(signer, CREATE_MARKET_ORDER, request)

    def test_missing_slippage_rejected(self, builder):
        with pytest.raises(ValidationError):
            builder.build_market_order({"symbol": "BTC", "amount": "0.1", "side": "bid"})


class TestCancelOrder:

    def test_by_order_id(self, builder, signer):
        request = builder.build_cancel_order({"symbol": "BTC", "order_id": 123456})
        assert request["order_id"] == 123456
        assert "client_order_id" not in request
        assert _verify(signer, CANCEL_ORDER, request)

    def test_by_client_order_id(self, builder, signer):
        request = builder.build_cancel_order({"symbol": "BTC", "client_order_id": "abc-1"})
        assert request["client_order_id"] == "abc-1"
        assert "order_id" not in request
        assert _verify(signer, CANCEL_ORDER, request)

    def test_identifier_required(self, builder):
        with pytest.raises(ValidationError):
            builder.build_cancel_order({"symbol": "BTC"})


class TestSigningOptions:

    def test_default_expiry_from_builder(self, signer):
        builder = OrderBuilder(signer, default_expiry_window=15000)
        request = builder.build_cancel_order({"symbol": "BTC", "order_id": 1})
        assert request["expiry_window"] == 15000

    def test_options_override_default(self, signer):
        builder = OrderBuilder(signer, default_expiry_window=15000)
        request = builder.build_cancel_order(
            {"symbol": "BTC", "order_id": 1}, SigningOptions(expiry_window=2000)
        )
        assert request["expiry_window"] == 2000

    def test_agent_wallet_override_keeps_signature_valid(self, builder, signer):
        request = builder.build_market_order(
            {"symbol": "BTC", "amount": "0.1", "side": "ask", "slippage_percent": "1"},
            {"agent_wallet": "AgentWallet111"},
        )
        assert request["agent_wallet"] == "AgentWallet111"
        assert _verify(signer, CREATE_MARKET_ORDER, request)

    def test_negative_expiry_rejected(self, builder):
        with pytest.raises(ValidationError):
            builder.build_cancel_order({"symbol": "BTC", "order_id": 1}, {"expiry_window": -5})
