"""
Tests for Ed25519 request signing.

Covers key loading, signature round trips, tamper detection, and the
flattened signed request.
"""

from unittest.mock import patch

import base58
import pytest
from nacl.signing import SigningKey, VerifyKey

from pacifica.auth.canonical import canonicalize
from pacifica.auth.signer import (
    Signer,
    SignatureHeader,
    DEFAULT_EXPIRY_WINDOW,
    RESERVED_FIELDS,
    load_signer,
)
from pacifica.exceptions import AuthenticationError, ValidationError


def _secret(signing_key: SigningKey) -> str:
    return base58.b58encode(bytes(signing_key) + bytes(signing_key.verify_key)).decode()


class TestSignerConstruction:
    """Key material handling."""

    def test_keypair_secret(self):
        """64-byte secret gives the embedded public key."""
        key = SigningKey.generate()
        signer = Signer(_secret(key))
        assert signer.public_key == base58.b58encode(bytes(key.verify_key)).decode()

    def test_seed_secret_matches_keypair_secret(self):
        key = SigningKey.generate()
        seed_only = Signer(base58.b58encode(bytes(key)).decode())
        assert seed_only.public_key == Signer(_secret(key)).public_key

    def test_account_defaults_to_public_key(self):
        signer = Signer.generate()
        assert signer.account == signer.public_key

    def test_account_override(self):
        signer = Signer.generate(account="MainWallet")
        assert signer.account == "MainWallet"
        assert signer.public_key != "MainWallet"

    def test_invalid_key_rejected(self):
        with pytest.raises(AuthenticationError):
            Signer("invalid_key")

    def test_wrong_length_rejected(self):
        with pytest.raises(AuthenticationError):
            Signer(base58.b58encode(b"\x01" * 16).decode())

    def test_mismatched_public_half_rejected(self):
        key, other = SigningKey.generate(), SigningKey.generate()
        secret = base58.b58encode(bytes(key) + bytes(other.verify_key)).decode()
        with pytest.raises(AuthenticationError):
            Signer(secret)

    def test_error_does_not_echo_key(self):
        bad_key = "0OIl" + "A" * 60
        with pytest.raises(AuthenticationError) as exc_info:
            Signer(bad_key)
        assert bad_key not in str(exc_info.value)
        assert exc_info.value.__cause__ is None

    def test_repr_has_no_secret(self):
        key = SigningKey.generate()
        secret = _secret(key)
        signer = Signer(secret)
        assert secret not in repr(signer)
        assert signer.public_key in repr(signer)

    def test_load_signer_without_key(self):
        assert load_signer(None, "acct") is None
        assert load_signer("", None) is None


class TestCreateSignature:
    """Signature creation and verification."""

    def test_default_expiry_window(self, signer):
        header, _ = signer.create_signature("create_order", {"symbol": "BTC"}, 0)
        assert header.expiry_window == DEFAULT_EXPIRY_WINDOW == 30000

    def test_custom_expiry_window(self, signer):
        header, _ = signer.create_signature("create_order", {"symbol": "BTC"}, 5000)
        assert header.expiry_window == 5000
        assert header.type == "create_order"

    def test_negative_expiry_rejected(self, signer):
        with pytest.raises(ValidationError):
            signer.create_signature("create_order", {}, -1)

    def test_timestamp_is_wall_clock_millis(self, signer):
        with patch("pacifica.auth.signer.time") as mock_time:
            mock_time.time.return_value = 1700000000.5
            header, _ = signer.create_signature("create_order", {})
        assert header.timestamp == 1700000000500

    def test_round_trip_verifies(self, signer):
        data = {"symbol": "BTC", "amount": "0.1"}
        header, signature = signer.create_signature("create_order", data, 0)
        message = canonicalize(header.envelope(data))
        assert signer.verify_signature(message, signature)
        assert signer.signing_message(header, data) == message

    def test_different_timestamps_give_different_signatures(self, signer):
        data = {"symbol": "BTC", "amount": "0.1"}
        with patch("pacifica.auth.signer.time") as mock_time:
            mock_time.time.side_effect = [1700000000.0, 1700000001.0]
            _, first = signer.create_signature("create_order", data)
            _, second = signer.create_signature("create_order", data)
        assert first != second

    def test_same_envelope_same_signature(self, signer):
        """Ed25519 is deterministic for identical input."""
        data = {"symbol": "BTC", "amount": "0.1"}
        with patch("pacifica.auth.signer.time") as mock_time:
            mock_time.time.return_value = 1700000000.0
            _, first = signer.create_signature("create_order", data)
            _, second = signer.create_signature("create_order", dict(reversed(list(data.items()))))
        assert first == second

    def test_message_mutation_fails_verification(self, signer):
        header, signature = signer.create_signature("create_order", {"symbol": "BTC"})
        message = signer.signing_message(header, {"symbol": "BTC"})
        for index in (0, len(message) // 2, len(message) - 1):
            mutated = message[:index] + chr(ord(message[index]) ^ 0x01) + message[index + 1:]
            assert not signer.verify_signature(mutated, signature)

    def test_signature_mutation_fails_verification(self, signer):
        header, signature = signer.create_signature("create_order", {"symbol": "BTC"})
        message = signer.signing_message(header, {"symbol": "BTC"})
        raw = bytearray(base58.b58decode(signature))
        raw[10] ^= 0x01
        assert not signer.verify_signature(message, base58.b58encode(bytes(raw)).decode())

    def test_malformed_signature_returns_false(self, signer):
        assert signer.verify_signature("{}", "not base58 !!") is False
        assert signer.verify_signature("{}", base58.b58encode(b"short").decode()) is False
        assert signer.verify_signature("{}", "") is False

    def test_other_key_does_not_verify(self, signer):
        header, signature = signer.create_signature("create_order", {})
        message = signer.signing_message(header, {})
        assert not Signer.generate().verify_signature(message, signature)

    def test_verify_arbitrary_message(self, signer):
        signature = signer.sign_message("hello")
        assert signer.verify_signature("hello", signature)
        assert not signer.verify_signature("hello!", signature)

    def test_non_string_input_returns_false(self, signer):
        signature = signer.sign_message("hello")
        assert signer.verify_signature(None, signature) is False
        assert signer.verify_signature("hello", None) is False
        assert signer.verify_signature(b"hello", signature) is False


class TestBuildSignedRequest:
    """Flattened request assembly."""

    def test_market_order_request(self, signer):
        data = {"symbol": "BTC", "amount": "0.1", "side": "bid", "slippage_percent": "0.5"}
        request = signer.build_signed_request("create_market_order", data, 5000)

        assert request["account"] == signer.account
        assert request["agent_wallet"] == signer.public_key
        assert request["expiry_window"] == 5000
        assert isinstance(request["timestamp"], int)
        assert isinstance(request["signature"], str)
        for field, value in data.items():
            assert request[field] == value
        assert set(request) == set(data) | RESERVED_FIELDS

    def test_detached_verifier_reconstructs_message(self, signer):
        """A server holding only the request can verify it."""
        data = {"symbol": "BTC", "amount": "0.1", "side": "bid", "slippage_percent": "0.5"}
        request = signer.build_signed_request("create_market_order", data, 5000)

        operation = {k: v for k, v in request.items() if k not in RESERVED_FIELDS}
        header = SignatureHeader(request["timestamp"], request["expiry_window"], "create_market_order")
        message = canonicalize(header.envelope(operation)).encode()

        verify_key = VerifyKey(base58.b58decode(request["agent_wallet"]))
        verify_key.verify(message, base58.b58decode(request["signature"]))

    def test_input_not_mutated(self, signer):
        data = {"symbol": "BTC", "amount": "0.1"}
        signer.build_signed_request("create_order", data)
        assert data == {"symbol": "BTC", "amount": "0.1"}

    @pytest.mark.parametrize("field", sorted(RESERVED_FIELDS))
    def test_reserved_field_collision_rejected(self, signer, field):
        with pytest.raises(ValidationError) as exc_info:
            signer.build_signed_request("create_order", {"symbol": "BTC", field: "x"})
        assert exc_info.value.details["fields"] == [field]

    def test_non_mapping_rejected(self, signer):
        with pytest.raises(ValidationError):
            signer.build_signed_request("create_order", ["symbol", "BTC"])
        with pytest.raises(ValidationError):
            signer.build_signed_request("create_order", "BTC")

    def test_empty_data_allowed(self, signer):
        request = signer.build_signed_request("cancel_all_orders", None)
        assert set(request) == RESERVED_FIELDS

