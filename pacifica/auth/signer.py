"""
Ed25519 request signing for Pacifica.

Every authenticated operation is signed over the canonical JSON form of
{timestamp, expiry_window, type, data}. Signatures and keys are base58 text.
"""

import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple
import logging

import base58
from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey
from pydantic import BaseModel

from .canonical import canonicalize
from ..exceptions import AuthenticationError, ValidationError
from ..utils.validators import validate_expiry_window

logger = logging.getLogger(__name__)

DEFAULT_EXPIRY_WINDOW = 30_000  # milliseconds

# Fields owned by the signer in a flattened request
RESERVED_FIELDS = frozenset({
    "account",
    "agent_wallet",
    "signature",
    "timestamp",
    "expiry_window",
})


@dataclass(frozen=True)
class SignatureHeader:
    """Header signed together with the operation payload."""
    timestamp: int
    expiry_window: int
    type: str

    def envelope(self, data: Any) -> Dict[str, Any]:
        """Build the envelope that is canonicalized and signed."""
        return {
            "timestamp": self.timestamp,
            "expiry_window": self.expiry_window,
            "type": self.type,
            "data": data,
        }


def _to_json_value(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json", by_alias=True, exclude_none=True)
    return data


class Signer:
    """
    Holds the agent keypair and account identity.

    The keypair is immutable after construction, so one signer can be shared
    across threads without locking.

    Usage:
        signer = Signer(private_key="<base58 secret>", account="<main wallet>")
        request = signer.build_signed_request("create_order", order_data)
    """

    def __init__(self, private_key: str, account: Optional[str] = None):
        """
        Initialize signer.

        Args:
            private_key: Base58 Ed25519 secret (64-byte keypair or 32-byte seed)
            account: Account address the requests are made for (defaults to
                the signer's own public key)

        Raises:
            AuthenticationError: If key material cannot be decoded
        """
        try:
            key_bytes = base58.b58decode(private_key)
        except (ValueError, TypeError) as e:
            # SECURITY: never echo the key itself
            raise AuthenticationError(
                f"Failed to decode private key: {type(e).__name__}"
            ) from None

        if len(key_bytes) == 64:
            seed, expected_public = key_bytes[:32], key_bytes[32:]
        elif len(key_bytes) == 32:
            seed, expected_public = key_bytes, None
        else:
            raise AuthenticationError(
                f"Private key must be 32 or 64 bytes, got {len(key_bytes)}"
            )

        self._signing_key = SigningKey(seed)
        self._verify_key: VerifyKey = self._signing_key.verify_key

        if expected_public is not None and bytes(self._verify_key) != expected_public:
            raise AuthenticationError("Private key does not match its embedded public key")

        self._public_key = base58.b58encode(bytes(self._verify_key)).decode("ascii")
        self.account = account or self._public_key

        logger.debug(f"Signer initialized for account {self.account}")

    @classmethod
    def generate(cls, account: Optional[str] = None) -> "Signer":
        """Create a signer with a fresh random keypair."""
        signing_key = SigningKey.generate()
        secret = bytes(signing_key) + bytes(signing_key.verify_key)
        return cls(base58.b58encode(secret).decode("ascii"), account)

    @property
    def public_key(self) -> str:
        """Base58 public key (sent as agent_wallet)."""
        return self._public_key

    @staticmethod
    def signing_message(header: SignatureHeader, operation_data: Any) -> str:
        """Return the exact string that is signed for header and data."""
        return canonicalize(header.envelope(_to_json_value(operation_data)))

    def sign_message(self, message: str) -> str:
        """Sign message bytes and return the base58 signature."""
        signature = self._signing_key.sign(message.encode("utf-8")).signature
        return base58.b58encode(signature).decode("ascii")

    def create_signature(
        self,
        operation_type: str,
        operation_data: Any,
        expiry_window: int = 0
    ) -> Tuple[SignatureHeader, str]:
        """
        Sign an operation.

        Args:
            operation_type: Operation name (e.g. "create_order")
            operation_data: JSON-like payload or pydantic model
            expiry_window: Validity window in ms (0 uses the 30s default)

        Returns:
            Tuple of (header, base58 signature)

        Raises:
            ValidationError: If operation_data is not JSON-representable or
                expiry_window is negative
        """
        expiry_window = validate_expiry_window(expiry_window)

        header = SignatureHeader(
            timestamp=int(time.time() * 1000),
            expiry_window=expiry_window or DEFAULT_EXPIRY_WINDOW,
            type=operation_type,
        )
        message = self.signing_message(header, operation_data)
        return header, self.sign_message(message)

    def verify_signature(self, message: str, signature: str) -> bool:
        """
        Verify a base58 signature over a pre-canonicalized message.

        Never raises: malformed input is reported as an invalid signature.
        """
        if not isinstance(message, str) or not isinstance(signature, str):
            return False
        try:
            signature_bytes = base58.b58decode(signature)
            self._verify_key.verify(message.encode("utf-8"), signature_bytes)
            return True
        except (BadSignatureError, ValueError, TypeError):
            return False

    def build_signed_request(
        self,
        operation_type: str,
        operation_data: Any,
        expiry_window: int = 0
    ) -> Dict[str, Any]:
        """
        Build the flattened request body for an authenticated endpoint.

        Args:
            operation_type: Operation name
            operation_data: Mapping (or pydantic model) of operation fields
            expiry_window: Validity window in ms (0 uses the default)

        Returns:
            Request dict with auth fields and every operation field

        Raises:
            ValidationError: If data is not a mapping or uses a reserved field
        """
        data = _to_json_value(operation_data)
        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise ValidationError(
                f"Operation data must be a mapping, got {type(data).__name__}"
            )

        collisions = RESERVED_FIELDS.intersection(data)
        if collisions:
            raise ValidationError(
                f"Operation data uses reserved field(s): {', '.join(sorted(collisions))}",
                {"fields": sorted(collisions)}
            )

        header, signature = self.create_signature(operation_type, data, expiry_window)

        request: Dict[str, Any] = {
            "account": self.account,
            "agent_wallet": self.public_key,
            "signature": signature,
            "timestamp": header.timestamp,
            "expiry_window": header.expiry_window,
        }
        request.update(data)
        return request

    def __repr__(self) -> str:
        """Safe repr without key material."""
        return f"Signer(account={self.account}, agent_wallet={self.public_key})"


def load_signer(private_key: Optional[str], account: Optional[str]) -> Optional[Signer]:
    """Build a signer from optional settings values (None when not configured)."""
    if not private_key:
        return None
    return Signer(private_key, account)
