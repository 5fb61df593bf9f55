"""Request signing modules for Pacifica client."""

from .canonical import canonicalize, canonicalize_bytes
from .signer import Signer, SignatureHeader, DEFAULT_EXPIRY_WINDOW, RESERVED_FIELDS

__all__ = [
    "canonicalize",
    "canonicalize_bytes",
    "Signer",
    "SignatureHeader",
    "DEFAULT_EXPIRY_WINDOW",
    "RESERVED_FIELDS",
]
