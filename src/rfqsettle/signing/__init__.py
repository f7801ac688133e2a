"""Validator signing services.

- LocalSigner: validator keys held in memory
"""

from rfqsettle.signing.base import (
    KeyNotFoundError,
    SignatureResult,
    SignerBackend,
    SigningError,
    SigningRequest,
)
from rfqsettle.signing.local import LocalSigner

__all__ = [
    "KeyNotFoundError",
    "LocalSigner",
    "SignatureResult",
    "SignerBackend",
    "SigningError",
    "SigningRequest",
]
