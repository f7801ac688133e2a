"""Base interfaces for validator signing.

Signing flow:
1. Relayer computes the message signing digest for the destination chain
2. Submit the digest to a signer with a key identifier
3. Signer returns an EIP-191 signature (never the raw private key)
4. Signatures from enough validators are passed to src_release / execute_refund
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class SignerType(str, Enum):
    """Type of signing backend."""
    LOCAL = "local"           # Private key in memory


@dataclass
class SigningRequest:
    """Request to sign a message digest.

    Attributes:
        chain_id: Chain whose message bus domain the digest belongs to
        key_id: Identifier for the signing key
        digest: 32-byte signing digest as hex string
        metadata: Optional metadata for audit logging
    """
    chain_id: int
    key_id: str
    digest: str
    metadata: Optional[dict] = None


@dataclass
class SignatureResult:
    """Result of signing operation.

    Attributes:
        success: Whether signing succeeded
        signature: 65-byte r || s || v signature as hex string
        signer: Address that produced the signature
        error: Error message if signing failed
    """
    success: bool
    signature: Optional[str] = None
    signer: Optional[str] = None
    error: Optional[str] = None

    @property
    def signature_bytes(self) -> bytes:
        if not self.success or not self.signature:
            raise SigningError(self.error or "No signature")
        return bytes.fromhex(self.signature.removeprefix("0x"))


class SignerBackend(ABC):
    """Abstract base class for signing backends.

    Implementations should NEVER expose raw private keys.
    All signing operations return signatures only.
    """

    def __init__(self, signer_type: SignerType):
        self.signer_type = signer_type

    @abstractmethod
    async def sign(self, request: SigningRequest) -> SignatureResult:
        """Sign a message digest.

        Args:
            request: Signing request with digest and key identifier

        Returns:
            SignatureResult with the signature and signer address
        """
        pass

    @abstractmethod
    async def get_address(self, key_id: str) -> Optional[str]:
        """Get the validator address for a key identifier.

        Args:
            key_id: Key identifier

        Returns:
            Checksum address, or None if not found
        """
        pass

    @abstractmethod
    def key_ids(self) -> list[str]:
        """Identifiers of all keys this backend can sign with."""
        pass

    async def health_check(self) -> bool:
        """Check if the signing backend is available.

        Returns:
            True if backend is ready to sign
        """
        return True

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(type={self.signer_type.value})"


class SigningError(Exception):
    """Exception raised when signing fails."""
    pass


class KeyNotFoundError(SigningError):
    """Exception raised when signing key is not found."""
    pass
