"""Local signing backend.

Uses in-memory validator private keys. Suitable for:
- Development/testing
- Running a single validator next to the relayer

WARNING: Private keys are stored in memory.
"""

import logging
import os
from typing import Optional

from eth_account import Account
from eth_account.messages import encode_defunct

from rfqsettle.signing.base import (
    KeyNotFoundError,
    SignatureResult,
    SignerBackend,
    SignerType,
    SigningRequest,
)

logger = logging.getLogger(__name__)

ENV_KEY_PREFIX = "VALIDATOR_PRIVATE_KEY_"


class LocalSigner(SignerBackend):
    """Local signing backend using in-memory private keys.

    Keys are given to the constructor or loaded from environment variables
    named ``VALIDATOR_PRIVATE_KEY_{KEY_ID}``.
    """

    def __init__(self, keys: Optional[dict[str, str]] = None):
        super().__init__(SignerType.LOCAL)
        self._keys: dict[str, bytes] = {}
        for key_id, private_key_hex in (keys or {}).items():
            self.add_key(key_id, private_key_hex)

    @classmethod
    def from_env(cls) -> "LocalSigner":
        """Load every ``VALIDATOR_PRIVATE_KEY_*`` variable."""
        signer = cls()
        for name, value in os.environ.items():
            if name.startswith(ENV_KEY_PREFIX) and value:
                key_id = name[len(ENV_KEY_PREFIX):]
                signer.add_key(key_id, value)
                logger.info(f"Loaded validator key {key_id}")
        return signer

    def _get_key(self, key_id: str) -> bytes:
        """Get private key for signing.

        Raises:
            KeyNotFoundError: If key not found
        """
        try:
            return self._keys[key_id.upper()]
        except KeyError:
            raise KeyNotFoundError(f"No signing key found for {key_id}")

    async def sign(self, request: SigningRequest) -> SignatureResult:
        """Sign a digest with EIP-191 personal-sign semantics."""
        try:
            private_key = self._get_key(request.key_id)
            digest = bytes.fromhex(request.digest.removeprefix("0x"))
            if len(digest) != 32:
                return SignatureResult(success=False, error="Digest must be 32 bytes")

            signed = Account.sign_message(encode_defunct(primitive=digest), private_key)
            return SignatureResult(
                success=True,
                signature=bytes(signed.signature).hex(),
                signer=Account.from_key(private_key).address,
            )

        except KeyNotFoundError as e:
            return SignatureResult(success=False, error=str(e))
        except ValueError as e:
            logger.error(f"Local signing failed for {request.key_id}: {e}")
            return SignatureResult(success=False, error=str(e))

    async def get_address(self, key_id: str) -> Optional[str]:
        """Derive the validator address from its private key."""
        try:
            return Account.from_key(self._get_key(key_id)).address
        except KeyNotFoundError:
            return None

    def key_ids(self) -> list[str]:
        return sorted(self._keys)

    async def health_check(self) -> bool:
        """Check if any keys are loaded."""
        return len(self._keys) > 0

    def add_key(self, key_id: str, private_key_hex: str):
        """Add a private key dynamically (for testing).

        Args:
            key_id: Key identifier
            private_key_hex: Private key as hex string
        """
        self._keys[key_id.upper()] = bytes.fromhex(private_key_hex.removeprefix("0x"))
