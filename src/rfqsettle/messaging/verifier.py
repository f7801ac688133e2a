"""Signature-quorum verification of inbound cross-chain messages.

The gateway only consumes the validator set; membership is managed elsewhere.
A message is authorized when the voting power of distinct registered signers
whose signatures recover from the signing digest reaches the quorum of
``total_power * 2 // 3 + 1``.
"""

import logging
from dataclasses import dataclass, field
from typing import Sequence

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys.exceptions import BadSignature, ValidationError

from rfqsettle.errors import InvalidInput, Unauthorized
from rfqsettle.quote import check_uint, normalize_address

logger = logging.getLogger(__name__)


@dataclass
class SignerSet:
    """Registered validator addresses and their voting power."""

    powers: dict[str, int] = field(default_factory=dict)

    def __post_init__(self):
        normalized = {}
        for signer, power in self.powers.items():
            address = normalize_address(signer, "signer")
            if address in normalized:
                raise InvalidInput(f"Rfq: duplicate signer {address}")
            normalized[address] = check_uint(power, 256, "signer power")
        self.powers = normalized

    @classmethod
    def from_pairs(cls, signers: Sequence[str], powers: Sequence[int]) -> "SignerSet":
        if len(signers) != len(powers):
            raise InvalidInput("Rfq: signers and powers length mismatch")
        return cls(dict(zip(signers, powers)))

    @classmethod
    def from_string(cls, value: str) -> "SignerSet":
        """Parse ``"0xabc...:40,0xdef...:30"``."""
        powers = {}
        for item in value.split(","):
            item = item.strip()
            if not item:
                continue
            address, _, power = item.partition(":")
            if not power:
                raise InvalidInput(f"Rfq: signer entry {item!r} has no power")
            powers[address.strip()] = int(power)
        return cls(powers)

    @property
    def total_power(self) -> int:
        return sum(self.powers.values())

    @property
    def quorum(self) -> int:
        """Minimum power that authorizes a message (strictly above 2/3)."""
        return self.total_power * 2 // 3 + 1

    @property
    def signers(self) -> list[str]:
        return list(self.powers)

    def power_of(self, signer: str) -> int:
        return self.powers.get(signer, 0)


def recover_signer(digest: bytes, signature: bytes):
    """Recover the address that personal-signed ``digest``, or None."""
    try:
        return Account.recover_message(encode_defunct(primitive=digest), signature=signature)
    except (BadSignature, ValidationError, ValueError, TypeError) as e:
        logger.debug(f"Unrecoverable signature: {e}")
        return None


class QuorumVerifier:
    """Checks signature sets against a registered ``SignerSet``."""

    def __init__(self, signer_set: SignerSet):
        self.signer_set = signer_set

    def verify(
        self,
        digest: bytes,
        sigs: Sequence[bytes],
        signers: Sequence[str],
        powers: Sequence[int],
    ) -> int:
        """Verify ``sigs`` over ``digest``.

        Args:
            digest: 32-byte signing digest of the message
            sigs: 65-byte ECDSA signatures, any order
            signers: Signer list supplied with the message
            powers: Voting power of each supplied signer

        Returns:
            Aggregate power of the distinct valid signers

        Raises:
            InvalidInput: Malformed signer/power lists
            Unauthorized: Signer set mismatch or quorum not reached
        """
        if len(signers) != len(powers):
            raise InvalidInput("Rfq: signers and powers length mismatch")

        supplied = {}
        for signer, power in zip(signers, powers):
            address = normalize_address(signer, "signer")
            if address in supplied:
                raise InvalidInput(f"Rfq: duplicate signer {address}")
            supplied[address] = power
        if supplied != self.signer_set.powers:
            raise Unauthorized("Rfq: mismatched signer set")

        counted: set[str] = set()
        signed_power = 0
        for sig in sigs:
            recovered = recover_signer(digest, bytes(sig))
            if recovered is None:
                continue
            if recovered not in supplied:
                logger.debug(f"Ignoring signature from unregistered signer {recovered}")
                continue
            if recovered in counted:
                continue
            counted.add(recovered)
            signed_power += supplied[recovered]

        quorum = self.signer_set.quorum
        if signed_power < quorum:
            logger.warning(
                f"Quorum not reached: signed power {signed_power} < {quorum} "
                f"({len(counted)} distinct signers)"
            )
            raise Unauthorized("Rfq: quorum not reached")

        logger.debug(f"Quorum reached: {signed_power}/{self.signer_set.total_power}")
        return signed_power
