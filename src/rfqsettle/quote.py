"""Quote and route data model.

A ``Quote`` is a cross-chain swap offer with fixed terms. Its identity is the
hash of all twelve fields (see ``rfqsettle.hashing``); two quotes with the
same field values are the same quote.
"""

from dataclasses import dataclass, fields
from typing import Any, Union

from eth_utils import is_address, to_checksum_address

from rfqsettle.errors import InvalidInput

UINT64_MAX = 2**64 - 1
UINT256_MAX = 2**256 - 1
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# ABI field names of the Quote tuple, in declared order
QUOTE_ABI_FIELDS = (
    ("srcChainId", "src_chain_id"),
    ("srcToken", "src_token"),
    ("srcAmount", "src_amount"),
    ("dstChainId", "dst_chain_id"),
    ("dstToken", "dst_token"),
    ("dstAmount", "dst_amount"),
    ("deadline", "deadline"),
    ("nonce", "nonce"),
    ("sender", "sender"),
    ("receiver", "receiver"),
    ("refundTo", "refund_to"),
    ("liquidityProvider", "liquidity_provider"),
)


def normalize_address(value: Union[str, bytes], field: str = "address") -> str:
    """Validate an address and return its checksum form."""
    if not is_address(value):
        raise InvalidInput(f"Rfq: invalid {field} {value!r}")
    return to_checksum_address(value)


def check_uint(value: Any, bits: int, field: str) -> int:
    """Validate an unsigned integer of the given bit width."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput(f"Rfq: {field} must be an integer")
    if value < 0 or value > 2**bits - 1:
        raise InvalidInput(f"Rfq: {field} out of uint{bits} range")
    return value


def check_bytes32(value: Union[str, bytes], field: str) -> bytes:
    """Coerce a 32-byte value given as bytes or 0x-hex."""
    if isinstance(value, str):
        try:
            value = bytes.fromhex(value[2:] if value.startswith("0x") else value)
        except ValueError:
            raise InvalidInput(f"Rfq: {field} is not hex")
    if not isinstance(value, (bytes, bytearray)) or len(value) != 32:
        raise InvalidInput(f"Rfq: {field} must be 32 bytes")
    return bytes(value)


@dataclass(frozen=True)
class Quote:
    """A cross-chain swap offer."""

    src_chain_id: int
    src_token: str
    src_amount: int
    dst_chain_id: int
    dst_token: str
    dst_amount: int
    deadline: int
    nonce: int
    sender: str
    receiver: str
    refund_to: str
    liquidity_provider: str

    def __post_init__(self):
        for name in ("src_chain_id", "dst_chain_id", "deadline", "nonce"):
            check_uint(getattr(self, name), 64, name)
        for name in ("src_amount", "dst_amount"):
            check_uint(getattr(self, name), 256, name)
        for name in (
            "src_token",
            "dst_token",
            "sender",
            "receiver",
            "refund_to",
            "liquidity_provider",
        ):
            object.__setattr__(self, name, normalize_address(getattr(self, name), name))

    @property
    def quote_hash(self) -> bytes:
        """Deterministic identity of this quote."""
        from rfqsettle.hashing import get_quote_hash

        return get_quote_hash(self)

    def to_dict(self) -> dict:
        """Convert to a plain dict (snake_case keys, int amounts)."""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def to_abi_dict(self) -> dict:
        """Convert to a dict keyed by ABI (camelCase) field names."""
        return {abi: getattr(self, name) for abi, name in QUOTE_ABI_FIELDS}

    @classmethod
    def from_dict(cls, data: dict) -> "Quote":
        """Build a quote from snake_case or camelCase keys.

        Integer fields may be given as decimal strings.
        """
        values = {}
        for abi, name in QUOTE_ABI_FIELDS:
            if name in data:
                value = data[name]
            elif abi in data:
                value = data[abi]
            else:
                raise InvalidInput(f"Rfq: quote field {name} missing")
            if name not in ("src_token", "dst_token", "sender", "receiver", "refund_to",
                            "liquidity_provider") and isinstance(value, str):
                try:
                    value = int(value, 0)
                except ValueError:
                    raise InvalidInput(f"Rfq: quote field {name} is not an integer")
            values[name] = value
        return cls(**values)


@dataclass(frozen=True)
class RouteInfo:
    """Provenance of an inbound cross-chain message."""

    sender: str
    receiver: str
    src_chain_id: int
    src_tx_hash: bytes

    def __post_init__(self):
        object.__setattr__(self, "sender", normalize_address(self.sender, "route sender"))
        object.__setattr__(self, "receiver", normalize_address(self.receiver, "route receiver"))
        check_uint(self.src_chain_id, 64, "route srcChainId")
        object.__setattr__(self, "src_tx_hash", check_bytes32(self.src_tx_hash, "srcTxHash"))
