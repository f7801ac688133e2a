"""Deterministic hashing of quotes and cross-chain messages.

All pre-images use the tightly packed ABI encoding (``abi.encodePacked``):
each field keeps its declared width, big-endian, with no padding between
fields, so a uint64 and a uint256 holding the same number encode differently.
"""

from eth_abi.packed import encode_packed
from eth_utils import keccak

from rfqsettle.quote import Quote, RouteInfo

QUOTE_PACKED_TYPES = [
    "uint64",   # srcChainId
    "address",  # srcToken
    "uint256",  # srcAmount
    "uint64",   # dstChainId
    "address",  # dstToken
    "uint256",  # dstAmount
    "uint64",   # deadline
    "uint64",   # nonce
    "address",  # sender
    "address",  # receiver
    "address",  # refundTo
    "address",  # liquidityProvider
]


def encode_quote(quote: Quote) -> bytes:
    """Packed pre-image of a quote hash."""
    return encode_packed(
        QUOTE_PACKED_TYPES,
        [
            quote.src_chain_id,
            quote.src_token,
            quote.src_amount,
            quote.dst_chain_id,
            quote.dst_token,
            quote.dst_amount,
            quote.deadline,
            quote.nonce,
            quote.sender,
            quote.receiver,
            quote.refund_to,
            quote.liquidity_provider,
        ],
    )


def get_quote_hash(quote: Quote) -> bytes:
    """keccak256 of the packed quote fields."""
    return keccak(encode_quote(quote))


def inbound_message_key(src_chain_id: int, sender: str, message: bytes) -> bytes:
    """Replay-protection key for an inbound message.

    Independent of how the message arrived (bus delivery or signatures), so a
    message consumed through one path can never be replayed through the other.
    """
    return keccak(encode_packed(["uint64", "address", "bytes"], [src_chain_id, sender, message]))


def message_id(route: RouteInfo, dst_chain_id: int, message: bytes) -> bytes:
    """Identifier of a routed message as seen by the destination bus."""
    return keccak(
        encode_packed(
            ["address", "address", "uint64", "bytes32", "uint64", "bytes"],
            [
                route.sender,
                route.receiver,
                route.src_chain_id,
                route.src_tx_hash,
                dst_chain_id,
                message,
            ],
        )
    )


def domain_hash(chain_id: int, bus_address: str) -> bytes:
    """Signing domain of one chain's message bus."""
    return keccak(encode_packed(["uint256", "address", "string"], [chain_id, bus_address, "Message"]))


def message_signing_digest(
    chain_id: int, bus_address: str, route: RouteInfo, message: bytes
) -> bytes:
    """Digest the validator set signs to authorize ``message`` on ``chain_id``."""
    data = encode_packed(
        ["bytes32", "bytes32"],
        [domain_hash(chain_id, bus_address), message_id(route, chain_id, message)],
    )
    return keccak(data)
