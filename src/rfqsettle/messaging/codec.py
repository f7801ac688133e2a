"""Encoding of RFQ cross-chain messages."""

from enum import IntEnum

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError

from rfqsettle.errors import InvalidInput


class MessageType(IntEnum):
    """Kind of RFQ message carried across chains."""

    NULL = 0
    SRC_RELEASE = 1  # destination transfer done, release escrow to the LP
    REFUND = 2       # destination refund initiated, pay refundTo


class ExecutionStatus(IntEnum):
    """Result a receiver reports back to the message bus."""

    FAIL = 0
    SUCCESS = 1
    RETRY = 2


def encode_message(msg_type: MessageType, quote_hash: bytes) -> bytes:
    """ABI-encode ``(uint8 type, bytes32 quoteHash)``."""
    return encode(["uint8", "bytes32"], [int(msg_type), quote_hash])


def decode_message(message: bytes) -> tuple[MessageType, bytes]:
    """Decode a message produced by ``encode_message``."""
    if len(message) != 64:
        raise InvalidInput("Rfq: invalid message length")
    try:
        raw_type, quote_hash = decode(["uint8", "bytes32"], message)
        msg_type = MessageType(raw_type)
    except (DecodingError, ValueError):
        raise InvalidInput("Rfq: invalid message")
    return msg_type, quote_hash
