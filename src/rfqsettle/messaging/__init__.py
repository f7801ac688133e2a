"""Cross-chain messaging: codec, message bus and quorum verification."""

from rfqsettle.messaging.bus import LocalMessageBus, MessageBus, OutboundMessage
from rfqsettle.messaging.codec import (
    ExecutionStatus,
    MessageType,
    decode_message,
    encode_message,
)
from rfqsettle.messaging.verifier import QuorumVerifier, SignerSet, recover_signer

__all__ = [
    "ExecutionStatus",
    "LocalMessageBus",
    "MessageBus",
    "MessageType",
    "OutboundMessage",
    "QuorumVerifier",
    "SignerSet",
    "decode_message",
    "encode_message",
    "recover_signer",
]
