"""Ledger module for RFQ contract state, balances and events."""

from rfqsettle.ledger.database import get_db, init_db, transaction
from rfqsettle.ledger.models import (
    ContractState,
    EventLog,
    FeePercOverride,
    InboundMessage,
    Pauser,
    ProtocolFee,
    QuoteRecord,
    QuoteStatus,
    RemoteRfqContract,
    TokenBalance,
)
from rfqsettle.ledger.repository import LedgerRepository

__all__ = [
    # Models
    "ContractState",
    "EventLog",
    "FeePercOverride",
    "InboundMessage",
    "Pauser",
    "ProtocolFee",
    "QuoteRecord",
    "RemoteRfqContract",
    "TokenBalance",
    # Enums
    "QuoteStatus",
    # Database
    "get_db",
    "init_db",
    "transaction",
    "LedgerRepository",
]
