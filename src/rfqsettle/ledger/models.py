"""SQLAlchemy models for the RFQ ledger.

Every table is scoped by ``chain_id`` so one database can hold the state of
the RFQ contracts on several chains.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    BigInteger,
    DateTime,
    Index,
    String,
    Text,
    TypeDecorator,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Uint256(TypeDecorator):
    """Arbitrary-precision unsigned integer stored as a decimal string."""

    impl = String(78)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value < 0:
            raise ValueError(f"Negative value for uint256 column: {value}")
        return str(int(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class QuoteStatus(str, Enum):
    """Lifecycle of a quote on one chain."""

    SRC_DEPOSITED = "src_deposited"
    SRC_RELEASED = "src_released"
    SRC_REFUNDED = "src_refunded"
    DST_TRANSFERRED = "dst_transferred"
    DST_REFUND_INITIATED = "dst_refund_initiated"


class ContractState(Base):
    """Per-chain RFQ contract configuration."""

    __tablename__ = "contract_state"

    chain_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    address: Mapped[str] = mapped_column(String(42), nullable=False, unique=True)
    owner: Mapped[str] = mapped_column(String(42), nullable=False)
    message_bus: Mapped[str] = mapped_column(String(42), nullable=False)
    treasury_addr: Mapped[Optional[str]] = mapped_column(String(42), nullable=True)
    fee_perc_global: Mapped[int] = mapped_column(default=0)  # millionths
    paused: Mapped[bool] = mapped_column(default=False)
    tx_count: Mapped[int] = mapped_column(BigInteger, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class FeePercOverride(Base):
    """Per-destination-chain fee percentage override."""

    __tablename__ = "fee_perc_overrides"
    __table_args__ = (
        Index("ix_fee_overrides_chain_dst", "chain_id", "dst_chain_id", unique=True),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    chain_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    dst_chain_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    fee_perc: Mapped[int] = mapped_column(nullable=False)


class RemoteRfqContract(Base):
    """Address of the RFQ contract deployed on a peer chain."""

    __tablename__ = "remote_rfq_contracts"
    __table_args__ = (
        Index("ix_remote_rfq_chain_remote", "chain_id", "remote_chain_id", unique=True),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    chain_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    remote_chain_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    address: Mapped[str] = mapped_column(String(42), nullable=False)


class Pauser(Base):
    """Account allowed to pause and unpause a contract."""

    __tablename__ = "pausers"
    __table_args__ = (Index("ix_pausers_chain_account", "chain_id", "account", unique=True),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    chain_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    account: Mapped[str] = mapped_column(String(42), nullable=False)


class QuoteRecord(Base):
    """Settlement state of one quote on one chain, keyed by quote hash."""

    __tablename__ = "quote_records"
    __table_args__ = (
        Index("ix_quote_records_chain_hash", "chain_id", "quote_hash", unique=True),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    chain_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    quote_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    status: Mapped[QuoteStatus] = mapped_column(String(30), nullable=False)
    quote_json: Mapped[str] = mapped_column(Text, nullable=False)
    submission_deadline: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    tx_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    settled_tx_hash: Mapped[Optional[str]] = mapped_column(String(66), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class InboundMessage(Base):
    """Inbound cross-chain message, tracked for single-use consumption.

    A row without ``consumed_at`` was delivered by the message bus and is
    waiting for release/refund; a consumed row can never be used again.
    """

    __tablename__ = "inbound_messages"
    __table_args__ = (
        Index("ix_inbound_messages_chain_key", "chain_id", "message_key", unique=True),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    chain_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    message_key: Mapped[str] = mapped_column(String(66), nullable=False)
    src_chain_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    sender: Mapped[str] = mapped_column(String(42), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)  # 0x-hex
    source: Mapped[str] = mapped_column(String(20), nullable=False)  # bus, signatures
    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    consumed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def consumed(self) -> bool:
        return self.consumed_at is not None


class TokenBalance(Base):
    """Token balance of a holder on a chain."""

    __tablename__ = "token_balances"
    __table_args__ = (
        Index("ix_token_balances_chain_holder_token", "chain_id", "holder", "token", unique=True),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    chain_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    holder: Mapped[str] = mapped_column(String(42), nullable=False)
    token: Mapped[str] = mapped_column(String(42), nullable=False)
    amount: Mapped[int] = mapped_column(Uint256, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class ProtocolFee(Base):
    """Fees accrued by a contract, kept apart from escrowed principal."""

    __tablename__ = "protocol_fees"
    __table_args__ = (Index("ix_protocol_fees_chain_token", "chain_id", "token", unique=True),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    chain_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    token: Mapped[str] = mapped_column(String(42), nullable=False)
    amount: Mapped[int] = mapped_column(Uint256, default=0)


class EventLog(Base):
    """Append-only event emitted by a contract operation."""

    __tablename__ = "event_log"
    __table_args__ = (Index("ix_event_log_chain_id", "chain_id", "id"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    chain_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    name: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    quote_hash: Mapped[Optional[str]] = mapped_column(String(66), nullable=True, index=True)
    tx_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)  # JSON
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
