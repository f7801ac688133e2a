"""Contract events and lazy event streams."""

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rfqsettle.ledger.database import transaction
from rfqsettle.ledger.models import EventLog
from rfqsettle.ledger.repository import LedgerRepository

logger = logging.getLogger(__name__)


class EventName:
    """Names of the events emitted by the RFQ contract."""

    SRC_DEPOSITED = "SrcDeposited"
    SRC_RELEASED = "SrcReleased"
    DST_TRANSFERRED = "DstTransferred"
    REFUND_INITIATED = "RefundInitiated"
    REFUNDED = "Refunded"
    MESSAGE_RECEIVED = "MessageReceived"
    FEE_COLLECTED = "FeeCollected"
    FEE_PERC_UPDATED = "FeePercUpdated"
    RFQ_CONTRACTS_UPDATED = "RfqContractsUpdated"
    TREASURY_ADDR_UPDATED = "TreasuryAddrUpdated"
    MESSAGE_BUS_UPDATED = "MessageBusUpdated"
    OWNERSHIP_TRANSFERRED = "OwnershipTransferred"
    PAUSER_ADDED = "PauserAdded"
    PAUSER_REMOVED = "PauserRemoved"
    PAUSED = "Paused"
    UNPAUSED = "Unpaused"


@dataclass(frozen=True)
class RfqEvent:
    """A decoded event log entry."""

    seq: int
    chain_id: int
    name: str
    tx_hash: str
    args: dict
    quote_hash: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: EventLog) -> "RfqEvent":
        return cls(
            seq=row.id,
            chain_id=row.chain_id,
            name=row.name,
            tx_hash=row.tx_hash,
            args=json.loads(row.payload),
            quote_hash=row.quote_hash,
            created_at=row.created_at,
        )

    def to_dict(self) -> dict:
        return {
            "seq": self.seq,
            "chain_id": self.chain_id,
            "name": self.name,
            "tx_hash": self.tx_hash,
            "quote_hash": self.quote_hash,
            "args": self.args,
        }


async def fetch_events(
    session_factory: Optional[async_sessionmaker[AsyncSession]],
    chain_id: int,
    after_seq: int = 0,
    names: Optional[Sequence[str]] = None,
    limit: int = 100,
) -> list[RfqEvent]:
    """One page of events after ``after_seq``."""
    async with transaction(session_factory) as session:
        rows = await LedgerRepository(session).list_events(
            chain_id, after_id=after_seq, names=names, limit=limit
        )
        return [RfqEvent.from_row(row) for row in rows]


async def watch_events(
    session_factory: Optional[async_sessionmaker[AsyncSession]],
    chain_id: int,
    after_seq: int = 0,
    names: Optional[Sequence[str]] = None,
    cancel: Optional[asyncio.Event] = None,
    follow: bool = False,
    poll_interval: float = 1.0,
    batch_size: int = 100,
) -> AsyncIterator[RfqEvent]:
    """Yield events of a chain in order.

    With ``follow=False`` the stream ends once the existing events are
    exhausted. With ``follow=True`` it waits for new events until ``cancel``
    is set.
    """
    cursor = after_seq
    while cancel is None or not cancel.is_set():
        page = await fetch_events(session_factory, chain_id, cursor, names, batch_size)
        for event in page:
            if cancel is not None and cancel.is_set():
                return
            cursor = event.seq
            yield event

        if len(page) == batch_size:
            continue
        if not follow:
            return

        if cancel is None:
            await asyncio.sleep(poll_interval)
            continue
        try:
            await asyncio.wait_for(cancel.wait(), timeout=poll_interval)
        except asyncio.TimeoutError:
            pass
    logger.debug(f"Event stream for chain {chain_id} cancelled at seq {cursor}")
