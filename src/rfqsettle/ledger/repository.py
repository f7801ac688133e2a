"""Repository for ledger operations."""

import json
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rfqsettle.errors import AlreadyProcessed, InsufficientFunds
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


class LedgerRepository:
    """Repository for all ledger-related database operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # Contract state
    async def get_contract_state(self, chain_id: int) -> Optional[ContractState]:
        """Get the RFQ contract deployed on a chain."""
        return await self.session.get(ContractState, chain_id)

    async def list_contract_states(self) -> list[ContractState]:
        result = await self.session.execute(select(ContractState).order_by(ContractState.chain_id))
        return list(result.scalars().all())

    async def create_contract_state(
        self,
        chain_id: int,
        address: str,
        owner: str,
        message_bus: str,
    ) -> ContractState:
        """Register a contract for a chain. Raises AlreadyProcessed if present."""
        state = ContractState(
            chain_id=chain_id,
            address=address,
            owner=owner,
            message_bus=message_bus,
            fee_perc_global=0,
            paused=False,
            tx_count=0,
        )
        self.session.add(state)
        try:
            await self.session.flush()
        except IntegrityError:
            raise AlreadyProcessed(f"Rfq: contract already deployed on chain {chain_id}")
        return state

    # Fee overrides
    async def get_fee_perc_override(self, chain_id: int, dst_chain_id: int) -> int:
        """Override for a destination chain, 0 when none is set."""
        stmt = select(FeePercOverride.fee_perc).where(
            FeePercOverride.chain_id == chain_id,
            FeePercOverride.dst_chain_id == dst_chain_id,
        )
        return await self.session.scalar(stmt) or 0

    async def set_fee_perc_override(self, chain_id: int, dst_chain_id: int, fee_perc: int) -> None:
        """Set an override; a zero percentage removes it."""
        stmt = select(FeePercOverride).where(
            FeePercOverride.chain_id == chain_id,
            FeePercOverride.dst_chain_id == dst_chain_id,
        )
        row = await self.session.scalar(stmt)
        if fee_perc == 0:
            if row is not None:
                await self.session.delete(row)
        elif row is None:
            self.session.add(
                FeePercOverride(chain_id=chain_id, dst_chain_id=dst_chain_id, fee_perc=fee_perc)
            )
        else:
            row.fee_perc = fee_perc
        await self.session.flush()

    async def list_fee_perc_overrides(self, chain_id: int) -> dict[int, int]:
        stmt = select(FeePercOverride).where(FeePercOverride.chain_id == chain_id)
        result = await self.session.execute(stmt)
        return {row.dst_chain_id: row.fee_perc for row in result.scalars().all()}

    # Remote contracts
    async def get_remote_rfq_contract(self, chain_id: int, remote_chain_id: int) -> Optional[str]:
        stmt = select(RemoteRfqContract.address).where(
            RemoteRfqContract.chain_id == chain_id,
            RemoteRfqContract.remote_chain_id == remote_chain_id,
        )
        return await self.session.scalar(stmt)

    async def set_remote_rfq_contract(self, chain_id: int, remote_chain_id: int, address: str) -> None:
        stmt = select(RemoteRfqContract).where(
            RemoteRfqContract.chain_id == chain_id,
            RemoteRfqContract.remote_chain_id == remote_chain_id,
        )
        row = await self.session.scalar(stmt)
        if row is None:
            self.session.add(
                RemoteRfqContract(chain_id=chain_id, remote_chain_id=remote_chain_id, address=address)
            )
        else:
            row.address = address
        await self.session.flush()

    async def list_remote_rfq_contracts(self, chain_id: int) -> dict[int, str]:
        stmt = select(RemoteRfqContract).where(RemoteRfqContract.chain_id == chain_id)
        result = await self.session.execute(stmt)
        return {row.remote_chain_id: row.address for row in result.scalars().all()}

    # Pausers
    async def is_pauser(self, chain_id: int, account: str) -> bool:
        stmt = select(Pauser.id).where(Pauser.chain_id == chain_id, Pauser.account == account)
        return await self.session.scalar(stmt) is not None

    async def add_pauser(self, chain_id: int, account: str) -> None:
        self.session.add(Pauser(chain_id=chain_id, account=account))
        await self.session.flush()

    async def remove_pauser(self, chain_id: int, account: str) -> None:
        await self.session.execute(
            delete(Pauser).where(Pauser.chain_id == chain_id, Pauser.account == account)
        )
        await self.session.flush()

    async def list_pausers(self, chain_id: int) -> list[str]:
        stmt = select(Pauser.account).where(Pauser.chain_id == chain_id).order_by(Pauser.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # Quote records
    async def get_quote_record(self, chain_id: int, quote_hash: str) -> Optional[QuoteRecord]:
        """Get the settlement record of a quote on a chain."""
        stmt = select(QuoteRecord).where(
            QuoteRecord.chain_id == chain_id, QuoteRecord.quote_hash == quote_hash
        )
        return await self.session.scalar(stmt)

    async def create_quote_record(
        self,
        chain_id: int,
        quote_hash: str,
        status: QuoteStatus,
        quote: dict,
        tx_hash: str,
        submission_deadline: Optional[int] = None,
    ) -> QuoteRecord:
        """Create a quote record. Raises AlreadyProcessed on a duplicate hash."""
        record = QuoteRecord(
            chain_id=chain_id,
            quote_hash=quote_hash,
            status=status,
            quote_json=json.dumps(quote),
            submission_deadline=submission_deadline,
            tx_hash=tx_hash,
        )
        self.session.add(record)
        try:
            await self.session.flush()
        except IntegrityError:
            raise AlreadyProcessed("Rfq: quote hash exists")
        return record

    async def update_quote_status(
        self, record: QuoteRecord, status: QuoteStatus, tx_hash: str
    ) -> QuoteRecord:
        record.status = status
        record.settled_tx_hash = tx_hash
        await self.session.flush()
        return record

    async def list_quote_records(
        self, chain_id: int, status: Optional[QuoteStatus] = None, limit: Optional[int] = 100
    ) -> list[QuoteRecord]:
        stmt = select(QuoteRecord).where(QuoteRecord.chain_id == chain_id)
        if status is not None:
            stmt = stmt.where(QuoteRecord.status == status)
        stmt = stmt.order_by(QuoteRecord.id.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # Inbound messages
    async def get_inbound_message(self, chain_id: int, message_key: str) -> Optional[InboundMessage]:
        stmt = select(InboundMessage).where(
            InboundMessage.chain_id == chain_id, InboundMessage.message_key == message_key
        )
        return await self.session.scalar(stmt)

    async def record_inbound_message(
        self,
        chain_id: int,
        message_key: str,
        src_chain_id: int,
        sender: str,
        message: bytes,
        source: str,
        consumed: bool,
    ) -> InboundMessage:
        """Record an inbound message. Raises AlreadyProcessed on a duplicate key."""
        row = InboundMessage(
            chain_id=chain_id,
            message_key=message_key,
            src_chain_id=src_chain_id,
            sender=sender,
            message="0x" + message.hex(),
            source=source,
            consumed_at=datetime.now(timezone.utc) if consumed else None,
        )
        self.session.add(row)
        try:
            await self.session.flush()
        except IntegrityError:
            raise AlreadyProcessed("Rfq: message already received")
        return row

    async def consume_inbound_message(self, row: InboundMessage) -> InboundMessage:
        if row.consumed:
            raise AlreadyProcessed("Rfq: message already consumed")
        row.consumed_at = datetime.now(timezone.utc)
        await self.session.flush()
        return row

    # Token balances
    async def get_balance(self, chain_id: int, holder: str, token: str) -> Optional[TokenBalance]:
        stmt = select(TokenBalance).where(
            TokenBalance.chain_id == chain_id,
            TokenBalance.holder == holder,
            TokenBalance.token == token,
        )
        return await self.session.scalar(stmt)

    async def get_or_create_balance(self, chain_id: int, holder: str, token: str) -> TokenBalance:
        balance = await self.get_balance(chain_id, holder, token)
        if balance is None:
            balance = TokenBalance(chain_id=chain_id, holder=holder, token=token, amount=0)
            self.session.add(balance)
            await self.session.flush()
        return balance

    async def credit_balance(self, chain_id: int, holder: str, token: str, amount: int) -> TokenBalance:
        """Add amount to a holder's balance."""
        balance = await self.get_or_create_balance(chain_id, holder, token)
        balance.amount += amount
        await self.session.flush()
        return balance

    async def debit_balance(self, chain_id: int, holder: str, token: str, amount: int) -> TokenBalance:
        """Subtract amount. Raises InsufficientFunds if the balance is short."""
        balance = await self.get_or_create_balance(chain_id, holder, token)
        if balance.amount < amount:
            raise InsufficientFunds(
                f"Rfq: insufficient balance: have {balance.amount} of {token}, need {amount}"
            )
        balance.amount -= amount
        await self.session.flush()
        return balance

    async def transfer(
        self, chain_id: int, token: str, from_addr: str, to_addr: str, amount: int
    ) -> None:
        """Move tokens between two holders on a chain."""
        await self.debit_balance(chain_id, from_addr, token, amount)
        await self.credit_balance(chain_id, to_addr, token, amount)

    async def list_holder_balances(self, chain_id: int, holder: str) -> list[TokenBalance]:
        stmt = (
            select(TokenBalance)
            .where(TokenBalance.chain_id == chain_id, TokenBalance.holder == holder)
            .order_by(TokenBalance.token)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    # Protocol fees
    async def get_protocol_fee(self, chain_id: int, token: str) -> int:
        stmt = select(ProtocolFee.amount).where(
            ProtocolFee.chain_id == chain_id, ProtocolFee.token == token
        )
        return await self.session.scalar(stmt) or 0

    async def accrue_protocol_fee(self, chain_id: int, token: str, amount: int) -> ProtocolFee:
        stmt = select(ProtocolFee).where(ProtocolFee.chain_id == chain_id, ProtocolFee.token == token)
        row = await self.session.scalar(stmt)
        if row is None:
            row = ProtocolFee(chain_id=chain_id, token=token, amount=0)
            self.session.add(row)
        row.amount += amount
        await self.session.flush()
        return row

    async def withdraw_protocol_fee(self, chain_id: int, token: str, amount: int) -> ProtocolFee:
        """Deduct collected fees. Raises InsufficientFunds beyond the accrued amount."""
        stmt = select(ProtocolFee).where(ProtocolFee.chain_id == chain_id, ProtocolFee.token == token)
        row = await self.session.scalar(stmt)
        accrued = row.amount if row is not None else 0
        if row is None or accrued < amount:
            raise InsufficientFunds(
                f"Rfq: not enough protocol fee: accrued {accrued} of {token}, requested {amount}"
            )
        row.amount -= amount
        await self.session.flush()
        return row

    async def list_protocol_fees(self, chain_id: int) -> dict[str, int]:
        stmt = select(ProtocolFee).where(ProtocolFee.chain_id == chain_id)
        result = await self.session.execute(stmt)
        return {row.token: row.amount for row in result.scalars().all()}

    async def sum_escrowed_principal(self, chain_id: int, token: str) -> int:
        """Principal held for deposited, unsettled quotes in ``token``."""
        stmt = select(QuoteRecord.quote_json).where(
            QuoteRecord.chain_id == chain_id,
            QuoteRecord.status == QuoteStatus.SRC_DEPOSITED,
        )
        result = await self.session.execute(stmt)
        total = 0
        for quote_json in result.scalars().all():
            quote = json.loads(quote_json)
            if quote["src_token"] == token:
                total += int(quote["src_amount"])
        return total

    # Events
    async def add_event(
        self,
        chain_id: int,
        name: str,
        tx_hash: str,
        payload: dict,
        quote_hash: Optional[str] = None,
    ) -> EventLog:
        event = EventLog(
            chain_id=chain_id,
            name=name,
            quote_hash=quote_hash,
            tx_hash=tx_hash,
            payload=json.dumps(payload),
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def list_events(
        self,
        chain_id: int,
        after_id: int = 0,
        names: Optional[Sequence[str]] = None,
        limit: int = 100,
    ) -> list[EventLog]:
        """Events of a chain in emission order, after a sequence cursor."""
        stmt = select(EventLog).where(EventLog.chain_id == chain_id, EventLog.id > after_id)
        if names:
            stmt = stmt.where(EventLog.name.in_(list(names)))
        stmt = stmt.order_by(EventLog.id).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
