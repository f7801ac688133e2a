"""RFQ settlement contract service.

One ``RfqContract`` holds the RFQ protocol state of one chain. On the source
chain it escrows deposits and releases or refunds them once an authenticated
cross-chain message arrives; on the destination chain it pays receivers and
emits the messages that settle the source side.

Every mutating call runs as a single ledger transaction under the chain's
processing lock: either all of its state changes and events commit, or none
do. Outbound messages are handed to the bus only after the commit.
"""

import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Callable, Optional, Sequence

from eth_abi.packed import encode_packed
from eth_utils import encode_hex, keccak
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rfqsettle.errors import (
    AlreadyProcessed,
    InvalidInput,
    PausedState,
    RfqError,
    Unauthorized,
)
from rfqsettle.events import EventName
from rfqsettle.hashing import get_quote_hash, inbound_message_key, message_signing_digest
from rfqsettle.ledger.database import transaction
from rfqsettle.ledger.models import ContractState, QuoteRecord, QuoteStatus
from rfqsettle.ledger.repository import LedgerRepository
from rfqsettle.messaging.bus import MessageBus, OutboundMessage
from rfqsettle.messaging.codec import (
    ExecutionStatus,
    MessageType,
    decode_message,
    encode_message,
)
from rfqsettle.messaging.verifier import QuorumVerifier
from rfqsettle.quote import ZERO_ADDRESS, Quote, RouteInfo, check_uint, normalize_address
from rfqsettle.rfq.fees import FEE_PRECISION, GLOBAL_FEE_CHAIN_ID, compute_fee, resolve_fee_perc
from rfqsettle.utils.locks import ProcessingLock, chain_key

logger = logging.getLogger(__name__)

SRC_STATUSES = (QuoteStatus.SRC_DEPOSITED, QuoteStatus.SRC_RELEASED, QuoteStatus.SRC_REFUNDED)
DST_STATUSES = (QuoteStatus.DST_TRANSFERRED, QuoteStatus.DST_REFUND_INITIATED)


class ContractTransaction:
    """State of one in-flight contract transaction."""

    def __init__(self, repo: LedgerRepository, state: ContractState, tx_hash: str):
        self.repo = repo
        self.state = state
        self.tx_hash = tx_hash
        self.outbound: list[OutboundMessage] = []

    async def emit(self, name: str, payload: dict, quote_hash: Optional[str] = None) -> None:
        await self.repo.add_event(
            self.state.chain_id, name, self.tx_hash, payload, quote_hash=quote_hash
        )

    def send(self, receiver: str, dst_chain_id: int, message: bytes) -> None:
        self.outbound.append(
            OutboundMessage(
                sender=self.state.address,
                src_chain_id=self.state.chain_id,
                receiver=receiver,
                dst_chain_id=dst_chain_id,
                message=message,
            )
        )


class RfqContract:
    """RFQ protocol state machine for one chain.

    Read-only views and mutating operations share one interface; every
    mutating operation takes the calling account as its first argument.
    """

    def __init__(
        self,
        chain_id: int,
        address: str,
        verifier: QuorumVerifier,
        bus: Optional[MessageBus] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        clock: Optional[Callable[[], int]] = None,
        lock_timeout: Optional[float] = 30.0,
    ):
        self.chain_id = check_uint(chain_id, 64, "chain id")
        self.address = normalize_address(address, "contract address")
        self.verifier = verifier
        self.bus = bus
        self._session_factory = session_factory
        self._clock = clock or (lambda: int(time.time()))
        self.lock_timeout = lock_timeout

    def __repr__(self) -> str:
        return f"RfqContract(chain_id={self.chain_id}, address={self.address})"

    @classmethod
    async def deploy(
        cls,
        chain_id: int,
        address: str,
        owner: str,
        message_bus: str,
        verifier: QuorumVerifier,
        bus: Optional[MessageBus] = None,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> "RfqContract":
        """Create the contract state for a chain.

        The deployer becomes owner and the first pauser.
        """
        contract = cls(chain_id, address, verifier, bus, session_factory, clock)
        owner = normalize_address(owner, "owner")
        message_bus = normalize_address(message_bus, "message bus")

        async with ProcessingLock(chain_key(contract.chain_id), operation="deploy"):
            async with transaction(session_factory) as session:
                repo = LedgerRepository(session)
                state = await repo.create_contract_state(
                    contract.chain_id, contract.address, owner, message_bus
                )
                tx = ContractTransaction(repo, state, contract._next_tx_hash(state))
                await repo.add_pauser(contract.chain_id, owner)
                await tx.emit(
                    EventName.OWNERSHIP_TRANSFERRED,
                    {"previousOwner": ZERO_ADDRESS, "newOwner": owner},
                )
                await tx.emit(EventName.PAUSER_ADDED, {"account": owner})
                await tx.emit(EventName.MESSAGE_BUS_UPDATED, {"messageBus": message_bus})

        logger.info(f"RFQ contract {contract.address} deployed on chain {contract.chain_id}")
        return contract

    # ------------------------------------------------------------------
    # Transaction plumbing
    # ------------------------------------------------------------------

    def _now(self) -> int:
        return int(self._clock())

    def _next_tx_hash(self, state: ContractState) -> str:
        state.tx_count += 1
        return encode_hex(
            keccak(
                encode_packed(
                    ["uint64", "address", "uint64"],
                    [state.chain_id, state.address, state.tx_count],
                )
            )
        )

    @asynccontextmanager
    async def _transaction(self, operation: str, allow_paused: bool = False):
        async with ProcessingLock(
            chain_key(self.chain_id), timeout=self.lock_timeout, operation=operation
        ):
            try:
                async with transaction(self._session_factory) as session:
                    repo = LedgerRepository(session)
                    state = await self._load_state(repo)
                    if state.paused and not allow_paused:
                        raise PausedState("Pausable: paused")
                    tx = ContractTransaction(repo, state, self._next_tx_hash(state))
                    yield tx
            except RfqError as e:
                logger.info(f"{operation} on chain {self.chain_id} reverted: {e.reason}")
                raise

        await self._dispatch(tx.outbound)

    @asynccontextmanager
    async def _view(self):
        async with transaction(self._session_factory) as session:
            repo = LedgerRepository(session)
            yield repo, await self._load_state(repo)

    async def _load_state(self, repo: LedgerRepository) -> ContractState:
        state = await repo.get_contract_state(self.chain_id)
        if state is None or state.address != self.address:
            raise InvalidInput(f"Rfq: no contract {self.address} on chain {self.chain_id}")
        return state

    async def _dispatch(self, outbound: list[OutboundMessage]) -> None:
        for message in outbound:
            if self.bus is None:
                logger.debug(
                    f"No message bus attached on chain {self.chain_id}; "
                    f"message to chain {message.dst_chain_id} left to relayers"
                )
                continue
            await self.bus.send_message(message)

    @staticmethod
    def _require_owner(tx: ContractTransaction, caller: str) -> None:
        if caller != tx.state.owner:
            raise Unauthorized("Ownable: caller is not the owner")

    async def _require_pauser(self, tx: ContractTransaction, caller: str) -> None:
        if not await tx.repo.is_pauser(self.chain_id, caller):
            raise Unauthorized("Caller is not pauser")

    async def _rfq_fee(
        self, repo: LedgerRepository, state: ContractState, dst_chain_id: int, amount: int
    ) -> int:
        override = await repo.get_fee_perc_override(self.chain_id, dst_chain_id)
        return compute_fee(amount, resolve_fee_perc(override, state.fee_perc_global))

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @staticmethod
    def get_quote_hash(quote: Quote) -> bytes:
        return get_quote_hash(quote)

    async def get_rfq_fee(self, dst_chain_id: int, amount: int) -> int:
        """Fee charged on ``amount`` for quotes settling on ``dst_chain_id``."""
        check_uint(dst_chain_id, 64, "dst chain id")
        check_uint(amount, 256, "amount")
        async with self._view() as (repo, state):
            return await self._rfq_fee(repo, state, dst_chain_id, amount)

    async def paused(self) -> bool:
        async with self._view() as (_, state):
            return state.paused

    async def owner(self) -> str:
        async with self._view() as (_, state):
            return state.owner

    async def treasury_addr(self) -> Optional[str]:
        async with self._view() as (_, state):
            return state.treasury_addr

    async def message_bus(self) -> str:
        async with self._view() as (_, state):
            return state.message_bus

    async def fee_perc_global(self) -> int:
        async with self._view() as (_, state):
            return state.fee_perc_global

    async def fee_perc_override(self, dst_chain_id: int) -> int:
        async with self._view() as (repo, _):
            return await repo.get_fee_perc_override(self.chain_id, dst_chain_id)

    async def remote_rfq_contract(self, chain_id: int) -> Optional[str]:
        async with self._view() as (repo, _):
            return await repo.get_remote_rfq_contract(self.chain_id, chain_id)

    async def is_pauser(self, account: str) -> bool:
        account = normalize_address(account, "account")
        async with self._view() as (repo, _):
            return await repo.is_pauser(self.chain_id, account)

    async def quote_status(self, quote_hash: bytes) -> Optional[QuoteStatus]:
        async with self._view() as (repo, _):
            record = await repo.get_quote_record(self.chain_id, encode_hex(quote_hash))
            return QuoteStatus(record.status) if record else None

    async def quotes(self, quote_hash: bytes) -> bool:
        """Whether the quote was ever deposited on this chain."""
        status = await self.quote_status(quote_hash)
        return status in SRC_STATUSES

    async def executed_quotes(self, quote_hash: bytes) -> bool:
        """Whether the quote reached a terminal payout or refund on this chain."""
        status = await self.quote_status(quote_hash)
        return status is not None and status != QuoteStatus.SRC_DEPOSITED

    async def unconsumed_msg(self, message_key: bytes) -> bool:
        """Whether a bus-delivered message is waiting to be consumed."""
        async with self._view() as (repo, _):
            row = await repo.get_inbound_message(self.chain_id, encode_hex(message_key))
            return row is not None and not row.consumed

    async def get_quote(self, quote_hash: bytes) -> Optional[Quote]:
        """Quote recorded on this chain under ``quote_hash``."""
        async with self._view() as (repo, _):
            record = await repo.get_quote_record(self.chain_id, encode_hex(quote_hash))
            return self._quote_of(record) if record else None

    async def balance_of(self, holder: str, token: str) -> int:
        holder = normalize_address(holder, "holder")
        token = normalize_address(token, "token")
        async with self._view() as (repo, _):
            balance = await repo.get_balance(self.chain_id, holder, token)
            return balance.amount if balance else 0

    async def protocol_fee(self, token: str) -> int:
        """Fees accrued in ``token`` and not yet collected."""
        token = normalize_address(token, "token")
        async with self._view() as (repo, _):
            return await repo.get_protocol_fee(self.chain_id, token)

    async def signing_digest(self, route: RouteInfo, message: bytes) -> bytes:
        """Digest validators must sign to authorize ``message`` here."""
        async with self._view() as (_, state):
            return message_signing_digest(self.chain_id, state.message_bus, route, message)

    @staticmethod
    def _quote_of(record: QuoteRecord) -> Quote:
        return Quote.from_dict(json.loads(record.quote_json))

    # ------------------------------------------------------------------
    # Source chain: escrow
    # ------------------------------------------------------------------

    async def src_deposit(self, caller: str, quote: Quote, submission_deadline: int) -> bytes:
        """Escrow ``quote.src_amount`` from the sender.

        Returns:
            The quote hash
        """
        caller = normalize_address(caller, "caller")
        check_uint(submission_deadline, 64, "submission deadline")

        async with self._transaction("src_deposit") as tx:
            now = self._now()
            if submission_deadline <= now:
                raise InvalidInput("Rfq: submission deadline passed")
            if quote.src_chain_id != self.chain_id:
                raise InvalidInput("Rfq: src chainId mismatch")
            if quote.dst_chain_id == self.chain_id:
                raise InvalidInput("Rfq: dst chainId equals src chainId")
            if quote.sender != caller:
                raise InvalidInput("Rfq: sender mismatch")
            if quote.deadline <= now:
                raise InvalidInput("Rfq: quote deadline passed")
            if quote.deadline <= submission_deadline:
                raise InvalidInput("Rfq: quote deadline before submission deadline")
            if quote.src_amount == 0:
                raise InvalidInput("Rfq: zero src amount")
            if await tx.repo.get_remote_rfq_contract(self.chain_id, quote.dst_chain_id) is None:
                raise InvalidInput("Rfq: dst contract not set")

            quote_hash = quote.quote_hash
            hash_hex = encode_hex(quote_hash)
            if await tx.repo.get_quote_record(self.chain_id, hash_hex) is not None:
                raise AlreadyProcessed("Rfq: quote hash exists")

            await tx.repo.transfer(
                self.chain_id, quote.src_token, caller, self.address, quote.src_amount
            )
            await tx.repo.create_quote_record(
                self.chain_id,
                hash_hex,
                QuoteStatus.SRC_DEPOSITED,
                quote.to_dict(),
                tx.tx_hash,
                submission_deadline=submission_deadline,
            )
            await tx.emit(
                EventName.SRC_DEPOSITED,
                {
                    "hash": hash_hex,
                    "quote": quote.to_abi_dict(),
                    "srcRecipient": quote.liquidity_provider,
                    "submissionDeadline": submission_deadline,
                },
                quote_hash=hash_hex,
            )

        logger.info(f"Deposited quote {hash_hex} on chain {self.chain_id}")
        return quote_hash

    async def src_release(
        self,
        caller: str,
        quote: Quote,
        message: bytes,
        route: RouteInfo,
        sigs: Sequence[bytes] = (),
        signers: Sequence[str] = (),
        powers: Sequence[int] = (),
    ) -> None:
        """Release escrowed funds to the liquidity provider."""
        await self._settle_source(
            "src_release", caller, quote, message, route, sigs, signers, powers,
            MessageType.SRC_RELEASE,
        )

    async def execute_refund(
        self,
        caller: str,
        quote: Quote,
        message: bytes,
        route: RouteInfo,
        sigs: Sequence[bytes] = (),
        signers: Sequence[str] = (),
        powers: Sequence[int] = (),
    ) -> None:
        """Return escrowed funds to ``refund_to`` after a destination refund."""
        await self._settle_source(
            "execute_refund", caller, quote, message, route, sigs, signers, powers,
            MessageType.REFUND,
        )

    async def _settle_source(
        self,
        operation: str,
        caller: str,
        quote: Quote,
        message: bytes,
        route: RouteInfo,
        sigs: Sequence[bytes],
        signers: Sequence[str],
        powers: Sequence[int],
        expected_type: MessageType,
    ) -> None:
        normalize_address(caller, "caller")
        message = bytes(message)

        async with self._transaction(operation) as tx:
            if quote.src_chain_id != self.chain_id:
                raise InvalidInput("Rfq: src chainId mismatch")
            quote_hash = quote.quote_hash
            hash_hex = encode_hex(quote_hash)

            msg_type, msg_hash = decode_message(message)
            if msg_type != expected_type:
                raise InvalidInput("Rfq: invalid message type")
            if msg_hash != quote_hash:
                raise InvalidInput("Rfq: message hash mismatch")

            record = await tx.repo.get_quote_record(self.chain_id, hash_hex)
            if record is None or record.status not in SRC_STATUSES:
                raise InvalidInput("Rfq: quote not deposited")
            if record.status != QuoteStatus.SRC_DEPOSITED:
                raise AlreadyProcessed(f"Rfq: quote already {QuoteStatus(record.status).value}")

            if expected_type == MessageType.REFUND:
                if self._now() <= quote.deadline:
                    raise InvalidInput("Rfq: deadline not passed")
                recipient, status, event = quote.refund_to, QuoteStatus.SRC_REFUNDED, EventName.REFUNDED
            else:
                recipient, status, event = (
                    quote.liquidity_provider,
                    QuoteStatus.SRC_RELEASED,
                    EventName.SRC_RELEASED,
                )

            await self._consume_inbound(tx, route, message, sigs, signers, powers)

            await tx.repo.transfer(
                self.chain_id, quote.src_token, self.address, recipient, quote.src_amount
            )
            await tx.repo.update_quote_status(record, status, tx.tx_hash)
            if event == EventName.REFUNDED:
                payload = {"hash": hash_hex, "refundTo": recipient}
            else:
                payload = {"hash": hash_hex, "srcRecipient": recipient}
            payload.update({"srcToken": quote.src_token, "amount": quote.src_amount})
            await tx.emit(event, payload, quote_hash=hash_hex)

        logger.info(f"Quote {hash_hex} {status.value} on chain {self.chain_id} to {recipient}")

    async def _consume_inbound(
        self,
        tx: ContractTransaction,
        route: RouteInfo,
        message: bytes,
        sigs: Sequence[bytes],
        signers: Sequence[str],
        powers: Sequence[int],
    ) -> None:
        """Authenticate an inbound message and mark it consumed."""
        remote = await tx.repo.get_remote_rfq_contract(self.chain_id, route.src_chain_id)
        if remote is None or remote != route.sender:
            raise Unauthorized("Rfq: not allowed sender")
        if route.receiver != self.address:
            raise Unauthorized("Rfq: route receiver mismatch")

        key = encode_hex(inbound_message_key(route.src_chain_id, route.sender, message))
        row = await tx.repo.get_inbound_message(self.chain_id, key)
        if row is not None:
            await tx.repo.consume_inbound_message(row)
            logger.debug(f"Consumed bus-delivered message {key}")
            return

        digest = message_signing_digest(self.chain_id, tx.state.message_bus, route, message)
        self.verifier.verify(digest, sigs, signers, powers)
        await tx.repo.record_inbound_message(
            self.chain_id,
            key,
            route.src_chain_id,
            route.sender,
            message,
            source="signatures",
            consumed=True,
        )

    # ------------------------------------------------------------------
    # Destination chain: transfer and refund request
    # ------------------------------------------------------------------

    async def dst_transfer(self, caller: str, quote: Quote) -> None:
        """Pay the receiver and notify the source chain.

        The caller funds ``dst_amount``; the fee is deducted from the payout
        and accrues to the contract's protocol fees.
        """
        caller = normalize_address(caller, "caller")

        async with self._transaction("dst_transfer") as tx:
            if quote.dst_chain_id != self.chain_id:
                raise InvalidInput("Rfq: dst chainId mismatch")
            if quote.src_chain_id == self.chain_id:
                raise InvalidInput("Rfq: dst chainId equals src chainId")
            if self._now() > quote.deadline:
                raise InvalidInput("Rfq: transfer deadline passed")
            remote = await tx.repo.get_remote_rfq_contract(self.chain_id, quote.src_chain_id)
            if remote is None:
                raise InvalidInput("Rfq: src contract not set")

            quote_hash = quote.quote_hash
            hash_hex = encode_hex(quote_hash)
            if await tx.repo.get_quote_record(self.chain_id, hash_hex) is not None:
                raise AlreadyProcessed("Rfq: quote already executed")

            fee = await self._rfq_fee(tx.repo, tx.state, quote.dst_chain_id, quote.dst_amount)
            await tx.repo.debit_balance(self.chain_id, caller, quote.dst_token, quote.dst_amount)
            await tx.repo.credit_balance(
                self.chain_id, quote.receiver, quote.dst_token, quote.dst_amount - fee
            )
            if fee:
                await tx.repo.credit_balance(self.chain_id, self.address, quote.dst_token, fee)
                await tx.repo.accrue_protocol_fee(self.chain_id, quote.dst_token, fee)

            await tx.repo.create_quote_record(
                self.chain_id, hash_hex, QuoteStatus.DST_TRANSFERRED, quote.to_dict(), tx.tx_hash
            )
            await tx.emit(EventName.DST_TRANSFERRED, {"hash": hash_hex}, quote_hash=hash_hex)
            tx.send(remote, quote.src_chain_id, encode_message(MessageType.SRC_RELEASE, quote_hash))

        logger.info(
            f"Transferred quote {hash_hex} on chain {self.chain_id}: "
            f"{quote.dst_amount - fee} to {quote.receiver}, fee {fee}"
        )

    async def request_refund(self, caller: str, quote: Quote) -> None:
        """Close an expired quote on the destination and ask the source to refund."""
        normalize_address(caller, "caller")

        async with self._transaction("request_refund") as tx:
            if quote.dst_chain_id != self.chain_id:
                raise InvalidInput("Rfq: dst chainId mismatch")
            if self._now() <= quote.deadline:
                raise InvalidInput("Rfq: transfer deadline not passed")
            remote = await tx.repo.get_remote_rfq_contract(self.chain_id, quote.src_chain_id)
            if remote is None:
                raise InvalidInput("Rfq: src contract not set")

            quote_hash = quote.quote_hash
            hash_hex = encode_hex(quote_hash)
            if await tx.repo.get_quote_record(self.chain_id, hash_hex) is not None:
                raise AlreadyProcessed("Rfq: quote already executed")

            await tx.repo.create_quote_record(
                self.chain_id,
                hash_hex,
                QuoteStatus.DST_REFUND_INITIATED,
                quote.to_dict(),
                tx.tx_hash,
            )
            await tx.emit(EventName.REFUND_INITIATED, {"hash": hash_hex}, quote_hash=hash_hex)
            tx.send(remote, quote.src_chain_id, encode_message(MessageType.REFUND, quote_hash))

        logger.info(f"Refund initiated for quote {hash_hex} on chain {self.chain_id}")

    # ------------------------------------------------------------------
    # Message bus callback
    # ------------------------------------------------------------------

    async def execute_message(
        self,
        caller: str,
        sender: str,
        src_chain_id: int,
        message: bytes,
        executor: str = ZERO_ADDRESS,
    ) -> ExecutionStatus:
        """Accept a message delivered by the message bus for later consumption."""
        caller = normalize_address(caller, "caller")
        sender = normalize_address(sender, "sender")
        message = bytes(message)

        async with self._transaction("execute_message") as tx:
            if caller != tx.state.message_bus:
                raise Unauthorized("caller is not message bus")
            remote = await tx.repo.get_remote_rfq_contract(self.chain_id, src_chain_id)
            if remote is None or remote != sender:
                raise Unauthorized("Rfq: not allowed sender")
            decode_message(message)

            key = encode_hex(inbound_message_key(src_chain_id, sender, message))
            await tx.repo.record_inbound_message(
                self.chain_id, key, src_chain_id, sender, message, source="bus", consumed=False
            )
            await tx.emit(EventName.MESSAGE_RECEIVED, {"hash": key})

        logger.debug(f"Message {key} from chain {src_chain_id} received via executor {executor}")
        return ExecutionStatus.SUCCESS

    # ------------------------------------------------------------------
    # Fees and treasury
    # ------------------------------------------------------------------

    async def set_fee_perc(
        self, caller: str, chain_ids: Sequence[int], fee_percs: Sequence[int]
    ) -> None:
        """Set fee percentages; chain id 0 sets the global default."""
        caller = normalize_address(caller, "caller")
        if len(chain_ids) != len(fee_percs):
            raise InvalidInput("Rfq: length mismatch")
        for chain_id, fee_perc in zip(chain_ids, fee_percs):
            check_uint(chain_id, 64, "chain id")
            check_uint(fee_perc, 32, "fee perc")
            if fee_perc >= FEE_PRECISION:
                raise InvalidInput("Rfq: fee percentage too large")

        async with self._transaction("set_fee_perc") as tx:
            self._require_owner(tx, caller)
            for chain_id, fee_perc in zip(chain_ids, fee_percs):
                if chain_id == GLOBAL_FEE_CHAIN_ID:
                    tx.state.fee_perc_global = fee_perc
                else:
                    await tx.repo.set_fee_perc_override(self.chain_id, chain_id, fee_perc)
            await tx.emit(
                EventName.FEE_PERC_UPDATED,
                {"chainIds": list(chain_ids), "feePercs": list(fee_percs)},
            )

    async def set_treasury_addr(self, caller: str, treasury_addr: str) -> None:
        caller = normalize_address(caller, "caller")
        treasury_addr = normalize_address(treasury_addr, "treasury address")
        async with self._transaction("set_treasury_addr") as tx:
            self._require_owner(tx, caller)
            tx.state.treasury_addr = treasury_addr
            await tx.emit(EventName.TREASURY_ADDR_UPDATED, {"treasuryAddr": treasury_addr})

    async def collect_fee(self, caller: str, token: str, amount: int) -> None:
        """Send accrued protocol fees of ``token`` to the treasury."""
        caller = normalize_address(caller, "caller")
        token = normalize_address(token, "token")
        check_uint(amount, 256, "amount")

        async with self._transaction("collect_fee") as tx:
            self._require_owner(tx, caller)
            treasury = tx.state.treasury_addr
            if not treasury:
                raise InvalidInput("Rfq: treasury address not set")
            await tx.repo.withdraw_protocol_fee(self.chain_id, token, amount)
            await tx.repo.transfer(self.chain_id, token, self.address, treasury, amount)
            await tx.emit(
                EventName.FEE_COLLECTED,
                {"treasuryAddr": treasury, "token": token, "amount": amount},
            )

        logger.info(f"Collected {amount} of {token} to treasury on chain {self.chain_id}")

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    async def set_remote_rfq_contracts(
        self, caller: str, chain_ids: Sequence[int], remote_contracts: Sequence[str]
    ) -> None:
        caller = normalize_address(caller, "caller")
        if len(chain_ids) != len(remote_contracts):
            raise InvalidInput("Rfq: length mismatch")
        remotes = [normalize_address(addr, "remote contract") for addr in remote_contracts]
        for chain_id in chain_ids:
            check_uint(chain_id, 64, "chain id")

        async with self._transaction("set_remote_rfq_contracts") as tx:
            self._require_owner(tx, caller)
            for chain_id, remote in zip(chain_ids, remotes):
                await tx.repo.set_remote_rfq_contract(self.chain_id, chain_id, remote)
            await tx.emit(
                EventName.RFQ_CONTRACTS_UPDATED,
                {"chainIds": list(chain_ids), "remoteRfqContracts": remotes},
            )

    async def set_message_bus(self, caller: str, message_bus: str) -> None:
        caller = normalize_address(caller, "caller")
        message_bus = normalize_address(message_bus, "message bus")
        async with self._transaction("set_message_bus") as tx:
            self._require_owner(tx, caller)
            tx.state.message_bus = message_bus
            await tx.emit(EventName.MESSAGE_BUS_UPDATED, {"messageBus": message_bus})

    async def transfer_ownership(self, caller: str, new_owner: str) -> None:
        caller = normalize_address(caller, "caller")
        new_owner = normalize_address(new_owner, "new owner")
        if new_owner == ZERO_ADDRESS:
            raise InvalidInput("Ownable: new owner is the zero address")
        async with self._transaction("transfer_ownership") as tx:
            self._require_owner(tx, caller)
            previous = tx.state.owner
            tx.state.owner = new_owner
            await tx.emit(
                EventName.OWNERSHIP_TRANSFERRED,
                {"previousOwner": previous, "newOwner": new_owner},
            )

    async def add_pauser(self, caller: str, account: str) -> None:
        caller = normalize_address(caller, "caller")
        account = normalize_address(account, "account")
        async with self._transaction("add_pauser") as tx:
            self._require_owner(tx, caller)
            if await tx.repo.is_pauser(self.chain_id, account):
                raise AlreadyProcessed("Account is already pauser")
            await tx.repo.add_pauser(self.chain_id, account)
            await tx.emit(EventName.PAUSER_ADDED, {"account": account})

    async def remove_pauser(self, caller: str, account: str) -> None:
        caller = normalize_address(caller, "caller")
        account = normalize_address(account, "account")
        async with self._transaction("remove_pauser") as tx:
            self._require_owner(tx, caller)
            await self._remove_pauser(tx, account)

    async def renounce_pauser(self, caller: str) -> None:
        caller = normalize_address(caller, "caller")
        async with self._transaction("renounce_pauser") as tx:
            await self._remove_pauser(tx, caller)

    async def _remove_pauser(self, tx: ContractTransaction, account: str) -> None:
        if not await tx.repo.is_pauser(self.chain_id, account):
            raise InvalidInput("Account is not pauser")
        await tx.repo.remove_pauser(self.chain_id, account)
        await tx.emit(EventName.PAUSER_REMOVED, {"account": account})

    async def pause(self, caller: str) -> None:
        caller = normalize_address(caller, "caller")
        async with self._transaction("pause") as tx:
            await self._require_pauser(tx, caller)
            tx.state.paused = True
            await tx.emit(EventName.PAUSED, {"account": caller})
        logger.warning(f"RFQ contract on chain {self.chain_id} paused by {caller}")

    async def unpause(self, caller: str) -> None:
        caller = normalize_address(caller, "caller")
        async with self._transaction("unpause", allow_paused=True) as tx:
            await self._require_pauser(tx, caller)
            if not tx.state.paused:
                raise InvalidInput("Pausable: not paused")
            tx.state.paused = False
            await tx.emit(EventName.UNPAUSED, {"account": caller})
        logger.warning(f"RFQ contract on chain {self.chain_id} unpaused by {caller}")
