"""Signature relayer.

Carries destination-chain outcomes back to the source chain without waiting
for the message bus: for every ``DstTransferred`` / ``RefundInitiated`` event
it collects validator signatures over the source chain's signing digest and
submits ``src_release`` / ``execute_refund``.

Submissions are idempotent. If the bus (or another relayer) got there first
the source contract answers ``AlreadyProcessed``, which counts as success.
"""

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional, Sequence

from eth_utils import encode_hex

from rfqsettle.errors import AlreadyProcessed, RfqError
from rfqsettle.events import EventName, RfqEvent, fetch_events
from rfqsettle.messaging.codec import MessageType, encode_message
from rfqsettle.quote import RouteInfo, normalize_address
from rfqsettle.rfq.contract import RfqContract
from rfqsettle.signing.base import SignerBackend, SigningRequest
from rfqsettle.utils.locks import LockTimeoutError, processing_lock, quote_key

logger = logging.getLogger(__name__)

RELAYED_EVENTS = (EventName.DST_TRANSFERRED, EventName.REFUND_INITIATED)


class RelayResult:
    """Result of one relay attempt."""

    def __init__(
        self,
        success: bool,
        quote_hash: str,
        action: str,
        error: Optional[str] = None,
        already_processed: bool = False,
    ):
        self.success = success
        self.quote_hash = quote_hash
        self.action = action
        self.error = error
        self.already_processed = already_processed

    def __repr__(self) -> str:
        state = "ok" if self.success else f"failed: {self.error}"
        return f"RelayResult({self.action} {self.quote_hash} {state})"


@dataclass
class RelayJob:
    """A destination event waiting to be settled on the source chain."""

    event: RfqEvent
    attempts: int = 0
    last_error: Optional[str] = None

    @property
    def quote_hash(self) -> str:
        return self.event.quote_hash or self.event.args["hash"]

    @property
    def msg_type(self) -> MessageType:
        if self.event.name == EventName.REFUND_INITIATED:
            return MessageType.REFUND
        return MessageType.SRC_RELEASE


class Relayer:
    """Relays destination events between a set of RFQ contracts.

    Args:
        contracts: RFQ contracts by chain, each acting as source and destination
        signers: Signing backends holding validator keys
        address: Account the relayer submits transactions from
        max_attempts: Attempts per job before it is dropped
        batch_size: Events read per chain per round
        max_relayed: Settled quote hashes remembered to skip re-signing
    """

    def __init__(
        self,
        contracts: Sequence[RfqContract],
        signers: Sequence[SignerBackend],
        address: str,
        session_factory=None,
        max_attempts: int = 5,
        batch_size: int = 100,
        max_relayed: int = 10_000,
    ):
        self.contracts = {contract.chain_id: contract for contract in contracts}
        self.signers = list(signers)
        self.address = normalize_address(address, "relayer address")
        self._session_factory = session_factory
        self.max_attempts = max_attempts
        self.batch_size = batch_size
        self.max_relayed = max_relayed
        self.cursors: dict[int, int] = {chain_id: 0 for chain_id in self.contracts}
        self.retry_queue: dict[str, RelayJob] = {}
        self.relayed: OrderedDict[str, None] = OrderedDict()

    async def process_once(self) -> list[RelayResult]:
        """Relay new events of every chain and retry failed jobs once."""
        results = []

        retries = list(self.retry_queue.values())
        self.retry_queue.clear()
        for job in retries:
            results.append(await self._attempt(job))

        for chain_id, contract in self.contracts.items():
            events = await fetch_events(
                self._session_factory,
                chain_id,
                after_seq=self.cursors[chain_id],
                names=RELAYED_EVENTS,
                limit=self.batch_size,
            )
            for event in events:
                results.append(await self._attempt(RelayJob(event=event)))
                self.cursors[chain_id] = event.seq

        return results

    async def run(self, cancel: asyncio.Event, interval: float = 5.0) -> None:
        """Poll for events until ``cancel`` is set."""
        logger.info(f"Relayer started for chains {sorted(self.contracts)}")
        while not cancel.is_set():
            results = await self.process_once()
            if results:
                ok = sum(1 for r in results if r.success)
                logger.info(f"Relay round: {ok}/{len(results)} succeeded")

            try:
                await asyncio.wait_for(cancel.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Relayer stopped")

    async def _attempt(self, job: RelayJob) -> RelayResult:
        job.attempts += 1
        action = "execute_refund" if job.msg_type == MessageType.REFUND else "src_release"

        try:
            async with processing_lock(quote_key(job.quote_hash), operation="relay", discard=True):
                if job.quote_hash in self.relayed:
                    return RelayResult(True, job.quote_hash, action, already_processed=True)
                await self._relay(job)
        except AlreadyProcessed as e:
            logger.info(f"Quote {job.quote_hash} already settled on source: {e.reason}")
            self._mark_relayed(job.quote_hash)
            return RelayResult(True, job.quote_hash, action, already_processed=True)
        except RfqError as e:
            return self._failed(job, action, e.reason)
        except (LookupError, LockTimeoutError) as e:
            return self._failed(job, action, str(e))

        self._mark_relayed(job.quote_hash)
        logger.info(f"Relayed {action} for quote {job.quote_hash} (attempt {job.attempts})")
        return RelayResult(True, job.quote_hash, action)

    def _mark_relayed(self, quote_hash: str) -> None:
        self.relayed[quote_hash] = None
        self.relayed.move_to_end(quote_hash)
        while len(self.relayed) > self.max_relayed:
            self.relayed.popitem(last=False)

    def _failed(self, job: RelayJob, action: str, error: str) -> RelayResult:
        job.last_error = error
        if job.attempts < self.max_attempts:
            logger.warning(
                f"Relay {action} for {job.quote_hash} failed "
                f"(attempt {job.attempts}/{self.max_attempts}): {error}"
            )
            self.retry_queue[job.quote_hash] = job
        else:
            logger.error(f"Giving up {action} for {job.quote_hash}: {error}")
        return RelayResult(False, job.quote_hash, action, error=error)

    async def _relay(self, job: RelayJob) -> None:
        dst = self.contracts[job.event.chain_id]
        quote = await dst.get_quote(bytes.fromhex(job.quote_hash[2:]))
        if quote is None:
            raise LookupError(f"Quote {job.quote_hash} not recorded on chain {dst.chain_id}")

        src = self.contracts.get(quote.src_chain_id)
        if src is None:
            raise LookupError(f"No RFQ contract known for chain {quote.src_chain_id}")

        message = encode_message(job.msg_type, quote.quote_hash)
        route = RouteInfo(
            sender=dst.address,
            receiver=src.address,
            src_chain_id=dst.chain_id,
            src_tx_hash=job.event.tx_hash,
        )
        digest = await src.signing_digest(route, message)
        sigs = await self.collect_signatures(src.chain_id, digest)

        signer_set = src.verifier.signer_set
        args = (self.address, quote, message, route, sigs, signer_set.signers,
                list(signer_set.powers.values()))
        if job.msg_type == MessageType.REFUND:
            await src.execute_refund(*args)
        else:
            await src.src_release(*args)

    async def collect_signatures(self, chain_id: int, digest: bytes) -> list[bytes]:
        """Signatures over ``digest`` from every key of every backend."""
        sigs = []
        for backend in self.signers:
            for key_id in backend.key_ids():
                result = await backend.sign(
                    SigningRequest(chain_id=chain_id, key_id=key_id, digest=encode_hex(digest))
                )
                if not result.success:
                    logger.warning(f"Signer {key_id} did not sign: {result.error}")
                    continue
                sigs.append(result.signature_bytes)
        return sigs
