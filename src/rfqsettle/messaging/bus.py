"""Cross-chain message bus.

Outbound messages are handed to the bus only after the sending transaction
commits. Delivery is asynchronous and best-effort: nothing is delivered until
``flush`` runs, and a delivery that cannot proceed yet stays queued.
"""

import logging
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from rfqsettle.errors import AlreadyProcessed, PausedState, RfqError
from rfqsettle.messaging.codec import ExecutionStatus
from rfqsettle.quote import ZERO_ADDRESS, normalize_address

if TYPE_CHECKING:
    from rfqsettle.rfq.contract import RfqContract

logger = logging.getLogger(__name__)


@dataclass
class OutboundMessage:
    """A message in flight between two RFQ contracts."""

    sender: str
    src_chain_id: int
    receiver: str
    dst_chain_id: int
    message: bytes
    attempts: int = 0


class MessageBus(ABC):
    """Abstract message bus the RFQ contract sends through."""

    def __init__(self, address: str):
        self.address = normalize_address(address, "message bus")

    @abstractmethod
    async def send_message(self, outbound: OutboundMessage) -> None:
        """Accept a message for delivery to ``outbound.receiver``."""
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(address={self.address})"


class LocalMessageBus(MessageBus):
    """In-process bus delivering between contracts attached to it."""

    def __init__(self, address: str, executor: str = ZERO_ADDRESS, max_attempts: int = 10):
        super().__init__(address)
        self.executor = normalize_address(executor, "executor")
        self.max_attempts = max_attempts
        self._contracts: dict[int, "RfqContract"] = {}
        self._queue: deque[OutboundMessage] = deque()

    def attach(self, contract: "RfqContract") -> None:
        """Register the contract that receives messages for its chain."""
        self._contracts[contract.chain_id] = contract

    def contract_for(self, chain_id: int) -> Optional["RfqContract"]:
        return self._contracts.get(chain_id)

    async def send_message(self, outbound: OutboundMessage) -> None:
        logger.debug(
            f"Queued message {outbound.src_chain_id} -> {outbound.dst_chain_id} "
            f"for {outbound.receiver}"
        )
        self._queue.append(outbound)

    @property
    def pending(self) -> list[OutboundMessage]:
        return list(self._queue)

    async def flush(self) -> list[tuple[OutboundMessage, ExecutionStatus]]:
        """Attempt delivery of every queued message once.

        Returns:
            (message, status) for each attempt; RETRY entries remain queued
        """
        results = []
        for _ in range(len(self._queue)):
            outbound = self._queue.popleft()
            status = await self._deliver(outbound)
            if status == ExecutionStatus.RETRY:
                if outbound.attempts < self.max_attempts:
                    self._queue.append(outbound)
                else:
                    logger.error(
                        f"Dropping message to chain {outbound.dst_chain_id} "
                        f"after {outbound.attempts} attempts"
                    )
                    status = ExecutionStatus.FAIL
            results.append((outbound, status))
        return results

    async def _deliver(self, outbound: OutboundMessage) -> ExecutionStatus:
        outbound.attempts += 1
        contract = self._contracts.get(outbound.dst_chain_id)
        if contract is None or contract.address != outbound.receiver:
            logger.warning(
                f"No receiver {outbound.receiver} attached for chain {outbound.dst_chain_id}"
            )
            return ExecutionStatus.RETRY

        try:
            return await contract.execute_message(
                self.address,
                outbound.sender,
                outbound.src_chain_id,
                outbound.message,
                self.executor,
            )
        except PausedState:
            logger.info(f"Receiver on chain {outbound.dst_chain_id} paused, will retry")
            return ExecutionStatus.RETRY
        except AlreadyProcessed:
            logger.info(f"Message to chain {outbound.dst_chain_id} already delivered")
            return ExecutionStatus.SUCCESS
        except RfqError as e:
            logger.error(f"Delivery to chain {outbound.dst_chain_id} failed: {e.reason}")
            return ExecutionStatus.FAIL
