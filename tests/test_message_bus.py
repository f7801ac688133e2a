"""Tests for message-bus delivery and end-to-end settlement."""

import pytest
from eth_utils import keccak

from conftest import (
    ALICE,
    BUS,
    DST_CHAIN,
    DST_RFQ,
    DST_TOKEN,
    LP,
    NOW,
    OWNER,
    REFUND,
    RELAYER,
    SRC_CHAIN,
    SRC_RFQ,
    SRC_TOKEN,
    STRANGER,
    registered_signers,
    sign_digest,
)
from rfqsettle.errors import AlreadyProcessed, Duplicate, Unauthorized
from rfqsettle.events import EventName, fetch_events
from rfqsettle.hashing import inbound_message_key
from rfqsettle.ledger.models import QuoteStatus
from rfqsettle.messaging.bus import LocalMessageBus, OutboundMessage
from rfqsettle.messaging.codec import ExecutionStatus, MessageType, encode_message
from rfqsettle.quote import RouteInfo

TX_HASH = b"\x02" * 32


def bus_route() -> RouteInfo:
    return RouteInfo(sender=DST_RFQ, receiver=SRC_RFQ, src_chain_id=DST_CHAIN, src_tx_hash=TX_HASH)


class TestExecuteMessage:
    """Tests for the message-bus callback."""

    @pytest.mark.asyncio
    async def test_records_unconsumed_message(self, contracts, session_factory):
        """Test delivery records the message key for later consumption."""
        src, _ = contracts
        message = encode_message(MessageType.SRC_RELEASE, b"\x05" * 32)

        status = await src.execute_message(BUS, DST_RFQ, DST_CHAIN, message)

        key = inbound_message_key(DST_CHAIN, DST_RFQ, message)
        assert status == ExecutionStatus.SUCCESS
        assert await src.unconsumed_msg(key) is True
        events = await fetch_events(session_factory, SRC_CHAIN, names=[EventName.MESSAGE_RECEIVED])
        assert events[0].args["hash"] == "0x" + key.hex()

    @pytest.mark.asyncio
    async def test_duplicate_delivery(self, contracts):
        """Test the same message cannot be delivered twice."""
        src, _ = contracts
        message = encode_message(MessageType.SRC_RELEASE, b"\x05" * 32)
        await src.execute_message(BUS, DST_RFQ, DST_CHAIN, message)

        with pytest.raises(Duplicate):
            await src.execute_message(BUS, DST_RFQ, DST_CHAIN, message)

    @pytest.mark.asyncio
    async def test_only_message_bus(self, contracts):
        """Test other callers cannot inject messages."""
        src, _ = contracts
        message = encode_message(MessageType.SRC_RELEASE, b"\x05" * 32)
        with pytest.raises(Unauthorized, match="message bus"):
            await src.execute_message(STRANGER, DST_RFQ, DST_CHAIN, message)

    @pytest.mark.asyncio
    async def test_only_registered_sender(self, contracts):
        """Test messages from unknown remote contracts are refused."""
        src, _ = contracts
        message = encode_message(MessageType.SRC_RELEASE, b"\x05" * 32)
        with pytest.raises(Unauthorized, match="sender"):
            await src.execute_message(BUS, STRANGER, DST_CHAIN, message)
        with pytest.raises(Unauthorized, match="sender"):
            await src.execute_message(BUS, DST_RFQ, 99, message)


class TestBusSettlement:
    """End-to-end settlement through the local message bus."""

    @pytest.mark.asyncio
    async def test_transfer_then_release(self, contracts, make_quote, bus):
        """Test deposit, transfer, delivery and release without signatures."""
        src, dst = contracts
        quote = make_quote()
        await src.src_deposit(ALICE, quote, NOW + 600)
        await dst.dst_transfer(LP, quote)

        results = await bus.flush()
        assert [status for _, status in results] == [ExecutionStatus.SUCCESS]

        message = encode_message(MessageType.SRC_RELEASE, quote.quote_hash)
        key = inbound_message_key(DST_CHAIN, DST_RFQ, message)
        assert await src.unconsumed_msg(key) is True

        await src.src_release(RELAYER, quote, message, bus_route())

        assert await src.unconsumed_msg(key) is False
        assert await src.balance_of(LP, SRC_TOKEN) == 100
        assert await dst.balance_of(LP, DST_TOKEN) == 905
        assert await src.quote_status(quote.quote_hash) == QuoteStatus.SRC_RELEASED

    @pytest.mark.asyncio
    async def test_bus_delivered_message_cannot_be_replayed_with_signatures(
        self, contracts, make_quote, bus
    ):
        """Test a quote released via the bus cannot be released again with signatures."""
        src, dst = contracts
        quote = make_quote()
        await src.src_deposit(ALICE, quote, NOW + 600)
        await dst.dst_transfer(LP, quote)
        await bus.flush()

        message = encode_message(MessageType.SRC_RELEASE, quote.quote_hash)
        await src.src_release(RELAYER, quote, message, bus_route())

        digest = await src.signing_digest(bus_route(), message)
        signers, powers = registered_signers()
        with pytest.raises(AlreadyProcessed):
            await src.src_release(
                RELAYER, quote, message, bus_route(), sign_digest(digest, "ABCD"), signers, powers
            )

    @pytest.mark.asyncio
    async def test_refund_round_trip(self, contracts, make_quote, bus, clock):
        """Test an expired quote is refunded to refund_to through the bus."""
        src, dst = contracts
        quote = make_quote()
        await src.src_deposit(ALICE, quote, NOW + 600)
        clock.advance(3601)

        await dst.request_refund(ALICE, quote)
        await bus.flush()
        await src.execute_refund(
            RELAYER, quote, encode_message(MessageType.REFUND, quote.quote_hash), bus_route()
        )

        assert await src.balance_of(REFUND, SRC_TOKEN) == 100
        assert await src.balance_of(ALICE, SRC_TOKEN) == 900
        assert await src.executed_quotes(quote.quote_hash) is True

    @pytest.mark.asyncio
    async def test_release_without_delivery_needs_signatures(self, contracts, make_quote):
        """Test release fails when nothing was delivered and no quorum is given."""
        src, dst = contracts
        quote = make_quote()
        await src.src_deposit(ALICE, quote, NOW + 600)
        await dst.dst_transfer(LP, quote)

        message = encode_message(MessageType.SRC_RELEASE, quote.quote_hash)
        signers, powers = registered_signers()
        with pytest.raises(Unauthorized):
            await src.src_release(RELAYER, quote, message, bus_route(), [], signers, powers)


class TestLocalMessageBus:
    """Tests for LocalMessageBus delivery outcomes."""

    @pytest.mark.asyncio
    async def test_paused_receiver_retries(self, contracts, make_quote, bus):
        """Test messages to a paused receiver stay queued until unpaused."""
        src, dst = contracts
        quote = make_quote()
        await src.src_deposit(ALICE, quote, NOW + 600)
        await dst.dst_transfer(LP, quote)
        await src.pause(OWNER)

        results = await bus.flush()
        assert results[0][1] == ExecutionStatus.RETRY
        assert len(bus.pending) == 1

        await src.unpause(OWNER)
        results = await bus.flush()
        assert results[0][1] == ExecutionStatus.SUCCESS
        assert bus.pending == []

    @pytest.mark.asyncio
    async def test_unattached_receiver_dropped_after_max_attempts(self, contracts, make_quote):
        """Test undeliverable messages are dropped as FAIL after max_attempts."""
        src, dst = contracts
        lonely_bus = LocalMessageBus(BUS, max_attempts=2)
        dst.bus = lonely_bus
        await dst.dst_transfer(LP, make_quote())

        first = await lonely_bus.flush()
        second = await lonely_bus.flush()

        assert first[0][1] == ExecutionStatus.RETRY
        assert second[0][1] == ExecutionStatus.FAIL
        assert lonely_bus.pending == []

    @pytest.mark.asyncio
    async def test_duplicate_delivery_reports_success(self, contracts, bus):
        """Test redelivery of an already received message counts as delivered."""
        src, dst = contracts
        message = encode_message(MessageType.SRC_RELEASE, keccak(b"q"))
        await src.execute_message(BUS, DST_RFQ, DST_CHAIN, message)

        await bus.send_message(OutboundMessage(dst.address, DST_CHAIN, src.address, SRC_CHAIN, message))
        results = await bus.flush()

        assert results[0][1] == ExecutionStatus.SUCCESS
