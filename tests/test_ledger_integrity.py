"""Ledger integrity tests.

These tests ensure that:
1. Contract holdings always equal escrowed principal plus accrued fees
2. Failed operations leave no partial state behind
3. Token supply is conserved across settlement
"""

import pytest

from conftest import (
    ALICE,
    BOB,
    DST_CHAIN,
    DST_TOKEN,
    LP,
    NOW,
    OWNER,
    REFUND,
    SRC_CHAIN,
    SRC_TOKEN,
    TREASURY,
)
from rfqsettle.errors import InsufficientFunds
from rfqsettle.ledger.repository import LedgerRepository
from rfqsettle.messaging.codec import MessageType, encode_message
from rfqsettle.quote import RouteInfo
from rfqsettle.services.reconcile import reconcile_chain


async def reconcile(session_factory, chain_id):
    async with session_factory() as session:
        return await reconcile_chain(LedgerRepository(session), chain_id)


@pytest.mark.asyncio
async def test_fresh_contract_reconciles(contracts, session_factory):
    """Test a contract with no activity holds nothing and owes nothing."""
    assert await reconcile(session_factory, SRC_CHAIN) == []
    assert await reconcile(session_factory, 99) == []


@pytest.mark.asyncio
async def test_deposit_reconciles(contracts, make_quote, session_factory):
    """Test escrowed deposits match the contract's holdings."""
    src, _ = contracts
    await src.src_deposit(ALICE, make_quote(), NOW + 600)
    await src.src_deposit(ALICE, make_quote(nonce=2, src_amount=250), NOW + 600)

    [entry] = await reconcile(session_factory, SRC_CHAIN)

    assert entry.ok
    assert entry.balance == 350
    assert entry.escrowed == 350
    assert entry.to_dict()["balance"] == "350"


@pytest.mark.asyncio
async def test_fees_reconcile_through_collection(contracts, make_quote, session_factory):
    """Test accrued fees are matched by holdings before and after collection."""
    _, dst = contracts
    await dst.set_fee_perc(OWNER, [0], [20_000])
    await dst.dst_transfer(LP, make_quote(dst_amount=500))

    [entry] = await reconcile(session_factory, DST_CHAIN)
    assert entry.ok
    assert entry.fees == 10

    await dst.set_treasury_addr(OWNER, TREASURY)
    await dst.collect_fee(OWNER, DST_TOKEN, 4)

    [entry] = await reconcile(session_factory, DST_CHAIN)
    assert entry.ok
    assert entry.balance == 6


@pytest.mark.asyncio
async def test_failed_transfer_leaves_no_state(contracts, make_quote, bus):
    """Test a transfer that cannot be funded changes nothing."""
    _, dst = contracts
    quote = make_quote(dst_amount=1001)

    with pytest.raises(InsufficientFunds):
        await dst.dst_transfer(LP, quote)

    assert await dst.balance_of(LP, DST_TOKEN) == 1000
    assert await dst.balance_of(BOB, DST_TOKEN) == 0
    assert await dst.executed_quotes(quote.quote_hash) is False
    assert bus.pending == []


@pytest.mark.asyncio
async def test_supply_conserved_across_settlement(contracts, make_quote, bus, clock):
    """Test settled and refunded quotes move tokens without creating any."""
    src, dst = contracts
    await dst.set_fee_perc(OWNER, [0], [10_000])
    settled = make_quote(nonce=1)
    refunded = make_quote(nonce=2, deadline=NOW + 60)

    await src.src_deposit(ALICE, settled, NOW + 30)
    await src.src_deposit(ALICE, refunded, NOW + 30)
    await dst.dst_transfer(LP, settled)
    clock.advance(61)
    await dst.request_refund(ALICE, refunded)
    await bus.flush()

    route = RouteInfo(
        sender=dst.address, receiver=src.address, src_chain_id=DST_CHAIN, src_tx_hash=b"\x04" * 32
    )
    await src.src_release(
        LP, settled, encode_message(MessageType.SRC_RELEASE, settled.quote_hash), route
    )
    await src.execute_refund(
        ALICE, refunded, encode_message(MessageType.REFUND, refunded.quote_hash), route
    )

    src_total = sum([
        await src.balance_of(ALICE, SRC_TOKEN),
        await src.balance_of(LP, SRC_TOKEN),
        await src.balance_of(REFUND, SRC_TOKEN),
        await src.balance_of(src.address, SRC_TOKEN),
    ])
    dst_total = sum([
        await dst.balance_of(LP, DST_TOKEN),
        await dst.balance_of(BOB, DST_TOKEN),
        await dst.balance_of(dst.address, DST_TOKEN),
    ])
    assert src_total == 1000
    assert dst_total == 1000
    assert await src.balance_of(src.address, SRC_TOKEN) == 0
