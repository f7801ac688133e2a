"""Tests for keyed processing locks."""

import asyncio

import pytest

from conftest import ALICE, NOW, OWNER, SRC_TOKEN
from rfqsettle.errors import AlreadyProcessed
from rfqsettle.utils.locks import (
    LockTimeoutError,
    ProcessingLock,
    chain_key,
    clear_locks,
    get_key_lock,
    processing_lock,
    quote_key,
    registered_keys,
)


class TestProcessingLocks:
    """Tests for the concurrency locks module."""

    @pytest.mark.asyncio
    async def test_get_key_lock_reuses_lock(self):
        """Test that get_key_lock returns one lock per key."""
        lock1 = get_key_lock(chain_key(1))
        lock2 = get_key_lock(chain_key(1))

        assert lock1 is lock2
        assert get_key_lock(chain_key(2)) is not lock1

    def test_key_helpers(self):
        """Test chain and quote keys do not collide."""
        assert chain_key(1) == "chain:1"
        assert quote_key("0xab") == "quote:0xab"

    @pytest.mark.asyncio
    async def test_context_manager_releases(self):
        """Test ProcessingLock holds the lock only inside the block."""
        async with ProcessingLock(chain_key(100), operation="test"):
            lock = get_key_lock(chain_key(100))
            assert lock.locked()

        assert not lock.locked()

    @pytest.mark.asyncio
    async def test_released_on_error(self):
        """Test the lock is released when the block raises."""
        with pytest.raises(RuntimeError):
            async with ProcessingLock(chain_key(101)):
                raise RuntimeError("boom")

        assert not get_key_lock(chain_key(101)).locked()

    @pytest.mark.asyncio
    async def test_prevents_concurrent_access(self):
        """Test that two holders of one key run one after the other."""
        results = []

        async def task(name, delay):
            async with ProcessingLock(chain_key(200), timeout=10.0, operation=f"task_{name}"):
                results.append(f"{name}_start")
                await asyncio.sleep(delay)
                results.append(f"{name}_end")

        await asyncio.gather(task("A", 0.1), task("B", 0.1))

        assert results in [
            ["A_start", "A_end", "B_start", "B_end"],
            ["B_start", "B_end", "A_start", "A_end"],
        ]

    @pytest.mark.asyncio
    async def test_timeout_raises_error(self):
        """Test that lock timeout raises LockTimeoutError."""

        async def hold_lock():
            async with ProcessingLock(chain_key(300), timeout=5.0):
                await asyncio.sleep(0.5)

        hold_task = asyncio.create_task(hold_lock())
        await asyncio.sleep(0.05)

        with pytest.raises(LockTimeoutError):
            async with ProcessingLock(chain_key(300), timeout=0.1):
                pass

        await hold_task

    @pytest.mark.asyncio
    async def test_functional_context_manager(self):
        """Test processing_lock functional form."""
        async with processing_lock(quote_key("0x01"), operation="relay"):
            lock = get_key_lock(quote_key("0x01"))
            assert lock.locked()

        assert not lock.locked()

    @pytest.mark.asyncio
    async def test_discarded_lock_leaves_registry(self):
        """Test a discarding lock is dropped once released."""
        async with processing_lock(quote_key("0x02"), operation="relay", discard=True):
            assert quote_key("0x02") in registered_keys()

        assert quote_key("0x02") not in registered_keys()

        async with processing_lock(chain_key(5)):
            pass
        assert chain_key(5) in registered_keys()

    @pytest.mark.asyncio
    async def test_discard_waits_for_waiters(self):
        """Test the lock stays registered while another task waits on it."""
        key = quote_key("0x03")
        order = []

        async def waiter():
            async with processing_lock(key, discard=True):
                order.append("waiter")
                assert key in registered_keys()

        async with processing_lock(key, discard=True):
            task = asyncio.create_task(waiter())
            await asyncio.sleep(0.01)
            order.append("holder")

        await task
        assert order == ["holder", "waiter"]
        assert key not in registered_keys()

    @pytest.mark.asyncio
    async def test_timed_out_waiter_releases_registration(self):
        """Test a timeout does not keep a discarded key registered."""
        key = quote_key("0x04")

        async with processing_lock(key, discard=True):
            with pytest.raises(LockTimeoutError):
                async with processing_lock(key, timeout=0.05, discard=True):
                    pass
            assert key in registered_keys()

        assert key not in registered_keys()

    @pytest.mark.asyncio
    async def test_clear_locks(self):
        """Test that clear_locks drops every registered lock."""
        old = get_key_lock(chain_key(1))

        clear_locks()

        assert get_key_lock(chain_key(1)) is not old


class TestContractSerialization:
    """Concurrent operations on one chain serialize through the chain lock."""

    @pytest.mark.asyncio
    async def test_concurrent_deposits_of_one_quote(self, contracts, make_quote):
        """Test racing deposits of the same quote: one wins, one is rejected."""
        src, _ = contracts
        outcomes = await asyncio.gather(
            src.src_deposit(ALICE, make_quote(), NOW + 600),
            src.src_deposit(ALICE, make_quote(), NOW + 600),
            return_exceptions=True,
        )

        assert sum(isinstance(o, bytes) for o in outcomes) == 1
        assert sum(isinstance(o, AlreadyProcessed) for o in outcomes) == 1
        assert await src.balance_of(ALICE, SRC_TOKEN) == 900

    @pytest.mark.asyncio
    async def test_lock_timeout_surfaces(self, contracts):
        """Test an operation gives up when the chain lock stays held."""
        src, _ = contracts
        src.lock_timeout = 0.05

        async with ProcessingLock(chain_key(src.chain_id)):
            with pytest.raises(LockTimeoutError):
                await src.pause(OWNER)
