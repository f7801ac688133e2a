"""Keyed mutual exclusion for settlement processing.

Operations on one chain, and relay jobs for one quote, must serialize: the
first attempt wins and later attempts observe the "already processed" state.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

logger = logging.getLogger(__name__)

# Global lock registry: key -> asyncio.Lock
_locks: dict[str, asyncio.Lock] = {}

# Tasks holding or waiting on each key
_users: dict[str, int] = {}


def get_key_lock(key: str) -> asyncio.Lock:
    """Get or create the lock for a key.

    Args:
        key: Lock key, e.g. ``chain:1`` or ``quote:0x...``

    Returns:
        asyncio.Lock for the key
    """
    lock = _locks.get(key)
    if lock is None:
        lock = _locks[key] = asyncio.Lock()
    return lock


def chain_key(chain_id: int) -> str:
    return f"chain:{chain_id}"


def quote_key(quote_hash: str) -> str:
    return f"quote:{quote_hash}"


class LockTimeoutError(Exception):
    """Raised when a lock cannot be acquired within the timeout period."""

    pass


class ProcessingLock:
    """Context manager for exclusive processing of a key.

    Example:
        async with ProcessingLock(chain_key(1), operation="src_deposit"):
            record = await repo.get_quote_record(1, quote_hash)
            ...
    """

    def __init__(
        self,
        key: str,
        timeout: Optional[float] = 30.0,
        operation: str = "processing",
        discard: bool = False,
    ):
        """Initialize the lock.

        Args:
            key: Lock key
            timeout: Maximum time to wait for lock (None = wait forever)
            operation: Description of the operation for logging
            discard: Drop the key from the registry once nobody holds or waits on it
        """
        self.key = key
        self.timeout = timeout
        self.operation = operation
        self.discard = discard
        self._lock: Optional[asyncio.Lock] = None
        self._acquired = False

    async def __aenter__(self) -> "ProcessingLock":
        """Acquire the lock."""
        self._lock = get_key_lock(self.key)
        _users[self.key] = _users.get(self.key, 0) + 1

        try:
            if self.timeout:
                await asyncio.wait_for(self._lock.acquire(), timeout=self.timeout)
            else:
                await self._lock.acquire()
            self._acquired = True
            logger.debug(f"Lock acquired for {self.key}: {self.operation}")
            return self

        except asyncio.TimeoutError:
            self._leave()
            logger.warning(
                f"Lock timeout for {self.key} after {self.timeout}s: {self.operation}"
            )
            raise LockTimeoutError(
                f"Could not acquire lock for {self.key} within {self.timeout}s"
            )

        except asyncio.CancelledError:
            self._leave()
            raise

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Release the lock."""
        if self._acquired and self._lock:
            self._lock.release()
            self._acquired = False
            logger.debug(f"Lock released for {self.key}: {self.operation}")
            self._leave()
        return False

    def _leave(self) -> None:
        remaining = _users.get(self.key, 1) - 1
        if remaining > 0:
            _users[self.key] = remaining
            return
        _users.pop(self.key, None)
        if self.discard and _locks.get(self.key) is self._lock:
            del _locks[self.key]


@asynccontextmanager
async def processing_lock(
    key: str,
    timeout: Optional[float] = 30.0,
    operation: str = "processing",
    discard: bool = False,
):
    """Functional form of ``ProcessingLock``.

    Example:
        async with processing_lock(quote_key(h), operation="relay", discard=True):
            ...
    """
    async with ProcessingLock(key, timeout=timeout, operation=operation, discard=discard):
        yield


def registered_keys() -> list[str]:
    """Keys that currently have a lock in the registry."""
    return list(_locks)


def clear_locks() -> None:
    """Clear all locks (useful for testing)."""
    _locks.clear()
    _users.clear()
