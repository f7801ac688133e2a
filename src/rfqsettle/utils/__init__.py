"""Utility modules for rfqsettle."""

from rfqsettle.utils.locks import (
    LockTimeoutError,
    ProcessingLock,
    chain_key,
    get_key_lock,
    processing_lock,
    quote_key,
    registered_keys,
)

__all__ = [
    "LockTimeoutError",
    "ProcessingLock",
    "chain_key",
    "get_key_lock",
    "processing_lock",
    "quote_key",
    "registered_keys",
]
