"""Simulated token ledger helpers."""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from rfqsettle.ledger.database import transaction
from rfqsettle.ledger.repository import LedgerRepository
from rfqsettle.quote import check_uint, normalize_address

logger = logging.getLogger(__name__)


async def mint(
    chain_id: int,
    holder: str,
    token: str,
    amount: int,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> int:
    """Credit ``amount`` of ``token`` to ``holder`` on a chain.

    Stands in for bridged or test liquidity; it does not touch any contract
    state and is not subject to pausing.

    Returns:
        The holder's new balance
    """
    holder = normalize_address(holder, "holder")
    token = normalize_address(token, "token")
    check_uint(chain_id, 64, "chain id")
    check_uint(amount, 256, "amount")

    async with transaction(session_factory) as session:
        balance = await LedgerRepository(session).credit_balance(chain_id, holder, token, amount)
        new_amount = balance.amount

    logger.info(f"Minted {amount} of {token} to {holder} on chain {chain_id}")
    return new_amount
