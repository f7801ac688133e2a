"""Admin API endpoints (token-protected)."""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel

from rfqsettle.config import get_settings
from rfqsettle.ledger.database import get_db
from rfqsettle.ledger.models import QuoteStatus
from rfqsettle.ledger.repository import LedgerRepository

router = APIRouter(prefix="/admin", tags=["admin"])


async def require_admin_token(x_admin_token: str = Header(None)) -> bool:
    """Verify admin token from header.

    If ADMIN_TOKEN is not set, allows access (dev mode).
    """
    settings = get_settings()

    if not settings.admin_token:
        return True

    if x_admin_token != settings.admin_token:
        raise HTTPException(status_code=401, detail="Invalid admin token")

    return True


class ContractSummary(BaseModel):
    """Configuration and accounting of one chain's RFQ contract."""

    chain_id: int
    address: str
    owner: str
    message_bus: str
    treasury_addr: Optional[str] = None
    paused: bool
    fee_perc_global: int
    fee_perc_overrides: dict[int, int]
    remote_rfq_contracts: dict[int, str]
    pausers: list[str]
    protocol_fees: dict[str, str]
    tx_count: int


class QuoteSummary(BaseModel):
    """Quote record row."""

    hash: str
    status: str
    tx_hash: str
    settled_tx_hash: Optional[str] = None


@router.get("/contracts", response_model=list[ContractSummary])
async def list_contracts(_: bool = Depends(require_admin_token)) -> list[ContractSummary]:
    """Get every deployed contract with its fee and peer configuration."""
    async with get_db() as session:
        repo = LedgerRepository(session)
        summaries = []
        for state in await repo.list_contract_states():
            fees = await repo.list_protocol_fees(state.chain_id)
            summaries.append(
                ContractSummary(
                    chain_id=state.chain_id,
                    address=state.address,
                    owner=state.owner,
                    message_bus=state.message_bus,
                    treasury_addr=state.treasury_addr,
                    paused=state.paused,
                    fee_perc_global=state.fee_perc_global,
                    fee_perc_overrides=await repo.list_fee_perc_overrides(state.chain_id),
                    remote_rfq_contracts=await repo.list_remote_rfq_contracts(state.chain_id),
                    pausers=await repo.list_pausers(state.chain_id),
                    protocol_fees={token: str(amount) for token, amount in fees.items()},
                    tx_count=state.tx_count,
                )
            )
        return summaries


@router.get("/contracts/{chain_id}/quotes", response_model=list[QuoteSummary])
async def list_quotes(
    chain_id: int,
    status: Optional[QuoteStatus] = None,
    limit: int = 100,
    _: bool = Depends(require_admin_token),
) -> list[QuoteSummary]:
    """Most recent quote records of a chain."""
    async with get_db() as session:
        records = await LedgerRepository(session).list_quote_records(chain_id, status, limit)
        return [
            QuoteSummary(
                hash=record.quote_hash,
                status=record.status,
                tx_hash=record.tx_hash,
                settled_tx_hash=record.settled_tx_hash,
            )
            for record in records
        ]
