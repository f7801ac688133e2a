"""Health check endpoints."""

from fastapi import APIRouter
from sqlalchemy import text

from rfqsettle import __version__
from rfqsettle.config import get_settings
from rfqsettle.ledger.database import get_db
from rfqsettle.ledger.repository import LedgerRepository

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "rfqsettle"}


@router.get("/health/detailed")
async def detailed_health():
    """Detailed health check with configuration and ledger info."""
    settings = get_settings()
    async with get_db() as session:
        await session.execute(text("SELECT 1"))
        states = await LedgerRepository(session).list_contract_states()
        chains = {
            state.chain_id: {"address": state.address, "paused": state.paused}
            for state in states
        }

    return {
        "status": "healthy",
        "service": "rfqsettle",
        "version": __version__,
        "chains": chains,
        "config": settings.get_safe_dict(),
    }
