"""Public RFQ query endpoints."""

import json
from typing import Optional

from eth_utils import encode_hex
from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field, field_validator

from rfqsettle.errors import InvalidInput
from rfqsettle.events import fetch_events
from rfqsettle.hashing import get_quote_hash
from rfqsettle.ledger.database import get_db
from rfqsettle.ledger.repository import LedgerRepository
from rfqsettle.quote import Quote, check_bytes32
from rfqsettle.rfq.fees import compute_fee, resolve_fee_perc

router = APIRouter()


class QuotePayload(BaseModel):
    """Quote fields; amounts may be given as decimal strings."""

    src_chain_id: int = Field(..., ge=0)
    src_token: str
    src_amount: str
    dst_chain_id: int = Field(..., ge=0)
    dst_token: str
    dst_amount: str
    deadline: int = Field(..., ge=0)
    nonce: int = Field(..., ge=0)
    sender: str
    receiver: str
    refund_to: str
    liquidity_provider: str

    @field_validator("src_amount", "dst_amount", mode="before")
    @classmethod
    def validate_amount(cls, v) -> str:
        """Accept integers or decimal strings."""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        if isinstance(v, str) and v.strip().isdigit():
            return v.strip()
        raise ValueError(f"Invalid amount: {v!r}")

    def to_quote(self) -> Quote:
        return Quote.from_dict(self.model_dump())


class QuoteHashResponse(BaseModel):
    """Hash of a quote."""

    hash: str


class QuoteRecordResponse(BaseModel):
    """Settlement state of a quote on one chain."""

    chain_id: int
    hash: str
    status: str
    quote: dict
    tx_hash: str
    settled_tx_hash: Optional[str] = None
    submission_deadline: Optional[int] = None


class FeeResponse(BaseModel):
    """Fee applied to an amount settling on a destination chain."""

    chain_id: int
    dst_chain_id: int
    fee_perc: int
    amount: str
    fee: str


@router.post("/quotes/hash", response_model=QuoteHashResponse)
async def quote_hash(payload: QuotePayload) -> QuoteHashResponse:
    """Compute the hash identifying a quote."""
    return QuoteHashResponse(hash=encode_hex(get_quote_hash(payload.to_quote())))


@router.get("/chains/{chain_id}/quotes/{quote_hash}", response_model=QuoteRecordResponse)
async def get_quote_record(chain_id: int, quote_hash: str) -> QuoteRecordResponse:
    """Get the settlement record of a quote."""
    hash_hex = encode_hex(check_bytes32(quote_hash, "quote hash"))
    async with get_db() as session:
        record = await LedgerRepository(session).get_quote_record(chain_id, hash_hex)
        if record is None:
            raise HTTPException(status_code=404, detail=f"Quote {hash_hex} not found")

        quote = json.loads(record.quote_json)
        for name in ("src_amount", "dst_amount"):
            quote[name] = str(quote[name])
        return QuoteRecordResponse(
            chain_id=record.chain_id,
            hash=record.quote_hash,
            status=record.status,
            quote=quote,
            tx_hash=record.tx_hash,
            settled_tx_hash=record.settled_tx_hash,
            submission_deadline=record.submission_deadline,
        )


@router.get("/chains/{chain_id}/fee", response_model=FeeResponse)
async def get_fee(
    chain_id: int,
    dst_chain_id: int = Query(..., ge=0),
    amount: str = Query(..., pattern=r"^\d+$"),
) -> FeeResponse:
    """Fee the chain's contract charges for a destination chain."""
    async with get_db() as session:
        repo = LedgerRepository(session)
        state = await repo.get_contract_state(chain_id)
        if state is None:
            raise HTTPException(status_code=404, detail=f"No RFQ contract on chain {chain_id}")
        override = await repo.get_fee_perc_override(chain_id, dst_chain_id)

    fee_perc = resolve_fee_perc(override, state.fee_perc_global)
    value = int(amount)
    if value >= 2**256:
        raise InvalidInput("Rfq: amount out of uint256 range")
    return FeeResponse(
        chain_id=chain_id,
        dst_chain_id=dst_chain_id,
        fee_perc=fee_perc,
        amount=amount,
        fee=str(compute_fee(value, fee_perc)),
    )


@router.get("/chains/{chain_id}/events")
async def list_events(
    chain_id: int,
    after: int = Query(0, ge=0),
    name: Optional[list[str]] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
):
    """Events of a chain after a sequence cursor."""
    events = await fetch_events(None, chain_id, after_seq=after, names=name, limit=limit)
    return {
        "chain_id": chain_id,
        "events": [event.to_dict() for event in events],
        "next": events[-1].seq if events else after,
    }
