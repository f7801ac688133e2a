"""Ledger reconciliation.

The tokens a contract holds must always equal the principal escrowed for
unsettled deposits plus the protocol fees accrued and not yet collected.
"""

import json
import logging
from dataclasses import dataclass

from rfqsettle.ledger.models import QuoteStatus
from rfqsettle.ledger.repository import LedgerRepository

logger = logging.getLogger(__name__)


@dataclass
class TokenReconciliation:
    """Expected vs. actual holdings of one token by one contract."""

    chain_id: int
    token: str
    balance: int
    escrowed: int
    fees: int

    @property
    def expected(self) -> int:
        return self.escrowed + self.fees

    @property
    def ok(self) -> bool:
        return self.balance == self.expected

    def to_dict(self) -> dict:
        return {
            "chain_id": self.chain_id,
            "token": self.token,
            "balance": str(self.balance),
            "escrowed": str(self.escrowed),
            "fees": str(self.fees),
            "ok": self.ok,
        }


async def reconcile_chain(repo: LedgerRepository, chain_id: int) -> list[TokenReconciliation]:
    """Check every token the chain's contract holds, owes or has accrued."""
    state = await repo.get_contract_state(chain_id)
    if state is None:
        return []

    balances = {b.token: b.amount for b in await repo.list_holder_balances(chain_id, state.address)}
    fees = await repo.list_protocol_fees(chain_id)
    tokens = set(balances) | set(fees)
    for record in await repo.list_quote_records(chain_id, QuoteStatus.SRC_DEPOSITED, limit=None):
        tokens.add(json.loads(record.quote_json)["src_token"])

    results = []
    for token in sorted(tokens):
        entry = TokenReconciliation(
            chain_id=chain_id,
            token=token,
            balance=balances.get(token, 0),
            escrowed=await repo.sum_escrowed_principal(chain_id, token),
            fees=fees.get(token, 0),
        )
        if not entry.ok:
            logger.error(
                f"Chain {chain_id} token {token}: holds {entry.balance}, "
                f"expected {entry.expected} ({entry.escrowed} escrowed + {entry.fees} fees)"
            )
        results.append(entry)
    return results
