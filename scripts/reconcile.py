#!/usr/bin/env python3
"""Ledger Reconciliation Script.

Checks that every RFQ contract holds exactly the principal escrowed for open
deposits plus its uncollected protocol fees.

Usage:
    python scripts/reconcile.py [--chain 1] [--json]

Options:
    --chain  Only reconcile one chain (default: all deployed)
    --json   Print results as JSON
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dotenv import load_dotenv

from rfqsettle.ledger.database import close_db, get_db, init_db
from rfqsettle.ledger.repository import LedgerRepository
from rfqsettle.services.reconcile import reconcile_chain

load_dotenv()

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


async def main(chain_id: int = None, as_json: bool = False) -> int:
    await init_db()
    results = []
    async with get_db() as session:
        repo = LedgerRepository(session)
        if chain_id is not None:
            chain_ids = [chain_id]
        else:
            chain_ids = [state.chain_id for state in await repo.list_contract_states()]
        for cid in chain_ids:
            results.extend(await reconcile_chain(repo, cid))
    await close_db()

    if as_json:
        print(json.dumps([r.to_dict() for r in results], indent=2))
    else:
        for r in results:
            mark = "OK " if r.ok else "BAD"
            print(
                f"[{mark}] chain {r.chain_id} {r.token}: balance={r.balance} "
                f"escrowed={r.escrowed} fees={r.fees}"
            )

    mismatches = sum(1 for r in results if not r.ok)
    logger.info(f"Reconciled {len(results)} token positions, {mismatches} mismatches")
    return 1 if mismatches else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Reconcile RFQ contract holdings")
    parser.add_argument("--chain", type=int, default=None, help="Only this chain id")
    parser.add_argument("--json", action="store_true", help="Print JSON output")
    args = parser.parse_args()

    sys.exit(asyncio.run(main(args.chain, args.json)))
