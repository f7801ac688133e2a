#!/usr/bin/env python3
"""Credit local test liquidity to an account.

Usage:
    python scripts/mint_tokens.py <chain_id> <holder> <token> <amount>

Example:
    python scripts/mint_tokens.py 1 0xAbc... 0xDef... 1000000000000000000
"""

import asyncio
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dotenv import load_dotenv
load_dotenv()

from rfqsettle.errors import RfqError
from rfqsettle.ledger.database import close_db, init_db
from rfqsettle.rfq.tokens import mint


async def mint_tokens(chain_id: int, holder: str, token: str, amount: int):
    await init_db()
    try:
        balance = await mint(chain_id, holder, token, amount)
        print(f"Minted {amount} of {token} to {holder} on chain {chain_id}")
        print(f"New balance: {balance}")
    except RfqError as e:
        print(f"Mint failed: {e.reason}")
    finally:
        await close_db()


if __name__ == "__main__":
    if len(sys.argv) != 5:
        print("Usage: python mint_tokens.py <chain_id> <holder> <token> <amount>")
        sys.exit(1)

    asyncio.run(mint_tokens(int(sys.argv[1]), sys.argv[2], sys.argv[3], int(sys.argv[4])))
