"""Pytest configuration and fixtures."""

import os
import tempfile
from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from eth_account import Account
from eth_account.messages import encode_defunct
from sqlalchemy.ext.asyncio import AsyncSession

# Set test environment
_TEST_DIR = tempfile.mkdtemp(prefix="rfqsettle-test-")
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{Path(_TEST_DIR) / 'api.db'}"
os.environ["DEBUG"] = "true"
os.environ["ADMIN_TOKEN"] = ""

from rfqsettle.ledger.database import build_engine, build_session_factory, init_db
from rfqsettle.ledger.repository import LedgerRepository
from rfqsettle.messaging.bus import LocalMessageBus
from rfqsettle.messaging.verifier import QuorumVerifier, SignerSet
from rfqsettle.quote import Quote
from rfqsettle.rfq.contract import RfqContract
from rfqsettle.rfq.tokens import mint
from rfqsettle.utils.locks import clear_locks

NOW = 1_700_000_000

SRC_CHAIN = 1
DST_CHAIN = 2

OWNER = "0x1000000000000000000000000000000000000001"
ALICE = "0x2000000000000000000000000000000000000002"
BOB = "0x3000000000000000000000000000000000000003"
LP = "0x4000000000000000000000000000000000000004"
REFUND = "0x5000000000000000000000000000000000000005"
RELAYER = "0x6000000000000000000000000000000000000006"
TREASURY = "0x7000000000000000000000000000000000000007"
STRANGER = "0x8000000000000000000000000000000000000008"

SRC_TOKEN = "0xa0000000000000000000000000000000000000a1"
DST_TOKEN = "0xb0000000000000000000000000000000000000b2"

BUS = "0xc0000000000000000000000000000000000000c3"
SRC_RFQ = "0xd0000000000000000000000000000000000000d4"
DST_RFQ = "0xe0000000000000000000000000000000000000e5"

# Validator keys and voting power: A=40, B=30, C=20, D=10
VALIDATOR_KEYS = {
    "A": "0x" + "01" * 32,
    "B": "0x" + "02" * 32,
    "C": "0x" + "03" * 32,
    "D": "0x" + "04" * 32,
}
VALIDATOR_POWERS = {"A": 40, "B": 30, "C": 20, "D": 10}
VALIDATORS = {name: Account.from_key(key).address for name, key in VALIDATOR_KEYS.items()}


class FakeClock:
    """Controllable block timestamp."""

    def __init__(self, now: int = NOW):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def reset_locks():
    """Locks are bound to the loop that first used them."""
    clear_locks()
    yield
    clear_locks()


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Create a file-backed SQLite engine with the ledger schema."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    await init_db(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return build_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for testing."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def ledger_repo(db_session: AsyncSession) -> LedgerRepository:
    """Create ledger repository for testing."""
    return LedgerRepository(db_session)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def signer_set() -> SignerSet:
    return SignerSet({VALIDATORS[name]: power for name, power in VALIDATOR_POWERS.items()})


@pytest.fixture
def verifier(signer_set) -> QuorumVerifier:
    return QuorumVerifier(signer_set)


@pytest.fixture
def bus() -> LocalMessageBus:
    return LocalMessageBus(BUS)


@pytest_asyncio.fixture
async def contracts(session_factory, verifier, bus, clock):
    """Source (chain 1) and destination (chain 2) contracts wired to each other.

    Alice holds 1000 SRC_TOKEN on chain 1, the LP holds 1000 DST_TOKEN on chain 2.
    """
    src = await RfqContract.deploy(
        SRC_CHAIN, SRC_RFQ, OWNER, BUS, verifier, bus, session_factory, clock
    )
    dst = await RfqContract.deploy(
        DST_CHAIN, DST_RFQ, OWNER, BUS, verifier, bus, session_factory, clock
    )
    bus.attach(src)
    bus.attach(dst)
    await src.set_remote_rfq_contracts(OWNER, [DST_CHAIN], [DST_RFQ])
    await dst.set_remote_rfq_contracts(OWNER, [SRC_CHAIN], [SRC_RFQ])

    await mint(SRC_CHAIN, ALICE, SRC_TOKEN, 1000, session_factory)
    await mint(DST_CHAIN, LP, DST_TOKEN, 1000, session_factory)
    return src, dst


@pytest.fixture
def make_quote():
    """Factory for quotes from chain 1 to chain 2."""

    def _make(**overrides) -> Quote:
        fields = dict(
            src_chain_id=SRC_CHAIN,
            src_token=SRC_TOKEN,
            src_amount=100,
            dst_chain_id=DST_CHAIN,
            dst_token=DST_TOKEN,
            dst_amount=95,
            deadline=NOW + 3600,
            nonce=1,
            sender=ALICE,
            receiver=BOB,
            refund_to=REFUND,
            liquidity_provider=LP,
        )
        fields.update(overrides)
        return Quote(**fields)

    return _make


def sign_digest(digest: bytes, names=("A", "B")) -> list[bytes]:
    """Validator signatures over ``digest``."""
    return [
        bytes(Account.sign_message(encode_defunct(primitive=digest), VALIDATOR_KEYS[name]).signature)
        for name in names
    ]


def registered_signers() -> tuple[list[str], list[int]]:
    """Signer and power lists matching the registered set."""
    return [VALIDATORS[name] for name in VALIDATOR_POWERS], list(VALIDATOR_POWERS.values())
