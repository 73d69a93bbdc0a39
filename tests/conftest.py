"""Pytest configuration and fixtures."""

import os
import tempfile
from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Set test environment
_TEST_DIR = Path(tempfile.mkdtemp(prefix="fundrouter-test-"))
DEPLOYER = bytes.fromhex("de" * 20)
TREASURY = bytes.fromhex("7e" * 20)

os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR / 'api.db'}"
os.environ["DEBUG"] = "false"
os.environ["DRY_RUN"] = "true"
os.environ["DEPLOYER_ADDRESS"] = "0x" + DEPLOYER.hex()
os.environ["TREASURY_ADDRESS"] = "0x" + TREASURY.hex()
os.environ.pop("PRIVATE_KEY", None)

from fundrouter.chain.dryrun import DryRunChainClient
from fundrouter.chain.signer import AddressOnlySigner
from fundrouter.ledger.models import Base
from fundrouter.ledger.repository import DepositRepository
from fundrouter.services.deposit_router import DepositRouter
from fundrouter.utils.locks import clear_deposit_locks

CALLER = bytes.fromhex("ca" * 20)


@pytest.fixture(autouse=True)
def reset_locks():
    """Clear deposit locks before each test."""
    clear_deposit_locks()
    yield
    clear_deposit_locks()


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Create a file-backed database engine for testing.

    A file (not :memory:) gives every session its own connection, so
    concurrent sweeps commit independently.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for testing."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def deposit_repo(db_session: AsyncSession) -> DepositRepository:
    """Create deposit repository for testing."""
    return DepositRepository(db_session)


@pytest.fixture
def chain() -> DryRunChainClient:
    """Fresh simulated chain."""
    return DryRunChainClient()


@pytest.fixture
def signer() -> AddressOnlySigner:
    """Signing identity used for prediction and deployment."""
    return AddressOnlySigner(CALLER)


@pytest.fixture
def router(chain, signer, session_factory) -> DepositRouter:
    """Router wired to the simulated chain and test database."""
    return DepositRouter(
        chain,
        signer,
        DEPLOYER,
        TREASURY,
        session_factory=session_factory,
        lock_timeout=5.0,
    )


async def fetch_deposit(session_factory, deposit_id: int):
    """Read a deposit in a fresh session."""
    async with session_factory() as session:
        return await DepositRepository(session).get(deposit_id)
