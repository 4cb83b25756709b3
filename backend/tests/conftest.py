"""
Shared fixtures: an in-memory SQLite database per test, a static quote
provider and commission-free fees.
"""
import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ["QUOTE_PROVIDER"] = "static"
os.environ["ADMIN_USERNAME"] = ""

from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import microinvest.models  # noqa: F401
from microinvest.core.database import Base
from microinvest.core.metrics import metrics
from microinvest.services.account_service import AccountService
from microinvest.services.fees import FeeSchedule
from microinvest.services.market_data import StaticQuoteProvider, set_default_provider
from microinvest.services.portfolio_service import PortfolioService


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture(autouse=True)
def quiet_metrics():
    metrics.disable()
    yield
    metrics.enable()
    metrics.clear_buffer()


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def quotes():
    provider = StaticQuoteProvider({"SEC1": "100", "AAPL": "150", "MSFT": "300"})
    set_default_provider(provider)
    yield provider
    set_default_provider(None)


@pytest.fixture
def fees():
    return FeeSchedule.zero()


@pytest.fixture
async def alice(session, quotes, fees):
    """Account with a default portfolio funded with 1000."""
    return await AccountService(session, fees=fees).register(
        "alice", "alice@example.com", starting_cash=Decimal("1000")
    )


@pytest.fixture
async def bob(session, quotes, fees):
    return await AccountService(session, fees=fees).register(
        "bob", "bob@example.com", starting_cash=Decimal("1000")
    )


@pytest.fixture
async def portfolio(session, alice):
    return await PortfolioService(session).get_default_portfolio(alice)
