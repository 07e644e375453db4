"""
Pytest configuration and shared fixtures.

This module provides common test fixtures for database sessions,
test clients, and fake blockchain and price services.
"""

from collections.abc import AsyncGenerator, Callable
from decimal import Decimal

import httpx
import pytest
from fakeredis import FakeAsyncRedis, FakeServer
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from src.blockchain.chains import CHAIN_CONFIGS, Chain
from src.core.auth import create_access_token
from src.core.cache import CacheClient
from src.core.database import Base, get_db
from src.main import app
from src.models.subscriptions import SubscriptionPlan
from src.models.wallets import ExchangeRate
from src.services.blockchain_service import (
    ConfirmationResult,
    ConfirmationStatus,
    get_blockchain_service,
)
from src.services.cache import CacheService
from src.services.price_service import PriceService, get_price_service

# Test database URL (in-memory SQLite for tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

COINGECKO_PRICES = {
    "bitcoin": {"usd": 60000},
    "solana": {"usd": 150},
    "tether": {"usd": 1},
}


class FakeBlockchain:
    """Stands in for BlockchainService with canned confirmation results."""

    def __init__(self):
        self.results: dict[str, ConfirmationResult] = {}
        self.calls: list[tuple[str, str]] = []

    def set_result(
        self,
        tx_hash: str,
        status: ConfirmationStatus,
        confirmations: int = 0,
        required: int = 3,
        amount: Decimal | None = Decimal("0.00034983"),
        to_address: str | None = None,
    ) -> ConfirmationResult:
        result = ConfirmationResult(
            status=status,
            confirmations=confirmations,
            required_confirmations=required,
            block_height=800000 if status != ConfirmationStatus.UNKNOWN else None,
            amount=amount,
            fee=Decimal("0.00001"),
            from_address="1BoatSLRHtKNngkdXEeobR76b53LETtpyT",
            to_address=to_address,
            error="explorer unreachable" if status == ConfirmationStatus.UNKNOWN else None,
        )
        self.results[tx_hash] = result
        return result

    async def is_transaction_confirmed(
        self, chain: Chain | str, tx_hash: str, min_confirmations: int | None = None
    ) -> ConfirmationResult:
        self.calls.append((Chain(chain).value, tx_hash))
        if tx_hash in self.results:
            return self.results[tx_hash]
        return ConfirmationResult(status=ConfirmationStatus.PENDING)

    async def close(self) -> None:
        pass


@pytest.fixture(scope="function")
async def async_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
def session_maker(async_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for testing."""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def fake_blockchain() -> FakeBlockchain:
    return FakeBlockchain()


@pytest.fixture
def cache_service() -> CacheService:
    """Cache service backed by an in-process fake Redis."""
    return CacheService(CacheClient(FakeAsyncRedis(server=FakeServer(), decode_responses=True)), default_ttl=60)


@pytest.fixture
def coingecko_transport() -> httpx.MockTransport:
    """Mock CoinGecko simple price API."""

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/simple/price")
        return httpx.Response(200, json=COINGECKO_PRICES)

    return httpx.MockTransport(handler)


@pytest.fixture
def price_service(cache_service, coingecko_transport) -> PriceService:
    return PriceService(cache_service, httpx.AsyncClient(transport=coingecko_transport))


@pytest.fixture
async def plan(db_session) -> SubscriptionPlan:
    """A monthly plan priced at $19.99."""
    plan = SubscriptionPlan(
        name="Pro",
        description="Pro writing plan",
        price=Decimal("19.99"),
        interval="monthly",
        is_active=True,
    )
    db_session.add(plan)
    await db_session.commit()
    await db_session.refresh(plan)
    return plan


@pytest.fixture
async def exchange_rates(db_session) -> dict[str, ExchangeRate]:
    """Stored rates: BTC $60000, SOL $150, USDT $1."""
    prices = {"bitcoin": Decimal("60000"), "solana": Decimal("150"), "tether": Decimal("1")}
    rates = {}
    for chain, config in CHAIN_CONFIGS.items():
        rate = ExchangeRate(chain=chain.value, rate_usd=prices[config.price_id], source="test")
        db_session.add(rate)
        rates[chain.value] = rate
    await db_session.commit()
    return rates


@pytest.fixture
def auth_headers() -> Callable[..., dict[str, str]]:
    """Build an Authorization header for a user id and role."""

    def build(user_id: int = 1, role: str = "user") -> dict[str, str]:
        token = create_access_token({"sub": str(user_id), "user_id": user_id, "role": role})
        return {"Authorization": f"Bearer {token}"}

    return build


@pytest.fixture(scope="function")
async def client(db_session, fake_blockchain, price_service) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP test client bound to the test session and fakes."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_blockchain_service] = lambda: fake_blockchain
    app.dependency_overrides[get_price_service] = lambda: price_service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
