"""
Pytest configuration and shared fixtures.

This module provides common test fixtures for database sessions, sentinel
configurations, mocked chain access and the HTTP test client.
"""

from collections.abc import AsyncGenerator
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from sentinel.core.database import Base, create_session_factory, init_db
from sentinel.schemas.sentinel import Condition, SentinelConfig, SentinelCreate
from sentinel.services.activity_recorder import ActivityRecorder
from sentinel.services.alerting_service import alerting_service
from sentinel.services.metrics_service import metrics_collector
from sentinel.services.monitoring_service import MonitoringService
from sentinel.services.price_check_service import PriceCheckService
from sentinel.services.sentinel_store import SentinelStore

# Test database URL (in-memory SQLite for tests)
TEST_DATABASE_URL = "sqlite+aiosqlite://"

WALLET_ADDRESS = "0x" + "11" * 20
OTHER_WALLET_ADDRESS = "0x" + "22" * 20
RECIPIENT_ADDRESS = "0x" + "33" * 20
TX_HASH = "0x" + "ab" * 32


@pytest.fixture(autouse=True)
def reset_metrics():
    """Start every test with empty counters and alert history."""
    metrics_collector.reset()
    alerting_service.history.clear()
    yield
    metrics_collector.reset()


@pytest.fixture
async def async_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    await init_db(bind=engine)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine):
    return create_session_factory(async_engine)


@pytest.fixture
def store(session_factory) -> SentinelStore:
    return SentinelStore(session_factory=session_factory)


@pytest.fixture
def recorder(store) -> ActivityRecorder:
    return ActivityRecorder(store)


@pytest.fixture
def sentinel_create() -> SentinelCreate:
    return SentinelCreate(
        user_id="user-1",
        wallet_address=WALLET_ADDRESS,
        threshold=Decimal("200"),
        condition=Condition.ABOVE,
        notification_target="https://discord.example/webhook",
    )


@pytest.fixture
def sentinel_config() -> SentinelConfig:
    """A sentinel configuration that does not exist in storage."""
    return SentinelConfig(
        id=uuid4(),
        user_id="user-1",
        wallet_address=WALLET_ADDRESS,
        threshold=Decimal("200"),
        condition=Condition.ABOVE,
        network="testnet",
        notification_target="https://discord.example/webhook",
        is_active=True,
    )


@pytest.fixture
def signer():
    """Opaque signer for the sentinel wallet."""
    mock = MagicMock()
    mock.address = WALLET_ADDRESS
    return mock


@pytest.fixture
def custody(signer):
    mock = MagicMock()
    mock.get_signer.return_value = signer
    return mock


@pytest.fixture
def notifier():
    mock = MagicMock()
    mock.notify = AsyncMock()
    mock.notify_paused = AsyncMock()
    mock.close = AsyncMock()
    return mock


@pytest.fixture
def price_oracle():
    mock = MagicMock()
    mock.get_current_price = AsyncMock(return_value=Decimal("150"))
    return mock


@pytest.fixture
def payment_verifier():
    mock = MagicMock()
    mock.verify = AsyncMock(return_value=True)
    return mock


@pytest.fixture
def price_check_service(price_oracle, payment_verifier, notifier) -> PriceCheckService:
    return PriceCheckService(
        oracle=price_oracle,
        verifier=payment_verifier,
        notifier=notifier,
        recipient=RECIPIENT_ADDRESS,
        fee=Decimal("0.0001"),
    )


@pytest.fixture
def balance_service():
    mock = MagicMock()
    mock.get_wallet_balances = AsyncMock()
    mock.get_native_balance = AsyncMock(return_value=Decimal("1"))
    mock.get_stablecoin_balance = AsyncMock(return_value=Decimal("10"))
    return mock


@pytest.fixture
async def monitoring_service(store, recorder, notifier, custody) -> AsyncGenerator[MonitoringService, None]:
    """Scheduler with a mocked price-check client and a short interval."""
    client = MagicMock()
    client.check = AsyncMock()
    service = MonitoringService(
        client=client,
        recorder=recorder,
        store=store,
        notifier=notifier,
        custody=custody,
        interval=0.05,
        mode="multi",
        stop_timeout=1.0,
    )
    yield service
    await service.stop_all()


@pytest.fixture
async def client(
    store,
    price_check_service,
    monitoring_service,
    balance_service,
) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP test client wired to test services."""
    from sentinel.main import app

    app.state.sentinel_store = store
    app.state.price_check_service = price_check_service
    app.state.monitoring_service = monitoring_service
    app.state.balance_service = balance_service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
