"""
End-to-end monitoring scenarios.

The scheduler, x402 client, payment executor, price-check endpoint and
activity ledger run for real against an in-memory database. Only the chain,
the price feed and the webhook are mocked.
"""

import asyncio
import itertools
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from sentinel.core.errors import NetworkUnavailable
from sentinel.core.networks import NetworkName, TokenKind
from sentinel.schemas.activity import ActivityStatus
from sentinel.services.monitoring_service import LoopState, MonitoringService
from sentinel.services.payment_executor import PaymentExecutor, PaymentReceipt
from sentinel.services.x402_service import X402PriceCheckClient

RECIPIENT = "0x" + "33" * 20


def receipts():
    """Confirmed receipts with a fresh transaction hash per payment."""
    for n in itertools.count(1):
        tx_hash = "0x" + format(n, "064x")
        yield PaymentReceipt(
            tx_hash=tx_hash,
            amount=Decimal("0.0001"),
            token=TokenKind.USDC,
            network=NetworkName.TESTNET,
            from_address="0x" + "11" * 20,
            to_address=RECIPIENT,
            settlement_ms=850,
            explorer_url=f"https://explorer.test/tx/{tx_hash}",
        )


async def wait_until(predicate, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def app(store, price_check_service, balance_service):
    from sentinel.main import app

    app.state.sentinel_store = store
    app.state.price_check_service = price_check_service
    app.state.balance_service = balance_service
    return app


@pytest.fixture
async def http_client(app):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
def executor():
    mock = MagicMock()
    generator = receipts()
    mock.pay = AsyncMock(side_effect=lambda *args: next(generator))
    return mock


@pytest.fixture
async def scheduler(app, http_client, executor, store, recorder, notifier, custody):
    client = X402PriceCheckClient(executor=executor, url="http://test/api/v1/check-price", client=http_client)
    service = MonitoringService(
        client=client,
        recorder=recorder,
        store=store,
        notifier=notifier,
        custody=custody,
        interval=0.05,
        stop_timeout=1.0,
    )
    app.state.monitoring_service = service
    yield service
    await service.stop_all()


@pytest.fixture
async def active_sentinel(store, sentinel_create):
    created = await store.create_sentinel(sentinel_create)
    return await store.update_sentinel(created.id, {"is_active": True})


class TestMonitoringFlow:
    async def test_alert_fires_once_when_price_crosses(self, scheduler, active_sentinel, price_oracle, notifier, store):
        price_oracle.get_current_price.side_effect = [Decimal("150"), Decimal("250")]

        first = await scheduler.run_cycle(active_sentinel)
        second = await scheduler.run_cycle(active_sentinel)

        assert first.triggered is False
        assert second.triggered is True
        assert second.price == Decimal("250")
        notifier.notify.assert_awaited_once()

        activities, total = await store.list_activities(active_sentinel.id)
        assert total == 2
        assert all(a.status == ActivityStatus.SUCCESS for a in activities)
        assert all(a.cost == Decimal("0.0001") for a in activities)
        assert len({a.transaction_reference for a in activities}) == 2

    async def test_n_cycles_then_stop(self, scheduler, active_sentinel, store):
        await scheduler.start(active_sentinel)
        for _ in range(200):
            _, recorded = await store.list_activities(active_sentinel.id)
            if recorded >= 3:
                break
            await asyncio.sleep(0.01)
        handle = await scheduler.stop(active_sentinel.id)

        _, total = await store.list_activities(active_sentinel.id)
        assert total >= 3
        assert total - handle.records in (0, 1)

        await asyncio.sleep(0.15)
        _, after = await store.list_activities(active_sentinel.id)
        assert after == total

    async def test_rejected_payment_does_not_pause(self, scheduler, active_sentinel, payment_verifier, store, notifier):
        payment_verifier.verify.return_value = False

        outcome = await scheduler.run_cycle(active_sentinel)

        assert outcome.status == ActivityStatus.FAILED
        assert outcome.error_message.startswith("verification_failed")
        assert outcome.transaction_reference is not None
        assert (await store.get_sentinel(active_sentinel.id)).is_active is True
        notifier.notify_paused.assert_not_awaited()

    async def test_oracle_outage_after_payment_is_recorded(self, scheduler, active_sentinel, price_oracle, store):
        price_oracle.get_current_price.side_effect = NetworkUnavailable("Price oracle unavailable")

        outcome = await scheduler.run_cycle(active_sentinel)

        assert outcome.status == ActivityStatus.FAILED
        assert outcome.transaction_reference is not None
        assert outcome.error_message.startswith("network_unavailable")


class TestInsufficientFunds:
    @pytest.fixture
    def w3(self):
        return MagicMock()

    @pytest.fixture
    async def broke_scheduler(self, app, http_client, balance_service, w3, store, recorder, notifier, custody):
        balance_service.get_stablecoin_balance.return_value = Decimal("0.00005")
        executor = PaymentExecutor(balance_service=balance_service, web3_provider=lambda profile: w3)
        client = X402PriceCheckClient(executor=executor, url="http://test/api/v1/check-price", client=http_client)
        service = MonitoringService(
            client=client,
            recorder=recorder,
            store=store,
            notifier=notifier,
            custody=custody,
            interval=0.05,
            stop_timeout=1.0,
        )
        yield service
        await service.stop_all()

    async def test_empty_wallet_pauses_sentinel(self, broke_scheduler, active_sentinel, store, notifier, w3):
        await broke_scheduler.start(active_sentinel)
        await wait_until(lambda: not broke_scheduler.is_monitoring(active_sentinel.id))
        await asyncio.sleep(0.12)

        activities, total = await store.list_activities(active_sentinel.id)
        assert total == 1
        assert activities[0].status == ActivityStatus.FAILED
        assert activities[0].cost == Decimal("0")
        assert activities[0].transaction_reference is None

        assert broke_scheduler.state(active_sentinel.id) == LoopState.PAUSED_INSUFFICIENT_FUNDS
        assert (await store.get_sentinel(active_sentinel.id)).is_active is False
        w3.eth.send_raw_transaction.assert_not_called()
        notifier.notify_paused.assert_awaited_once()
        notifier.notify.assert_not_awaited()
