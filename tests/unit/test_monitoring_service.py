"""Unit tests for the monitoring scheduler."""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from sentinel.core.errors import (
    InsufficientFunds,
    NetworkUnavailable,
    PaymentCeilingExceeded,
    SignerUnavailable,
    VerificationFailed,
)
from sentinel.core.networks import NetworkName, TokenKind
from sentinel.schemas.activity import ActivityStatus
from sentinel.schemas.protocol import SettledCheck
from sentinel.services.alerting_service import AlertType, alerting_service
from sentinel.services.metrics_service import metrics_collector
from sentinel.services.monitoring_service import LoopState, MonitoringService
from sentinel.services.payment_executor import PaymentReceipt
from sentinel.services.x402_service import PriceCheckResult

TX_HASH = "0x" + "ab" * 32


def make_receipt(confirmed: bool = True) -> PaymentReceipt:
    return PaymentReceipt(
        tx_hash=TX_HASH,
        amount=Decimal("0.0001"),
        token=TokenKind.USDC,
        network=NetworkName.TESTNET,
        from_address="0x" + "11" * 20,
        to_address="0x" + "33" * 20,
        settlement_ms=120,
        explorer_url=f"https://explorer.test/tx/{TX_HASH}",
        confirmed=confirmed,
    )


def make_result(price: str = "150", triggered: bool = False) -> PriceCheckResult:
    settled = SettledCheck(
        price=Decimal(price),
        triggered=triggered,
        threshold=Decimal("200"),
        condition="above",
        cost=Decimal("0.0001"),
        token_used=TokenKind.USDC,
        transaction_reference=TX_HASH,
        network=NetworkName.TESTNET,
    )
    return PriceCheckResult(settled=settled, receipt=make_receipt())


async def wait_until(predicate, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


async def activities(store, sentinel_id):
    records, _ = await store.list_activities(sentinel_id, limit=500)
    return records


@pytest.fixture
async def active_sentinel(store, sentinel_create):
    sentinel = await store.create_sentinel(sentinel_create)
    return await store.update_sentinel(sentinel.id, {"is_active": True})


class TestLifecycle:
    def test_interval_must_be_positive(self, store, recorder, notifier, custody):
        with pytest.raises(ValueError):
            MonitoringService(MagicMock(), recorder, store, notifier, custody, interval=0)

    async def test_first_cycle_runs_immediately(self, monitoring_service, active_sentinel, store):
        monitoring_service.client.check.return_value = make_result()

        assert await monitoring_service.start(active_sentinel) is True
        await wait_until(lambda: monitoring_service.client.check.await_count >= 1, timeout=0.045)

        assert monitoring_service.is_monitoring(active_sentinel.id)
        assert monitoring_service.state(active_sentinel.id) == LoopState.RUNNING
        assert metrics_collector.active_loops == 1

    async def test_start_twice_is_a_no_op(self, monitoring_service, active_sentinel):
        monitoring_service.client.check.return_value = make_result()

        assert await monitoring_service.start(active_sentinel) is True
        assert await monitoring_service.start(active_sentinel) is False
        assert monitoring_service.monitoring_count() == 1

    async def test_fixed_rate_records_every_cycle(self, monitoring_service, active_sentinel, store):
        monitoring_service.client.check.return_value = make_result()

        await monitoring_service.start(active_sentinel)
        await asyncio.sleep(0.22)
        handle = await monitoring_service.stop(active_sentinel.id)

        records = await activities(store, active_sentinel.id)
        assert handle.records >= 3
        assert len(records) == handle.records
        # stop() may interrupt the last cycle before it is recorded
        assert handle.cycles - handle.records <= 1
        assert all(r.status == ActivityStatus.SUCCESS for r in records)
        assert records[0].transaction_reference == TX_HASH
        assert records[0].cost == Decimal("0.0001")

    async def test_no_records_after_stop(self, monitoring_service, active_sentinel, store):
        monitoring_service.client.check.return_value = make_result()

        await monitoring_service.start(active_sentinel)
        await wait_until(lambda: monitoring_service.client.check.await_count >= 2)
        await monitoring_service.stop(active_sentinel.id)
        count = len(await activities(store, active_sentinel.id))

        await asyncio.sleep(0.15)

        assert len(await activities(store, active_sentinel.id)) == count
        assert monitoring_service.state(active_sentinel.id) == LoopState.STOPPED
        assert not monitoring_service.is_monitoring(active_sentinel.id)

    async def test_stop_cancels_in_flight_cycle(self, monitoring_service, active_sentinel, store):
        release = asyncio.Event()

        async def slow_check(request, signer):
            await release.wait()
            return make_result()

        monitoring_service.client.check.side_effect = slow_check

        await monitoring_service.start(active_sentinel)
        await wait_until(lambda: monitoring_service.client.check.await_count == 1)
        await monitoring_service.stop(active_sentinel.id)
        release.set()
        await asyncio.sleep(0.05)

        assert await activities(store, active_sentinel.id) == []

    async def test_stop_waits_for_write_in_flight(self, monitoring_service, active_sentinel, store):
        monitoring_service.client.check.return_value = make_result()
        record = monitoring_service.recorder.record
        writing = asyncio.Event()

        async def slow_record(*args):
            writing.set()
            await asyncio.sleep(0.1)
            return await record(*args)

        monitoring_service.recorder.record = slow_record

        await monitoring_service.start(active_sentinel)
        await writing.wait()
        handle = await monitoring_service.stop(active_sentinel.id)
        count = len(await activities(store, active_sentinel.id))

        await asyncio.sleep(0.15)

        assert count == 1
        assert handle.records == 1
        assert len(await activities(store, active_sentinel.id)) == 1

    async def test_stop_with_forget_drops_sentinel_state(self, monitoring_service, active_sentinel):
        monitoring_service.client.check.return_value = make_result()
        await monitoring_service.start(active_sentinel)
        await wait_until(lambda: monitoring_service.client.check.await_count >= 1)

        await monitoring_service.stop(active_sentinel.id, forget=True)

        assert str(active_sentinel.id) not in monitoring_service.status()["sentinels"]
        assert active_sentinel.id not in monitoring_service._cycle_locks

    async def test_plain_stop_keeps_last_state(self, monitoring_service, active_sentinel):
        monitoring_service.client.check.return_value = make_result()
        await monitoring_service.start(active_sentinel)

        await monitoring_service.stop(active_sentinel.id)

        assert monitoring_service.status()["sentinels"][str(active_sentinel.id)] == "stopped"

    async def test_stop_unknown_sentinel(self, monitoring_service, sentinel_config):
        assert await monitoring_service.stop(sentinel_config.id) is None

    async def test_start_active_restores_persisted_flags(self, monitoring_service, store, sentinel_create):
        monitoring_service.client.check.return_value = make_result()
        active = await store.create_sentinel(sentinel_create)
        await store.update_sentinel(active.id, {"is_active": True})
        await store.create_sentinel(sentinel_create)

        assert await monitoring_service.start_active() == 1
        assert monitoring_service.is_monitoring(active.id)


class TestOverlap:
    async def test_slow_cycles_never_overlap(self, monitoring_service, active_sentinel):
        running = 0
        peak = 0

        async def slow_check(request, signer):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.12)
            running -= 1
            return make_result()

        monitoring_service.client.check.side_effect = slow_check

        await monitoring_service.start(active_sentinel)
        await asyncio.sleep(0.4)
        handle = await monitoring_service.stop(active_sentinel.id)

        assert peak == 1
        assert handle.skipped_ticks > 0

    async def test_on_demand_check_skipped_while_cycle_in_flight(self, monitoring_service, active_sentinel):
        release = asyncio.Event()

        async def slow_check(request, signer):
            await release.wait()
            return make_result()

        monitoring_service.client.check.side_effect = slow_check

        in_flight = asyncio.create_task(monitoring_service.run_cycle(active_sentinel))
        await wait_until(lambda: monitoring_service.client.check.await_count == 1)

        assert await monitoring_service.run_cycle(active_sentinel) is None

        release.set()
        outcome = await in_flight
        assert outcome.status == ActivityStatus.SUCCESS
        assert monitoring_service.client.check.await_count == 1

    async def test_sentinels_run_independently(self, monitoring_service, store, sentinel_create):
        first = await store.create_sentinel(sentinel_create)
        second = await store.create_sentinel(sentinel_create)
        blocked = asyncio.Event()

        async def check(request, signer):
            if request.sentinel_id == first.id:
                await blocked.wait()
            return make_result()

        monitoring_service.client.check.side_effect = check

        await monitoring_service.start(first)
        await monitoring_service.start(second)
        await asyncio.sleep(0.15)

        assert await activities(store, first.id) == []
        assert len(await activities(store, second.id)) >= 2
        blocked.set()


class TestFailureHandling:
    async def test_insufficient_funds_pauses_sentinel(self, monitoring_service, active_sentinel, store, notifier):
        monitoring_service.client.check.side_effect = InsufficientFunds(
            "Insufficient USDC balance: have 0.00005, need 0.0001",
            required=Decimal("0.0001"),
            available=Decimal("0.00005"),
            token="USDC",
        )

        await monitoring_service.start(active_sentinel)
        await wait_until(lambda: not monitoring_service.is_monitoring(active_sentinel.id))
        await asyncio.sleep(0.12)

        records = await activities(store, active_sentinel.id)
        assert len(records) == 1
        assert records[0].status == ActivityStatus.FAILED
        assert records[0].cost == Decimal("0")
        assert records[0].payment_method == "usdc"
        assert "insufficient_funds" in records[0].error_message

        assert monitoring_service.state(active_sentinel.id) == LoopState.PAUSED_INSUFFICIENT_FUNDS
        assert (await store.get_sentinel(active_sentinel.id)).is_active is False
        notifier.notify_paused.assert_awaited_once()
        assert notifier.notify_paused.await_args[0][0] == active_sentinel.notification_target
        assert metrics_collector.auto_pauses == 1
        assert any(a.alert_type == AlertType.SENTINEL_AUTO_PAUSED for a in alerting_service.history)

    async def test_outage_before_payment_is_retried_without_record(self, monitoring_service, active_sentinel, store):
        monitoring_service.client.check.side_effect = NetworkUnavailable("rpc down")

        await monitoring_service.start(active_sentinel)
        await wait_until(lambda: monitoring_service.client.check.await_count >= 3)

        assert await activities(store, active_sentinel.id) == []
        assert monitoring_service.is_monitoring(active_sentinel.id)

    async def test_outage_after_payment_is_recorded(self, monitoring_service, active_sentinel):
        monitoring_service.client.check.side_effect = NetworkUnavailable(
            "confirmation timed out", receipt=make_receipt(confirmed=False)
        )

        outcome = await monitoring_service.run_cycle(active_sentinel)

        assert outcome.status == ActivityStatus.FAILED
        assert outcome.transaction_reference == TX_HASH
        assert outcome.cost == Decimal("0")

    async def test_rejected_proof_records_failure_and_keeps_running(self, monitoring_service, active_sentinel, store):
        monitoring_service.client.check.side_effect = VerificationFailed(
            "Payment verification failed", receipt=make_receipt()
        )

        await monitoring_service.start(active_sentinel)
        await wait_until(lambda: monitoring_service.client.check.await_count >= 2)

        records = await activities(store, active_sentinel.id)
        assert records
        assert all(r.status == ActivityStatus.FAILED for r in records)
        assert records[-1].transaction_reference == TX_HASH
        assert monitoring_service.is_monitoring(active_sentinel.id)
        assert (await store.get_sentinel(active_sentinel.id)).is_active is True

    async def test_ceiling_violation_alerts_operator(self, monitoring_service, active_sentinel):
        monitoring_service.client.check.side_effect = PaymentCeilingExceeded(
            amount=Decimal("5"), ceiling=Decimal("0.001"), network="Mainnet"
        )

        outcome = await monitoring_service.run_cycle(active_sentinel)

        assert outcome.status == ActivityStatus.FAILED
        assert alerting_service.history[-1].alert_type == AlertType.PAYMENT_CEILING_VIOLATION

    async def test_missing_signer_is_recorded(self, monitoring_service, active_sentinel, custody):
        custody.get_signer.side_effect = SignerUnavailable("No signer")

        outcome = await monitoring_service.run_cycle(active_sentinel)

        assert outcome.status == ActivityStatus.FAILED
        assert outcome.error_message.startswith("signer_unavailable")
        monitoring_service.client.check.assert_not_awaited()

    async def test_unexpected_error_does_not_kill_loop(self, monitoring_service, active_sentinel):
        monitoring_service.client.check.side_effect = RuntimeError("bug")

        await monitoring_service.start(active_sentinel)
        await wait_until(lambda: monitoring_service.client.check.await_count >= 2)

        assert monitoring_service.is_monitoring(active_sentinel.id)

    async def test_persistence_failure_pauses_when_enabled(self, store, notifier, custody, active_sentinel):
        recorder = MagicMock()
        recorder.record = AsyncMock(return_value=None)
        client = MagicMock()
        client.check = AsyncMock(return_value=make_result())
        service = MonitoringService(
            client, recorder, store, notifier, custody, interval=0.05, pause_on_persistence_failure=True
        )

        await service.start(active_sentinel)
        await wait_until(lambda: not service.is_monitoring(active_sentinel.id))

        assert service.state(active_sentinel.id) == LoopState.STOPPED
        assert (await store.get_sentinel(active_sentinel.id)).is_active is False
        notifier.notify_paused.assert_not_awaited()
        await service.stop_all()


class TestExclusivity:
    async def test_single_mode_stops_siblings(self, store, recorder, notifier, custody, sentinel_create):
        client = MagicMock()
        client.check = AsyncMock(return_value=make_result())
        service = MonitoringService(client, recorder, store, notifier, custody, interval=0.05, mode="single")

        first = await store.update_sentinel((await store.create_sentinel(sentinel_create)).id, {"is_active": True})
        second = await store.update_sentinel((await store.create_sentinel(sentinel_create)).id, {"is_active": True})
        other_user = await store.update_sentinel(
            (await store.create_sentinel(sentinel_create.model_copy(update={"user_id": "user-2"}))).id,
            {"is_active": True},
        )

        await service.start(first)
        await service.start(other_user)
        await service.start(second)

        assert not service.is_monitoring(first.id)
        assert service.is_monitoring(second.id)
        assert service.is_monitoring(other_user.id)
        assert (await store.get_sentinel(first.id)).is_active is False
        assert service.status()["sentinels"][str(first.id)] == LoopState.STOPPED.value
        await service.stop_all()

    async def test_multi_mode_keeps_siblings(self, monitoring_service, store, sentinel_create):
        monitoring_service.client.check.return_value = make_result()
        first = await store.create_sentinel(sentinel_create)
        second = await store.create_sentinel(sentinel_create)

        await monitoring_service.start(first)
        await monitoring_service.start(second)

        assert monitoring_service.monitoring_count() == 2
        assert monitoring_service.status()["mode"] == "multi"
