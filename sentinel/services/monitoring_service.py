"""
Monitoring scheduler.

Runs one asyncio task per active sentinel. Each task executes a check cycle
immediately and then on a fixed period: pay for a price check, record the
outcome, and repeat until the sentinel is stopped or paused. Cycles of the
same sentinel never overlap; cycles of different sentinels never wait on
each other.

The scheduler is the only component that pauses a sentinel. An exhausted
wallet stops the loop, flips the sentinel's persisted ``is_active`` flag and
sends the owner a pause notice distinct from a price alert.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from sentinel.core.config import settings
from sentinel.core.errors import (
    InsufficientFunds,
    InvalidPaymentMethod,
    NetworkUnavailable,
    NotifierFailed,
    PaymentCeilingExceeded,
    PersistenceFailed,
    ProtocolError,
    SentinelError,
    VerificationFailed,
)
from sentinel.core.networks import get_network_profile
from sentinel.schemas.activity import ActivityStatus, CheckOutcome
from sentinel.schemas.protocol import PriceCheckRequest
from sentinel.schemas.sentinel import SentinelConfig
from sentinel.services.activity_recorder import ActivityRecorder
from sentinel.services.alerting_service import AlertType, send_error_alert
from sentinel.services.custody import WalletCustody
from sentinel.services.metrics_service import metrics_collector
from sentinel.services.notifications import WebhookNotifier
from sentinel.services.sentinel_store import SentinelStore
from sentinel.services.x402_service import X402PriceCheckClient
from sentinel.x402.protocol import select_token

logger = logging.getLogger(__name__)


class MonitoringMode(str, Enum):
    """Exclusivity policy applied when a sentinel is started."""
    MULTI = "multi"
    SINGLE = "single"


class LoopState(str, Enum):
    """Lifecycle of one sentinel's loop."""
    STOPPED = "stopped"
    RUNNING = "running"
    PAUSED_INSUFFICIENT_FUNDS = "paused_insufficient_funds"


@dataclass
class MonitorHandle:
    """A running loop. A new handle with a new run id is created on every start."""

    sentinel: SentinelConfig
    run_id: str = field(default_factory=lambda: uuid4().hex[:8])
    task: asyncio.Task | None = None
    state: LoopState = LoopState.RUNNING
    cycles: int = 0
    records: int = 0
    skipped_ticks: int = 0
    pending_write: asyncio.Future | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def label(self) -> str:
        return f"[sentinel {self.sentinel.id} run {self.run_id}]"


class MonitoringService:
    """Scheduler of per-sentinel monitoring loops."""

    def __init__(
        self,
        client: X402PriceCheckClient,
        recorder: ActivityRecorder,
        store: SentinelStore,
        notifier: WebhookNotifier,
        custody: WalletCustody,
        interval: float | None = None,
        mode: MonitoringMode | str | None = None,
        stop_timeout: float | None = None,
        pause_on_persistence_failure: bool | None = None,
    ):
        """
        Initialize the scheduler.

        Args:
            client: Runs the paid price-check exchange
            recorder: Writes cycle outcomes
            store: Sentinel persistence, used to flip ``is_active``
            notifier: Delivers the pause notice
            custody: Supplies each sentinel's signer
            interval: Seconds between cycle starts
            mode: Default exclusivity policy for start()
            stop_timeout: Seconds stop() waits for a cancelled loop to finish
            pause_on_persistence_failure: Pause a sentinel whose outcome could not be recorded
        """
        self.client = client
        self.recorder = recorder
        self.store = store
        self.notifier = notifier
        self.custody = custody
        self.interval = interval if interval is not None else settings.check_interval_seconds
        if self.interval <= 0:
            raise ValueError("Monitoring interval must be positive")
        self.mode = MonitoringMode(mode or settings.monitoring_mode)
        self.stop_timeout = stop_timeout if stop_timeout is not None else settings.stop_timeout_seconds
        self.pause_on_persistence_failure = (
            pause_on_persistence_failure
            if pause_on_persistence_failure is not None
            else settings.pause_on_persistence_failure
        )

        self._handles: dict[UUID, MonitorHandle] = {}
        self._cycle_locks: dict[UUID, asyncio.Lock] = {}
        self._last_state: dict[UUID, LoopState] = {}
        self._lock = asyncio.Lock()

    # Loop lifecycle

    async def start(self, sentinel: SentinelConfig, exclusive: bool | None = None) -> bool:
        """
        Start monitoring a sentinel.

        The first cycle runs immediately. Starting a sentinel that is already
        running is a no-op.

        Args:
            sentinel: Sentinel configuration for this run
            exclusive: Stop and deactivate the user's other sentinels on the
                same network first. Defaults to the configured mode.

        Returns:
            True if a new loop was started
        """
        if exclusive is None:
            exclusive = self.mode == MonitoringMode.SINGLE

        async with self._lock:
            if sentinel.id in self._handles:
                logger.info(f"Sentinel {sentinel.id} is already being monitored")
                return False

            siblings: list[MonitorHandle] = []
            if exclusive:
                for other_id, other in list(self._handles.items()):
                    if (
                        other.sentinel.user_id == sentinel.user_id
                        and other.sentinel.network == sentinel.network
                    ):
                        siblings.append(self._handles.pop(other_id))
                        self._last_state[other_id] = LoopState.STOPPED

            handle = MonitorHandle(sentinel=sentinel)
            self._handles[sentinel.id] = handle
            self._last_state[sentinel.id] = LoopState.RUNNING
            handle.task = asyncio.create_task(self._run_loop(handle), name=f"sentinel-{sentinel.id}")
            metrics_collector.set_active_loops(len(self._handles))

        logger.info(f"{handle.label} Started monitoring every {self.interval}s ({'exclusive' if exclusive else 'shared'})")

        for sibling in siblings:
            logger.info(f"{sibling.label} Stopping for exclusive sentinel {sentinel.id}")
            sibling.state = LoopState.STOPPED
            await self._cancel(sibling)

        if exclusive:
            try:
                deactivated = await self.store.deactivate_sentinels(
                    sentinel.user_id, sentinel.network.value, exclude_id=sentinel.id
                )
                if deactivated:
                    logger.info(f"Deactivated sentinels {deactivated} for exclusive sentinel {sentinel.id}")
            except PersistenceFailed as e:
                logger.error(f"Could not deactivate sibling sentinels of {sentinel.id}: {e.message}")

        return True

    async def stop(self, sentinel_id: UUID, forget: bool = False) -> MonitorHandle | None:
        """
        Stop a sentinel's loop and cancel its in-flight cycle.

        No activity is recorded for this run once stop() returns. An outcome
        write already under way when the loop is cancelled completes first.

        Args:
            sentinel_id: Sentinel to stop
            forget: Drop everything kept about the sentinel, for deletions

        Returns:
            The stopped handle, or None if the sentinel was not running
        """
        async with self._lock:
            handle = self._handles.pop(sentinel_id, None)
            if forget:
                self._last_state.pop(sentinel_id, None)
                self._cycle_locks.pop(sentinel_id, None)
            elif handle is not None:
                self._last_state[sentinel_id] = LoopState.STOPPED
            if handle is None:
                return None
            handle.state = LoopState.STOPPED
            metrics_collector.set_active_loops(len(self._handles))

        await self._cancel(handle)
        logger.info(f"{handle.label} Stopped monitoring after {handle.cycles} cycle(s)")
        return handle

    async def stop_all(self) -> None:
        """Stop every loop. Used at shutdown."""
        async with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
            for handle in handles:
                handle.state = LoopState.STOPPED
                self._last_state[handle.sentinel.id] = LoopState.STOPPED
            metrics_collector.set_active_loops(0)

        await asyncio.gather(*(self._cancel(handle) for handle in handles))
        if handles:
            logger.info(f"Stopped {len(handles)} monitoring loop(s)")

    async def start_active(self) -> int:
        """
        Start every sentinel persisted as active.

        Exclusivity is not applied; the persisted flags are restored as they are.

        Returns:
            Number of loops started
        """
        sentinels = await self.store.list_sentinels(is_active=True)
        started = 0
        for sentinel in sentinels:
            if await self.start(sentinel, exclusive=False):
                started += 1
        logger.info(f"Started {started} active sentinel(s)")
        return started

    async def _cancel(self, handle: MonitorHandle) -> None:
        task = handle.task
        if task is None or task is asyncio.current_task():
            return
        if not task.done():
            task.cancel()
            done, _ = await asyncio.wait({task}, timeout=self.stop_timeout)
            if not done:
                logger.error(f"{handle.label} Loop did not stop within {self.stop_timeout}s")

        write = handle.pending_write
        if write is not None and not write.done():
            done, _ = await asyncio.wait({write}, timeout=self.stop_timeout)
            if not done:
                logger.error(f"{handle.label} Outcome write did not finish within {self.stop_timeout}s")

    # Introspection

    def is_monitoring(self, sentinel_id: UUID) -> bool:
        return sentinel_id in self._handles

    def monitoring_count(self) -> int:
        return len(self._handles)

    def state(self, sentinel_id: UUID) -> LoopState:
        handle = self._handles.get(sentinel_id)
        if handle is not None:
            return handle.state
        return self._last_state.get(sentinel_id, LoopState.STOPPED)

    def status(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "active_loops": len(self._handles),
            "sentinels": {str(sentinel_id): self.state(sentinel_id).value for sentinel_id in self._last_state},
        }

    # Cycles

    async def _run_loop(self, handle: MonitorHandle) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        try:
            while handle.state == LoopState.RUNNING:
                await self._tick(handle)
                if handle.state != LoopState.RUNNING:
                    break

                next_tick += self.interval
                now = loop.time()
                if now > next_tick:
                    # Fixed rate: ticks that passed while the cycle overran are dropped
                    missed = int((now - next_tick) // self.interval) + 1
                    next_tick += missed * self.interval
                    handle.skipped_ticks += missed
                    logger.warning(f"{handle.label} Cycle overran, skipped {missed} tick(s)")

                await asyncio.sleep(max(0.0, next_tick - loop.time()))
        except asyncio.CancelledError:
            logger.debug(f"{handle.label} Loop cancelled")
            raise

    async def _tick(self, handle: MonitorHandle) -> None:
        lock = self._cycle_lock(handle.sentinel.id)
        if lock.locked():
            handle.skipped_ticks += 1
            logger.info(f"{handle.label} Previous cycle still in flight, skipping tick")
            return

        async with lock:
            try:
                await self._execute_cycle(handle.sentinel, handle)
            except Exception as e:
                # The loop outlives any single cycle
                logger.exception(f"{handle.label} Unexpected error in check cycle: {e}")

    async def run_cycle(self, sentinel: SentinelConfig) -> CheckOutcome | None:
        """
        Run one check cycle now, outside the periodic schedule.

        Returns:
            The recorded outcome, or None when a cycle for this sentinel is
            already in flight or the check failed before any payment
        """
        lock = self._cycle_lock(sentinel.id)
        if lock.locked():
            logger.info(f"Sentinel {sentinel.id}: a cycle is already in flight, skipping on-demand check")
            return None

        async with lock:
            return await self._execute_cycle(sentinel, self._handles.get(sentinel.id))

    def _cycle_lock(self, sentinel_id: UUID) -> asyncio.Lock:
        return self._cycle_locks.setdefault(sentinel_id, asyncio.Lock())

    def _is_current(self, sentinel_id: UUID, handle: MonitorHandle | None) -> bool:
        if handle is None:
            return True
        return self._handles.get(sentinel_id) is handle

    async def _execute_cycle(self, sentinel: SentinelConfig, handle: MonitorHandle | None) -> CheckOutcome | None:
        label = handle.label if handle else f"[sentinel {sentinel.id} on-demand]"
        started = time.perf_counter()
        if handle:
            handle.cycles += 1

        try:
            signer = self.custody.get_signer(sentinel.wallet_address)
            result = await self.client.check(self._build_request(sentinel), signer)
        except InsufficientFunds as e:
            logger.warning(f"{label} Insufficient funds: {e.message}")
            outcome = self._failed_outcome(sentinel, e)
            await self._record(sentinel, handle, outcome, started)
            if self._is_current(sentinel.id, handle):
                await self._pause(sentinel, e.message, LoopState.PAUSED_INSUFFICIENT_FUNDS, notify_owner=True)
            return outcome
        except (NetworkUnavailable, ProtocolError) as e:
            if e.receipt is None:
                # Nothing was paid; the next tick retries
                logger.warning(f"{label} Check failed before payment: {e.message}")
                metrics_collector.record_check(time.perf_counter() - started, success=False)
                return None
            logger.error(f"{label} Check failed after payment {e.receipt.tx_hash}: {e.message}")
            outcome = self._failed_outcome(sentinel, e)
        except VerificationFailed as e:
            logger.warning(f"{label} Payment proof rejected, will retry next cycle: {e.message}")
            outcome = self._failed_outcome(sentinel, e)
        except PaymentCeilingExceeded as e:
            logger.error(f"{label} Payment ceiling violation: {e.message}")
            send_error_alert(
                AlertType.PAYMENT_CEILING_VIOLATION,
                e.message,
                details={"sentinel_id": str(sentinel.id), "network": e.network, "amount": str(e.amount)},
            )
            outcome = self._failed_outcome(sentinel, e)
        except SentinelError as e:
            logger.error(f"{label} Check failed: {e.error_code}: {e.message}")
            outcome = self._failed_outcome(sentinel, e)
        else:
            settled = result.settled
            outcome = CheckOutcome(
                status=ActivityStatus.SUCCESS,
                payment_method=settled.token_used.value,
                price=settled.price,
                cost=result.receipt.charged,
                settlement_time_ms=result.receipt.settlement_ms,
                transaction_reference=result.receipt.tx_hash,
                triggered=settled.triggered,
            )
            logger.info(
                f"{label} Price {settled.price} ({'triggered' if settled.triggered else 'not triggered'}), "
                f"paid {outcome.cost} {outcome.payment_method}"
            )

        await self._record(sentinel, handle, outcome, started)
        return outcome

    async def _record(
        self,
        sentinel: SentinelConfig,
        handle: MonitorHandle | None,
        outcome: CheckOutcome,
        started: float,
    ) -> None:
        metrics_collector.record_check(
            time.perf_counter() - started,
            success=outcome.succeeded,
            triggered=outcome.triggered,
        )

        if not self._is_current(sentinel.id, handle):
            logger.info(f"{handle.label} Run was stopped, discarding outcome")
            return

        write = asyncio.ensure_future(self._write(sentinel, handle, outcome))
        if handle:
            handle.pending_write = write
        # stop() waits for this write instead of cancelling it
        record_id = await asyncio.shield(write)
        if record_id is not None:
            return

        if self.pause_on_persistence_failure:
            await self._pause(
                sentinel,
                "Activity could not be recorded",
                LoopState.STOPPED,
                notify_owner=False,
            )

    async def _write(
        self,
        sentinel: SentinelConfig,
        handle: MonitorHandle | None,
        outcome: CheckOutcome,
    ) -> UUID | None:
        record_id = await self.recorder.record(sentinel.id, sentinel.user_id, outcome)
        if record_id is not None and handle:
            handle.records += 1
        return record_id

    async def _pause(self, sentinel: SentinelConfig, reason: str, state: LoopState, notify_owner: bool) -> None:
        """Stop the loop from the inside and persist the sentinel as inactive."""
        async with self._lock:
            handle = self._handles.pop(sentinel.id, None)
            self._last_state[sentinel.id] = state
            metrics_collector.set_active_loops(len(self._handles))

        if handle is not None:
            handle.state = state
            # A loop pausing itself just exits; an on-demand cycle cancels the loop
            await self._cancel(handle)

        if state == LoopState.PAUSED_INSUFFICIENT_FUNDS:
            metrics_collector.record_auto_pause()

        logger.warning(f"Sentinel {sentinel.id} paused: {reason}")

        try:
            await self.store.update_sentinel(sentinel.id, {"is_active": False})
        except PersistenceFailed as e:
            logger.error(f"Could not persist pause of sentinel {sentinel.id}: {e.message}")

        send_error_alert(
            AlertType.SENTINEL_AUTO_PAUSED,
            f"Sentinel {sentinel.id} was paused",
            details={"sentinel_id": str(sentinel.id), "user_id": sentinel.user_id, "reason": reason},
        )

        if notify_owner:
            try:
                await self.notifier.notify_paused(
                    sentinel.notification_target,
                    str(sentinel.id),
                    reason,
                    datetime.now(timezone.utc),
                )
            except NotifierFailed as e:
                logger.warning(f"Pause notice for sentinel {sentinel.id} not delivered: {e.message}")

    def _build_request(self, sentinel: SentinelConfig) -> PriceCheckRequest:
        return PriceCheckRequest(
            sentinel_id=sentinel.id,
            threshold=sentinel.threshold,
            condition=sentinel.condition,
            network=sentinel.network,
            payment_method=sentinel.payment_method,
            notification_target=sentinel.notification_target,
        )

    def _payment_label(self, sentinel: SentinelConfig) -> str:
        profile = get_network_profile(sentinel.network)
        try:
            return select_token(profile.accepted_tokens, sentinel.payment_method, profile.name).value
        except InvalidPaymentMethod:
            return sentinel.payment_method.value if sentinel.payment_method else settings.default_payment_method

    def _failed_outcome(self, sentinel: SentinelConfig, error: SentinelError) -> CheckOutcome:
        receipt = error.receipt
        if receipt is None:
            return CheckOutcome(
                status=ActivityStatus.FAILED,
                payment_method=self._payment_label(sentinel),
                error_message=f"{error.error_code}: {error.message}",
            )
        return CheckOutcome(
            status=ActivityStatus.FAILED,
            payment_method=receipt.token.value,
            cost=receipt.charged,
            settlement_time_ms=receipt.settlement_ms,
            transaction_reference=receipt.tx_hash,
            error_message=f"{error.error_code}: {error.message}",
        )
