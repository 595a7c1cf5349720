"""Unit tests for the activity recorder."""

from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

from sentinel.core.errors import PersistenceFailed
from sentinel.schemas.activity import ActivityStatus, CheckOutcome
from sentinel.services.activity_recorder import ActivityRecorder
from sentinel.services.alerting_service import AlertType, alerting_service


def outcome() -> CheckOutcome:
    return CheckOutcome(status=ActivityStatus.FAILED, payment_method="usdc", error_message="network_unavailable")


class TestActivityRecorder:
    async def test_records_outcome(self, store, sentinel_create):
        sentinel = await store.create_sentinel(sentinel_create)
        recorder = ActivityRecorder(store)

        record_id = await recorder.record(sentinel.id, sentinel.user_id, outcome())

        activities, total = await store.list_activities(sentinel.id)
        assert total == 1
        assert activities[0].id == record_id

    async def test_write_failure_is_alerted_not_raised(self):
        store = MagicMock()
        store.create_activity = AsyncMock(side_effect=PersistenceFailed("Failed to record activity", detail="disk full"))
        recorder = ActivityRecorder(store)

        assert await recorder.record(uuid4(), "user-1", outcome()) is None
        store.create_activity.assert_awaited_once()

        alert = alerting_service.history[-1]
        assert alert.alert_type == AlertType.PERSISTENCE_FAILURE
        assert alert.details["error"] == "disk full"
