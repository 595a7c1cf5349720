"""
Activity recorder.

Appends one outcome record per completed check cycle. A failed write is
logged and raised to the operator alert channel but never retried, so a
storage outage cannot stall the scheduler.
"""

import logging
from uuid import UUID

from sentinel.core.errors import PersistenceFailed
from sentinel.schemas.activity import CheckOutcome
from sentinel.services.alerting_service import AlertType, send_error_alert
from sentinel.services.sentinel_store import SentinelStore

logger = logging.getLogger(__name__)


class ActivityRecorder:
    """Writes check outcomes to the activity ledger."""

    def __init__(self, store: SentinelStore):
        self.store = store

    async def record(self, sentinel_id: UUID, user_id: str, outcome: CheckOutcome) -> UUID | None:
        """
        Record a check outcome.

        Returns:
            Id of the new record, or None if it could not be written
        """
        try:
            record_id = await self.store.create_activity(sentinel_id, user_id, outcome)
        except PersistenceFailed as e:
            logger.error(f"Failed to record activity for sentinel {sentinel_id}: {e.message} ({e.detail})")
            send_error_alert(
                AlertType.PERSISTENCE_FAILURE,
                f"Activity for sentinel {sentinel_id} was not recorded",
                details={
                    "sentinel_id": str(sentinel_id),
                    "status": outcome.status.value,
                    "transaction_reference": outcome.transaction_reference,
                    "error": e.detail,
                },
            )
            return None

        logger.debug(f"Recorded {outcome.status.value} activity {record_id} for sentinel {sentinel_id}")
        return record_id
