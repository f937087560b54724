# ===== salon_booking/tasks/calendar_tasks.py =====
import logging
from typing import Optional
from uuid import UUID

from salon_booking.config.celery_config import celery_app
from salon_booking.config.database import SessionLocal
from salon_booking.config.redis import RedisKeys, get_sync_redis
from salon_booking.core.exceptions import ExternalSyncError, NotFoundError
from salon_booking.services.booking.booking_orchestrator import UPSERT, BookingOrchestrator

logger = logging.getLogger(__name__)


class RedisCancelFlag:
    """Cancellation flag for a resync run, shared between the API and workers"""

    def __init__(self, run_id: str, client=None):
        self.key = RedisKeys.RESYNC_CANCEL.format(run_id=run_id)
        self.client = client or get_sync_redis()

    def set(self, ttl_seconds: int = 3600) -> None:
        self.client.setex(self.key, ttl_seconds, 1)

    def is_set(self) -> bool:
        return bool(self.client.exists(self.key))


@celery_app.task(bind=True, max_retries=3)
def sync_appointment_to_calendar(self, appointment_id: str, action: str = UPSERT):
    """Push (or remove) one appointment's calendar event"""
    db = SessionLocal()
    try:
        orchestrator = BookingOrchestrator(db)
        try:
            appointment = orchestrator.ledger.get(UUID(appointment_id), fresh=True)
        except NotFoundError:
            logger.error(f"Appointment {appointment_id} not found")
            return {"status": "failed", "reason": "appointment_not_found"}

        outcome = orchestrator.apply_sync(appointment, action)
        if not outcome.ok:
            logger.warning(
                f"Calendar {action} failed for {appointment_id} (attempt {self.request.retries + 1}): {outcome.warning}"
            )
            raise self.retry(
                countdown=60 * (self.request.retries + 1),
                exc=ExternalSyncError(outcome.warning or "calendar sync failed"),
            )

        logger.info(f"Calendar {action} for {appointment_id}: {outcome.status}")
        return {"status": outcome.status, "action": outcome.action, "event_id": outcome.external_event_id}
    finally:
        db.close()


@celery_app.task(bind=True)
def resync_all_appointments(self, run_id: Optional[str] = None, prune_orphans: bool = False):
    """Bulk resync; stops between items once the run's cancel flag is set"""
    db = SessionLocal()
    try:
        cancel_flag = RedisCancelFlag(run_id or self.request.id)
        report = BookingOrchestrator(db).resync_all(cancel_event=cancel_flag, prune_orphans=prune_orphans)
        return report.to_dict()
    finally:
        db.close()
