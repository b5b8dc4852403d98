# app/services/reminder_service.py
"""Class reminders: delayed triggers keyed by (offset, class id).

``ReminderService`` places and removes triggers on the delayed queue as a
class's lifecycle changes. ``ReminderDispatcher`` runs when a trigger fires:
it re-reads the class and fans out one ``CLASS_REMINDER`` event to the users
who asked for that lead time.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.exceptions import DependencyUnavailableError
from ..models.weekly_session import SessionStatus
from ..utils.civil_calendar import session_start_instant, format_display_date, has_started, utc_now
from .lookups import RecipientLookup
from .notification_publisher import NotificationPublisher, NotificationType
from .session_repository import SessionRepository

logger = logging.getLogger(__name__)

REMINDER_KEY_PREFIX = "remind"


def reminder_key(offset_minutes: int, session_class_id) -> str:
    return f"{REMINDER_KEY_PREFIX}:{offset_minutes}:{session_class_id}"


class ReminderService:
    def __init__(
        self,
        queue,
        offsets: Optional[Sequence[int]] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.queue = queue
        self.offsets = list(offsets if offsets is not None else settings.reminder_offsets)
        self.clock = clock

    async def schedule_reminders(self, session_class) -> List[str]:
        """Place one trigger per offset whose fire time is still ahead; returns their keys."""
        start = session_start_instant(session_class)
        now = self.clock()
        scheduled = []

        for offset in self.offsets:
            fire_at = start - timedelta(minutes=offset)
            if fire_at <= now:
                continue

            key = reminder_key(offset, session_class.id)
            payload = {
                "class_id": str(session_class.id),
                "offset_minutes": offset,
                "batch_id": str(session_class.batch_id),
                "section_id": str(session_class.section_id),
                "subject_id": str(session_class.subject_id),
            }
            try:
                await self.queue.schedule(key, fire_at, payload)
            except DependencyUnavailableError as e:
                logger.error(f"Failed to schedule reminder {key}: {e}")
                continue
            scheduled.append(key)

        if scheduled:
            logger.debug(f"Scheduled {len(scheduled)} reminders for class {session_class.id} ({session_class.start_time})")
        return scheduled

    async def cancel_reminders(self, session_class_id) -> int:
        """Remove every offset's trigger; missing or already-fired triggers are fine."""
        removed = 0
        for offset in self.offsets:
            key = reminder_key(offset, session_class_id)
            try:
                if await self.queue.cancel(key):
                    removed += 1
            except DependencyUnavailableError as e:
                logger.error(f"Failed to cancel reminder {key}: {e}")
        return removed

    async def dispatch_due(self, limit: int = 100) -> List[Tuple[str, Dict[str, Any]]]:
        """Lease triggers whose fire time has passed; the caller acks or releases each key."""
        return await self.queue.claim_due(self.clock(), limit=limit)


class ReminderDispatcher:
    def __init__(
        self,
        db: AsyncSession,
        publisher: NotificationPublisher,
        recipients: Optional[RecipientLookup] = None,
        repository: Optional[SessionRepository] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.publisher = publisher
        self.recipients = recipients or RecipientLookup(db)
        self.repository = repository or SessionRepository(db)
        self.clock = clock

    async def fire(self, class_id: UUID, offset_minutes: int) -> Optional[Dict[str, Any]]:
        """Send the reminder if the class is still on; returns the emitted payload."""
        log_prefix = f"Reminder [{offset_minutes}m]"
        cls = await self.repository.get_session_class(class_id)

        if cls is None:
            logger.info(f"{log_prefix}: class {class_id} not found (maybe deleted). Skipping.")
            return None

        if cls.status in (SessionStatus.CANCELLED, SessionStatus.RESCHEDULED):
            logger.info(f"{log_prefix}: class {class_id} is {cls.status.value}. Skipping.")
            return None

        # Late deliveries skip classes already under way
        if has_started(cls, self.clock()):
            logger.info(f"{log_prefix}: class {class_id} already started. Skipping.")
            return None

        recipients = await self.recipients.find_opted_in_users(cls.batch_id, cls.section_id, offset_minutes)
        if not recipients:
            logger.info(f"{log_prefix}: no users opted into {offset_minutes}m reminders for class {class_id}.")
            return None

        subject_name = cls.subject_name or cls.title
        payload = {
            "type": NotificationType.CLASS_REMINDER.value,
            "title": "Class Starting Soon!",
            "body": f"{subject_name} starts in {offset_minutes} mins in {cls.room or 'class'}.",
            "classId": str(cls.id),
            "offset": offset_minutes,
            "batchId": str(cls.batch_id),
            "sectionId": str(cls.section_id),
            "subjectName": subject_name,
            "date": format_display_date(cls.class_date),
            "time": f"{cls.start_time} - {cls.end_time}",
            "fcmTokens": [r.push_token for r in recipients],
            "userIds": [str(r.user_id) for r in recipients],
            "data": {
                "screen": "ScheduleDetail",
                "classId": str(cls.id),
                "status": cls.status.value,
            },
        }

        logger.info(f"{log_prefix}: sending alert for class {class_id} to {len(recipients)} users.")
        await self.publisher.publish(NotificationType.CLASS_REMINDER, payload)
        return payload
