# app/services/daily_briefing_service.py
"""Evening summary of the next day's classes for each section."""
import logging
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import ScheduleException
from ..models.academic import Section
from ..models.weekly_session import SessionClass, SessionStatus
from ..utils.civil_calendar import civil_date, to_12_hour, weekday_name, utc_now
from .lookups import RecipientLookup
from .notification_publisher import NotificationPublisher, NotificationType
from .weekly_session_service import WeeklySessionService

logger = logging.getLogger(__name__)


def build_briefing(classes: List[SessionClass]) -> Dict[str, str]:
    """Title and numbered body for a non-empty, start-ordered list of classes."""
    count = len(classes)
    title = f"Tomorrow: {count} Class{'es' if count > 1 else ''} (Starts {to_12_hour(classes[0].start_time)})"
    body = "\n".join(
        f"{i}. {c.title or c.subject_name} ({c.start_time})" for i, c in enumerate(classes, start=1)
    )
    return {"title": title, "body": body}


class DailyBriefingService:
    def __init__(
        self,
        db: AsyncSession,
        sessions: WeeklySessionService,
        publisher: NotificationPublisher,
        recipients: Optional[RecipientLookup] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.sessions = sessions
        self.publisher = publisher
        self.recipients = recipients or RecipientLookup(db)
        self.clock = clock

    async def _sections(self) -> List[Section]:
        result = await self.db.execute(select(Section).where(Section.batch_id.is_not(None)))
        return list(result.scalars().all())

    async def classes_on(self, batch_id, section_id, target: date) -> List[SessionClass]:
        week = await self.sessions.get_session_for_week(batch_id, section_id, target)
        if not week:
            return []
        return [
            c for c in week["classes"]
            if c.class_date == target and c.status == SessionStatus.SCHEDULED
        ]

    async def send_daily_briefings(self, target_date: Optional[date] = None) -> Dict[str, Any]:
        target = target_date or civil_date(self.clock()) + timedelta(days=1)
        sections = await self._sections()
        logger.info(f"Checking schedule for {len(sections)} sections for {weekday_name(target)}, {target.isoformat()}")

        summary = {"date": target.isoformat(), "sections_checked": len(sections), "briefings_sent": 0, "failed_sections": 0}

        for section in sections:
            section_id, batch_id, section_name = section.id, section.batch_id, section.name
            try:
                classes = await self.classes_on(batch_id, section_id, target)
                if not classes:
                    continue

                recipients = await self.recipients.find_daily_summary_users(batch_id, section_id)
                if not recipients:
                    continue

                briefing = build_briefing(classes)
                await self.publisher.publish(
                    NotificationType.DAILY_BRIEFING,
                    {
                        "type": NotificationType.DAILY_BRIEFING.value,
                        "category": "Schedule",
                        "title": briefing["title"],
                        "body": briefing["body"],
                        "batchId": str(batch_id),
                        "sectionId": str(section_id),
                        "fcmTokens": [r.push_token for r in recipients],
                        "userIds": [str(r.user_id) for r in recipients],
                        "data": {"date": target.isoformat(), "screen": "Schedule"},
                    },
                )
            except (ScheduleException, SQLAlchemyError) as e:
                summary["failed_sections"] += 1
                logger.error(f"Daily briefing failed for section {section_id}: {e}")
                continue

            summary["briefings_sent"] += 1
            logger.info(f"Sent briefing to {len(recipients)} students in {section_name}")

        return summary
