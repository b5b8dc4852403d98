# app/services/schedule_change_service.py
"""Cancel, reschedule, add and delete materialized classes.

A class moves ``scheduled -> cancelled | rescheduled | completed`` and never
leaves a terminal state. Status writes are compare-and-set against
``scheduled`` so a stale concurrent request is rejected instead of
overwriting. Notifications and cache invalidation run only after the change
has committed and never undo it.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import settings
from ..core.exceptions import (
    NotFoundError, InvalidTransitionError, ScheduleValidationError,
)
from ..models.timetable import ClassKind
from ..models.weekly_session import SessionClass, SessionStatus
from ..utils.civil_calendar import (
    civil_date, civil_instant_for, format_display_date, format_short_date, has_started,
    is_wall_time, session_start_instant, utc_now,
)
from ..utils.schedule_events import PostCommitHooks, ScheduleChange
from .lookups import AttendanceLookup, SubjectResolver
from .notification_publisher import NotificationPublisher, NotificationType
from .reminder_service import ReminderService
from .session_repository import SessionRepository
from .weekly_session_service import WeeklySessionService, session_class_values

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _ClassSnapshot:
    """Plain copy of a class row taken before anything can roll the session back."""
    id: UUID
    weekly_session_id: UUID
    template_entry_id: Optional[UUID]
    title: str
    subject_id: UUID
    subject_name: str
    batch_id: UUID
    section_id: UUID
    college_id: Optional[UUID]
    class_date: date
    start_time: str
    end_time: str
    room: str
    kind: ClassKind
    status: SessionStatus
    start: datetime

    @classmethod
    def of(cls, row: SessionClass) -> "_ClassSnapshot":
        return cls(
            id=row.id,
            weekly_session_id=row.weekly_session_id,
            template_entry_id=row.template_entry_id,
            title=row.title,
            subject_id=row.subject_id,
            subject_name=row.subject_name or row.title,
            batch_id=row.batch_id,
            section_id=row.section_id,
            college_id=row.college_id,
            class_date=row.class_date,
            start_time=row.start_time,
            end_time=row.end_time,
            room=row.room or "",
            kind=row.kind,
            status=row.status,
            start=session_start_instant(row),
        )


def reschedule_type(old_start: datetime, new_start: datetime) -> str:
    if new_start > old_start:
        return "Postponed"
    if new_start < old_start:
        return "Preponed"
    return "Rescheduled"


class ScheduleChangeService:
    def __init__(
        self,
        db: AsyncSession,
        sessions: WeeklySessionService,
        reminders: ReminderService,
        publisher: NotificationPublisher,
        hooks: Optional[PostCommitHooks] = None,
        repository: Optional[SessionRepository] = None,
        attendance: Optional[AttendanceLookup] = None,
        subjects: Optional[SubjectResolver] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.sessions = sessions
        self.reminders = reminders
        self.publisher = publisher
        self.hooks = hooks or PostCommitHooks()
        self.repository = repository or SessionRepository(db)
        self.attendance = attendance or AttendanceLookup(db)
        self.subjects = subjects or SubjectResolver(db)
        self.clock = clock

    # VALIDATION

    def validate_slot(self, class_date: date, start_time: str, end_time: str) -> datetime:
        """Check a requested slot and return its absolute start."""
        if not is_wall_time(start_time):
            raise ScheduleValidationError("Start time must be in HH:MM format", "start_time")
        if not is_wall_time(end_time):
            raise ScheduleValidationError("End time must be in HH:MM format", "end_time")
        if end_time <= start_time:
            raise ScheduleValidationError("End time must be after start time", "end_time")

        now = self.clock()
        start = civil_instant_for(class_date, start_time)
        if start <= now:
            raise ScheduleValidationError("Cannot schedule a class in the past", "date")

        max_date = civil_date(now) + timedelta(days=settings.max_schedule_days_ahead)
        if class_date > max_date:
            raise ScheduleValidationError(
                f"Date limit exceeded. Cannot schedule more than {settings.max_schedule_days_ahead} "
                f"days in the future (Max allowed: {max_date.isoformat()}).",
                "date",
            )
        return start

    async def _load_changeable(self, class_id: UUID) -> _ClassSnapshot:
        row = await self.repository.get_session_class(class_id)
        if row is None:
            raise NotFoundError("Class", str(class_id))

        if row.status != SessionStatus.SCHEDULED:
            raise InvalidTransitionError(f"Class is already {row.status.value}")
        if has_started(row, self.clock()):
            raise InvalidTransitionError("This class has passed")
        return _ClassSnapshot.of(row)

    async def _after_commit(self, change: ScheduleChange, event_type: NotificationType, payload: Dict[str, Any]):
        await self.publisher.publish(event_type, payload)
        await self.hooks.run(change)

    # CHANGE MANAGEMENT

    async def cancel_class(self, class_id: UUID, reason: Optional[str] = None) -> SessionClass:
        snapshot = await self._load_changeable(class_id)

        if not await self.repository.transition_status(class_id, SessionStatus.CANCELLED, reason=reason):
            await self.db.rollback()
            raise InvalidTransitionError("Class was changed by another request")
        await self.db.commit()

        await self.reminders.cancel_reminders(class_id)
        logger.info(f"Class {class_id} cancelled ({snapshot.subject_name} on {snapshot.class_date.isoformat()})")

        date_formatted = format_display_date(snapshot.class_date)
        await self._after_commit(
            ScheduleChange("cancelled", snapshot.batch_id, snapshot.section_id, [snapshot.class_date], class_id),
            NotificationType.CLASS_CANCELLED,
            {
                "batchId": str(snapshot.batch_id),
                "sectionId": str(snapshot.section_id),
                "title": "Class Cancelled",
                "body": (
                    f"{snapshot.subject_name} on {date_formatted} at "
                    f"{snapshot.start_time} - {snapshot.end_time} has been cancelled."
                ),
                "subjectName": snapshot.subject_name,
                "date": date_formatted,
                "time": f"{snapshot.start_time} - {snapshot.end_time}",
                "reason": reason,
                "data": {"screen": "ScheduleDetail", "classId": str(class_id), "status": "cancelled"},
            },
        )
        return await self.repository.get_session_class(class_id)

    async def reschedule_class(
        self,
        class_id: UUID,
        new_date: date,
        new_start_time: str,
        new_end_time: str,
        new_room: Optional[str] = None,
    ) -> SessionClass:
        """Move a class: the old row becomes ``rescheduled`` and a new row holds the new slot."""
        logger.info(f"Rescheduling class {class_id} to {new_date.isoformat()} {new_start_time}")
        old = await self._load_changeable(class_id)
        new_start = self.validate_slot(new_date, new_start_time, new_end_time)

        if new_date == old.class_date and new_start_time == old.start_time:
            raise ScheduleValidationError("New slot is the same as the current one", "start_time")

        target_week = await self.sessions.ensure_week_container(old.batch_id, old.section_id, new_date)
        target_week_id = target_week.id

        values = session_class_values(
            weekly_session_id=target_week_id,
            template_entry_id=old.template_entry_id,
            title=old.title,
            subject_id=old.subject_id,
            batch_id=old.batch_id,
            section_id=old.section_id,
            college_id=old.college_id,
            class_date=new_date,
            start_time=new_start_time,
            end_time=new_end_time,
            room=new_room or old.room,
            kind=old.kind,
            is_extra_class=True,
        )

        reason = f"Rescheduled to {format_display_date(new_date)} at {new_start_time}"
        if not await self.repository.transition_status(class_id, SessionStatus.RESCHEDULED, reason=reason):
            await self.db.rollback()
            raise InvalidTransitionError("Class was changed by another request")

        new_class = SessionClass(**values)
        self.db.add(new_class)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise await self.repository.slot_conflict(old.batch_id, old.section_id, new_date, new_start_time) from e
        new_class_id = new_class.id

        await self.reminders.cancel_reminders(class_id)
        new_class = await self.repository.get_session_class(new_class_id)
        await self.reminders.schedule_reminders(new_class)

        update_type = reschedule_type(old.start, new_start)
        logger.info(f"Class {update_type}: {old.class_date.isoformat()} {old.start_time} -> {new_date.isoformat()} {new_start_time}")

        new_date_formatted = format_display_date(new_date)
        await self._after_commit(
            ScheduleChange(
                "rescheduled", old.batch_id, old.section_id, [old.class_date, new_date], new_class_id
            ),
            NotificationType.CLASS_RESCHEDULED,
            {
                "batchId": str(old.batch_id),
                "sectionId": str(old.section_id),
                "title": "Class Rescheduled",
                "body": (
                    f"RESCHEDULED: {old.subject_name} to {new_date_formatted} at "
                    f"{new_start_time} - {new_end_time}"
                ),
                "subjectName": old.subject_name,
                "oldDate": format_short_date(old.class_date),
                "oldTime": old.start_time,
                "newDate": new_date_formatted,
                "newTime": f"{new_start_time} - {new_end_time}",
                "rescheduleType": update_type,
                "data": {"screen": "ScheduleDetail", "classId": str(new_class_id), "status": "scheduled"},
            },
        )
        return new_class

    async def add_extra_class(
        self,
        batch_id: UUID,
        section_id: UUID,
        subject_id: UUID,
        class_date: date,
        start_time: str,
        end_time: str,
        room: Optional[str] = None,
        kind: ClassKind = ClassKind.EXTRA,
    ) -> SessionClass:
        self.validate_slot(class_date, start_time, end_time)

        subject = await self.subjects.get(subject_id)
        if subject is None:
            raise NotFoundError("Subject", str(subject_id))
        subject_name = subject.name

        weekly_session = await self.sessions.ensure_week_container(batch_id, section_id, class_date)
        weekly_session_id = weekly_session.id
        college_id = weekly_session.college_id

        kind_label = kind.value.capitalize() if kind else None
        values = session_class_values(
            weekly_session_id=weekly_session_id,
            template_entry_id=None,
            title=subject_name + (f" ({kind_label})" if kind_label else ""),
            subject_id=subject_id,
            batch_id=batch_id,
            section_id=section_id,
            college_id=college_id,
            class_date=class_date,
            start_time=start_time,
            end_time=end_time,
            room=room,
            kind=kind or ClassKind.EXTRA,
            is_extra_class=True,
        )
        new_class = await self.repository.insert_session_class(values)
        new_class_id = new_class.id
        await self.reminders.schedule_reminders(new_class)
        logger.info(f"Extra class {new_class_id} added for {subject_name} on {class_date.isoformat()} {start_time}")

        date_formatted = format_display_date(class_date)
        await self._after_commit(
            ScheduleChange("added", batch_id, section_id, [class_date], new_class_id),
            NotificationType.CLASS_ADDED,
            {
                "batchId": str(batch_id),
                "sectionId": str(section_id),
                "title": "New Class Added",
                "body": f"{subject_name} on {date_formatted} at {start_time} - {end_time}",
                "subjectName": subject_name,
                "date": date_formatted,
                "time": f"{start_time} - {end_time}",
                "data": {"screen": "ScheduleDetail", "classId": str(new_class_id), "status": "scheduled"},
            },
        )
        return await self.repository.get_session_class(new_class_id)

    async def delete_session_class(self, class_id: UUID) -> Dict[str, Any]:
        row = await self.repository.get_session_class(class_id)
        if row is None:
            raise NotFoundError("Class", str(class_id))

        if row.is_marking_open or await self.attendance.has_attendance_for(class_id):
            raise InvalidTransitionError(
                "Cannot delete class that has attendance data or is currently active. Please cancel it instead."
            )
        if row.status == SessionStatus.RESCHEDULED:
            raise InvalidTransitionError("Rescheduled classes are kept as a record of the move")
        if has_started(row, self.clock()):
            raise InvalidTransitionError("This class has passed")

        snapshot = _ClassSnapshot.of(row)
        try:
            await self.repository.delete_session_class(class_id)
        except IntegrityError as e:
            # Attendance recorded between the check and the delete
            await self.db.rollback()
            raise InvalidTransitionError(
                "Cannot delete class that has attendance data. Please cancel it instead."
            ) from e
        await self.reminders.cancel_reminders(class_id)
        logger.info(f"Class {class_id} deleted ({snapshot.subject_name} on {snapshot.class_date.isoformat()})")

        date_formatted = format_display_date(snapshot.class_date)
        await self._after_commit(
            ScheduleChange("deleted", snapshot.batch_id, snapshot.section_id, [snapshot.class_date], class_id),
            NotificationType.CLASS_CANCELLED,
            {
                "batchId": str(snapshot.batch_id),
                "sectionId": str(snapshot.section_id),
                "title": "Class Removed",
                "body": (
                    f"{snapshot.subject_name} on {date_formatted} at {snapshot.start_time} "
                    f"has been removed from the schedule."
                ),
                "subjectName": snapshot.subject_name,
                "reason": "Class removed from schedule",
            },
        )
        return {"message": "Class deleted successfully", "id": str(class_id)}
