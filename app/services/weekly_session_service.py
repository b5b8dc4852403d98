# app/services/weekly_session_service.py
"""Materializes weekly timetable templates into dated classes.

Generation is idempotent: a template slot that already has a row for the
week is skipped, and a unique-constraint conflict from a concurrent generator
is counted as an existing row rather than an error. One timetable failing
never stops the others.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Any, Callable, Collection, Dict, List, Optional, Union
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.exceptions import ScheduleException, ConflictError, NotFoundError
from ..models.weekly_session import WeeklySession, SessionStatus
from ..utils.civil_calendar import (
    civil_date, civil_instant_for, date_components, iso_week, monday_of, week_bounds,
    weekday_name, utc_now,
)
from ..utils.schedule_events import PostCommitHooks, ScheduleChange
from .lookups import SubjectResolver, BatchLookup
from .reminder_service import ReminderService
from .session_repository import SessionRepository
from .template_store import TemplateStore, TimetableSnapshot, TemplateEntry

logger = logging.getLogger(__name__)


def session_class_values(
    *,
    weekly_session_id: UUID,
    template_entry_id: Optional[UUID],
    title: str,
    subject_id: UUID,
    batch_id: UUID,
    section_id: UUID,
    college_id: Optional[UUID],
    class_date: date,
    start_time: str,
    end_time: str,
    room: Optional[str],
    kind,
    is_extra_class: bool,
) -> Dict[str, Any]:
    """Column values for a new scheduled class, with its civil date components."""
    components = date_components(class_date)
    return {
        "weekly_session_id": weekly_session_id,
        "template_entry_id": template_entry_id,
        "title": title,
        "subject_id": subject_id,
        "batch_id": batch_id,
        "section_id": section_id,
        "college_id": college_id,
        "class_date": class_date,
        "day_name": weekday_name(class_date),
        "start_time": start_time,
        "end_time": end_time,
        "room": room or "",
        "kind": kind,
        "status": SessionStatus.SCHEDULED,
        "is_extra_class": is_extra_class,
        "day": components.day,
        "month": components.month,
        "year": components.year,
        "date_string": components.date_string,
    }


class WeeklySessionService:
    def __init__(
        self,
        db: AsyncSession,
        reminders: ReminderService,
        hooks: Optional[PostCommitHooks] = None,
        templates: Optional[TemplateStore] = None,
        subjects: Optional[SubjectResolver] = None,
        repository: Optional[SessionRepository] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.reminders = reminders
        self.hooks = hooks or PostCommitHooks()
        self.templates = templates or TemplateStore(db)
        self.subjects = subjects or SubjectResolver(db)
        self.repository = repository or SessionRepository(db)
        self.batches = BatchLookup(db)
        self.clock = clock

    async def generate_for_week(
        self,
        reference: Union[date, datetime, str, None] = None,
        batch_id: Optional[UUID] = None,
        section_id: Optional[UUID] = None,
        not_before: Optional[datetime] = None,
        template_entry_ids: Optional[Collection[UUID]] = None,
    ) -> Dict[str, Any]:
        """Generate sessions for every active timetable for the week containing ``reference``.

        ``batch_id``/``section_id`` restrict generation to one timetable,
        ``not_before`` skips template slots starting before that instant and
        ``template_entry_ids`` limits generation to those entries.
        """
        reference_date = civil_date(reference if reference is not None else self.clock())
        monday = monday_of(reference_date)
        week_start, week_end = week_bounds(monday)
        iso_year, week_number = iso_week(monday)

        logger.info(
            f"Generating weekly sessions for week {week_number}, {iso_year} "
            f"({monday.isoformat()} - {(monday + timedelta(days=6)).isoformat()})"
        )

        timetables = await self.templates.list_active_timetables(batch_id=batch_id, section_id=section_id)

        summary: Dict[str, Any] = {
            "iso_year": iso_year,
            "iso_week": week_number,
            "week_start": week_start.isoformat(),
            "week_end": week_end.isoformat(),
            "sessions_touched": 0,
            "classes_created": 0,
            "classes_existing": 0,
            "skipped_entries": 0,
            "errors": [],
        }

        for timetable in timetables:
            try:
                created, existing, skipped = await self._materialize_timetable(
                    timetable, monday, week_start, week_end, iso_year, week_number, not_before,
                    template_entry_ids,
                )
            except (ScheduleException, SQLAlchemyError) as e:
                await self.db.rollback()
                logger.error(f"Error generating session for timetable {timetable.id}: {e}")
                summary["errors"].append({"timetable_id": str(timetable.id), "error": str(e)})
                continue

            summary["sessions_touched"] += 1
            summary["classes_created"] += len(created)
            summary["classes_existing"] += existing
            summary["skipped_entries"] += skipped

            if created:
                await self.hooks.run(ScheduleChange(
                    action="generated",
                    batch_id=timetable.batch_id,
                    section_id=timetable.section_id,
                    class_dates=sorted(set(created)),
                ))

        logger.info(
            f"Week {week_number}, {iso_year}: {summary['sessions_touched']} sessions, "
            f"{summary['classes_created']} classes created, {len(summary['errors'])} errors"
        )
        return summary

    async def _materialize_timetable(
        self,
        timetable: TimetableSnapshot,
        monday: date,
        week_start: datetime,
        week_end: datetime,
        iso_year: int,
        week_number: int,
        not_before: Optional[datetime],
        template_entry_ids: Optional[Collection[UUID]] = None,
    ):
        if timetable.college_id is None:
            raise NotFoundError("College for batch", str(timetable.batch_id))

        weekly_session = await self.repository.get_or_create_weekly_session(
            batch_id=timetable.batch_id,
            section_id=timetable.section_id,
            college_id=timetable.college_id,
            week_start=week_start,
            week_end=week_end,
            iso_year=iso_year,
            iso_week=week_number,
        )
        weekly_session_id = weekly_session.id
        college_id = weekly_session.college_id

        created: List[date] = []
        existing = 0
        skipped = 0

        for entry in timetable.entries:
            if template_entry_ids is not None and entry.id not in template_entry_ids:
                continue
            class_date = monday + timedelta(days=entry.day_of_week.offset)

            if not_before is not None and civil_instant_for(class_date, entry.start_time) < not_before:
                continue

            if await self.repository.find_template_slot(weekly_session_id, entry.id, class_date, entry.start_time):
                existing += 1
                continue

            subject_id = await self.subjects.find_subject(entry.subject_name, timetable.batch_id, timetable.section_id)
            if subject_id is None:
                logger.warning(
                    f"Subject '{entry.subject_name}' not found for batch {timetable.batch_id} "
                    f"section {timetable.section_id}. Skipping class."
                )
                skipped += 1
                continue

            values = self._values_for_entry(entry, timetable, weekly_session_id, college_id, subject_id, class_date)
            try:
                session_class = await self.repository.insert_session_class(values)
            except ConflictError:
                # Another generator (or an ad hoc class) already holds this slot
                logger.info(f"Slot {class_date.isoformat()} {entry.start_time} already exists for timetable {timetable.id}")
                existing += 1
                continue

            await self.reminders.schedule_reminders(session_class)
            created.append(class_date)

        return created, existing, skipped

    @staticmethod
    def _values_for_entry(
        entry: TemplateEntry,
        timetable: TimetableSnapshot,
        weekly_session_id: UUID,
        college_id: Optional[UUID],
        subject_id: UUID,
        class_date: date,
    ) -> Dict[str, Any]:
        return session_class_values(
            weekly_session_id=weekly_session_id,
            template_entry_id=entry.id,
            title=entry.subject_name,
            subject_id=subject_id,
            batch_id=timetable.batch_id,
            section_id=timetable.section_id,
            college_id=college_id,
            class_date=class_date,
            start_time=entry.start_time,
            end_time=entry.end_time,
            room=entry.room,
            kind=entry.kind,
            is_extra_class=False,
        )

    async def get_session_for_week(
        self,
        batch_id: UUID,
        section_id: UUID,
        reference: Union[date, datetime, str, None] = None,
    ) -> Optional[Dict[str, Any]]:
        iso_year, week_number = iso_week(reference if reference is not None else self.clock())
        weekly_session = await self.repository.get_weekly_session(batch_id, section_id, iso_year, week_number)
        if weekly_session is None:
            return None

        classes = await self.repository.list_classes_for_week(weekly_session.id)
        return {"session": weekly_session, "classes": classes}

    async def ensure_week_container(self, batch_id: UUID, section_id: UUID, class_date: date) -> WeeklySession:
        """Container for the week of ``class_date``, generating or synthesizing it when missing."""
        iso_year, week_number = iso_week(class_date)
        weekly_session = await self.repository.get_weekly_session(batch_id, section_id, iso_year, week_number)
        if weekly_session:
            return weekly_session

        logger.info(f"Weekly session not found for week {week_number}, {iso_year}. Auto-generating...")
        await self.generate_for_week(class_date, batch_id=batch_id, section_id=section_id)
        weekly_session = await self.repository.get_weekly_session(batch_id, section_id, iso_year, week_number)
        if weekly_session:
            return weekly_session

        batch = await self.batches.get(batch_id)
        if batch is None:
            raise NotFoundError("Batch", str(batch_id))

        logger.info(f"No active timetable for batch {batch_id} section {section_id}. Creating standalone week container.")
        week_start, week_end = week_bounds(class_date)
        return await self.repository.get_or_create_weekly_session(
            batch_id=batch_id,
            section_id=section_id,
            college_id=batch.college_id,
            week_start=week_start,
            week_end=week_end,
            iso_year=iso_year,
            iso_week=week_number,
        )
