# app/services/timetable_service.py
"""Edits to the weekly timetable template and their effect on materialized classes.

Every edit is saved first. Then the future, still scheduled, not marking-open
classes derived from the touched entries are purged, and the touched entries
are regenerated from ``now`` onwards in the current week and in every week
the purge emptied. New entries also reach weeks already generated ahead.
Only slots that have not started come back with the new template values.
Classes that already started, were cancelled, were moved, or are being
marked stay as they are.
"""
import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from .base_service import BaseService
from ..core.exceptions import NotFoundError, ScheduleValidationError
from ..models.timetable import Timetable, TimetableEntry, DayOfWeek, ClassKind
from ..utils.civil_calendar import civil_date, has_started, is_wall_time, monday_of, utc_now
from ..utils.schedule_events import PostCommitHooks, ScheduleChange
from .reminder_service import ReminderService
from .session_repository import SessionRepository
from .weekly_session_service import WeeklySessionService

logger = logging.getLogger(__name__)

ENTRY_FIELDS = ("day_of_week", "start_time", "end_time", "subject_name", "room", "kind", "teacher_name")


def validate_entry_times(start_time: str, end_time: str) -> None:
    if not is_wall_time(start_time):
        raise ScheduleValidationError("Start time must be in HH:MM format", "start_time")
    if not is_wall_time(end_time):
        raise ScheduleValidationError("End time must be in HH:MM format", "end_time")
    if end_time <= start_time:
        raise ScheduleValidationError("End time must be after start time", "end_time")


def _entry_values(data: Dict[str, Any]) -> Dict[str, Any]:
    values = {k: v for k, v in data.items() if k in ENTRY_FIELDS}
    if "day_of_week" in values and not isinstance(values["day_of_week"], DayOfWeek):
        values["day_of_week"] = DayOfWeek(str(values["day_of_week"]).lower())
    if "kind" in values:
        values["kind"] = ClassKind(values["kind"]) if values["kind"] is not None else ClassKind.LECTURE
    return values


class TimetableService(BaseService[Timetable]):
    def __init__(
        self,
        db: AsyncSession,
        sessions: WeeklySessionService,
        reminders: ReminderService,
        hooks: Optional[PostCommitHooks] = None,
        repository: Optional[SessionRepository] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        super().__init__(Timetable, db)
        self.sessions = sessions
        self.reminders = reminders
        self.hooks = hooks or PostCommitHooks()
        self.repository = repository or SessionRepository(db)
        self.clock = clock

    async def get_timetable(self, timetable_id: UUID) -> Timetable:
        timetable = await self.get(timetable_id, selectinload(Timetable.entries))
        if timetable is None:
            raise NotFoundError("Timetable", str(timetable_id))
        return timetable

    async def _get_entry(self, timetable_id: UUID, entry_id: UUID) -> TimetableEntry:
        entry = await self.db.get(TimetableEntry, entry_id)
        if entry is None or entry.timetable_id != timetable_id:
            raise NotFoundError("Timetable entry", str(entry_id))
        return entry

    # TEMPLATE EDITS

    async def add_entry(self, timetable_id: UUID, data: Dict[str, Any]) -> TimetableEntry:
        timetable = await self.get_timetable(timetable_id)
        batch_id, section_id = timetable.batch_id, timetable.section_id

        values = _entry_values(data)
        validate_entry_times(values.get("start_time"), values.get("end_time"))

        entry = TimetableEntry(timetable_id=timetable_id, **values)
        self.db.add(entry)
        timetable.last_updated = self.clock()
        await self.db.commit()
        entry_id = entry.id
        logger.info(f"Added {entry.day_of_week.label} {entry.start_time} entry to timetable {timetable_id}")

        await self._regenerate(batch_id, section_id, [entry_id], include_generated_weeks=True)
        return await self._get_entry(timetable_id, entry_id)

    async def update_entry(self, timetable_id: UUID, entry_id: UUID, changes: Dict[str, Any]) -> TimetableEntry:
        timetable = await self.get_timetable(timetable_id)
        batch_id, section_id = timetable.batch_id, timetable.section_id
        entry = await self._get_entry(timetable_id, entry_id)

        values = _entry_values(changes)
        validate_entry_times(values.get("start_time", entry.start_time), values.get("end_time", entry.end_time))
        for key, value in values.items():
            setattr(entry, key, value)

        timetable.last_updated = self.clock()
        await self.db.commit()
        logger.info(f"Updated entry {entry_id} of timetable {timetable_id}")

        purged = await self.purge_future_classes(batch_id, section_id, template_entry_ids=[entry_id])
        await self._regenerate(batch_id, section_id, [entry_id], purged_dates=purged)
        return await self._get_entry(timetable_id, entry_id)

    async def remove_entry(self, timetable_id: UUID, entry_id: UUID) -> int:
        """Delete an entry and its future classes; returns the number of classes purged."""
        timetable = await self.get_timetable(timetable_id)
        batch_id, section_id = timetable.batch_id, timetable.section_id
        entry = await self._get_entry(timetable_id, entry_id)

        await self.db.delete(entry)
        timetable.last_updated = self.clock()
        await self.db.commit()
        logger.info(f"Removed entry {entry_id} from timetable {timetable_id}")

        purged = await self.purge_future_classes(batch_id, section_id, template_entry_ids=[entry_id])
        return len(purged)

    async def replace_schedule(self, timetable_id: UUID, entries: List[Dict[str, Any]]) -> Timetable:
        timetable = await self.get_timetable(timetable_id)
        batch_id, section_id = timetable.batch_id, timetable.section_id

        new_entries = []
        for data in entries:
            values = _entry_values(data)
            validate_entry_times(values.get("start_time"), values.get("end_time"))
            new_entries.append(TimetableEntry(**values))

        timetable.entries = new_entries
        timetable.last_updated = self.clock()
        await self.db.commit()
        new_entry_ids = [entry.id for entry in new_entries]
        logger.info(f"Replaced schedule of timetable {timetable_id} with {len(new_entries)} entries")

        purged = await self.purge_future_classes(batch_id, section_id)
        await self._regenerate(
            batch_id, section_id, new_entry_ids, purged_dates=purged, include_generated_weeks=True
        )
        return await self.get_timetable(timetable_id)

    # PROPAGATION

    async def purge_future_classes(
        self,
        batch_id: UUID,
        section_id: UUID,
        template_entry_ids: Optional[List[UUID]] = None,
    ) -> List[date]:
        """Hard-delete template-derived classes that have not started yet.

        Returns the date of every purged class, in any week.
        """
        now = self.clock()
        candidates = await self.repository.list_purgeable_template_classes(
            civil_date(now),
            template_entry_ids=template_entry_ids,
            batch_id=batch_id,
            section_id=section_id,
        )
        targets = [row for row in candidates if not has_started(row, now)]
        if not targets:
            return []

        ids = [row.id for row in targets]
        purged_dates = [row.class_date for row in targets]

        deleted = await self.repository.delete_many(ids)
        await self.db.commit()

        for class_id in ids:
            await self.reminders.cancel_reminders(class_id)

        logger.info(f"Purged {deleted} future classes for batch {batch_id} section {section_id} after template change")
        await self.hooks.run(ScheduleChange("purged", batch_id, section_id, sorted(set(purged_dates))))
        return purged_dates

    async def _regenerate(
        self,
        batch_id: UUID,
        section_id: UUID,
        template_entry_ids: List[UUID],
        purged_dates: Iterable[date] = (),
        include_generated_weeks: bool = False,
    ) -> List[date]:
        """Rebuild the given entries from ``now`` on; returns the Mondays regenerated.

        Covers the current week and every week a purge touched. New entries
        also reach the weeks already generated ahead, since those are not
        generated again by the weekly job.
        """
        now = self.clock()
        current = monday_of(now)
        weeks = {current} | {monday_of(d) for d in purged_dates}
        if include_generated_weeks:
            weeks.update(await self.repository.list_generated_weeks(batch_id, section_id, current))

        for monday in sorted(weeks):
            await self.sessions.generate_for_week(
                monday,
                batch_id=batch_id,
                section_id=section_id,
                not_before=now,
                template_entry_ids=template_entry_ids,
            )
        return sorted(weeks)
