# app/services/template_store.py
"""Read-only view of the recurring weekly timetables.

Timetables are returned as plain snapshots rather than ORM rows so callers can
commit and roll back freely while iterating over them.
"""
from dataclasses import dataclass, field
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.exceptions import DependencyUnavailableError
from ..models.academic import Batch
from ..models.timetable import Timetable, DayOfWeek, ClassKind


@dataclass(frozen=True)
class TemplateEntry:
    id: UUID
    day_of_week: DayOfWeek
    start_time: str
    end_time: str
    subject_name: str
    room: str = ""
    kind: ClassKind = ClassKind.LECTURE


@dataclass(frozen=True)
class TimetableSnapshot:
    id: UUID
    batch_id: UUID
    section_id: UUID
    college_id: Optional[UUID]
    entries: List[TemplateEntry] = field(default_factory=list)


class TemplateStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_active_timetables(
        self,
        batch_id: Optional[UUID] = None,
        section_id: Optional[UUID] = None,
    ) -> List[TimetableSnapshot]:
        stmt = (
            select(Timetable, Batch.college_id)
            .join(Batch, Batch.id == Timetable.batch_id)
            .options(selectinload(Timetable.entries))
            .where(Timetable.is_active.is_(True))
        )
        if batch_id is not None:
            stmt = stmt.where(Timetable.batch_id == batch_id)
        if section_id is not None:
            stmt = stmt.where(Timetable.section_id == section_id)

        try:
            result = await self.db.execute(stmt)
            rows = result.all()
        except SQLAlchemyError as e:
            raise DependencyUnavailableError("Timetable store", str(e)) from e

        return [
            TimetableSnapshot(
                id=timetable.id,
                batch_id=timetable.batch_id,
                section_id=timetable.section_id,
                college_id=college_id,
                entries=[
                    TemplateEntry(
                        id=entry.id,
                        day_of_week=entry.day_of_week,
                        start_time=entry.start_time,
                        end_time=entry.end_time,
                        subject_name=entry.subject_name,
                        room=entry.room or "",
                        kind=entry.kind or ClassKind.LECTURE,
                    )
                    for entry in timetable.entries
                ],
            )
            for timetable, college_id in rows
        ]
