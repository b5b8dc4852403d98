# app/services/session_repository.py
"""Persistence for weekly session containers and their dated classes.

Uniqueness of weeks and class slots is enforced by the database; a duplicate
insert surfaces here as ``ConflictError`` and always leaves the session rolled
back. Rollback expires every loaded row, so callers keep plain values (ids,
dates) across calls that may conflict instead of holding on to ORM objects.
"""
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, update, delete, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from .base_service import BaseService
from ..core.exceptions import ConflictError
from ..models.weekly_session import WeeklySession, SessionClass, SessionStatus

logger = logging.getLogger(__name__)


class SessionRepository(BaseService[SessionClass]):
    def __init__(self, db: AsyncSession):
        super().__init__(SessionClass, db)

    # WEEKLY SESSION CONTAINERS

    async def get_weekly_session(
        self, batch_id: UUID, section_id: UUID, iso_year: int, iso_week: int
    ) -> Optional[WeeklySession]:
        stmt = select(WeeklySession).where(
            and_(
                WeeklySession.batch_id == batch_id,
                WeeklySession.section_id == section_id,
                WeeklySession.iso_year == iso_year,
                WeeklySession.iso_week == iso_week,
            )
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_generated_weeks(self, batch_id: UUID, section_id: UUID, from_monday: date) -> List[date]:
        """Mondays of the weeks that already have a container, from ``from_monday`` on."""
        stmt = select(WeeklySession.iso_year, WeeklySession.iso_week).where(
            and_(WeeklySession.batch_id == batch_id, WeeklySession.section_id == section_id)
        )
        result = await self.db.execute(stmt)
        mondays = {date.fromisocalendar(year, week, 1) for year, week in result.all()}
        return sorted(m for m in mondays if m >= from_monday)

    async def get_or_create_weekly_session(
        self,
        batch_id: UUID,
        section_id: UUID,
        college_id: Optional[UUID],
        week_start: datetime,
        week_end: datetime,
        iso_year: int,
        iso_week: int,
    ) -> WeeklySession:
        existing = await self.get_weekly_session(batch_id, section_id, iso_year, iso_week)
        if existing:
            return existing

        weekly_session = WeeklySession(
            batch_id=batch_id,
            section_id=section_id,
            college_id=college_id,
            week_start=week_start,
            week_end=week_end,
            iso_year=iso_year,
            iso_week=iso_week,
            is_active=True,
        )
        self.db.add(weekly_session)
        try:
            await self.db.commit()
        except IntegrityError:
            # A concurrent caller created the same week first
            await self.db.rollback()
            existing = await self.get_weekly_session(batch_id, section_id, iso_year, iso_week)
            if existing is None:
                raise ConflictError(f"Could not create week {iso_week}/{iso_year} container")
            return existing

        logger.info(f"Created weekly session {iso_year}-W{iso_week:02d} for batch {batch_id} section {section_id}")
        return weekly_session

    # SESSION CLASSES

    async def get_session_class(self, session_class_id: UUID) -> Optional[SessionClass]:
        return await self.get(session_class_id, joinedload(SessionClass.subject))

    async def find_template_slot(
        self, weekly_session_id: UUID, template_entry_id: UUID, class_date: date, start_time: str
    ) -> Optional[UUID]:
        stmt = select(SessionClass.id).where(
            and_(
                SessionClass.weekly_session_id == weekly_session_id,
                SessionClass.template_entry_id == template_entry_id,
                SessionClass.class_date == class_date,
                SessionClass.start_time == start_time,
            )
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def insert_session_class(self, values: Dict[str, Any]) -> SessionClass:
        session_class = SessionClass(**values)
        self.db.add(session_class)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise await self.slot_conflict(
                values["batch_id"], values["section_id"], values["class_date"], values["start_time"]
            ) from e
        return session_class

    async def slot_conflict(
        self, batch_id: UUID, section_id: UUID, class_date: date, start_time: str
    ) -> ConflictError:
        """Describe the class holding a slot, after a failed insert was rolled back."""
        stmt = select(SessionClass.status).where(
            and_(
                SessionClass.batch_id == batch_id,
                SessionClass.section_id == section_id,
                SessionClass.class_date == class_date,
                SessionClass.start_time == start_time,
            )
        )
        result = await self.db.execute(stmt)
        holder = result.scalars().first()

        slot = f"{class_date.isoformat()} at {start_time}"
        if holder == SessionStatus.CANCELLED:
            return ConflictError(
                f"The slot on {slot} is held by a cancelled class. Cancelled classes keep their slot; choose another time."
            )
        if holder == SessionStatus.RESCHEDULED:
            return ConflictError(
                f"The slot on {slot} is held by a class that was rescheduled elsewhere; choose another time."
            )
        return ConflictError(f"A class already exists on {slot}")

    async def list_classes_for_week(self, weekly_session_id: UUID) -> List[SessionClass]:
        stmt = (
            select(SessionClass)
            .options(joinedload(SessionClass.subject))
            .where(SessionClass.weekly_session_id == weekly_session_id)
            .order_by(SessionClass.class_date, SessionClass.start_time)
        )
        result = await self.db.execute(stmt)
        return list(result.unique().scalars().all())

    async def transition_status(
        self,
        session_class_id: UUID,
        to_status: SessionStatus,
        reason: Optional[str] = None,
        from_status: SessionStatus = SessionStatus.SCHEDULED,
    ) -> bool:
        """Compare-and-set the status; False when the row is no longer in ``from_status``.

        Does not commit.
        """
        values: Dict[str, Any] = {"status": to_status}
        if reason is not None:
            values["cancellation_reason"] = reason
        stmt = (
            update(SessionClass)
            .where(and_(SessionClass.id == session_class_id, SessionClass.status == from_status))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def delete_session_class(self, session_class_id: UUID) -> bool:
        result = await self.db.execute(
            delete(SessionClass)
            .where(SessionClass.id == session_class_id)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount == 1

    async def list_purgeable_template_classes(
        self,
        from_date: date,
        template_entry_ids: Optional[List[UUID]] = None,
        batch_id: Optional[UUID] = None,
        section_id: Optional[UUID] = None,
    ) -> List[SessionClass]:
        """Template-derived, still scheduled, not marking-open classes on or after ``from_date``."""
        conditions = [
            SessionClass.template_entry_id.is_not(None),
            SessionClass.class_date >= from_date,
            SessionClass.status == SessionStatus.SCHEDULED,
            SessionClass.is_marking_open.is_(False),
            SessionClass.is_extra_class.is_(False),
        ]
        if template_entry_ids is not None:
            conditions.append(SessionClass.template_entry_id.in_(template_entry_ids))
        if batch_id is not None:
            conditions.append(SessionClass.batch_id == batch_id)
        if section_id is not None:
            conditions.append(SessionClass.section_id == section_id)

        result = await self.db.execute(select(SessionClass).where(and_(*conditions)))
        return list(result.unique().scalars().all())

    async def delete_many(self, session_class_ids: List[UUID]) -> int:
        """Delete rows that are still scheduled and not marking-open. Does not commit."""
        if not session_class_ids:
            return 0
        stmt = (
            delete(SessionClass)
            .where(
                and_(
                    SessionClass.id.in_(session_class_ids),
                    SessionClass.status == SessionStatus.SCHEDULED,
                    SessionClass.is_marking_open.is_(False),
                )
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount
