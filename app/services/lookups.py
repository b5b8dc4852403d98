# app/services/lookups.py
"""Small read-side collaborators used by the schedule services."""
from dataclasses import dataclass
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.academic import Batch, Subject
from ..models.attendance import Attendance
from ..models.user import User


@dataclass(frozen=True)
class Recipient:
    user_id: UUID
    push_token: str


class SubjectResolver:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_subject(self, name: str, batch_id: UUID, section_id: UUID) -> Optional[UUID]:
        stmt = select(Subject.id).where(
            and_(
                Subject.name == name,
                Subject.batch_id == batch_id,
                Subject.section_id == section_id,
            )
        )
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def get(self, subject_id: UUID) -> Optional[Subject]:
        return await self.db.get(Subject, subject_id)


class BatchLookup:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, batch_id: UUID) -> Optional[Batch]:
        return await self.db.get(Batch, batch_id)


class AttendanceLookup:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def has_attendance_for(self, session_class_id: UUID) -> bool:
        stmt = select(func.count()).select_from(Attendance).where(
            Attendance.session_class_id == session_class_id
        )
        result = await self.db.execute(stmt)
        return result.scalar() > 0


class RecipientLookup:
    """Active users of a batch/section, filtered by notification preference."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _active_users(self, batch_id: UUID, section_id: UUID) -> List[User]:
        stmt = select(User).where(
            and_(
                User.batch_id == batch_id,
                User.section_id == section_id,
                User.is_active.is_(True),
            )
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def roster_ids(self, batch_id: UUID, section_id: UUID) -> List[UUID]:
        stmt = select(User.id).where(
            and_(User.batch_id == batch_id, User.section_id == section_id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def find_opted_in_users(
        self, batch_id: UUID, section_id: UUID, offset_minutes: int
    ) -> List[Recipient]:
        # JSON membership is filtered here so the query stays portable across backends
        users = await self._active_users(batch_id, section_id)
        return [
            Recipient(user.id, user.fcm_token)
            for user in users
            if user.fcm_token and offset_minutes in (user.reminder_offsets or [])
        ]

    async def find_daily_summary_users(self, batch_id: UUID, section_id: UUID) -> List[Recipient]:
        users = await self._active_users(batch_id, section_id)
        return [
            Recipient(user.id, user.fcm_token)
            for user in users
            if user.fcm_token and user.daily_summary_enabled
        ]
