# app/schemas/timetable_schemas.py
from typing import Optional, List
from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, Field

from ..models.timetable import DayOfWeek, ClassKind
from .weekly_session_schemas import TIME_PATTERN


class TimetableEntryBase(BaseModel):
    day_of_week: DayOfWeek
    start_time: str = Field(..., pattern=TIME_PATTERN)
    end_time: str = Field(..., pattern=TIME_PATTERN)
    subject_name: str = Field(..., min_length=1, max_length=100)
    room: Optional[str] = Field(default="", max_length=50)
    kind: ClassKind = ClassKind.LECTURE
    teacher_name: Optional[str] = Field(default=None, max_length=200)


class TimetableEntryCreate(TimetableEntryBase):
    pass


class TimetableEntryUpdate(BaseModel):
    day_of_week: Optional[DayOfWeek] = None
    start_time: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    end_time: Optional[str] = Field(default=None, pattern=TIME_PATTERN)
    subject_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    room: Optional[str] = Field(default=None, max_length=50)
    kind: Optional[ClassKind] = None
    teacher_name: Optional[str] = Field(default=None, max_length=200)


class TimetableEntryResponse(TimetableEntryBase):
    id: UUID
    timetable_id: UUID

    class Config:
        from_attributes = True


class ReplaceScheduleRequest(BaseModel):
    entries: List[TimetableEntryCreate]


class TimetableResponse(BaseModel):
    id: UUID
    batch_id: UUID
    section_id: UUID
    is_active: bool
    last_updated: Optional[datetime] = None
    entries: List[TimetableEntryResponse] = []

    class Config:
        from_attributes = True


class RemoveEntryResponse(BaseModel):
    message: str
    classes_removed: int
