# app/schemas/weekly_session_schemas.py
from typing import Optional, List, Dict, Any
from datetime import date, datetime
from uuid import UUID
from pydantic import BaseModel, Field

from ..models.timetable import ClassKind
from ..models.weekly_session import SessionStatus

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class GenerateWeekRequest(BaseModel):
    reference_date: Optional[date] = None
    batch_id: Optional[UUID] = None
    section_id: Optional[UUID] = None


class GenerationError(BaseModel):
    timetable_id: str
    error: str


class GenerateWeekResponse(BaseModel):
    iso_year: int
    iso_week: int
    week_start: str
    week_end: str
    sessions_touched: int
    classes_created: int
    classes_existing: int
    skipped_entries: int
    errors: List[GenerationError] = []


class CancelClassRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class RescheduleClassRequest(BaseModel):
    new_date: date
    new_start_time: str = Field(..., pattern=TIME_PATTERN)
    new_end_time: str = Field(..., pattern=TIME_PATTERN)
    room: Optional[str] = Field(default=None, max_length=50)


class ExtraClassRequest(BaseModel):
    batch_id: UUID
    section_id: UUID
    subject_id: UUID
    date: date
    start_time: str = Field(..., pattern=TIME_PATTERN)
    end_time: str = Field(..., pattern=TIME_PATTERN)
    room: Optional[str] = Field(default=None, max_length=50)
    kind: ClassKind = ClassKind.EXTRA


class SessionClassResponse(BaseModel):
    id: UUID
    weekly_session_id: UUID
    template_entry_id: Optional[UUID] = None
    title: Optional[str] = None
    subject_id: UUID
    subject_name: Optional[str] = None
    batch_id: UUID
    section_id: UUID
    class_date: date
    day_name: Optional[str] = None
    start_time: str
    end_time: str
    date_string: str
    room: Optional[str] = None
    kind: ClassKind
    status: SessionStatus
    is_extra_class: bool
    is_marking_open: bool
    is_marking_done: bool
    cancellation_reason: Optional[str] = None

    class Config:
        from_attributes = True


class WeeklySessionResponse(BaseModel):
    id: UUID
    batch_id: UUID
    section_id: UUID
    college_id: Optional[UUID] = None
    week_start: datetime
    week_end: datetime
    iso_year: int
    iso_week: int

    class Config:
        from_attributes = True


class WeekScheduleResponse(BaseModel):
    session: WeeklySessionResponse
    classes: List[SessionClassResponse]


class DeleteClassResponse(BaseModel):
    message: str
    id: str
