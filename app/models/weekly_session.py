# app/models/weekly_session.py
from sqlalchemy import (
    Column, String, Integer, DateTime, Boolean, ForeignKey, Text, Enum, Date, Uuid,
    UniqueConstraint, Index, func,
)
from sqlalchemy.orm import relationship
from .base import Base
from .timetable import ClassKind
import enum


class SessionStatus(enum.Enum):
    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"
    COMPLETED = "completed"


class WeeklySession(Base):
    """Container of materialized classes for one batch/section and ISO week."""
    __tablename__ = "weekly_sessions"

    batch_id = Column(Uuid, ForeignKey("batches.id"), nullable=False, index=True)
    section_id = Column(Uuid, ForeignKey("sections.id"), nullable=False, index=True)
    # Null only for standalone containers of batches not yet linked to a college
    college_id = Column(Uuid, ForeignKey("colleges.id"), nullable=True, index=True)

    week_start = Column(DateTime(timezone=True), nullable=False)  # Monday 00:00 civil
    week_end = Column(DateTime(timezone=True), nullable=False)    # Sunday 23:59:59.999 civil
    iso_year = Column(Integer, nullable=False)
    iso_week = Column(Integer, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)
    generated_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint('batch_id', 'section_id', 'iso_year', 'iso_week', name='uq_weekly_session_week'),
    )

    classes = relationship("SessionClass", back_populates="weekly_session")


class SessionClass(Base):
    """One concrete, dated class occurrence."""
    __tablename__ = "session_classes"

    weekly_session_id = Column(Uuid, ForeignKey("weekly_sessions.id"), nullable=False, index=True)
    # Null for ad hoc extra classes; not a foreign key because template entries can be removed
    template_entry_id = Column(Uuid, nullable=True, index=True)

    title = Column(String(150))
    subject_id = Column(Uuid, ForeignKey("subjects.id"), nullable=False, index=True)
    batch_id = Column(Uuid, ForeignKey("batches.id"), nullable=False)
    section_id = Column(Uuid, ForeignKey("sections.id"), nullable=False)
    college_id = Column(Uuid, ForeignKey("colleges.id"), nullable=True)

    # Timing (wall-clock strings in the civil timezone)
    class_date = Column(Date, nullable=False)
    day_name = Column(String(10))
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)

    # Redundant civil date components used to rebuild the start instant
    day = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    date_string = Column(String(10), nullable=False, index=True)

    room = Column(String(50), default="")
    kind = Column(Enum(ClassKind), default=ClassKind.EXTRA, nullable=False)

    status = Column(Enum(SessionStatus), default=SessionStatus.SCHEDULED, nullable=False, index=True)
    is_extra_class = Column(Boolean, default=False, nullable=False)
    cancellation_reason = Column(Text)

    # Attendance marking
    is_marking_open = Column(Boolean, default=False, nullable=False)
    is_marking_done = Column(Boolean, default=False, nullable=False)
    marking_opened_at = Column(DateTime(timezone=True))
    marking_closed_at = Column(DateTime(timezone=True))

    __table_args__ = (
        # Overlap protection for every class, template-derived or ad hoc
        UniqueConstraint('batch_id', 'section_id', 'class_date', 'start_time', name='uq_session_class_slot'),
        # NULL template ids never collide, so this only binds template-derived rows
        UniqueConstraint(
            'weekly_session_id', 'template_entry_id', 'class_date', 'start_time',
            name='uq_session_class_template_slot',
        ),
        Index('ix_session_classes_week_date', 'weekly_session_id', 'class_date'),
    )

    weekly_session = relationship("WeeklySession", back_populates="classes")
    subject = relationship("Subject", lazy="joined")

    @property
    def subject_name(self):
        return self.subject.name if self.subject is not None else None
