# app/models/timetable.py
from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, Enum, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
from .base import Base
import enum


class DayOfWeek(enum.Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @property
    def offset(self) -> int:
        """Days after Monday."""
        return list(DayOfWeek).index(self)

    @property
    def label(self) -> str:
        return self.value.capitalize()


class ClassKind(enum.Enum):
    LECTURE = "lecture"
    LAB = "lab"
    TUTORIAL = "tutorial"
    PRACTICAL = "practical"
    EXTRA = "extra"


class Timetable(Base):
    __tablename__ = "timetables"

    batch_id = Column(Uuid, ForeignKey("batches.id"), nullable=False, index=True)
    section_id = Column(Uuid, ForeignKey("sections.id"), nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    last_updated = Column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint('batch_id', 'section_id', name='uq_timetable_batch_section'),
    )

    batch = relationship("Batch")
    entries = relationship(
        "TimetableEntry",
        back_populates="timetable",
        cascade="all, delete-orphan",
        order_by="TimetableEntry.start_time",
    )


class TimetableEntry(Base):
    __tablename__ = "timetable_entries"

    timetable_id = Column(Uuid, ForeignKey("timetables.id"), nullable=False, index=True)

    day_of_week = Column(Enum(DayOfWeek), nullable=False, index=True)
    start_time = Column(String(5), nullable=False)  # "HH:MM", civil time
    end_time = Column(String(5), nullable=False)
    subject_name = Column(String(100), nullable=False)
    room = Column(String(50), default="")
    kind = Column(Enum(ClassKind), default=ClassKind.LECTURE, nullable=False)
    teacher_name = Column(String(200))

    timetable = relationship("Timetable", back_populates="entries")
