# app/models/attendance.py
from sqlalchemy import Column, DateTime, ForeignKey, Enum, Uuid, UniqueConstraint, func
from .base import Base
import enum


class AttendanceStatus(enum.Enum):
    PRESENT = "present"
    ABSENT = "absent"
    LATE = "late"
    EXCUSED = "excused"


class Attendance(Base):
    __tablename__ = "attendances"

    # RESTRICT keeps classes with attendance from being hard-deleted
    session_class_id = Column(
        Uuid, ForeignKey("session_classes.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    student_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(Enum(AttendanceStatus), default=AttendanceStatus.PRESENT, nullable=False)
    marked_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint('session_class_id', 'student_id', name='uq_attendance_per_class_student'),
    )
