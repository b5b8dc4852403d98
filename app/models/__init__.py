# app/models/__init__.py
"""Import all models here, if needed for Alembic migration."""
from .base import Base

# Reference data
from .academic import College, Batch, Section, Subject
from .user import User

# Weekly template
from .timetable import Timetable, TimetableEntry, DayOfWeek, ClassKind

# Materialized schedule
from .weekly_session import WeeklySession, SessionClass, SessionStatus
from .attendance import Attendance, AttendanceStatus
