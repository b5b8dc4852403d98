from . import health, weekly_sessions, timetable

__all__ = [
    "health",
    "weekly_sessions",
    "timetable"
]
