# app/core/exceptions.py
"""Custom exceptions for the schedule engine."""
from typing import Optional


class ScheduleException(Exception):
    """Base exception for schedule operations"""
    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundError(ScheduleException):
    """Session, template, subject or batch missing"""
    def __init__(self, resource: str, id: Optional[str] = None):
        message = f"{resource} not found"
        if id:
            message += f" with id: {id}"
        super().__init__(message, 404)


class InvalidTransitionError(ScheduleException):
    """Status not eligible for the transition, or the class already started"""
    def __init__(self, message: str):
        super().__init__(message, 409)


class ConflictError(ScheduleException):
    """Slot already taken or already materialized"""
    def __init__(self, message: str = "A class already exists in this slot"):
        super().__init__(message, 409)


class ScheduleValidationError(ScheduleException):
    """Malformed request values (times, dates)"""
    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message, 400)


class DependencyUnavailableError(ScheduleException):
    """Store, queue or cache unreachable"""
    def __init__(self, dependency: str, detail: Optional[str] = None):
        self.dependency = dependency
        message = f"{dependency} unavailable"
        if detail:
            message += f": {detail}"
        super().__init__(message, 503)
