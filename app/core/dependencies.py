# app/core/dependencies.py
"""Builds the schedule services for a request or a background task."""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .cache import CacheManager, get_cache
from .config import settings
from .database import get_db
from .delayed_queue import RedisDelayedQueue
from ..services.daily_briefing_service import DailyBriefingService
from ..services.lookups import RecipientLookup
from ..services.notification_publisher import NotificationPublisher
from ..services.reminder_service import ReminderService, ReminderDispatcher
from ..services.schedule_change_service import ScheduleChangeService
from ..services.timetable_service import TimetableService
from ..services.weekly_session_service import WeeklySessionService
from ..utils.cache_invalidation import ScheduleCacheInvalidator
from ..utils.civil_calendar import utc_now
from ..utils.schedule_events import PostCommitHooks

_delayed_queue: Optional[RedisDelayedQueue] = None
_publisher: Optional[NotificationPublisher] = None


@dataclass
class ScheduleServices:
    sessions: WeeklySessionService
    changes: ScheduleChangeService
    timetables: TimetableService
    reminders: ReminderService
    dispatcher: ReminderDispatcher
    briefings: DailyBriefingService


def build_schedule_services(
    db: AsyncSession,
    queue,
    publisher: NotificationPublisher,
    cache: Optional[CacheManager] = None,
    clock: Callable[[], datetime] = utc_now,
) -> ScheduleServices:
    recipients = RecipientLookup(db)
    hooks = PostCommitHooks()
    if cache is not None:
        hooks.register(ScheduleCacheInvalidator(cache, recipients))

    reminders = ReminderService(queue, offsets=settings.reminder_offsets, clock=clock)
    sessions = WeeklySessionService(db, reminders, hooks=hooks, clock=clock)
    return ScheduleServices(
        sessions=sessions,
        changes=ScheduleChangeService(db, sessions, reminders, publisher, hooks=hooks, clock=clock),
        timetables=TimetableService(db, sessions, reminders, hooks=hooks, clock=clock),
        reminders=reminders,
        dispatcher=ReminderDispatcher(db, publisher, recipients=recipients, clock=clock),
        briefings=DailyBriefingService(db, sessions, publisher, recipients=recipients, clock=clock),
    )


def get_delayed_queue() -> RedisDelayedQueue:
    global _delayed_queue
    if _delayed_queue is None:
        _delayed_queue = RedisDelayedQueue.from_url(settings.redis_url)
    return _delayed_queue


def get_publisher() -> NotificationPublisher:
    global _publisher
    if _publisher is None:
        _publisher = NotificationPublisher()
    return _publisher


def get_clock() -> Callable[[], datetime]:
    return utc_now


async def close_delayed_queue():
    global _delayed_queue
    if _delayed_queue is not None:
        await _delayed_queue.close()
        _delayed_queue = None


async def get_schedule_services(
    db: AsyncSession = Depends(get_db),
    queue: RedisDelayedQueue = Depends(get_delayed_queue),
    publisher: NotificationPublisher = Depends(get_publisher),
    cache: CacheManager = Depends(get_cache),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> ScheduleServices:
    return build_schedule_services(db, queue, publisher, cache=cache, clock=clock)
