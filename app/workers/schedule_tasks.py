# app/workers/schedule_tasks.py
"""Celery tasks for the time-triggered side of the schedule.

Each task runs its coroutine with ``asyncio.run`` on a fresh event loop, so it
opens its own database session on the background engine and its own Redis
connection, and closes both before returning.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional
from uuid import UUID

from kombu.exceptions import OperationalError
from sqlalchemy.exc import SQLAlchemyError

from celery_worker import celery_app
from ..core.cache import CacheManager
from ..core.config import settings
from ..core.database import AsyncBackgroundSessionLocal
from ..core.delayed_queue import RedisDelayedQueue
from ..core.dependencies import build_schedule_services
from ..core.exceptions import DependencyUnavailableError
from ..services.notification_publisher import NotificationPublisher
from ..services.reminder_service import ReminderService
from ..utils.civil_calendar import monday_of, utc_now

logger = logging.getLogger(__name__)


async def _run_with_services(operation):
    queue = RedisDelayedQueue.from_url(settings.redis_url)
    cache = CacheManager(url=settings.redis_url)
    try:
        async with AsyncBackgroundSessionLocal() as db:
            services = build_schedule_services(db, queue, NotificationPublisher(celery_app), cache=cache)
            return await operation(services)
    finally:
        await cache.disconnect()
        await queue.close()


@celery_app.task(name="schedule.generate_weekly_sessions")
def generate_weekly_sessions(reference: Optional[str] = None) -> Dict[str, Any]:
    """Materialize the coming week (or the week of ``reference``, an ISO date)."""
    target = reference or (monday_of(utc_now()) + timedelta(days=7)).isoformat()
    logger.info(f"Running weekly session generation for {target}")
    return asyncio.run(_run_with_services(lambda s: s.sessions.generate_for_week(target)))


@celery_app.task(name="schedule.send_daily_briefings")
def send_daily_briefings() -> Dict[str, Any]:
    logger.info("Running daily briefing job")
    return asyncio.run(_run_with_services(lambda s: s.briefings.send_daily_briefings()))


async def hand_off_due_reminders(
    queue,
    send: Callable[[str, int], Any],
    limit: int = 100,
    clock: Callable[[], datetime] = utc_now,
) -> int:
    """Claim due triggers and pass each to ``send``; returns how many were handed off.

    A trigger is acked only after ``send`` returns. When the broker is down the
    current trigger and the rest of the batch go back to the queue.
    """
    due = await ReminderService(queue, clock=clock).dispatch_due(limit=limit)
    handed_off = 0
    for index, (key, payload) in enumerate(due):
        try:
            send(payload["class_id"], payload["offset_minutes"])
        except OperationalError as e:
            logger.error(f"Broker unavailable, returning {len(due) - index} reminders to the queue: {e}")
            for pending_key, _ in due[index:]:
                await queue.release(pending_key, clock())
            break
        await queue.ack(key)
        handed_off += 1
    return handed_off


async def _poll_due_reminders(limit: int) -> int:
    queue = RedisDelayedQueue.from_url(settings.redis_url)
    try:
        return await hand_off_due_reminders(queue, fire_class_reminder.delay, limit=limit)
    finally:
        await queue.close()


@celery_app.task(name="schedule.poll_due_reminders")
def poll_due_reminders(limit: int = 100) -> int:
    """Hand every due reminder trigger to ``fire_class_reminder``."""
    handed_off = asyncio.run(_poll_due_reminders(limit))
    if handed_off:
        logger.info(f"Dispatched {handed_off} due reminders")
    return handed_off


@celery_app.task(
    bind=True,
    name="schedule.fire_class_reminder",
    max_retries=settings.reminder_max_retries,
    default_retry_delay=settings.reminder_retry_delay_seconds,
)
def fire_class_reminder(self, class_id: str, offset_minutes: int):
    try:
        payload = asyncio.run(
            _run_with_services(lambda s: s.dispatcher.fire(UUID(class_id), int(offset_minutes)))
        )
    except (SQLAlchemyError, DependencyUnavailableError) as exc:
        logger.error(f"Reminder [{offset_minutes}m] for class {class_id} failed: {exc}")
        raise self.retry(exc=exc)
    return payload is not None
