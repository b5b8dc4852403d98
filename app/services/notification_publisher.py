# app/services/notification_publisher.py
"""Publishes typed notification events to the delivery service's queue.

The delivery service (push/email) consumes ``settings.notification_task_name``
from ``settings.notification_queue``. Payload keys follow that consumer's wire
format. Publishing never raises: a lost notification must not undo a schedule
change that already committed.
"""
import asyncio
import enum
import logging
from typing import Any, Dict, Optional

from celery import Celery

from ..core.config import settings

logger = logging.getLogger(__name__)


class NotificationType(str, enum.Enum):
    CLASS_ADDED = "CLASS_ADDED"
    CLASS_CANCELLED = "CLASS_CANCELLED"
    CLASS_RESCHEDULED = "CLASS_RESCHEDULED"
    CLASS_REMINDER = "CLASS_REMINDER"
    DAILY_BRIEFING = "DAILY_BRIEFING"


class NotificationPublisher:
    def __init__(self, celery_app: Optional[Celery] = None):
        if celery_app is None:
            from celery_worker import celery_app as default_app
            celery_app = default_app
        self.celery_app = celery_app

    def _send(self, event_type: str, payload: Dict[str, Any]):
        return self.celery_app.send_task(
            settings.notification_task_name,
            kwargs={"type": event_type, "payload": payload},
            queue=settings.notification_queue,
            retry=True,
            retry_policy={
                "max_retries": settings.notification_max_retries,
                "interval_start": 1,
                "interval_step": 2,
                "interval_max": 10,
            },
        )

    async def publish(self, event_type: NotificationType, payload: Dict[str, Any]) -> bool:
        try:
            await asyncio.to_thread(self._send, event_type.value, payload)
            logger.info(f"Notification event published: {event_type.value}")
            return True
        except Exception as e:
            logger.error(f"Error publishing {event_type.value} notification: {e}")
            return False
