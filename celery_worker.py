from celery import Celery
from celery.schedules import crontab

from app.core.config import settings
from app.core.logging import setup_logging
from app.utils.civil_calendar import civil_time_to_utc

setup_logging("worker")

# Celery configuration
celery_app = Celery(
    "college_schedule",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["app.workers.schedule_tasks"]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
)

# Beat runs in UTC; civil wall times are converted with the fixed offset
_gen_day, _gen_hour, _gen_minute = civil_time_to_utc(
    settings.weekly_generation_day_of_week,
    settings.weekly_generation_hour,
    settings.weekly_generation_minute,
)
_brief_day, _brief_hour, _brief_minute = civil_time_to_utc(
    0, settings.daily_briefing_hour, settings.daily_briefing_minute
)

celery_app.conf.beat_schedule = {
    "generate-weekly-sessions": {
        "task": "schedule.generate_weekly_sessions",
        # celery counts days from Sunday=0, civil_time_to_utc from Monday=0
        "schedule": crontab(minute=_gen_minute, hour=_gen_hour, day_of_week=(_gen_day + 1) % 7),
    },
    "send-daily-briefings": {
        "task": "schedule.send_daily_briefings",
        "schedule": crontab(minute=_brief_minute, hour=_brief_hour),
    },
    "poll-due-reminders": {
        "task": "schedule.poll_due_reminders",
        "schedule": float(settings.reminder_poll_seconds),
    },
}
