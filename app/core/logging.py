# app/core/logging.py
"""Logging configuration shared by the API and the Celery worker."""
import logging
import sys
from .config import settings

# Chatty libraries kept at WARNING unless debugging
NOISY_LOGGERS = ("sqlalchemy.engine", "celery.app.trace", "httpx")


def setup_logging(component: str = "api"):
    level = settings.log_level.upper()
    logging.basicConfig(
        level=level,
        format=f"%(asctime)s - {component} - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    if level != "DEBUG":
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"Logging configured for {component} ({settings.environment}, "
        f"civil time {settings.civil_timezone_name} UTC{settings.civil_utc_offset_minutes:+d}m)"
    )
