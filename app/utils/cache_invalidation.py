"""Cache invalidation utilities."""
import logging
from datetime import date
from typing import List
from uuid import UUID

from ..core.cache import CacheManager
from .civil_calendar import monday_of
from .schedule_events import ScheduleChange

logger = logging.getLogger(__name__)


def week_cache_key(batch_id: UUID, section_id: UUID, monday: date) -> str:
    return CacheManager.make_key("week", batch_id, section_id, monday.isoformat())


def dashboard_cache_keys(user_id: UUID, class_dates: List[date]) -> List[str]:
    """Every cached view of a student's schedule that a class change can stale."""
    keys = [CacheManager.make_key("dashboard", user_id, d.isoformat()) for d in class_dates]
    keys.append(CacheManager.make_key("active_class", user_id))
    keys.append(CacheManager.make_key("stats", user_id))
    return keys


class ScheduleCacheInvalidator:
    """Post-commit hook dropping the cached week views of a batch/section and its roster's dashboards."""

    def __init__(self, cache: CacheManager, recipients):
        self.cache = cache
        self.recipients = recipients

    async def __call__(self, change: ScheduleChange) -> int:
        dates = sorted(set(change.class_dates))
        keys = sorted({week_cache_key(change.batch_id, change.section_id, monday_of(d)) for d in dates})

        roster = await self.recipients.roster_ids(change.batch_id, change.section_id)
        for user_id in roster:
            keys.extend(dashboard_cache_keys(user_id, dates))

        if not keys:
            return 0
        removed = await self.cache.delete(*keys)
        logger.debug(
            f"Invalidated {removed} cache keys for {len(roster)} users "
            f"({change.action}, section {change.section_id})"
        )
        return removed
