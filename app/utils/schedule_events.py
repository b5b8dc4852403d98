# app/utils/schedule_events.py
"""Post-commit hooks fired after every schedule mutation."""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Awaitable, Callable, List, Optional
from uuid import UUID

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScheduleChange:
    action: str  # generated / cancelled / rescheduled / added / deleted / purged
    batch_id: UUID
    section_id: UUID
    class_dates: List[date] = field(default_factory=list)
    session_class_id: Optional[UUID] = None


ScheduleHook = Callable[[ScheduleChange], Awaitable[object]]


class PostCommitHooks:
    """Runs each hook best-effort; a failing hook is logged and the rest still run."""

    def __init__(self, hooks: Optional[List[ScheduleHook]] = None):
        self.hooks: List[ScheduleHook] = list(hooks or [])

    def register(self, hook: ScheduleHook) -> None:
        self.hooks.append(hook)

    async def run(self, change: ScheduleChange) -> int:
        failures = 0
        for hook in self.hooks:
            try:
                await hook(change)
            except Exception as e:
                failures += 1
                logger.error(
                    f"Post-commit hook {getattr(hook, '__name__', type(hook).__name__)} failed "
                    f"for {change.action} on batch {change.batch_id}: {e}"
                )
        return failures
