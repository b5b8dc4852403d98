from datetime import date
from uuid import uuid4

from app.core.dependencies import build_schedule_services
from app.utils.cache_invalidation import dashboard_cache_keys
from app.utils.schedule_events import PostCommitHooks, ScheduleChange

from conftest import WEEK_MONDAY, only_class


def test_dashboard_cache_keys():
    user_id = uuid4()

    keys = dashboard_cache_keys(user_id, [date(2025, 6, 2), date(2025, 6, 3)])

    assert keys == [
        f"dashboard:{user_id}:2025-06-02",
        f"dashboard:{user_id}:2025-06-03",
        f"active_class:{user_id}",
        f"stats:{user_id}",
    ]


async def test_failing_hook_does_not_block_the_others():
    seen = []

    async def broken(change):
        raise RuntimeError("cache down")

    async def recorder(change):
        seen.append(change.action)

    hooks = PostCommitHooks([broken])
    hooks.register(recorder)

    failures = await hooks.run(ScheduleChange("cancelled", uuid4(), uuid4(), [date(2025, 6, 2)]))

    assert failures == 1
    assert seen == ["cancelled"]


async def test_cancel_invalidates_roster_dashboards(db, seed, queue, publisher, clock, cache, fake_redis):
    services = build_schedule_services(db, queue, publisher, cache=cache, clock=clock)
    await services.sessions.generate_for_week(WEEK_MONDAY)
    cls = await only_class(services, seed)

    stale = [
        f"dashboard:{seed.student_id}:2025-06-02",
        f"active_class:{seed.student_id}",
        f"stats:{seed.other_student_id}",
    ]
    for key in stale:
        await cache.set(key, {"classes": []})
    await cache.set(f"dashboard:{seed.student_id}:2025-06-09", {"classes": []})

    await services.changes.cancel_class(cls.id, "Holiday")

    for key in stale:
        assert await fake_redis.exists(key) == 0
    assert await fake_redis.exists(f"dashboard:{seed.student_id}:2025-06-09") == 1


async def test_generation_invalidates_generated_dates(db, seed, queue, publisher, clock, cache, fake_redis):
    services = build_schedule_services(db, queue, publisher, cache=cache, clock=clock)
    await cache.set(f"dashboard:{seed.student_id}:2025-06-02", {"classes": []})

    await services.sessions.generate_for_week(WEEK_MONDAY)

    assert await fake_redis.exists(f"dashboard:{seed.student_id}:2025-06-02") == 0
