from datetime import date
from uuid import uuid4

import pytest
from sqlalchemy import select

from app.core.exceptions import NotFoundError, ScheduleValidationError
from app.models import SessionClass, SessionStatus, DayOfWeek

from conftest import WEEK_MONDAY, civil


@pytest.fixture
async def monday_morning(services, seed, clock):
    """Monday 08:00 of the seeded week, with that week generated."""
    clock.set(civil(2025, 6, 2, 8, 0))
    await services.sessions.generate_for_week(WEEK_MONDAY)
    week = await services.sessions.get_session_for_week(seed.batch_id, seed.section_id, WEEK_MONDAY)
    return week["classes"][0].id


async def week_slots(db, seed):
    result = await db.execute(
        select(SessionClass)
        .where(SessionClass.batch_id == seed.batch_id)
        .order_by(SessionClass.class_date, SessionClass.start_time)
        .execution_options(populate_existing=True)
    )
    return [(c.class_date, c.start_time, c.status) for c in result.unique().scalars().all()]


async def test_update_entry_replaces_future_classes(services, seed, db, queue, monday_morning):
    entry = await services.timetables.update_entry(
        seed.timetable_id, seed.entry_id, {"start_time": "11:00", "end_time": "12:00"}
    )

    assert (entry.start_time, entry.end_time) == ("11:00", "12:00")
    assert await week_slots(db, seed) == [(WEEK_MONDAY, "11:00", SessionStatus.SCHEDULED)]
    assert queue.keys_for(monday_morning) == []


async def test_update_entry_leaves_started_classes(services, seed, db, clock, monday_morning):
    clock.set(civil(2025, 6, 2, 10, 30))

    await services.timetables.update_entry(
        seed.timetable_id, seed.entry_id, {"start_time": "11:00", "end_time": "12:00"}
    )

    assert await week_slots(db, seed) == [
        (WEEK_MONDAY, "10:00", SessionStatus.SCHEDULED),
        (WEEK_MONDAY, "11:00", SessionStatus.SCHEDULED),
    ]


async def test_update_entry_leaves_marking_open_classes(services, seed, db, monday_morning):
    cls = await services.changes.repository.get_session_class(monday_morning)
    cls.is_marking_open = True
    await db.commit()

    await services.timetables.update_entry(seed.timetable_id, seed.entry_id, {"room": "LT-9"})

    result = await db.execute(select(SessionClass).where(SessionClass.id == monday_morning))
    assert result.unique().scalar_one().room == "LT-1"


async def test_update_entry_leaves_cancelled_classes(services, seed, db, monday_morning):
    await services.changes.cancel_class(monday_morning, "Holiday")

    await services.timetables.update_entry(seed.timetable_id, seed.entry_id, {"room": "LT-9"})

    slots = await week_slots(db, seed)
    assert slots == [(WEEK_MONDAY, "10:00", SessionStatus.CANCELLED)]


async def test_update_entry_validates_times(services, seed, monday_morning):
    with pytest.raises(ScheduleValidationError):
        await services.timetables.update_entry(seed.timetable_id, seed.entry_id, {"end_time": "09:00"})


async def test_remove_entry_purges_future_classes(services, seed, db, queue, monday_morning):
    removed = await services.timetables.remove_entry(seed.timetable_id, seed.entry_id)

    assert removed == 1
    assert await week_slots(db, seed) == []
    assert queue.keys_for(monday_morning) == []

    timetable = await services.timetables.get_timetable(seed.timetable_id)
    assert timetable.entries == []


async def test_remove_entry_of_another_timetable(services, seed, monday_morning):
    with pytest.raises(NotFoundError):
        await services.timetables.remove_entry(uuid4(), seed.entry_id)


async def test_replace_schedule_regenerates_the_rest_of_the_week(services, seed, db, monday_morning):
    await services.changes.add_extra_class(
        seed.batch_id, seed.section_id, seed.subject_id, date(2025, 6, 5), "16:00", "17:00"
    )

    timetable = await services.timetables.replace_schedule(seed.timetable_id, [
        {"day_of_week": DayOfWeek.MONDAY, "start_time": "15:00", "end_time": "16:00", "subject_name": "DSA"},
        {"day_of_week": "tuesday", "start_time": "09:00", "end_time": "10:00", "subject_name": "DSA"},
    ])

    assert len(timetable.entries) == 2
    assert await week_slots(db, seed) == [
        (date(2025, 6, 2), "15:00", SessionStatus.SCHEDULED),
        (date(2025, 6, 3), "09:00", SessionStatus.SCHEDULED),
        (date(2025, 6, 5), "16:00", SessionStatus.SCHEDULED),
    ]


async def test_add_entry_materializes_this_week(services, seed, db, monday_morning):
    entry = await services.timetables.add_entry(seed.timetable_id, {
        "day_of_week": DayOfWeek.WEDNESDAY,
        "start_time": "12:00",
        "end_time": "13:00",
        "subject_name": "DSA",
        "room": "LT-3",
    })

    assert entry.timetable_id == seed.timetable_id
    slots = await week_slots(db, seed)
    assert (date(2025, 6, 4), "12:00", SessionStatus.SCHEDULED) in slots
    assert len(slots) == 2


async def test_add_entry_validates_times(services, seed, monday_morning):
    with pytest.raises(ScheduleValidationError):
        await services.timetables.add_entry(seed.timetable_id, {
            "day_of_week": DayOfWeek.WEDNESDAY,
            "start_time": "12:00",
            "end_time": "11:00",
            "subject_name": "DSA",
        })


async def test_sunday_edit_keeps_the_generated_coming_week(services, seed, db):
    # Default clock is Sunday noon, the day before the seeded week
    await services.sessions.generate_for_week(WEEK_MONDAY)

    await services.timetables.update_entry(seed.timetable_id, seed.entry_id, {"room": "LT-2"})

    assert await week_slots(db, seed) == [(WEEK_MONDAY, "10:00", SessionStatus.SCHEDULED)]
    week = await services.sessions.get_session_for_week(seed.batch_id, seed.section_id, WEEK_MONDAY)
    [cls] = week["classes"]
    assert cls.room == "LT-2"


async def test_update_entry_rebuilds_every_purged_week(services, seed, db, monday_morning):
    await services.sessions.generate_for_week(date(2025, 6, 9))

    await services.timetables.update_entry(
        seed.timetable_id, seed.entry_id, {"start_time": "11:00", "end_time": "12:00"}
    )

    assert await week_slots(db, seed) == [
        (WEEK_MONDAY, "11:00", SessionStatus.SCHEDULED),
        (date(2025, 6, 9), "11:00", SessionStatus.SCHEDULED),
    ]


async def test_add_entry_reaches_weeks_generated_ahead(services, seed, db):
    await services.sessions.generate_for_week(WEEK_MONDAY)

    await services.timetables.add_entry(seed.timetable_id, {
        "day_of_week": DayOfWeek.WEDNESDAY,
        "start_time": "12:00",
        "end_time": "13:00",
        "subject_name": "DSA",
    })

    assert await week_slots(db, seed) == [
        (WEEK_MONDAY, "10:00", SessionStatus.SCHEDULED),
        (date(2025, 6, 4), "12:00", SessionStatus.SCHEDULED),
    ]


async def test_replace_schedule_reaches_weeks_generated_ahead(services, seed, db):
    await services.sessions.generate_for_week(WEEK_MONDAY)

    await services.timetables.replace_schedule(seed.timetable_id, [
        {"day_of_week": "tuesday", "start_time": "09:00", "end_time": "10:00", "subject_name": "DSA"},
    ])

    assert await week_slots(db, seed) == [(date(2025, 6, 3), "09:00", SessionStatus.SCHEDULED)]
