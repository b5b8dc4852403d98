from datetime import date

import pytest
from sqlalchemy import select

from app.core.exceptions import (
    ConflictError, InvalidTransitionError, NotFoundError, ScheduleValidationError,
)
from app.models import Attendance, SessionClass, SessionStatus
from app.models.timetable import ClassKind
from app.services.notification_publisher import NotificationType
from app.services.schedule_change_service import reschedule_type

from conftest import WEEK_MONDAY, civil, create_batch, only_class


@pytest.fixture
async def scheduled(services, seed):
    await services.sessions.generate_for_week(WEEK_MONDAY)
    return await only_class(services, seed)


async def test_cancel_before_start_succeeds(services, scheduled, clock, queue, publisher):
    clock.set(civil(2025, 6, 2, 9, 58))
    class_id = scheduled.id

    cancelled = await services.changes.cancel_class(class_id, "Faculty on leave")

    assert cancelled.status == SessionStatus.CANCELLED
    assert cancelled.cancellation_reason == "Faculty on leave"
    assert queue.keys_for(class_id) == []

    [event] = publisher.of_type(NotificationType.CLASS_CANCELLED)
    assert event["title"] == "Class Cancelled"
    assert event["subjectName"] == "DSA"
    assert event["date"] == "Monday, Jun 2"
    assert event["time"] == "10:00 - 11:00"
    assert event["reason"] == "Faculty on leave"


async def test_cancel_after_start_is_rejected(services, scheduled, clock, publisher):
    clock.set(civil(2025, 6, 2, 10, 1))

    with pytest.raises(InvalidTransitionError):
        await services.changes.cancel_class(scheduled.id, "Too late")

    assert publisher.events == []


async def test_cancel_twice_is_rejected(services, scheduled):
    await services.changes.cancel_class(scheduled.id, "First")

    with pytest.raises(InvalidTransitionError):
        await services.changes.cancel_class(scheduled.id, "Second")


async def test_cancel_unknown_class(services, seed):
    from uuid import uuid4

    with pytest.raises(NotFoundError):
        await services.changes.cancel_class(uuid4(), "Nope")


async def test_reschedule_creates_new_row_and_retires_old(services, scheduled, queue, publisher):
    old_id = scheduled.id

    moved = await services.changes.reschedule_class(old_id, date(2025, 6, 3), "14:00", "15:00", "LT-2")

    assert moved.id != old_id
    assert moved.class_date == date(2025, 6, 3)
    assert (moved.start_time, moved.end_time, moved.room) == ("14:00", "15:00", "LT-2")
    assert moved.status == SessionStatus.SCHEDULED
    assert moved.is_extra_class is True
    assert moved.template_entry_id == scheduled.template_entry_id
    assert moved.subject_id == scheduled.subject_id
    assert moved.weekly_session_id == scheduled.weekly_session_id
    assert (moved.day, moved.month, moved.year) == (3, 6, 2025)

    old = await services.changes.repository.get_session_class(old_id)
    assert old.status == SessionStatus.RESCHEDULED
    assert "Tuesday, Jun 3" in old.cancellation_reason

    assert queue.keys_for(old_id) == []
    assert len(queue.keys_for(moved.id)) == 3

    [event] = publisher.of_type(NotificationType.CLASS_RESCHEDULED)
    assert event["title"] == "Class Rescheduled"
    assert event["rescheduleType"] == "Postponed"
    assert event["oldDate"] == "Mon, 6/2"
    assert event["oldTime"] == "10:00"
    assert event["newDate"] == "Tuesday, Jun 3"
    assert event["newTime"] == "14:00 - 15:00"


async def test_reschedule_earlier_is_preponed(services, scheduled, publisher):
    await services.changes.reschedule_class(scheduled.id, WEEK_MONDAY, "08:00", "09:00")

    [event] = publisher.of_type(NotificationType.CLASS_RESCHEDULED)
    assert event["rescheduleType"] == "Preponed"


async def test_reschedule_into_next_week_generates_that_week(services, seed, scheduled, clock):
    clock.set(civil(2025, 6, 2, 9, 0))

    moved = await services.changes.reschedule_class(scheduled.id, date(2025, 6, 9), "14:00", "15:00")

    assert moved.weekly_session_id != scheduled.weekly_session_id
    week = await services.sessions.get_session_for_week(seed.batch_id, seed.section_id, date(2025, 6, 9))
    assert week["session"].iso_week == 24
    # The template class of the new week plus the moved class
    assert [(c.class_date, c.start_time) for c in week["classes"]] == [
        (date(2025, 6, 9), "10:00"),
        (date(2025, 6, 9), "14:00"),
    ]


async def test_reschedule_into_taken_slot_conflicts_and_keeps_original(services, seed, scheduled, publisher):
    class_id = scheduled.id
    await services.changes.add_extra_class(
        seed.batch_id, seed.section_id, seed.subject_id, date(2025, 6, 3), "14:00", "15:00"
    )

    with pytest.raises(ConflictError):
        await services.changes.reschedule_class(class_id, date(2025, 6, 3), "14:00", "15:00")

    original = await services.changes.repository.get_session_class(class_id)
    assert original.status == SessionStatus.SCHEDULED
    assert publisher.of_type(NotificationType.CLASS_RESCHEDULED) == []


async def test_extra_class_in_a_cancelled_slot_says_so(services, seed, scheduled):
    await services.changes.cancel_class(scheduled.id, "Holiday")

    with pytest.raises(ConflictError) as exc_info:
        await services.changes.add_extra_class(
            seed.batch_id, seed.section_id, seed.subject_id, date(2025, 6, 2), "10:00", "11:00"
        )

    assert exc_info.value.status_code == 409
    assert "held by a cancelled class" in exc_info.value.message


async def test_reschedule_started_class_is_rejected(services, scheduled, clock):
    clock.set(civil(2025, 6, 2, 10, 5))

    with pytest.raises(InvalidTransitionError):
        await services.changes.reschedule_class(scheduled.id, date(2025, 6, 4), "14:00", "15:00")


@pytest.mark.parametrize("new_date, start, end, field", [
    (date(2025, 6, 3), "15:00", "14:00", "end_time"),
    (date(2025, 6, 3), "2pm", "15:00", "start_time"),
    (date(2025, 6, 1), "09:00", "10:00", "date"),
    (date(2025, 6, 12), "09:00", "10:00", "date"),
])
async def test_reschedule_validates_the_new_slot(services, scheduled, new_date, start, end, field):
    with pytest.raises(ScheduleValidationError) as exc_info:
        await services.changes.reschedule_class(scheduled.id, new_date, start, end)

    assert exc_info.value.field == field


async def test_add_extra_class_creates_standalone_week(services, seed, db, clock, queue, publisher):
    clock.set(civil(2025, 6, 5, 9, 0))
    batch_id, section_id, subjects = await create_batch(
        db, college_id=seed.college_id, name="MBA 2025", subjects=("Algebra",)
    )

    added = await services.changes.add_extra_class(
        batch_id, section_id, subjects["Algebra"], date(2025, 6, 10), "11:00", "12:00", room="B-12"
    )

    assert added.class_date == date(2025, 6, 10)
    assert added.is_extra_class is True
    assert added.template_entry_id is None
    assert added.status == SessionStatus.SCHEDULED
    assert added.title == "Algebra (Extra)"
    assert added.kind == ClassKind.EXTRA
    assert added.college_id == seed.college_id
    assert len(queue.keys_for(added.id)) == 3

    week = await services.sessions.get_session_for_week(batch_id, section_id, date(2025, 6, 10))
    assert week["session"].iso_week == 24
    assert [c.id for c in week["classes"]] == [added.id]

    [event] = publisher.of_type(NotificationType.CLASS_ADDED)
    assert event["title"] == "New Class Added"
    assert event["body"] == "Algebra on Tuesday, Jun 10 at 11:00 - 12:00"


async def test_add_extra_class_unknown_subject(services, seed):
    from uuid import uuid4

    with pytest.raises(NotFoundError):
        await services.changes.add_extra_class(
            seed.batch_id, seed.section_id, uuid4(), date(2025, 6, 3), "14:00", "15:00"
        )


async def test_delete_with_attendance_is_refused(services, seed, scheduled, db):
    db.add(Attendance(session_class_id=scheduled.id, student_id=seed.student_id))
    await db.commit()

    with pytest.raises(InvalidTransitionError):
        await services.changes.delete_session_class(scheduled.id)

    assert await services.changes.repository.get_session_class(scheduled.id) is not None


async def test_delete_while_marking_open_is_refused(services, scheduled, db):
    scheduled.is_marking_open = True
    await db.commit()

    with pytest.raises(InvalidTransitionError):
        await services.changes.delete_session_class(scheduled.id)


async def test_delete_rescheduled_record_is_refused(services, scheduled):
    await services.changes.reschedule_class(scheduled.id, date(2025, 6, 3), "14:00", "15:00")

    with pytest.raises(InvalidTransitionError):
        await services.changes.delete_session_class(scheduled.id)


async def test_delete_future_class(services, scheduled, db, queue, publisher):
    class_id = scheduled.id

    result = await services.changes.delete_session_class(class_id)

    assert result["message"] == "Class deleted successfully"
    rows = await db.execute(select(SessionClass).where(SessionClass.id == class_id))
    assert rows.scalar_one_or_none() is None
    assert queue.keys_for(class_id) == []

    [event] = publisher.of_type(NotificationType.CLASS_CANCELLED)
    assert event["title"] == "Class Removed"


def test_reschedule_type():
    assert reschedule_type(civil(2025, 6, 2, 10), civil(2025, 6, 2, 11)) == "Postponed"
    assert reschedule_type(civil(2025, 6, 2, 10), civil(2025, 6, 2, 9)) == "Preponed"
    assert reschedule_type(civil(2025, 6, 2, 10), civil(2025, 6, 2, 10)) == "Rescheduled"
