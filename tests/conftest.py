from datetime import date, datetime, timedelta
from types import SimpleNamespace

import pytest
from fakeredis import aioredis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.cache import CacheManager
from app.core.dependencies import build_schedule_services
from app.models import (
    Base, College, Batch, Section, Subject, User, Timetable, TimetableEntry, DayOfWeek, ClassKind,
)
from app.utils.civil_calendar import CIVIL_TZ

# Monday of ISO week 23, 2025
WEEK_MONDAY = date(2025, 6, 2)


def civil(year, month, day, hour=0, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=CIVIL_TZ)


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime):
        self.now = now


class InMemoryDelayedQueue:
    def __init__(self, lease=timedelta(minutes=5)):
        self.jobs = {}
        self.leased = {}
        self.lease = lease

    async def schedule(self, key, fire_at, payload):
        self.leased.pop(key, None)
        self.jobs[key] = (fire_at, payload)

    async def cancel(self, key):
        leased = self.leased.pop(key, None) is not None
        return self.jobs.pop(key, None) is not None or leased

    async def get(self, key):
        job = self.jobs.get(key)
        if job is None:
            return None
        return {"fire_at": job[0], "payload": job[1]}

    async def claim_due(self, now, limit=100):
        for key, (deadline, payload) in list(self.leased.items()):
            if deadline <= now:
                del self.leased[key]
                self.jobs[key] = (now, payload)
        due = sorted((fire_at, key) for key, (fire_at, _) in self.jobs.items() if fire_at <= now)[:limit]
        claimed = []
        for _, key in due:
            payload = self.jobs.pop(key)[1]
            self.leased[key] = (now + self.lease, payload)
            claimed.append((key, payload))
        return claimed

    async def ack(self, key):
        self.leased.pop(key, None)

    async def release(self, key, retry_at):
        job = self.leased.pop(key, None)
        if job is None:
            return False
        self.jobs[key] = (retry_at, job[1])
        return True

    def keys_for(self, class_id):
        return sorted(key for key in self.jobs if key.endswith(f":{class_id}"))


class RecordingPublisher:
    def __init__(self):
        self.events = []

    async def publish(self, event_type, payload):
        self.events.append((event_type, payload))
        return True

    def of_type(self, event_type):
        return [payload for t, payload in self.events if t == event_type]


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'schedule.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    # Sunday noon before the seeded week
    return FrozenClock(civil(2025, 6, 1, 12, 0))


@pytest.fixture
def queue():
    return InMemoryDelayedQueue()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
async def fake_redis():
    client = aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.flushall()


@pytest.fixture
def cache(fake_redis):
    return CacheManager(redis_client=fake_redis)


@pytest.fixture
def services(db, queue, publisher, clock):
    return build_schedule_services(db, queue, publisher, clock=clock)


async def create_batch(db, college_id=None, name="CSE 2025", section_name="A", subjects=("DSA",)):
    batch = Batch(name=name, college_id=college_id)
    db.add(batch)
    await db.flush()
    section = Section(batch_id=batch.id, name=section_name)
    db.add(section)
    await db.flush()
    subject_ids = {}
    for subject_name in subjects:
        subject = Subject(batch_id=batch.id, section_id=section.id, name=subject_name)
        db.add(subject)
        await db.flush()
        subject_ids[subject_name] = subject.id
    await db.commit()
    return batch.id, section.id, subject_ids


async def create_timetable(db, batch_id, section_id, entries):
    timetable = Timetable(batch_id=batch_id, section_id=section_id, is_active=True)
    timetable.entries = [TimetableEntry(**entry) for entry in entries]
    db.add(timetable)
    await db.commit()
    return timetable.id, [entry.id for entry in timetable.entries]


@pytest.fixture
async def seed(db):
    """One college, batch CSE 2025 section A, subject DSA, Monday 10:00-11:00 in LT-1."""
    college = College(name="Govt Engineering College", code="GEC")
    db.add(college)
    await db.commit()
    college_id = college.id

    batch_id, section_id, subjects = await create_batch(db, college_id=college_id)
    timetable_id, entry_ids = await create_timetable(db, batch_id, section_id, [
        {
            "day_of_week": DayOfWeek.MONDAY,
            "start_time": "10:00",
            "end_time": "11:00",
            "subject_name": "DSA",
            "room": "LT-1",
            "kind": ClassKind.LECTURE,
        },
    ])

    student = User(
        name="Asha", email="asha@example.com", batch_id=batch_id, section_id=section_id,
        fcm_token="tok-1", reminder_offsets=[10, 30], daily_summary_enabled=True,
    )
    no_token = User(
        name="Ravi", email="ravi@example.com", batch_id=batch_id, section_id=section_id,
        fcm_token=None, reminder_offsets=[10, 15, 30], daily_summary_enabled=True,
    )
    db.add_all([student, no_token])
    await db.commit()

    return SimpleNamespace(
        college_id=college_id,
        batch_id=batch_id,
        section_id=section_id,
        subject_id=subjects["DSA"],
        timetable_id=timetable_id,
        entry_id=entry_ids[0],
        student_id=student.id,
        other_student_id=no_token.id,
    )


async def only_class(services, seed, reference=WEEK_MONDAY):
    week = await services.sessions.get_session_for_week(seed.batch_id, seed.section_id, reference)
    assert week is not None
    assert len(week["classes"]) == 1
    return week["classes"][0]
