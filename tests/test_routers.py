from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from app.core.cache import get_cache
from app.core.database import get_db
from app.core.dependencies import get_clock, get_delayed_queue, get_publisher
from app.main import app
from app.services.notification_publisher import NotificationType

from conftest import civil


@pytest.fixture
async def client(session_factory, queue, publisher, clock, cache):
    async def override_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_delayed_queue] = lambda: queue
    app.dependency_overrides[get_publisher] = lambda: publisher
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_clock] = lambda: clock

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


async def generate(client):
    response = await client.post("/api/v1/weekly-sessions/generate", json={"reference_date": "2025-06-02"})
    assert response.status_code == 200
    return response.json()


async def week(client, seed):
    response = await client.get(
        f"/api/v1/weekly-sessions/{seed.batch_id}/{seed.section_id}", params={"date": "2025-06-02"}
    )
    assert response.status_code == 200
    return response.json()


async def test_health(client):
    response = await client.get("/health/")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_generate_and_read_week(client, seed):
    summary = await generate(client)
    assert summary["classes_created"] == 1
    assert summary["iso_week"] == 23

    body = await week(client, seed)
    assert body["session"]["iso_week"] == 23
    [cls] = body["classes"]
    assert cls["subject_name"] == "DSA"
    assert cls["date_string"] == "2025-06-02"
    assert cls["status"] == "scheduled"
    assert cls["kind"] == "lecture"


async def test_week_not_generated_is_404(client, seed):
    response = await client.get(
        f"/api/v1/weekly-sessions/{seed.batch_id}/{seed.section_id}", params={"date": "2025-06-09"}
    )
    assert response.status_code == 404


async def test_cancel_then_cancel_again(client, seed, publisher):
    await generate(client)
    class_id = (await week(client, seed))["classes"][0]["id"]

    response = await client.post(f"/api/v1/weekly-sessions/classes/{class_id}/cancel", json={"reason": "Holiday"})
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert len(publisher.of_type(NotificationType.CLASS_CANCELLED)) == 1

    response = await client.post(f"/api/v1/weekly-sessions/classes/{class_id}/cancel", json={"reason": "Again"})
    assert response.status_code == 409
    assert response.json()["type"] == "InvalidTransitionError"


async def test_reschedule(client, seed):
    await generate(client)
    class_id = (await week(client, seed))["classes"][0]["id"]

    response = await client.post(
        f"/api/v1/weekly-sessions/classes/{class_id}/reschedule",
        json={"new_date": "2025-06-04", "new_start_time": "14:00", "new_end_time": "15:00"},
    )

    assert response.status_code == 200
    moved = response.json()
    assert moved["id"] != class_id
    assert moved["class_date"] == "2025-06-04"
    assert moved["is_extra_class"] is True


async def test_reschedule_beyond_limit_is_400(client, seed):
    await generate(client)
    class_id = (await week(client, seed))["classes"][0]["id"]

    response = await client.post(
        f"/api/v1/weekly-sessions/classes/{class_id}/reschedule",
        json={"new_date": "2025-06-20", "new_start_time": "14:00", "new_end_time": "15:00"},
    )

    assert response.status_code == 400
    assert response.json()["field"] == "date"


async def test_malformed_time_is_422(client, seed):
    await generate(client)
    class_id = (await week(client, seed))["classes"][0]["id"]

    response = await client.post(
        f"/api/v1/weekly-sessions/classes/{class_id}/reschedule",
        json={"new_date": "2025-06-04", "new_start_time": "2pm", "new_end_time": "15:00"},
    )
    assert response.status_code == 422


async def test_add_and_delete_extra_class(client, seed):
    response = await client.post("/api/v1/weekly-sessions/classes/extra", json={
        "batch_id": str(seed.batch_id),
        "section_id": str(seed.section_id),
        "subject_id": str(seed.subject_id),
        "date": "2025-06-05",
        "start_time": "16:00",
        "end_time": "17:00",
        "room": "Lab 2",
        "kind": "lab",
    })
    assert response.status_code == 201
    added = response.json()
    assert added["title"] == "DSA (Lab)"
    assert added["template_entry_id"] is None

    response = await client.delete(f"/api/v1/weekly-sessions/classes/{added['id']}")
    assert response.status_code == 200
    assert response.json()["message"] == "Class deleted successfully"


async def test_add_extra_class_unknown_subject_is_404(client, seed):
    response = await client.post("/api/v1/weekly-sessions/classes/extra", json={
        "batch_id": str(seed.batch_id),
        "section_id": str(seed.section_id),
        "subject_id": str(uuid4()),
        "date": "2025-06-05",
        "start_time": "16:00",
        "end_time": "17:00",
    })
    assert response.status_code == 404
    assert response.json()["type"] == "NotFoundError"


async def test_timetable_entry_edits(client, seed, clock):
    clock.set(civil(2025, 6, 2, 8, 0))
    await generate(client)

    response = await client.put(
        f"/api/v1/timetables/{seed.timetable_id}/entries/{seed.entry_id}",
        json={"start_time": "12:00", "end_time": "13:00"},
    )
    assert response.status_code == 200
    assert response.json()["start_time"] == "12:00"
    assert [c["start_time"] for c in (await week(client, seed))["classes"]] == ["12:00"]

    response = await client.post(f"/api/v1/timetables/{seed.timetable_id}/entries", json={
        "day_of_week": "friday", "start_time": "09:00", "end_time": "10:00", "subject_name": "DSA",
    })
    assert response.status_code == 201

    response = await client.delete(f"/api/v1/timetables/{seed.timetable_id}/entries/{seed.entry_id}")
    assert response.status_code == 200
    assert response.json()["classes_removed"] == 1

    response = await client.put(f"/api/v1/timetables/{seed.timetable_id}/schedule", json={"entries": []})
    assert response.status_code == 200
    assert response.json()["entries"] == []


async def test_week_view_is_cached_until_a_change(client, seed, fake_redis):
    await generate(client)
    class_id = (await week(client, seed))["classes"][0]["id"]
    assert await fake_redis.exists(f"week:{seed.batch_id}:{seed.section_id}:2025-06-02") == 1

    await client.post(f"/api/v1/weekly-sessions/classes/{class_id}/cancel", json={"reason": "Holiday"})

    [cls] = (await week(client, seed))["classes"]
    assert cls["status"] == "cancelled"
    assert cls["cancellation_reason"] == "Holiday"
