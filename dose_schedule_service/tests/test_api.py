import pytest
from fastapi.testclient import TestClient

from medsched.main import app
from medsched.services.backend import get_scheduling_service
from medsched.services.dose_store import InMemorySchedulingService
from conftest import at


@pytest.fixture
def client():
    service = InMemorySchedulingService(clock=lambda: at("11:50"))
    app.dependency_overrides[get_scheduling_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def _schedule(**overrides):
    body = {
        "schedule_id": "sched_1",
        "medication_id": "med_1",
        "patient_id": "patient_1",
        "frequency": "twice_daily",
        "times": ["12:00", "00:00"],
        "start_date": "2026-10-01",
        "is_indefinite": True,
        "timezone": "America/New_York",
    }
    body.update(overrides)
    return body


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_frequency_endpoint(client):
    r = client.post("/schedule/frequency", json={"raw": "BID"})
    assert r.status_code == 200
    assert r.json() == {
        "raw": "BID",
        "frequency": "twice_daily",
        "expected_count": 2,
        "default_times": ["07:00", "18:00"],
    }


def test_convert_endpoint(client):
    r = client.post("/schedule/convert", json={
        "times": ["08:00", "20:00"],
        "reference_date": "2026-10-19",
        "timezone": "America/New_York",
        "direction": "TO_UTC",
    })
    assert r.json()["times"] == ["12:00", "00:00"]

    bad = client.post("/schedule/convert", json={
        "times": ["08:00"], "reference_date": "2026-10-19", "timezone": "Nowhere/City",
    })
    assert bad.status_code == 400


def test_expand_and_classify_endpoints(client):
    r = client.post("/schedule/expand", json={"schedule": _schedule(), "for_date": "2026-10-19"})
    assert r.status_code == 200
    instances = r.json()
    assert [i["scheduled_at"][11:16] for i in instances] == ["08:00", "20:00"]

    r = client.post("/schedule/classify", json={
        "instances": instances,
        "now": "2026-10-19T12:05:00+00:00",
        "config": {"timezone": "America/New_York"},
    })
    body = r.json()
    assert [i["instance_id"] for i in body["overdue"]] == ["sched_1:2026-10-19:12:00"]
    assert [i["instance_id"] for i in body["evening"]] == []
    assert [i["instance_id"] for i in body["other"]] == ["sched_1:2026-10-19:00:00"]


def test_invalid_schedule_is_422(client):
    r = client.post("/today/schedules", json=_schedule(frequency="weekly", days_of_week=[]))
    assert r.status_code == 422


def test_today_flow(client):
    assert client.post("/today/schedules", json=_schedule()).json() == {"schedule_id": "sched_1"}

    params = {"patient_id": "patient_1", "timezone": "America/New_York", "now": "2026-10-19T11:50:00+00:00"}
    body = client.get("/today/buckets", params=params).json()
    assert body["for_date"] == "2026-10-19"
    assert body["counts"]["now"] == 1
    assert body["counts"]["other"] == 1
    assert body["adherence"]["total"] == 2

    morning = body["buckets"]["now"][0]["instance_id"]
    take = {"taken_at": "2026-10-19T12:03:00+00:00"}
    first = client.post(f"/today/doses/{morning}/take", json=take)
    second = client.post(f"/today/doses/{morning}/take", json=take)
    assert first.status_code == second.status_code == 200
    assert first.json() == second.json()
    assert first.json()["status"] == "taken"

    skip = client.post(f"/today/doses/{morning}/skip", json={"reason": "forgot"})
    assert skip.status_code == 409
    assert skip.json()["detail"]["failure"] == "CONFLICT"

    body = client.get("/today/buckets", params=params).json()
    assert body["counts"]["completed"] == 1
    assert body["adherence"]["taken"] == 1


def test_schedule_pause_resume_and_update(client):
    client.post("/today/schedules", json=_schedule())
    assert client.post("/today/schedules/sched_1/pause").json()["is_paused"] is True
    params = {"patient_id": "patient_1", "timezone": "America/New_York", "now": "2026-10-19T11:50:00+00:00"}
    assert client.get("/today/buckets", params=params).json()["adherence"]["total"] == 0
    assert client.post("/today/schedules/sched_1/resume").json()["is_paused"] is False

    r = client.patch("/today/schedules/sched_1", json={"times": ["13:00"], "frequency": "daily"})
    assert r.status_code == 200 and r.json()["times"] == ["13:00"]
    assert client.patch("/today/schedules/missing", json={}).status_code == 404


def test_snooze_validation(client):
    assert client.post("/today/doses/x/snooze", json={"minutes": 0}).status_code == 422
    assert client.post("/today/doses/x/snooze", json={"minutes": 10}).status_code == 404


def test_unknown_timezone_on_buckets(client):
    r = client.get("/today/buckets", params={"patient_id": "p", "timezone": "Nowhere/City"})
    assert r.status_code == 400


def test_take_without_utc_offset_is_422(client):
    client.post("/today/schedules", json=_schedule())
    params = {"patient_id": "patient_1", "timezone": "America/New_York", "now": "2026-10-19T11:50:00+00:00"}
    morning = client.get("/today/buckets", params=params).json()["buckets"]["now"][0]["instance_id"]

    r = client.post(f"/today/doses/{morning}/take", json={"taken_at": "2026-10-19T12:03:00"})
    assert r.status_code == 422

    body = client.get("/today/buckets", params=params).json()
    assert body["counts"]["now"] == 1
    assert body["counts"]["completed"] == 0
