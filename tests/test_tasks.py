import pytest

from salon_booking.tasks import calendar_tasks
from salon_booking.tasks.calendar_tasks import RedisCancelFlag, resync_all_appointments, sync_appointment_to_calendar


class FakeSyncRedis:
    def __init__(self):
        self.data = {}

    def setex(self, key, ttl, value):
        self.data[key] = value

    def exists(self, key):
        return int(key in self.data)


@pytest.fixture
def redis_client(monkeypatch):
    client = FakeSyncRedis()
    monkeypatch.setattr(calendar_tasks, "get_sync_redis", lambda: client)
    return client


@pytest.fixture(autouse=True)
def worker_sessions(monkeypatch, session_factory):
    monkeypatch.setattr(calendar_tasks, "SessionLocal", session_factory)


def test_sync_task_records_the_outcome(db, orchestrator, book):
    appointment = book("10:00")
    orchestrator.ledger.update_status(appointment.id, "approved")

    result = sync_appointment_to_calendar.apply(args=[str(appointment.id), "upsert"]).get()

    assert result["status"] == "skipped"
    db.refresh(appointment)
    assert appointment.sync_status == "skipped"


def test_sync_task_for_a_missing_appointment():
    result = sync_appointment_to_calendar.apply(args=["00000000-0000-0000-0000-000000000000"]).get()

    assert result == {"status": "failed", "reason": "appointment_not_found"}


def test_cancel_flag_round_trip(redis_client):
    flag = RedisCancelFlag("run-1")
    assert not flag.is_set()

    flag.set()

    assert flag.is_set()
    assert RedisCancelFlag("run-1").is_set()
    assert not RedisCancelFlag("run-2").is_set()


def test_resync_task_stops_when_cancelled(redis_client, orchestrator, book):
    for hhmm in ("09:00", "10:00"):
        orchestrator.ledger.update_status(book(hhmm).id, "approved")
    RedisCancelFlag("run-1").set()

    report = resync_all_appointments.apply(kwargs={"run_id": "run-1"}).get()

    assert report["cancelled"] is True
    assert report["skipped"] == 0


def test_resync_task_runs_to_completion(redis_client, orchestrator, book):
    orchestrator.ledger.update_status(book("09:00").id, "approved")

    report = resync_all_appointments.apply(kwargs={"run_id": "run-2"}).get()

    assert report["cancelled"] is False
    assert report["skipped"] == 1


def test_cancel_endpoint_sets_the_flag(client, admin_headers, redis_client):
    response = client.delete("/api/v1/dashboard/appointments/sync-all/run-9", headers=admin_headers)

    assert response.status_code == 202
    assert RedisCancelFlag("run-9").is_set()
