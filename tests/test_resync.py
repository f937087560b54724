import httplib2
import pytest
from google.auth.exceptions import RefreshError

from salon_booking.models import CalendarSyncLink
from salon_booking.services.calendar.calendar_sync_service import build_event_body


class CancelAfter:
    """Reports cancellation once ``is_set`` has been asked ``n`` times"""

    def __init__(self, n):
        self.n = n
        self.checks = 0

    def is_set(self):
        self.checks += 1
        return self.checks > self.n


def approve(orchestrator, book, *times):
    appointments = []
    for hhmm in times:
        appointment = book(hhmm)
        orchestrator.ledger.update_status(appointment.id, "approved")
        appointments.append(appointment)
    return appointments


def test_pushes_every_approved_appointment(db, orchestrator, google, connected_credential, book):
    approve(orchestrator, book, "09:00", "10:00", "11:00")
    book("12:00")  # pending, not mirrored

    report = orchestrator.resync_all()

    assert report.succeeded == 3
    assert report.failed == []
    assert len(google.events) == 3
    assert db.query(CalendarSyncLink).count() == 3


def test_running_twice_creates_no_duplicates(orchestrator, google, connected_credential, book):
    approve(orchestrator, book, "09:00", "10:00")

    orchestrator.resync_all()
    report = orchestrator.resync_all()

    assert report.succeeded == 2
    assert len(google.events) == 2


def test_one_failure_does_not_stop_the_rest(db, orchestrator, google, connected_credential, book):
    first, broken, last = approve(orchestrator, book, "09:00", "10:00", "11:00")
    google.fail_for_appointments.add(str(broken.id))

    report = orchestrator.resync_all()

    assert report.succeeded == 2
    assert report.failed == [{"id": str(broken.id), "reason": report.failed[0]["reason"]}]
    assert report.failed[0]["reason"].startswith("calendar_api_error")
    db.refresh(broken)
    assert broken.sync_status == "failed"

    google.fail_for_appointments.clear()
    retry = orchestrator.resync_all()
    assert retry.failed == []
    assert len(google.events) == 3


@pytest.mark.parametrize("error, reason", [
    (RefreshError("Token has been expired or revoked"), "calendar_api_error"),
    (httplib2.ServerNotFoundError("Unable to find the server at www.googleapis.com"), "calendar_api_error"),
    (RuntimeError("library bug"), "unexpected_error: RuntimeError"),
], ids=["token_revoked", "dns_failure", "unexpected"])
def test_outage_on_one_item_does_not_stop_the_batch(db, orchestrator, google, connected_credential, book,
                                                    error, reason):
    first, broken, last = approve(orchestrator, book, "09:00", "10:00", "11:00")
    google.fail_for_appointments.add(str(broken.id))
    google.appointment_failure = error

    report = orchestrator.resync_all()

    assert report.succeeded == 2
    assert [item["id"] for item in report.failed] == [str(broken.id)]
    assert report.failed[0]["reason"].startswith(reason)
    assert len(google.events) == 2
    db.expire_all()
    assert orchestrator.ledger.get(broken.id).status == "approved"


def test_cancellation_between_items(orchestrator, google, connected_credential, book):
    approve(orchestrator, book, "09:00", "10:00", "11:00")

    report = orchestrator.resync_all(cancel_event=CancelAfter(1))

    assert report.cancelled
    assert report.succeeded == 1
    assert len(google.events) == 1


def test_disconnected_calendar_counts_as_skipped(orchestrator, google, book):
    approve(orchestrator, book, "09:00", "10:00")

    report = orchestrator.resync_all()

    assert report.skipped == 2
    assert report.succeeded == 0
    assert google.calls == []


def test_cancelled_appointments_lose_their_event(db, orchestrator, google, connected_credential, book):
    """An event left behind by a failed delete is removed on the next run"""
    appointment, = approve(orchestrator, book, "09:00")
    orchestrator.sync.upsert_event(appointment)
    orchestrator.ledger.update_status(appointment.id, "cancelled")

    report = orchestrator.resync_all()

    assert report.succeeded == 1
    assert google.events == {}
    assert db.query(CalendarSyncLink).count() == 0


def test_prune_orphans(orchestrator, google, connected_credential, book):
    appointment, = approve(orchestrator, book, "09:00")
    stray = build_event_body(appointment, "UTC")
    stray["extendedProperties"]["private"]["appointmentId"] = "long-gone"
    google.events["stray"] = dict(stray, id="stray")

    report = orchestrator.resync_all(prune_orphans=True)

    assert report.pruned == {"deleted": 1, "failed": []}
    assert "stray" not in google.events
    assert len(google.events) == 1
    assert report.to_dict()["pruned"]["deleted"] == 1
