import threading
from datetime import timedelta

import pytest

from salon_booking.core.exceptions import ConflictError, ExternalSyncError, ValidationError
from salon_booking.models import CalendarCredential, CalendarSyncLink, ConnectionState
from salon_booking.services.calendar.calendar_sync_service import (
    EVENT_SOURCE,
    CalendarSyncService,
    Connected,
    Disconnected,
    Errored,
    build_event_body,
)
from salon_booking.services.calendar.google_calendar_service import GoogleCalendarService, is_not_found
from salon_booking.utils.encryption import decrypt_token, get_cipher
from tests.conftest import MONDAY, NOW, FakeGoogleCalendar, http_error


@pytest.fixture
def approved(orchestrator, book):
    """An approved appointment that has not been pushed yet"""
    appointment = book("10:00")
    appointment, _ = orchestrator.ledger.update_status(appointment.id, "approved")
    return appointment


def links(db):
    return db.query(CalendarSyncLink).all()


class SlowRefreshGoogle(FakeGoogleCalendar):
    """Holds every refresh open until the test releases it"""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()
        self.in_flight = 0
        self.max_concurrent = 0
        self._counter = threading.Lock()

    def refresh_access_token(self, refresh_token):
        with self._counter:
            self.in_flight += 1
            self.max_concurrent = max(self.max_concurrent, self.in_flight)
        try:
            self.entered.set()
            self.release.wait(timeout=5)
            return super().refresh_access_token(refresh_token)
        finally:
            with self._counter:
                self.in_flight -= 1


class TestUpsert:

    def test_repeated_upserts_keep_one_event(self, db, sync_service, google, connected_credential, approved):
        first = sync_service.upsert_event(approved)
        second = sync_service.upsert_event(approved)

        assert first.action == "created"
        assert second.action == "updated"
        assert first.external_event_id == second.external_event_id
        assert len(google.events) == 1
        assert len(links(db)) == 1

    def test_event_is_tagged_with_the_appointment(self, sync_service, google, connected_credential, approved):
        outcome = sync_service.upsert_event(approved)

        private = google.events[outcome.external_event_id]["extendedProperties"]["private"]
        assert private == {"source": EVENT_SOURCE, "appointmentId": str(approved.id)}

    def test_event_deleted_outside_is_recreated(self, db, sync_service, google, connected_credential, approved):
        first = sync_service.upsert_event(approved)
        del google.events[first.external_event_id]

        second = sync_service.upsert_event(approved)

        assert second.action == "recreated"
        assert second.external_event_id != first.external_event_id
        assert links(db)[0].external_event_id == second.external_event_id

    def test_lost_link_reuses_the_tagged_event(self, db, sync_service, google, connected_credential, approved):
        """A push whose link write was lost must not create a duplicate"""
        first = sync_service.upsert_event(approved)
        db.query(CalendarSyncLink).delete()
        db.commit()

        second = sync_service.upsert_event(approved)

        assert second.external_event_id == first.external_event_id
        assert len(google.events) == 1
        assert len(links(db)) == 1

    def test_api_error_is_recorded(self, db, sync_service, google, connected_credential, approved):
        google.insert_error = http_error(503)

        outcome = sync_service.upsert_event(approved)

        assert not outcome.ok
        assert approved.sync_status == "failed"
        assert approved.last_sync_error.startswith("calendar_api_error")
        assert links(db) == []

    def test_disconnected_is_skipped(self, sync_service, google, approved):
        outcome = sync_service.upsert_event(approved)

        assert outcome.status == "skipped"
        assert outcome.ok
        assert google.calls == []


class TestDelete:

    def test_missing_event_counts_as_deleted(self, db, sync_service, google, connected_credential, approved):
        sync_service.upsert_event(approved)
        google.events.clear()

        outcome = sync_service.delete_event(approved)

        assert outcome.action == "deleted"
        assert links(db) == []

    def test_nothing_to_delete(self, sync_service, google, connected_credential, approved):
        outcome = sync_service.delete_event(approved)

        assert outcome.action == "no_event"
        assert "delete" not in google.calls

    def test_disconnected_drops_the_link(self, db, sync_service, google, connected_credential, approved):
        sync_service.upsert_event(approved)
        sync_service.disconnect()

        outcome = sync_service.delete_event(approved)

        assert outcome.status == "skipped"
        assert links(db) == []
        assert len(google.events) == 1


class TestCredential:

    def test_connection_variants(self, db, sync_service, connected_credential):
        assert isinstance(sync_service.connection(), Connected)
        assert sync_service.connection().calendar_id == "primary"

        connected_credential.connection_state = ConnectionState.ERROR.value
        connected_credential.last_error = "token_refresh_failed: invalid_grant"
        db.commit()
        assert sync_service.connection() == Errored(reason="token_refresh_failed: invalid_grant")

        sync_service.disconnect()
        assert sync_service.connection() == Disconnected()

    def test_no_credential_is_disconnected(self, sync_service):
        assert isinstance(sync_service.connection(), Disconnected)
        assert sync_service.connection_status()["state"] == "disconnected"

    def test_status_never_exposes_tokens(self, sync_service, connected_credential):
        status = sync_service.connection_status()

        assert status["state"] == "connected"
        assert status["calendar_id"] == "primary"
        rendered = repr(status)
        assert "access-initial" not in rendered
        assert "refresh-initial" not in rendered
        assert not any(isinstance(value, bytes) for value in status.values())

    def test_authorization_stores_encrypted_tokens(self, db, sync_service, settings):
        sync_service.complete_authorization("abc")

        credential = db.query(CalendarCredential).one()
        cipher = get_cipher(settings.CALENDAR_ENCRYPTION_KEY)
        assert credential.access_token_encrypted != b"access-abc"
        assert decrypt_token(credential.access_token_encrypted, cipher) == "access-abc"
        assert decrypt_token(credential.refresh_token_encrypted, cipher) == "refresh-abc"
        assert credential.connection_state == ConnectionState.CONNECTED.value

    def test_disconnect_wipes_tokens_and_keeps_links(self, db, sync_service, connected_credential, approved):
        sync_service.upsert_event(approved)

        sync_service.disconnect()

        db.refresh(connected_credential)
        assert connected_credential.access_token_encrypted is None
        assert connected_credential.refresh_token_encrypted is None
        assert len(links(db)) == 1

    def test_select_calendar(self, db, sync_service, google, connected_credential, approved):
        sync_service.select_calendar("salon@group.calendar.google.com")

        outcome = sync_service.upsert_event(approved)

        link = links(db)[0]
        assert link.external_calendar_id == "salon@group.calendar.google.com"
        assert outcome.external_event_id in google.events

    def test_select_unknown_calendar(self, sync_service, connected_credential):
        with pytest.raises(ValidationError) as exc_info:
            sync_service.select_calendar("someone-else@example.com")

        assert exc_info.value.code == "unknown_calendar"

    def test_calendars_need_a_connection(self, sync_service):
        with pytest.raises(ConflictError):
            sync_service.list_calendars()

    def test_fresh_token_is_used_as_is(self, sync_service, google, connected_credential):
        assert sync_service.access_token(connected_credential) == "access-initial"
        assert google.refresh_calls == 0

    def test_expiring_token_is_refreshed(self, db, sync_service, google, connected_credential):
        connected_credential.token_expires_at = NOW + timedelta(minutes=2)
        db.commit()

        token = sync_service.access_token(connected_credential)

        assert token == "access-refreshed-1"
        db.refresh(connected_credential)
        assert connected_credential.last_refreshed_at is not None
        # the refresh token is kept when the provider does not rotate it
        cipher = get_cipher()
        assert decrypt_token(connected_credential.refresh_token_encrypted, cipher) == "refresh-initial"

    def test_second_session_sees_the_refresh(self, db, session_factory, google, locks, clock, settings,
                                             connected_credential):
        """Two holders of a stale token: only the first one refreshes"""
        connected_credential.token_expires_at = NOW - timedelta(minutes=1)
        db.commit()

        other_db = session_factory()
        other = CalendarSyncService(other_db, google=google, locks=locks, clock=clock, settings=settings)
        stale = other._credential()
        stale_expiry = stale.token_expires_at

        first_token = CalendarSyncService(
            db, google=google, locks=locks, clock=clock, settings=settings
        ).access_token(connected_credential)

        assert stale.token_expires_at == stale_expiry
        second_token = other.access_token(stale)

        assert google.refresh_calls == 1
        assert first_token == second_token
        other_db.close()

    def test_concurrent_refreshes_are_serialized(self, db, session_factory, locks, clock, settings,
                                                connected_credential):
        """Two threads find the token stale at once; the second waits and reuses the new token"""
        connected_credential.token_expires_at = NOW - timedelta(minutes=1)
        db.commit()
        google = SlowRefreshGoogle()
        tokens, errors = {}, []

        def worker(name):
            session = session_factory()
            try:
                service = CalendarSyncService(session, google=google, locks=locks, clock=clock, settings=settings)
                tokens[name] = service.access_token(service._credential())
            except Exception as e:  # surfaced by the assertion below
                errors.append(e)
            finally:
                session.close()

        first = threading.Thread(target=worker, args=("first",))
        first.start()
        assert google.entered.wait(timeout=5)

        second = threading.Thread(target=worker, args=("second",))
        second.start()
        second.join(timeout=0.3)
        # still parked on the credential lock while the first refresh is in flight
        assert second.is_alive()
        assert google.refresh_calls == 1

        google.release.set()
        first.join(timeout=5)
        second.join(timeout=5)

        assert errors == []
        assert google.refresh_calls == 1
        assert google.max_concurrent == 1
        assert tokens["first"] == tokens["second"] == "access-refreshed-1"

    def test_unreadable_refresh_token_moves_to_error(self, db, sync_service, google, connected_credential):
        connected_credential.token_expires_at = NOW - timedelta(minutes=1)
        connected_credential.refresh_token_encrypted = b"not-a-fernet-token"
        db.commit()

        with pytest.raises(ExternalSyncError) as exc_info:
            sync_service.access_token(connected_credential)

        assert exc_info.value.code == "token_refresh_failed"
        assert google.refresh_calls == 0
        assert connected_credential.connection_state == ConnectionState.ERROR.value
        assert connected_credential.last_error == "refresh_token_unavailable"


class TestExternalEvents:

    def test_busy_periods(self, sync_service, google, connected_credential, approved):
        sync_service.upsert_event(approved)
        google.busy_events = [
            {"id": "lunch", "start": {"dateTime": "2026-03-02T12:00:00+00:00"},
             "end": {"dateTime": "2026-03-02T13:00:00+00:00"}},
            {"id": "trip", "start": {"date": "2026-03-01"}, "end": {"date": "2026-03-03"}},
            {"id": "gone", "status": "cancelled", "start": {"dateTime": "2026-03-02T15:00:00+00:00"},
             "end": {"dateTime": "2026-03-02T16:00:00+00:00"}},
        ]

        periods = sync_service.busy_periods(MONDAY)

        spans = sorted((p.start.time().isoformat(), p.end.isoformat()) for p in periods)
        assert spans == [
            ("00:00:00", "2026-03-03T00:00:00"),
            ("12:00:00", "2026-03-02T13:00:00"),
        ]

    def test_prune_removes_only_unlinked_own_events(self, db, sync_service, google, connected_credential, approved):
        kept = sync_service.upsert_event(approved)
        orphan = dict(build_event_body(approved, "UTC"), id="orphan")
        orphan["extendedProperties"]["private"]["appointmentId"] = "deleted-appointment"
        google.events["orphan"] = orphan
        google.events["personal"] = {"id": "personal", "start": {"date": "2026-03-02"}, "end": {"date": "2026-03-03"}}

        result = sync_service.prune_orphans(NOW - timedelta(days=1), NOW + timedelta(days=7))

        assert result == {"deleted": 1, "failed": []}
        assert set(google.events) == {kept.external_event_id, "personal"}


class TestGoogleCalendarService:

    def test_authorization_url_requests_offline_access(self, settings):
        google = GoogleCalendarService(settings.model_copy(update={"GOOGLE_CLIENT_ID": "client-123"}))

        url = google.generate_authorization_url("state-xyz")

        assert "state=state-xyz" in url
        assert "access_type=offline" in url
        assert "client_id=client-123" in url

    def test_redirect_uri_is_required(self, settings):
        with pytest.raises(ValueError):
            GoogleCalendarService(settings.model_copy(update={"GOOGLE_REDIRECT_URI": ""}))

    def test_not_found_statuses(self):
        assert is_not_found(http_error(404))
        assert is_not_found(http_error(410))
        assert not is_not_found(http_error(500))
