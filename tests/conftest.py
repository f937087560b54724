"""
Shared fixtures: a fresh SQLite database per test, a frozen clock, and an
in-memory stand-in for the Google OAuth/Calendar gateway.
"""
import os
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from cryptography.fernet import Fernet

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_bootstrap.db")
os.environ.setdefault("CALENDAR_ENCRYPTION_KEY", Fernet.generate_key().decode())
os.environ.setdefault("BUSINESS_TIMEZONE", "UTC")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

import httplib2
import pytest
from fastapi import Depends
from fastapi.testclient import TestClient
from googleapiclient.errors import HttpError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from salon_booking.config.settings import Settings
from salon_booking.core.clock import FixedClock
from salon_booking.models import (
    Base,
    CalendarCredential,
    ConnectionState,
    Service,
)
from salon_booking.services.availability.availability_policy_service import AvailabilityPolicyService
from salon_booking.services.availability.windows import CLOSED, OpenWindow
from salon_booking.services.booking.booking_orchestrator import BookingOrchestrator, CustomerInfo
from salon_booking.services.calendar.calendar_sync_service import CalendarSyncService
from salon_booking.services.calendar.credential_locks import LocalCredentialLocks
from salon_booking.services.calendar.google_calendar_service import OAuthTokens
from salon_booking.utils.encryption import encrypt_token, get_cipher

# Monday
MONDAY = datetime(2026, 3, 2).date()
TUESDAY = MONDAY + timedelta(days=1)
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)  # the Sunday before


def http_error(status: int) -> HttpError:
    return HttpError(httplib2.Response({"status": status}), b'{"error": {"message": "boom"}}')


class FakeGoogleCalendar:
    """Records calls and keeps events in a dict, keyed by event id"""

    def __init__(self):
        self.events: Dict[str, Dict] = {}
        self.calls: List[str] = []
        self.refresh_calls = 0
        self.refresh_error: Optional[Exception] = None
        self.insert_error: Optional[Exception] = None
        self.update_error: Optional[Exception] = None
        self.delete_error: Optional[Exception] = None
        self.fail_for_appointments = set()
        self.appointment_failure: Optional[Exception] = None
        self.busy_events: List[Dict] = []
        self._next_id = 0

    # OAuth
    def generate_authorization_url(self, state: str) -> str:
        return f"https://accounts.example.test/o/oauth2/auth?state={state}"

    def exchange_code(self, code: str) -> OAuthTokens:
        self.calls.append("exchange_code")
        return OAuthTokens(
            access_token=f"access-{code}",
            refresh_token=f"refresh-{code}",
            expiry=NOW + timedelta(hours=1),
        )

    def refresh_access_token(self, refresh_token: str) -> OAuthTokens:
        self.calls.append("refresh")
        self.refresh_calls += 1
        if self.refresh_error:
            raise self.refresh_error
        return OAuthTokens(access_token=f"access-refreshed-{self.refresh_calls}", expiry=NOW + timedelta(hours=1))

    # Calendar
    def list_calendars(self, access_token: str) -> List[Dict]:
        self.calls.append("list_calendars")
        return [{"id": "primary", "name": "Dana"}, {"id": "salon@group.calendar.google.com", "name": "Salon"}]

    def _check(self, body: Dict) -> None:
        appointment_id = body.get("extendedProperties", {}).get("private", {}).get("appointmentId")
        if appointment_id in self.fail_for_appointments:
            raise self.appointment_failure or http_error(500)

    def insert_event(self, access_token: str, calendar_id: str, body: Dict) -> str:
        self.calls.append("insert")
        if self.insert_error:
            raise self.insert_error
        self._check(body)
        self._next_id += 1
        event_id = f"evt-{self._next_id}"
        self.events[event_id] = dict(body, id=event_id)
        return event_id

    def update_event(self, access_token: str, calendar_id: str, event_id: str, body: Dict) -> str:
        self.calls.append("update")
        if self.update_error:
            raise self.update_error
        self._check(body)
        if event_id not in self.events:
            raise http_error(404)
        self.events[event_id] = dict(body, id=event_id)
        return event_id

    def delete_event(self, access_token: str, calendar_id: str, event_id: str) -> None:
        self.calls.append("delete")
        if self.delete_error:
            raise self.delete_error
        if event_id not in self.events:
            raise http_error(410)
        del self.events[event_id]

    def list_events(self, access_token, calendar_id, time_min, time_max, private_properties=None) -> List[Dict]:
        self.calls.append("list")
        found = []
        for event in list(self.events.values()) + self.busy_events:
            private = event.get("extendedProperties", {}).get("private", {})
            if private_properties and any(private.get(k) != v for k, v in private_properties.items()):
                continue
            found.append(event)
        return found


@pytest.fixture
def settings():
    return Settings(
        DATABASE_URL="sqlite://",
        BUSINESS_TIMEZONE="UTC",
        SLOT_STEP_MINUTES=30,
        BOOKING_BUFFER_MINUTES=0,
        SLOT_CLAIM_GRANULARITY_MINUTES=5,
        CALENDAR_SYNC_MODE="inline",
        CALENDAR_LOCK_BACKEND="local",
        CALENDAR_KEEP_COMPLETED_EVENTS=True,
        BLOCK_EXTERNAL_BUSY_TIMES=False,
        CALENDAR_ENCRYPTION_KEY=os.environ["CALENDAR_ENCRYPTION_KEY"],
        JWT_SECRET_KEY=os.environ["JWT_SECRET_KEY"],
    )


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'booking.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FixedClock(NOW, "UTC")


@pytest.fixture
def google():
    return FakeGoogleCalendar()


@pytest.fixture
def locks():
    return LocalCredentialLocks()


@pytest.fixture
def sync_service(db, google, locks, clock, settings):
    return CalendarSyncService(db, google=google, locks=locks, clock=clock, settings=settings)


@pytest.fixture
def orchestrator(db, clock, sync_service, settings):
    return BookingOrchestrator(db, clock=clock, sync_service=sync_service, settings=settings)


@pytest.fixture
def haircut(db):
    service = Service(slug="haircut", name="Haircut", price=Decimal("35.00"), duration=30, display_order=1)
    db.add(service)
    db.commit()
    return service


@pytest.fixture
def coloring(db):
    service = Service(slug="coloring", name="Coloring", price=Decimal("90.00"), duration=90, display_order=2)
    db.add(service)
    db.commit()
    return service


@pytest.fixture
def weekday_hours(db):
    """Mon-Fri 09:00-17:00, weekend closed"""
    open_day = OpenWindow(time(9, 0), time(17, 0))
    AvailabilityPolicyService.replace_week(db, [open_day] * 5 + [CLOSED, CLOSED])


@pytest.fixture
def connected_credential(db, settings):
    cipher = get_cipher(settings.CALENDAR_ENCRYPTION_KEY)
    credential = CalendarCredential(
        owner_ref=settings.BUSINESS_OWNER_REF,
        provider="google",
        access_token_encrypted=encrypt_token("access-initial", cipher),
        refresh_token_encrypted=encrypt_token("refresh-initial", cipher),
        token_expires_at=NOW + timedelta(hours=1),
        external_calendar_id="primary",
        connection_state=ConnectionState.CONNECTED.value,
        connected_at=NOW,
    )
    db.add(credential)
    db.commit()
    return credential


@pytest.fixture
def customer():
    return CustomerInfo(name="Dana Reyes", email="Dana@Example.com", phone="+15550100")


@pytest.fixture
def book(orchestrator, haircut, weekday_hours, customer):
    """Book a haircut on Monday at HH:MM"""
    def _book(hhmm: str, target_date=MONDAY, service_ref="haircut"):
        hour, minute = map(int, hhmm.split(":"))
        return orchestrator.book(target_date, time(hour, minute), service_ref, customer)
    return _book


@pytest.fixture
def client(session_factory, clock, google, locks, settings):
    from salon_booking.api.dependencies import (
        get_calendar_sync,
        get_clock,
        get_oauth_state_store,
        OAuthStateStore,
    )
    from salon_booking.config.database import get_db
    from salon_booking.main import create_app

    app = create_app()

    def override_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    def override_sync(db=Depends(get_db)):
        return CalendarSyncService(db, google=google, locks=locks, clock=clock, settings=settings)

    states = FakeRedis()

    async def override_state_store():
        return OAuthStateStore(states, ttl_seconds=600)

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_calendar_sync] = override_sync
    app.dependency_overrides[get_oauth_state_store] = override_state_store

    with TestClient(app) as test_client:
        yield test_client


class FakeRedis:
    """The handful of async Redis calls the OAuth state store makes"""

    def __init__(self):
        self.data = {}

    async def setex(self, key, ttl, value):
        self.data[key] = value

    async def get(self, key):
        return self.data.get(key)

    async def delete(self, key):
        self.data.pop(key, None)


@pytest.fixture
def admin_headers():
    from salon_booking.api.dependencies import create_access_token
    token = create_access_token({"sub": "owner-1", "role": "admin"})
    return {"Authorization": f"Bearer {token}"}
