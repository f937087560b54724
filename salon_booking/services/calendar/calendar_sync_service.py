# ============================================================================
# salon_booking/services/calendar/calendar_sync_service.py
# Mirrors appointments into the owner's Google Calendar
# ============================================================================
"""
Calendar sync agent.

Owns the OAuth credential (encrypted at rest, refreshed under a per-credential
lock) and the appointment -> external event mapping kept in
``CalendarSyncLink``. Every push is an upsert keyed by that link, so repeated
syncs of the same appointment leave exactly one external event.

Failures never propagate into booking: each call returns a ``SyncOutcome``
and records the result on the appointment so ``resync_all`` can retry.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Union
from zoneinfo import ZoneInfo

from google.auth.exceptions import GoogleAuthError
from googleapiclient.errors import HttpError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from salon_booking.config.settings import Settings, get_settings
from salon_booking.core.clock import Clock, SystemClock
from salon_booking.core.exceptions import ConflictError, ExternalSyncError, StorageError, ValidationError
from salon_booking.models.appointment import Appointment, SyncStatus
from salon_booking.models.calendar_integration import CalendarCredential, CalendarSyncLink, ConnectionState
from salon_booking.services.availability.windows import Period
from salon_booking.services.calendar.credential_locks import get_credential_locks
from salon_booking.services.calendar.google_calendar_service import CALENDAR_API_ERRORS, GoogleCalendarService, is_not_found
from salon_booking.utils.encryption import decrypt_token, encrypt_token, get_cipher
from salon_booking.utils.time_utils import ensure_aware, local_to_utc, to_local_naive

logger = logging.getLogger(__name__)

EVENT_SOURCE = "salon_booking"


# ========== CONNECTION STATE ==========

@dataclass(frozen=True)
class Disconnected:
    state = ConnectionState.DISCONNECTED.value


@dataclass(frozen=True)
class Connected:
    calendar_id: str
    expires_at: Optional[datetime] = None
    state = ConnectionState.CONNECTED.value


@dataclass(frozen=True)
class Errored:
    reason: str
    state = ConnectionState.ERROR.value


Connection = Union[Disconnected, Connected, Errored]


@dataclass
class SyncOutcome:
    """Result of one push. ``warning`` is what the caller shows to the admin."""
    status: str
    action: Optional[str] = None
    external_event_id: Optional[str] = None
    warning: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != SyncStatus.FAILED.value

    @classmethod
    def skipped(cls, reason: str) -> "SyncOutcome":
        return cls(status=SyncStatus.SKIPPED.value, action="skipped", warning=reason)

    @classmethod
    def failed(cls, reason: str) -> "SyncOutcome":
        return cls(status=SyncStatus.FAILED.value, action="failed", warning=reason)


# ========== EVENT MAPPING ==========

def build_event_body(appointment: Appointment, tz_name: str) -> Dict:
    start = datetime.combine(appointment.appointment_date, appointment.start_time)
    end = start + timedelta(minutes=appointment.duration_minutes)
    service_name = appointment.service_name or appointment.service_ref

    description = [
        f"Customer: {appointment.customer_name}",
        f"Service: {service_name}",
    ]
    if appointment.customer_email:
        description.append(f"Email: {appointment.customer_email}")
    if appointment.customer_phone:
        description.append(f"Phone: {appointment.customer_phone}")
    if appointment.note:
        description.append(f"Notes: {appointment.note}")
    description.append(f"Status: {appointment.status}")

    return {
        'summary': f"{service_name} - {appointment.customer_name}",
        'description': "\n".join(description),
        'start': {'dateTime': start.isoformat(), 'timeZone': tz_name},
        'end': {'dateTime': end.isoformat(), 'timeZone': tz_name},
        'extendedProperties': {
            'private': {
                'source': EVENT_SOURCE,
                'appointmentId': str(appointment.id),
            }
        },
    }


def _is_own_event(event: Dict) -> bool:
    private = event.get('extendedProperties', {}).get('private', {})
    return private.get('source') == EVENT_SOURCE


def event_period(event: Dict, tz: ZoneInfo) -> Optional[Period]:
    """Local wall-clock span of an external event; all-day events cover whole days"""
    start, end = event.get('start', {}), event.get('end', {})
    if 'date' in start:
        start_day = date.fromisoformat(start['date'])
        end_day = date.fromisoformat(end.get('date', start['date']))
        if end_day <= start_day:
            end_day = start_day + timedelta(days=1)
        return Period(datetime.combine(start_day, datetime.min.time()), datetime.combine(end_day, datetime.min.time()))
    if 'dateTime' in start and 'dateTime' in end:
        return Period(
            to_local_naive(datetime.fromisoformat(start['dateTime']), tz),
            to_local_naive(datetime.fromisoformat(end['dateTime']), tz),
        )
    return None


# ========== SYNC SERVICE ==========

class CalendarSyncService:

    def __init__(
            self,
            db: Session,
            google: Optional[GoogleCalendarService] = None,
            locks=None,
            clock: Optional[Clock] = None,
            settings: Optional[Settings] = None,
            cipher=None,
            owner_ref: Optional[str] = None
    ):
        self.db = db
        self.settings = settings or get_settings()
        self._google = google
        self.locks = locks or get_credential_locks(self.settings)
        self.clock = clock or SystemClock(self.settings.BUSINESS_TIMEZONE)
        self.cipher = cipher
        self.owner_ref = owner_ref or self.settings.BUSINESS_OWNER_REF
        self.tz = ZoneInfo(self.settings.BUSINESS_TIMEZONE)

    @property
    def google(self) -> GoogleCalendarService:
        # built on first use so a disconnected setup needs no OAuth config
        if self._google is None:
            self._google = GoogleCalendarService(self.settings)
        return self._google

    def _get_cipher(self):
        if self.cipher is None:
            self.cipher = get_cipher(self.settings.CALENDAR_ENCRYPTION_KEY)
        return self.cipher

    # ---------- credential ----------

    def _credential(self) -> Optional[CalendarCredential]:
        return self.db.query(CalendarCredential).filter(
            CalendarCredential.owner_ref == self.owner_ref
        ).first()

    def connection(self, credential: Optional[CalendarCredential] = None) -> Connection:
        credential = credential or self._credential()
        if credential is None or credential.connection_state == ConnectionState.DISCONNECTED.value:
            return Disconnected()
        if not credential.refresh_token_encrypted and not credential.access_token_encrypted:
            return Disconnected()
        if credential.connection_state == ConnectionState.ERROR.value:
            return Errored(reason=credential.last_error or "unknown_error")
        return Connected(
            calendar_id=credential.external_calendar_id or self.settings.GOOGLE_DEFAULT_CALENDAR_ID,
            expires_at=ensure_aware(credential.token_expires_at),
        )

    def connection_status(self) -> Dict:
        """Owner-facing view of the connection. Never includes token material."""
        credential = self._credential()
        connection = self.connection(credential)
        return {
            "provider": "google",
            "state": connection.state,
            "calendar_id": getattr(connection, "calendar_id", None),
            "error": getattr(connection, "reason", None),
            "connected_at": credential.connected_at if credential else None,
            "last_refreshed_at": credential.last_refreshed_at if credential else None,
        }

    def authorization_url(self, state: str) -> str:
        return self.google.generate_authorization_url(state)

    def complete_authorization(self, code: str, calendar_id: Optional[str] = None) -> CalendarCredential:
        """Exchange the OAuth code and store the tokens encrypted"""
        try:
            tokens = self.google.exchange_code(code)
        except (GoogleAuthError, ValueError) as e:
            logger.error(f"OAuth code exchange failed for {self.owner_ref}: {type(e).__name__}")
            raise ExternalSyncError("Could not complete Google authorization", code="oauth_exchange_failed") from e

        credential = self._credential()
        if credential is None:
            credential = CalendarCredential(owner_ref=self.owner_ref, provider="google")
            self.db.add(credential)

        cipher = self._get_cipher()
        credential.access_token_encrypted = encrypt_token(tokens.access_token, cipher)
        if tokens.refresh_token:
            credential.refresh_token_encrypted = encrypt_token(tokens.refresh_token, cipher)
        credential.token_expires_at = tokens.expiry
        credential.external_calendar_id = calendar_id or credential.external_calendar_id \
            or self.settings.GOOGLE_DEFAULT_CALENDAR_ID
        credential.connection_state = ConnectionState.CONNECTED.value
        credential.last_error = None
        credential.connected_at = self.clock.now()
        self._commit("store calendar credential")

        logger.info(f"Google Calendar connected for {self.owner_ref}")
        return credential

    def disconnect(self) -> None:
        """Forget the tokens. Sync links stay so a reconnect updates the same events."""
        credential = self._credential()
        if credential is None:
            return
        credential.access_token_encrypted = None
        credential.refresh_token_encrypted = None
        credential.token_expires_at = None
        credential.connection_state = ConnectionState.DISCONNECTED.value
        credential.last_error = None
        self._commit("disconnect calendar")
        logger.info(f"Google Calendar disconnected for {self.owner_ref}")

    def _connected_credential(self) -> CalendarCredential:
        credential = self._credential()
        if isinstance(self.connection(credential), Disconnected):
            raise ConflictError("Google Calendar is not connected", code="calendar_disconnected")
        return credential

    def list_calendars(self) -> List[Dict]:
        """Calendars the owner can mirror into"""
        credential = self._connected_credential()
        token = self.access_token(credential)
        try:
            return self.google.list_calendars(token)
        except CALENDAR_API_ERRORS as e:
            raise ExternalSyncError(f"Could not list calendars: {e}", code="calendar_api_error") from e

    def select_calendar(self, calendar_id: str) -> CalendarCredential:
        """
        Mirror into another calendar from now on. Events already pushed stay
        where they are; their links remember the calendar they live in.
        """
        credential = self._connected_credential()
        if calendar_id not in {cal['id'] for cal in self.list_calendars()}:
            raise ValidationError(
                f"Unknown calendar '{calendar_id}'", code="unknown_calendar", details={"calendar_id": calendar_id}
            )
        credential.external_calendar_id = calendar_id
        self._commit("select calendar")
        logger.info(f"Calendar for {self.owner_ref} set to {calendar_id}")
        return credential

    def _token_fresh(self, credential: CalendarCredential) -> bool:
        expires_at = ensure_aware(credential.token_expires_at)
        if not credential.access_token_encrypted or expires_at is None:
            return False
        margin = timedelta(minutes=self.settings.TOKEN_REFRESH_MARGIN_MINUTES)
        return expires_at > self.clock.now() + margin

    def _mark_error(self, credential: CalendarCredential, reason: str) -> None:
        credential.connection_state = ConnectionState.ERROR.value
        credential.last_error = reason
        self._commit("record credential error")
        logger.warning(f"Calendar credential for {credential.owner_ref} moved to error: {reason}")

    def access_token(self, credential: CalendarCredential) -> str:
        """
        A usable access token, refreshing it first if it is near expiry.

        Refresh runs under the credential lock and re-reads the row once the
        lock is held, so concurrent callers trigger at most one refresh and all
        of them see its result.
        """
        cipher = self._get_cipher()
        if self._token_fresh(credential) and credential.connection_state == ConnectionState.CONNECTED.value:
            token = decrypt_token(credential.access_token_encrypted, cipher)
            if token:
                return token

        with self.locks.hold(credential.owner_ref, timeout=self.settings.CALENDAR_LOCK_TIMEOUT_SECONDS):
            self.db.refresh(credential)
            if self._token_fresh(credential) and credential.connection_state == ConnectionState.CONNECTED.value:
                token = decrypt_token(credential.access_token_encrypted, cipher)
                if token:
                    return token

            refresh_token = decrypt_token(credential.refresh_token_encrypted, cipher)
            if not refresh_token:
                self._mark_error(credential, "refresh_token_unavailable")
                raise ExternalSyncError("Calendar credential cannot be refreshed", code="token_refresh_failed")

            try:
                tokens = self.google.refresh_access_token(refresh_token)
            except GoogleAuthError as e:
                self._mark_error(credential, f"token_refresh_failed: {e}")
                raise ExternalSyncError("Calendar token refresh failed", code="token_refresh_failed") from e

            credential.access_token_encrypted = encrypt_token(tokens.access_token, cipher)
            if tokens.refresh_token and tokens.refresh_token != refresh_token:
                credential.refresh_token_encrypted = encrypt_token(tokens.refresh_token, cipher)
            credential.token_expires_at = tokens.expiry
            credential.last_refreshed_at = self.clock.now()
            credential.connection_state = ConnectionState.CONNECTED.value
            credential.last_error = None
            self._commit("store refreshed token")

            logger.info(f"Refreshed calendar token for {credential.owner_ref}")
            return tokens.access_token

    # ---------- bookkeeping ----------

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to {action}: {e}")
            raise StorageError(f"Could not {action}") from e

    def _record(self, appointment: Appointment, outcome: SyncOutcome) -> SyncOutcome:
        appointment.sync_status = outcome.status
        if outcome.status in (SyncStatus.SYNCED.value, SyncStatus.FAILED.value):
            appointment.sync_attempts = (appointment.sync_attempts or 0) + 1
        if outcome.status == SyncStatus.FAILED.value:
            appointment.last_sync_error = outcome.warning
        else:
            appointment.last_sync_error = None
        if outcome.status == SyncStatus.SYNCED.value:
            appointment.last_synced_at = self.clock.now()
        self._commit("record sync result")
        return outcome

    def _link(self, appointment: Appointment) -> Optional[CalendarSyncLink]:
        return self.db.query(CalendarSyncLink).filter(
            CalendarSyncLink.appointment_id == appointment.id
        ).first()

    # ---------- push ----------

    def _find_existing_event(self, token: str, calendar_id: str, appointment: Appointment) -> Optional[str]:
        """An event already tagged with this appointment (e.g. a push whose link write was lost)"""
        start = local_to_utc(datetime.combine(appointment.appointment_date, appointment.start_time), self.tz)
        events = self.google.list_events(
            token,
            calendar_id,
            start - timedelta(days=1),
            start + timedelta(days=2),
            private_properties={'source': EVENT_SOURCE, 'appointmentId': str(appointment.id)},
        )
        return events[0]['id'] if events else None

    def upsert_event(self, appointment: Appointment) -> SyncOutcome:
        """Create or update the external event for an appointment"""
        credential = self._credential()
        connection = self.connection(credential)
        if isinstance(connection, Disconnected):
            return self._record(appointment, SyncOutcome.skipped("calendar_disconnected"))

        link = self._link(appointment)
        body = build_event_body(appointment, self.settings.BUSINESS_TIMEZONE)
        try:
            token = self.access_token(credential)
            calendar_id = credential.external_calendar_id or self.settings.GOOGLE_DEFAULT_CALENDAR_ID

            action = "updated"
            event_id = None
            if link:
                try:
                    event_id = self.google.update_event(token, link.external_calendar_id, link.external_event_id, body)
                except HttpError as e:
                    if not is_not_found(e):
                        raise
                    logger.info(f"External event for {appointment.id} is gone, recreating")
                    action = "recreated"

            if event_id is None:
                existing = self._find_existing_event(token, calendar_id, appointment)
                if existing:
                    event_id = self.google.update_event(token, calendar_id, existing, body)
                else:
                    event_id = self.google.insert_event(token, calendar_id, body)
                    if action != "recreated":
                        action = "created"
        except ExternalSyncError as e:
            return self._record(appointment, SyncOutcome.failed(e.code))
        except CALENDAR_API_ERRORS as e:
            logger.error(f"Calendar push failed for appointment {appointment.id}: {e}")
            if isinstance(e, GoogleAuthError):
                self._mark_error(credential, f"token_rejected: {e}")
            return self._record(appointment, SyncOutcome.failed(f"calendar_api_error: {e}"))

        if link is None:
            link = CalendarSyncLink(appointment_id=appointment.id, external_event_id=event_id, external_calendar_id=calendar_id)
            self.db.add(link)
        elif link.external_event_id != event_id or action == "recreated":
            link.external_event_id = event_id
            link.external_calendar_id = calendar_id
        link.synced_at = self.clock.now()

        outcome = SyncOutcome(status=SyncStatus.SYNCED.value, action=action, external_event_id=event_id)
        self._record(appointment, outcome)
        logger.info(f"Appointment {appointment.id} {action} in Google Calendar ({event_id})")
        return outcome

    def delete_event(self, appointment: Appointment) -> SyncOutcome:
        """Remove the external event and its link; missing events count as deleted"""
        link = self._link(appointment)
        if link is None:
            return self._record(
                appointment, SyncOutcome(status=SyncStatus.NOT_REQUIRED.value, action="no_event")
            )

        credential = self._credential()
        connection = self.connection(credential)
        if isinstance(connection, Disconnected):
            # can't reach the calendar; the tagged event is left for prune_orphans
            self.db.delete(link)
            return self._record(appointment, SyncOutcome.skipped("calendar_disconnected"))

        try:
            token = self.access_token(credential)
            try:
                self.google.delete_event(token, link.external_calendar_id, link.external_event_id)
            except HttpError as e:
                if not is_not_found(e):
                    raise
        except ExternalSyncError as e:
            return self._record(appointment, SyncOutcome.failed(e.code))
        except CALENDAR_API_ERRORS as e:
            logger.error(f"Calendar delete failed for appointment {appointment.id}: {e}")
            if isinstance(e, GoogleAuthError):
                self._mark_error(credential, f"token_rejected: {e}")
            return self._record(appointment, SyncOutcome.failed(f"calendar_api_error: {e}"))

        event_id = link.external_event_id
        self.db.delete(link)
        outcome = SyncOutcome(status=SyncStatus.NOT_REQUIRED.value, action="deleted", external_event_id=event_id)
        self._record(appointment, outcome)
        logger.info(f"Removed calendar event {event_id} for appointment {appointment.id}")
        return outcome

    # ---------- pull ----------

    def list_external_events(self, start: datetime, end: datetime) -> List[Dict]:
        credential = self._credential()
        if isinstance(self.connection(credential), Disconnected):
            return []
        token = self.access_token(credential)
        calendar_id = credential.external_calendar_id or self.settings.GOOGLE_DEFAULT_CALENDAR_ID
        try:
            return self.google.list_events(token, calendar_id, ensure_aware(start), ensure_aware(end))
        except CALENDAR_API_ERRORS as e:
            raise ExternalSyncError(f"Could not list calendar events: {e}", code="calendar_api_error") from e

    def busy_periods(self, target_date: date) -> List[Period]:
        """
        Local wall-clock periods on ``target_date`` taken by external events.

        Events mirrored from our own appointments and events marked free
        (transparent) are ignored.
        """
        day_start = datetime.combine(target_date, datetime.min.time())
        day_end = day_start + timedelta(days=1)
        events = self.list_external_events(local_to_utc(day_start, self.tz), local_to_utc(day_end, self.tz))

        periods = []
        for event in events:
            if _is_own_event(event) or event.get('transparency') == 'transparent':
                continue
            if event.get('status') == 'cancelled':
                continue
            period = event_period(event, self.tz)
            if period is None:
                continue
            clipped = Period(max(period.start, day_start), min(period.end, day_end))
            if not clipped.is_empty:
                periods.append(clipped)
        return periods

    def prune_orphans(self, start: datetime, end: datetime) -> Dict:
        """Delete events we created whose appointment no longer has a link"""
        credential = self._credential()
        if isinstance(self.connection(credential), Disconnected):
            return {"deleted": 0, "failed": []}

        token = self.access_token(credential)
        calendar_id = credential.external_calendar_id or self.settings.GOOGLE_DEFAULT_CALENDAR_ID
        try:
            events = self.google.list_events(
                token, calendar_id, ensure_aware(start), ensure_aware(end), private_properties={'source': EVENT_SOURCE}
            )
        except CALENDAR_API_ERRORS as e:
            raise ExternalSyncError(f"Could not list calendar events: {e}", code="calendar_api_error") from e
        linked = {
            event_id for (event_id,) in self.db.query(CalendarSyncLink.external_event_id).all()
        }

        deleted, failed = 0, []
        for event in events:
            if event['id'] in linked:
                continue
            try:
                self.google.delete_event(token, calendar_id, event['id'])
                deleted += 1
            except CALENDAR_API_ERRORS as e:
                if isinstance(e, HttpError) and is_not_found(e):
                    continue
                logger.warning(f"Could not prune calendar event {event['id']}: {e}")
                failed.append({"event_id": event['id'], "reason": str(e)})

        if deleted:
            logger.info(f"Pruned {deleted} orphaned calendar events")
        return {"deleted": deleted, "failed": failed}
