# salon_booking/services/calendar/google_calendar_service.py
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from httplib2 import HttpLib2Error
import logging

from salon_booking.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)

# What a Calendar API call can raise when Google or the network misbehaves.
# GoogleAuthError covers a revoked token rejected mid-call (RefreshError).
CALENDAR_API_ERRORS = (HttpError, GoogleAuthError, HttpLib2Error, OSError)


@dataclass
class OAuthTokens:
    access_token: str = field(repr=False)
    refresh_token: Optional[str] = field(default=None, repr=False)
    expiry: Optional[datetime] = None


def is_not_found(error: HttpError) -> bool:
    """404/410 from the Calendar API: the event no longer exists"""
    status = getattr(getattr(error, "resp", None), "status", None)
    return int(status or 0) in (404, 410)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # google-auth reports expiry as naive UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class GoogleCalendarService:
    """Thin wrapper over Google OAuth2 and the Calendar v3 API.

    Holds no tokens itself: every call gets the access token it should use,
    so the sync service stays in charge of storage and refresh.
    """
    SCOPES = ['https://www.googleapis.com/auth/calendar']

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()

        if not settings.GOOGLE_REDIRECT_URI:
            error_msg = "GOOGLE_REDIRECT_URI is not set! Please add it to your .env file."
            logger.error(error_msg)
            raise ValueError(error_msg)

        # OAuth credentials from Google Cloud Console
        self.client_config = {
            "web": {
                "client_id": settings.GOOGLE_CLIENT_ID,
                "client_secret": settings.GOOGLE_CLIENT_SECRET,
                "redirect_uris": [settings.GOOGLE_REDIRECT_URI],
                "auth_uri": "https://accounts.google.com/o/oauth2/auth",
                "token_uri": settings.GOOGLE_TOKEN_URI,
            }
        }

        logger.info(
            f"GoogleCalendarService configured (client id {'SET' if settings.GOOGLE_CLIENT_ID else 'NOT SET'}, "
            f"redirect {settings.GOOGLE_REDIRECT_URI})"
        )

    # ========== OAUTH ==========

    def _flow(self) -> Flow:
        return Flow.from_client_config(
            self.client_config,
            scopes=self.SCOPES,
            redirect_uri=self.client_config['web']['redirect_uris'][0]
        )

    def generate_authorization_url(self, state: str) -> str:
        """Step 1: OAuth URL for the business owner to visit"""
        authorization_url, _ = self._flow().authorization_url(
            access_type='offline',  # Gets refresh token
            include_granted_scopes='true',
            prompt='consent',  # Force consent screen to get refresh token
            state=state
        )
        return authorization_url

    def exchange_code(self, code: str) -> OAuthTokens:
        """Step 2: exchange the authorization code for tokens"""
        flow = self._flow()
        flow.fetch_token(code=code)
        credentials = flow.credentials
        logger.info("Exchanged authorization code for tokens")
        return OAuthTokens(
            access_token=credentials.token,
            refresh_token=credentials.refresh_token,
            expiry=_aware(credentials.expiry),
        )

    def refresh_access_token(self, refresh_token: str) -> OAuthTokens:
        """Blocking call to the token endpoint. Raises google.auth RefreshError."""
        credentials = Credentials(
            token=None,
            refresh_token=refresh_token,
            token_uri=self.client_config['web']['token_uri'],
            client_id=self.client_config['web']['client_id'],
            client_secret=self.client_config['web']['client_secret']
        )
        credentials.refresh(Request())
        return OAuthTokens(
            access_token=credentials.token,
            refresh_token=credentials.refresh_token,
            expiry=_aware(credentials.expiry),
        )

    # ========== CALENDAR API ==========

    def _calendar(self, access_token: str):
        credentials = Credentials(token=access_token)
        return build('calendar', 'v3', credentials=credentials, cache_discovery=False)

    def insert_event(self, access_token: str, calendar_id: str, body: Dict) -> str:
        event = self._calendar(access_token).events().insert(
            calendarId=calendar_id, body=body
        ).execute()
        return event['id']

    def update_event(self, access_token: str, calendar_id: str, event_id: str, body: Dict) -> str:
        event = self._calendar(access_token).events().update(
            calendarId=calendar_id, eventId=event_id, body=body
        ).execute()
        return event.get('id', event_id)

    def delete_event(self, access_token: str, calendar_id: str, event_id: str) -> None:
        self._calendar(access_token).events().delete(
            calendarId=calendar_id, eventId=event_id
        ).execute()

    def list_events(
            self,
            access_token: str,
            calendar_id: str,
            time_min: datetime,
            time_max: datetime,
            private_properties: Optional[Dict[str, str]] = None
    ) -> List[Dict]:
        """All single events in [time_min, time_max), following pagination"""
        events_api = self._calendar(access_token).events()
        params = {
            'calendarId': calendar_id,
            'timeMin': time_min.isoformat(),
            'timeMax': time_max.isoformat(),
            'singleEvents': True,
            'orderBy': 'startTime',
            'maxResults': 2500,
        }
        if private_properties:
            params['privateExtendedProperty'] = [f"{key}={value}" for key, value in private_properties.items()]

        events = []
        page_token = None
        while True:
            if page_token:
                params['pageToken'] = page_token
            response = events_api.list(**params).execute()
            events.extend(response.get('items', []))
            page_token = response.get('nextPageToken')
            if not page_token:
                break
        return events

    def list_calendars(self, access_token: str) -> List[Dict]:
        calendar_list = self._calendar(access_token).calendarList().list().execute()
        return [
            {'id': cal['id'], 'name': cal.get('summary', cal['id'])}
            for cal in calendar_list.get('items', [])
        ]
