# ============================================================================
# FILE: salon_booking/api/v1/dashboard/calendar.py
# Admin endpoints - thin HTTP layer
# IMPORTANT: Specific routes MUST come before parameterized routes
# ============================================================================
from fastapi import APIRouter, Depends, Query, status
from typing import List
from fastapi.responses import HTMLResponse
from starlette.concurrency import run_in_threadpool
import logging

from salon_booking.api.dependencies import (
    OAuthStateStore,
    get_calendar_sync,
    get_oauth_state_store,
    require_admin,
)
from salon_booking.core.exceptions import AuthError
from salon_booking.schemas.calendar import (
    AuthorizationUrlResponse,
    CalendarConnectionStatus,
    CalendarInfo,
    CalendarSelection,
)
from salon_booking.services.calendar.calendar_sync_service import CalendarSyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/calendar", tags=["dashboard-calendar"])

AUTHORIZED_PAGE = """
<html>
    <head>
        <title>Authorization Successful</title>
        <style>
            body {
                font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif;
                display: flex;
                align-items: center;
                justify-content: center;
                height: 100vh;
                margin: 0;
            }
            h1 { color: #10b981; margin: 0 0 0.5rem 0; }
            p { color: #6b7280; margin: 0; }
        </style>
    </head>
    <body>
        <div>
            <h1>Google Calendar connected</h1>
            <p>Approved appointments will now appear in your calendar. You can close this window.</p>
        </div>
        <script>
            setTimeout(() => window.close(), 2000);
        </script>
    </body>
</html>
"""


# ========== GOOGLE CALENDAR ==========

@router.post("/google/authorize", response_model=AuthorizationUrlResponse)
async def initiate_google_auth(
        admin: dict = Depends(require_admin),
        sync_service: CalendarSyncService = Depends(get_calendar_sync),
        state_store: OAuthStateStore = Depends(get_oauth_state_store)
):
    """
    Returns authorization URL for the business owner to visit.
    Requires an administrator token.
    """
    state = await state_store.issue(sync_service.owner_ref)
    return AuthorizationUrlResponse(authorization_url=sync_service.authorization_url(state))


@router.get("/google/callback", response_class=HTMLResponse)
async def google_callback(
        code: str = Query(...),
        state: str = Query(...),
        sync_service: CalendarSyncService = Depends(get_calendar_sync),
        state_store: OAuthStateStore = Depends(get_oauth_state_store)
):
    """
    Google redirects here after authorization.
    Not token guarded; the single-use ``state`` ties it to an authorize call.
    """
    owner_ref = await state_store.consume(state)
    if owner_ref is None or owner_ref != sync_service.owner_ref:
        logger.warning("OAuth callback with unknown or expired state")
        raise AuthError("Authorization request expired or was not started here", code="invalid_oauth_state")

    await run_in_threadpool(sync_service.complete_authorization, code)
    return HTMLResponse(AUTHORIZED_PAGE)


@router.get("/google/status", response_model=CalendarConnectionStatus)
def google_connection_status(
        admin: dict = Depends(require_admin),
        sync_service: CalendarSyncService = Depends(get_calendar_sync)
):
    return CalendarConnectionStatus(**sync_service.connection_status())


@router.delete("/google", status_code=status.HTTP_204_NO_CONTENT)
def disconnect_google(
        admin: dict = Depends(require_admin),
        sync_service: CalendarSyncService = Depends(get_calendar_sync)
):
    """Forget the stored tokens. Existing calendar events are left in place."""
    sync_service.disconnect()


@router.get("/google/calendars", response_model=List[CalendarInfo])
def list_google_calendars(
        admin: dict = Depends(require_admin),
        sync_service: CalendarSyncService = Depends(get_calendar_sync)
):
    """Calendars on the connected account, to pick where appointments go"""
    return [CalendarInfo(**cal) for cal in sync_service.list_calendars()]


@router.put("/google/calendar", response_model=CalendarConnectionStatus)
def select_google_calendar(
        selection: CalendarSelection,
        admin: dict = Depends(require_admin),
        sync_service: CalendarSyncService = Depends(get_calendar_sync)
):
    sync_service.select_calendar(selection.calendar_id)
    return CalendarConnectionStatus(**sync_service.connection_status())
