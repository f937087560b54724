# ============================================================================
# FILE: salon_booking/api/dependencies.py
# Authentication and service dependencies
# ============================================================================
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Optional
from datetime import datetime, timedelta, timezone
from jose import JWTError, jwt
import json
import secrets

from salon_booking.config.database import get_db
from salon_booking.config.redis import RedisKeys, get_redis
from salon_booking.config.settings import get_settings
from salon_booking.core.clock import Clock, SystemClock
from salon_booking.core.exceptions import AuthError, ForbiddenError
from salon_booking.services.booking.booking_orchestrator import BookingOrchestrator
from salon_booking.services.calendar.calendar_sync_service import CalendarSyncService

# ============================================================================
# Security Schemes
# ============================================================================

# JWT security for the business owner / staff dashboard
jwt_security = HTTPBearer(
    scheme_name="JWT Bearer Token",
    description="Enter your JWT access token",
    auto_error=False
)


# ============================================================================
# JWT Token Functions
# ============================================================================

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Args:
        data: Dictionary with claims (should include 'sub' and 'role')
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    settings = get_settings()
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES
        )

    to_encode.update({
        "exp": expire,
        "iat": datetime.now(timezone.utc),
        "type": "access"
    })

    return jwt.encode(
        to_encode,
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM
    )


def verify_access_token(token: str) -> dict:
    """
    Verify and decode a JWT access token.

    Raises:
        AuthError: If token is invalid, expired or not an access token
    """
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM]
        )
    except JWTError as e:
        raise AuthError(f"Could not validate credentials: {e}", code="invalid_token")

    if payload.get("type") != "access":
        raise AuthError("Invalid token type", code="invalid_token")

    return payload


# ============================================================================
# Authentication Dependencies
# ============================================================================

async def get_current_claims(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(jwt_security)
) -> dict:
    """Claims of a valid bearer token"""
    if credentials is None:
        raise AuthError("Not authenticated", code="missing_token")

    payload = verify_access_token(credentials.credentials)
    if not payload.get("sub"):
        raise AuthError("Could not validate credentials", code="invalid_token")
    return payload


async def require_admin(claims: dict = Depends(get_current_claims)) -> dict:
    """
    Dashboard guard: the token must carry the administrator role.

    Usage in routes:
        @router.get("/appointments")
        async def list_appointments(admin: dict = Depends(require_admin)):
            ...
    """
    settings = get_settings()
    roles = claims.get("roles") or [claims.get("role")]
    if settings.ADMIN_ROLE not in roles:
        raise ForbiddenError("Administrator role required")
    return claims


# ============================================================================
# Service Dependencies
# ============================================================================

def get_clock() -> Clock:
    return SystemClock(get_settings().BUSINESS_TIMEZONE)


def get_calendar_sync(
        db: Session = Depends(get_db),
        clock: Clock = Depends(get_clock)
) -> CalendarSyncService:
    return CalendarSyncService(db, clock=clock)


def get_orchestrator(
        db: Session = Depends(get_db),
        clock: Clock = Depends(get_clock),
        sync_service: CalendarSyncService = Depends(get_calendar_sync)
) -> BookingOrchestrator:
    return BookingOrchestrator(db, clock=clock, sync_service=sync_service)


# ============================================================================
# OAuth state (CSRF protection for the consent round-trip)
# ============================================================================

class OAuthStateStore:
    """Single-use OAuth ``state`` values kept in Redis with a short TTL"""

    def __init__(self, redis_client, ttl_seconds: int):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds

    async def issue(self, owner_ref: str) -> str:
        state = secrets.token_urlsafe(32)
        await self.redis.setex(
            RedisKeys.OAUTH_STATE.format(state=state),
            self.ttl_seconds,
            json.dumps({"owner_ref": owner_ref})
        )
        return state

    async def consume(self, state: str) -> Optional[str]:
        """Owner ref the state was issued for; None if unknown, expired or already used"""
        key = RedisKeys.OAUTH_STATE.format(state=state)
        data = await self.redis.get(key)
        if not data:
            return None
        await self.redis.delete(key)
        return json.loads(data)["owner_ref"]


async def get_oauth_state_store() -> OAuthStateStore:
    return OAuthStateStore(await get_redis(), get_settings().OAUTH_STATE_TTL_SECONDS)
