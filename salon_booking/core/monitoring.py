"""Liveness and readiness endpoints"""
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from redis.exceptions import RedisError

from salon_booking.config.database import get_db
from salon_booking.config.redis import get_redis
from salon_booking.config.settings import get_settings
from salon_booking.models.calendar_integration import CalendarCredential, ConnectionState

health_router = APIRouter()

# a broken calendar link degrades mirroring only, never booking
CRITICAL_CHECKS = ("database", "redis")


@health_router.get("/")
async def health_check():
    return {"status": "healthy", "service": "salon-booking-api"}


def _calendar_state(db: Session) -> str:
    credential = db.query(CalendarCredential).filter(
        CalendarCredential.owner_ref == get_settings().BUSINESS_OWNER_REF
    ).first()
    if credential is None:
        return ConnectionState.DISCONNECTED.value
    return credential.connection_state


@health_router.get("/detailed")
async def detailed_health_check(db: Session = Depends(get_db)):
    """Storage and Redis reachability, plus the calendar link state"""
    checks = {"database": "unknown", "redis": "unknown", "calendar": "unknown"}

    try:
        db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
        checks["calendar"] = _calendar_state(db)
    except SQLAlchemyError as e:
        checks["database"] = f"unhealthy: {type(e).__name__}"

    try:
        redis_client = await get_redis()
        await redis_client.ping()
        checks["redis"] = "healthy"
    except (RedisError, OSError) as e:
        checks["redis"] = f"unhealthy: {type(e).__name__}"

    healthy = all(checks[name] == "healthy" for name in CRITICAL_CHECKS)
    checks["overall"] = "healthy" if healthy else "degraded"
    return checks
