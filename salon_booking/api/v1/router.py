"""
API v1 router setup
Organized into: public (no auth) and dashboard (JWT, admin role) routes
"""
from fastapi import APIRouter

from salon_booking.api.v1.public import availability as public_availability
from salon_booking.api.v1.public import appointments as public_appointments
from salon_booking.api.v1.public import services as public_services
from salon_booking.api.v1.dashboard import availability, time_off, appointments, calendar

api_v1_router = APIRouter()

# ============================================================================
# PUBLIC ROUTES (No authentication required)
# ============================================================================
api_v1_router.include_router(public_availability.router, prefix="/public", tags=["Public"])
api_v1_router.include_router(public_appointments.router, prefix="/public", tags=["Public"])
api_v1_router.include_router(public_services.router, prefix="/public", tags=["Public"])

# ============================================================================
# DASHBOARD ROUTES (JWT authentication + admin role required)
# ============================================================================
api_v1_router.include_router(availability.router, prefix="/dashboard", tags=["Dashboard"])
api_v1_router.include_router(time_off.router, prefix="/dashboard", tags=["Dashboard"])
api_v1_router.include_router(appointments.router, prefix="/dashboard", tags=["Dashboard"])
api_v1_router.include_router(calendar.router, prefix="/dashboard", tags=["Dashboard"])


# ============================================================================
# ROOT ENDPOINT - API Info
# ============================================================================
@api_v1_router.get("/", tags=["Info"])
async def api_info():
    """API information and authentication types"""
    return {
        "version": "1.0",
        "authentication": {
            "public": "No authentication required",
            "dashboard": "JWT Bearer token with the admin role",
        }
    }
