"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from interview_booking.api.routes import events, slots, bookings, rate_limit

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(events.router)
api_router.include_router(slots.router)
api_router.include_router(bookings.router)
api_router.include_router(rate_limit.router)
