"""
Failed-login rate limiter endpoints, called by the login flow around its
credential check. Origin is the caller's address as seen by this service.
"""

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from interview_booking.api.middleware import client_ip
from interview_booking.core.logging import get_logger
from interview_booking.core.metrics import record_rate_limit
from interview_booking.schemas.rate_limit import RateLimitRequest, RateLimitStatus
from interview_booking.services.interfaces.rate_limit import RateLimitStrategy
from interview_booking.services.strategy_factory import get_rate_limiter

logger = get_logger(__name__)
router = APIRouter(prefix="/rate-limit", tags=["Rate limiting"])


def _respond(decision: RateLimitStatus, identity: str):
    record_rate_limit(decision.allowed)
    if decision.allowed:
        return decision
    logger.warning(
        "rate_limit_exceeded",
        identity=identity,
        attempt_count=decision.attempt_count,
        wait_time_minutes=decision.wait_time_minutes,
    )
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=decision.model_dump(),
        headers={"Retry-After": str(decision.wait_time_minutes * 60)},
    )


@router.post("/check", response_model=RateLimitStatus)
async def check_endpoint(
    data: RateLimitRequest,
    request: Request,
    limiter: RateLimitStrategy = Depends(get_rate_limiter),
):
    """Allow/deny decision to consult before verifying credentials. 429 when locked."""
    return _respond(await limiter.check(data.identity, client_ip(request)), data.identity)


@router.post("/failures", response_model=RateLimitStatus)
async def record_failure_endpoint(
    data: RateLimitRequest,
    request: Request,
    limiter: RateLimitStrategy = Depends(get_rate_limiter),
):
    """Record a failed login and return the decision that now applies."""
    return _respond(await limiter.record_failure(data.identity, client_ip(request)), data.identity)


@router.delete("", status_code=status.HTTP_200_OK)
async def clear_endpoint(
    data: RateLimitRequest,
    request: Request,
    limiter: RateLimitStrategy = Depends(get_rate_limiter),
):
    """Forget the pair's failures after a successful login."""
    removed = await limiter.clear(data.identity, client_ip(request))
    return {"cleared": removed}
