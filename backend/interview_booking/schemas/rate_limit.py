"""
Pydantic schemas for the failed-login rate limiter.
"""

from pydantic import BaseModel, Field


class RateLimitRequest(BaseModel):
    identity: str = Field(..., min_length=1, max_length=255)


class RateLimitStatus(BaseModel):
    allowed: bool
    attempt_count: int
    remaining_attempts: int
    wait_time_minutes: int
    message: str
