"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .rate_limit import RateLimitStrategy
from .database_rate_limit import DatabaseRateLimiter

__all__ = ['RateLimitStrategy', 'DatabaseRateLimiter']
