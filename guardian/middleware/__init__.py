"""
Middleware modules for the Guardian Link store gateway.
"""

from .rate_limit import RateLimiter, RateLimitMiddleware

__all__ = [
    "RateLimiter",
    "RateLimitMiddleware",
]
