"""
Rate limiting middleware for the store gateway.

Implements per-IP limits on writes and on connection opens. Reads and event
streams are not limited.
Uses in-memory storage, which matches the gateway's single-process store.
"""

import time
from typing import Dict, List, Tuple

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from guardian import config

WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


class RateLimiter:
    """
    Simple in-memory sliding-window rate limiter.
    """

    def __init__(self):
        # Storage: {key: [(timestamp, count)]}
        self.requests: Dict[str, List[Tuple[float, int]]] = {}
        self.cleanup_interval = 300  # Clean up old entries every 5 minutes
        self.last_cleanup = time.time()

    def _cleanup(self):
        """Remove old entries to prevent memory leak."""
        now = time.time()
        if now - self.last_cleanup > self.cleanup_interval:
            cutoff = now - 3600  # Remove entries older than 1 hour
            for key in list(self.requests.keys()):
                self.requests[key] = [
                    (ts, count) for ts, count in self.requests[key]
                    if ts > cutoff
                ]
                if not self.requests[key]:
                    del self.requests[key]
            self.last_cleanup = now

    def is_allowed(self, key: str, limit: int, window: int) -> Tuple[bool, Dict]:
        """
        Check if request is allowed under rate limit.

        Args:
            key: Unique identifier for rate limit (bucket and client IP)
            limit: Maximum number of requests allowed
            window: Time window in seconds

        Returns:
            Tuple of (allowed, headers_dict) where headers_dict contains
            rate limit information for response headers
        """
        self._cleanup()

        now = time.time()
        window_start = now - window

        # Filter to current window
        current_window_requests = [
            (ts, count) for ts, count in self.requests.get(key, [])
            if ts > window_start
        ]
        self.requests[key] = current_window_requests

        request_count = sum(count for _, count in current_window_requests)
        allowed = request_count < limit

        if allowed:
            self.requests[key].append((now, 1))
            remaining = limit - request_count - 1
        else:
            remaining = 0

        # Reset time is the end of the current window
        if current_window_requests:
            oldest_ts = min(ts for ts, _ in current_window_requests)
            reset_time = int(oldest_ts + window)
        else:
            reset_time = int(now + window)

        headers = {
            "X-RateLimit-Limit": str(limit),
            "X-RateLimit-Remaining": str(max(0, remaining)),
            "X-RateLimit-Reset": str(reset_time)
        }

        return allowed, headers


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Middleware to apply rate limiting to requests.

    Connection opens: ``connect_limit`` requests/minute per IP
    Writes (tree writes, subscriptions, hooks): ``write_limit`` requests/minute per IP
    """

    def __init__(
        self,
        app,
        write_limit: int = config.WRITE_RATE_LIMIT,
        connect_limit: int = config.CONNECT_RATE_LIMIT,
        window: int = 60
    ):
        super().__init__(app)
        self.limiter = RateLimiter()
        self.write_limit = write_limit
        self.connect_limit = connect_limit
        self.window = window

    def _bucket(self, request: Request):
        path = request.url.path.rstrip("/")
        if request.method == "POST" and path == "/connections":
            return "connect", self.connect_limit, "Too many connections opened. Please try again later."
        if request.method in WRITE_METHODS:
            return "write", self.write_limit, "Too many writes. Please slow down."
        return None

    async def dispatch(self, request: Request, call_next):
        bucket = self._bucket(request)
        if bucket is None:
            return await call_next(request)

        name, limit, message = bucket
        client_ip = request.client.host if request.client else "unknown"
        allowed, headers = self.limiter.is_allowed(f"{name}:{client_ip}", limit, self.window)

        if not allowed:
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"detail": message},
                headers=headers
            )

        response = await call_next(request)
        for header_name, header_value in headers.items():
            response.headers[header_name] = header_value
        return response
