"""
Rate limiting for the BookDrop API.

Two limiters:
- DuplicateRequestGuard: rejects a repeated list creation from the same
  actor within a short window (double submits, retries).
- SlidingWindowLimiter: per-client request budget for the expensive
  image endpoints, applied by RateLimitMiddleware.

Both are in-memory, for single-instance deployments, and take an
injectable clock.
"""

import hashlib
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Deque, Dict, Optional, Tuple

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from bookdrop.exceptions import RateLimitError

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class DuplicateRequestGuard:
    """
    Reject a second request with the same key inside ``window_seconds``.

    Entries older than ``evict_after_seconds`` are dropped on every check,
    so the map stays bounded by recent traffic.

    Usage:
        guard = DuplicateRequestGuard()
        guard.check(actor_id)  # raises RateLimitError when too recent
    """

    def __init__(
        self,
        window_seconds: float = 5.0,
        evict_after_seconds: float = 60.0,
        clock: Clock = time.monotonic,
    ):
        self.window_seconds = window_seconds
        self.evict_after_seconds = evict_after_seconds
        self.clock = clock
        self._last_seen: Dict[str, float] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._last_seen)

    def _evict(self, now: float) -> None:
        expired = [
            key for key, seen in self._last_seen.items()
            if now - seen > self.evict_after_seconds
        ]
        for key in expired:
            del self._last_seen[key]

    def check(self, key: str) -> None:
        """
        Record a request for ``key``.

        Raises:
            RateLimitError: The previous request for ``key`` was too recent.
        """
        with self._lock:
            now = self.clock()
            self._evict(now)

            last = self._last_seen.get(key)
            if last is not None and now - last < self.window_seconds:
                retry_after = self.window_seconds - (now - last)
                logger.warning(f"Duplicate request from {key} within {self.window_seconds}s")
                raise RateLimitError(
                    f"Please wait {retry_after:.1f}s before retrying",
                    retry_after=retry_after,
                )

            self._last_seen[key] = now

    def reset(self) -> None:
        with self._lock:
            self._last_seen.clear()


@dataclass
class RateLimitConfig:
    """Configuration for rate limiting."""

    # Requests per client per window on limited paths
    requests_per_minute: int = 20
    window_seconds: float = 60.0

    enabled: bool = True

    # Only these path prefixes are limited
    limited_paths: list = field(default_factory=lambda: [
        "/api/v1/detect",
        "/api/v1/lists/from-image",
        "/api/v1/mini-library",
    ])

    # Header carrying the authenticated actor
    user_header: str = "X-User-Id"

    # Trusted proxy headers for real IP
    trusted_proxy_headers: list = field(default_factory=lambda: [
        "X-Forwarded-For",
        "X-Real-IP",
    ])


class SlidingWindowLimiter:
    """Exact sliding-window limiter keeping request timestamps per client."""

    def __init__(self, config: RateLimitConfig, clock: Clock = time.monotonic):
        self.config = config
        self.clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._lock = threading.Lock()

    def _cleanup(self, now: float) -> None:
        stale = [
            key for key, hits in self._hits.items()
            if not hits or now - hits[-1] > self.config.window_seconds
        ]
        for key in stale:
            del self._hits[key]

    def check(self, identifier: str) -> Tuple[bool, int, float]:
        """
        Returns:
            Tuple of (allowed, remaining_requests, reset_time).
        """
        limit = self.config.requests_per_minute
        window = self.config.window_seconds

        with self._lock:
            now = self.clock()
            self._cleanup(now)

            hits = self._hits.setdefault(identifier, deque())
            while hits and now - hits[0] >= window:
                hits.popleft()

            if len(hits) >= limit:
                return False, 0, window - (now - hits[0])

            hits.append(now)
            return True, limit - len(hits), window - (now - hits[0])


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    FastAPI middleware applying the sliding-window limit to image endpoints.
    """

    def __init__(
        self,
        app: FastAPI,
        config: Optional[RateLimitConfig] = None,
        limiter: Optional[SlidingWindowLimiter] = None,
    ):
        super().__init__(app)
        self.config = config or RateLimitConfig()
        self.limiter = limiter or SlidingWindowLimiter(self.config)

    def _get_client_identifier(self, request: Request) -> str:
        """Actor ID when present, otherwise the client IP."""
        user_id = request.headers.get(self.config.user_header)
        if user_id:
            return f"user:{hashlib.sha256(user_id.encode()).hexdigest()[:16]}"

        for header in self.config.trusted_proxy_headers:
            forwarded = request.headers.get(header)
            if forwarded:
                return f"ip:{forwarded.split(',')[0].strip()}"

        if request.client:
            return f"ip:{request.client.host}"
        return "unknown"

    def _is_limited(self, request: Request) -> bool:
        if request.method != "POST":
            return False
        return any(request.url.path.startswith(p) for p in self.config.limited_paths)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request with rate limiting."""
        if not self.config.enabled or not self._is_limited(request):
            return await call_next(request)

        identifier = self._get_client_identifier(request)
        allowed, remaining, reset_time = self.limiter.check(identifier)

        if not allowed:
            logger.warning(
                f"Rate limit exceeded for {identifier} on {request.url.path}",
                extra={"identifier": identifier, "endpoint": request.url.path},
            )
            retry_after = int(reset_time) + 1
            return JSONResponse(
                status_code=429,
                content={
                    "error": "Too many requests. Please try again later.",
                    "code": "RATE_LIMIT_EXCEEDED",
                    "detail": f"Retry after {retry_after}s",
                    "timestamp": datetime.utcnow().isoformat(),
                },
                headers={
                    "Retry-After": str(retry_after),
                    "X-Rate-Limit-Remaining": "0",
                },
            )

        response = await call_next(request)
        response.headers["X-Rate-Limit-Remaining"] = str(remaining)
        return response


def setup_rate_limiting(
    app: FastAPI,
    config: Optional[RateLimitConfig] = None,
) -> SlidingWindowLimiter:
    """
    Configure rate limiting middleware for the FastAPI application.

    Returns:
        The limiter instance for potential external use.
    """
    config = config or RateLimitConfig()
    limiter = SlidingWindowLimiter(config)
    app.add_middleware(RateLimitMiddleware, config=config, limiter=limiter)
    return limiter
