"""Rate limiter implementation using sliding window algorithm."""

import asyncio
import time
from collections import deque
from typing import Callable, Deque, Dict, Optional

from fastapi import Request
from structlog import get_logger

logger = get_logger()


class RateLimitExceeded(Exception):
    """Exception raised when rate limit is exceeded."""

    def __init__(self, message: str, retry_after: float) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class RateLimiter:
    """Sliding-window limiter keyed by caller and path.

    Timestamps live in one deque per key; a key is dropped as soon as its
    window empties, so idle clients cost nothing.
    """

    def __init__(
        self,
        rate_limit: int = 50,
        time_window: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize rate limiter with configurable parameters."""
        self.rate_limit = rate_limit
        self.time_window = time_window  # in seconds
        self._clock = clock
        self._requests: Dict[str, Deque[float]] = {}
        self._lock = asyncio.Lock()
        logger.info(
            "rate_limiter_initialized",
            rate_limit=rate_limit,
            time_window=time_window,
        )

    def _prune(self, key: str, now: float) -> Deque[float]:
        window = self._requests.get(key)
        if window is None:
            return deque()
        while window and now - window[0] >= self.time_window:
            window.popleft()
        if not window:
            del self._requests[key]
        return window

    async def check_rate_limit(self, key: str) -> None:
        """Record a request for ``key`` or raise RateLimitExceeded."""
        async with self._lock:
            now = self._clock()
            window = self._prune(key, now)

            if len(window) >= self.rate_limit:
                retry_after = max(0.0, self.time_window - (now - window[0]))
                logger.warning(
                    "rate_limit_exceeded",
                    key=key,
                    current_requests=len(window),
                    rate_limit=self.rate_limit,
                )
                raise RateLimitExceeded(
                    f"Rate limit of {self.rate_limit} requests per {self.time_window} seconds exceeded",
                    retry_after=retry_after,
                )

            window.append(now)
            self._requests[key] = window

    async def get_remaining_requests(self, key: str) -> int:
        """Get remaining requests for the key."""
        async with self._lock:
            window = self._prune(key, self._clock())
            return max(0, self.rate_limit - len(window))


def client_key(request: Request) -> str:
    """Key requests by client address and path; headers are caller-controlled."""
    client_ip = request.client.host if request.client else "unknown"
    return f"{client_ip}:{request.url.path}"


async def rate_limit_middleware(
    request: Request,
    rate_limiter: Optional[RateLimiter] = None
) -> None:
    """Rate limiting middleware."""
    if rate_limiter is None:
        return
    await rate_limiter.check_rate_limit(client_key(request))
