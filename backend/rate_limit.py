import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from fastapi import Depends, HTTPException, Request, Response, status

from models import User
from security import client_identifier, get_optional_user

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL_SECONDS = 60


@dataclass(frozen=True)
class RateLimitRule:
    max_requests: int
    window_seconds: int


RATE_LIMIT_RULES: Dict[str, RateLimitRule] = {
    "login": RateLimitRule(max_requests=5, window_seconds=5 * 60),
    "api": RateLimitRule(max_requests=60, window_seconds=60),
    "upload": RateLimitRule(max_requests=10, window_seconds=5 * 60),
    "email": RateLimitRule(max_requests=10, window_seconds=60 * 60),
}


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float

    def retry_after(self, now: float) -> int:
        return max(1, math.ceil(self.reset_at - now))


@dataclass
class _Window:
    count: int
    reset_at: float


class FixedWindowRateLimiter:
    """Process-local fixed-window counter keyed by identifier.

    Expired windows are swept lazily, at most once per ``cleanup_interval``
    seconds, from inside ``check``.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        cleanup_interval: float = CLEANUP_INTERVAL_SECONDS,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.cleanup_interval = cleanup_interval
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: Dict[str, _Window] = {}
        self._last_cleanup = clock()

    def check(self, identifier: str) -> RateLimitResult:
        with self._lock:
            now = self._clock()
            if now - self._last_cleanup >= self.cleanup_interval:
                self._sweep_locked(now)

            window = self._windows.get(identifier)
            if window is None or now >= window.reset_at:
                window = _Window(count=1, reset_at=now + self.window_seconds)
                self._windows[identifier] = window
                return RateLimitResult(True, self.max_requests, self.max_requests - 1, window.reset_at)

            window.count += 1
            allowed = window.count <= self.max_requests
            remaining = max(0, self.max_requests - window.count)
            return RateLimitResult(allowed, self.max_requests, remaining, window.reset_at)

    def sweep(self) -> int:
        with self._lock:
            return self._sweep_locked(self._clock())

    def _sweep_locked(self, now: float) -> int:
        expired = [key for key, window in self._windows.items() if now >= window.reset_at]
        for key in expired:
            del self._windows[key]
        self._last_cleanup = now
        return len(expired)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def __len__(self) -> int:
        return len(self._windows)


LIMITERS: Dict[str, FixedWindowRateLimiter] = {
    name: FixedWindowRateLimiter(rule.max_requests, rule.window_seconds)
    for name, rule in RATE_LIMIT_RULES.items()
}


def reset_all_limiters() -> None:
    for limiter in LIMITERS.values():
        limiter.reset()


def _apply_headers(headers, result: RateLimitResult, now: float) -> None:
    headers["X-RateLimit-Limit"] = str(result.limit)
    headers["X-RateLimit-Remaining"] = str(result.remaining)
    headers["X-RateLimit-Reset"] = str(int(time.time() + max(0.0, result.reset_at - now)))


def rate_limit(kind: str, scope: Optional[str] = None):
    """Dependency enforcing the ``kind`` rule; ``scope`` gives a route its own counters."""
    if kind not in LIMITERS:
        raise ValueError(f"Unknown rate limit class: {kind}")
    limiter = LIMITERS[kind]

    def _checker(
        request: Request,
        response: Response,
        user: Optional[User] = Depends(get_optional_user),
    ) -> RateLimitResult:
        identifier = f"{scope or kind}:{client_identifier(request, user)}"
        result = limiter.check(identifier)
        now = limiter._clock()
        if not result.allowed:
            retry_after = result.retry_after(now)
            logger.warning("Rate limit exceeded for %s (%s)", identifier, request.url.path)
            headers = {"Retry-After": str(retry_after)}
            _apply_headers(headers, result, now)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={"error": "Too many requests", "retry_after": retry_after},
                headers=headers,
            )
        _apply_headers(response.headers, result, now)
        return result

    return _checker
