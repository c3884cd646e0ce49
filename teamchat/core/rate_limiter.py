"""Sliding-window rate limiting for the API and authentication endpoints."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from fastapi import HTTPException, Request, status
from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter
from slowapi.util import get_remote_address

from teamchat.core.config import settings


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float  # epoch seconds


class SlidingWindowRateLimiter:
    """Counts attempts per key inside a moving time window.

    Each instance owns its own in-memory storage, which expires idle keys in
    the background. Rejected attempts are not recorded, so a blocked client
    regains access as soon as its oldest accepted attempt leaves the window.
    """

    def __init__(self, max_attempts: int, window_seconds: int):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self.storage = MemoryStorage()
        self.strategy = MovingWindowRateLimiter(self.storage)

    @property
    def item(self) -> RateLimitItemPerSecond:
        return RateLimitItemPerSecond(self.max_attempts, self.window_seconds)

    def hit(self, key: str) -> RateLimitResult:
        item = self.item
        allowed = self.strategy.hit(item, key)
        stats = self.strategy.get_window_stats(item, key)
        return RateLimitResult(allowed, 0 if not allowed else stats.remaining, stats.reset_time)

    def reset(self, key: Optional[str] = None) -> None:
        if key is None:
            self.storage.reset()
        else:
            self.strategy.clear(self.item, key)


class RateLimit:
    """FastAPI dependency wrapping one limiter, keyed by client address."""

    def __init__(self, limiter: SlidingWindowRateLimiter, detail: str = "Too many authentication attempts"):
        self.limiter = limiter
        self.detail = detail

    def __call__(self, request: Request) -> None:
        result = self.limiter.hit(get_remote_address(request))
        if not result.allowed:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail={"error": self.detail, "reset_time": format_reset_time(result.reset_at)},
            )


def format_reset_time(reset_at: float) -> str:
    return datetime.fromtimestamp(reset_at, tz=timezone.utc).isoformat()


login_limiter = SlidingWindowRateLimiter(settings.LOGIN_RATE_LIMIT, settings.LOGIN_RATE_WINDOW_SECONDS)
register_limiter = SlidingWindowRateLimiter(settings.REGISTER_RATE_LIMIT, settings.REGISTER_RATE_WINDOW_SECONDS)
refresh_limiter = SlidingWindowRateLimiter(settings.REFRESH_RATE_LIMIT, settings.REFRESH_RATE_WINDOW_SECONDS)
admin_key_limiter = SlidingWindowRateLimiter(settings.LOGIN_RATE_LIMIT, settings.LOGIN_RATE_WINDOW_SECONDS)
api_limiter = SlidingWindowRateLimiter(settings.API_RATE_LIMIT, settings.API_RATE_WINDOW_SECONDS)

login_rate_limit = RateLimit(login_limiter)
register_rate_limit = RateLimit(register_limiter)
refresh_rate_limit = RateLimit(refresh_limiter)
admin_key_rate_limit = RateLimit(admin_key_limiter)
