"""Fixed-window request limiter keyed by route and client IP."""

import logging
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable

from fastapi import Request

from scheduler.core import config
from scheduler.core.errors import RateLimitedError, to_http_exception

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    """In-process counter per identifier; each identifier gets max_requests per window."""

    def __init__(
        self,
        window_seconds: int = 60,
        max_requests: int = 20,
        prefix: str = 'rl',
        clock: Callable[[], float] = time.time,
    ):
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.prefix = prefix
        self._clock = clock
        self._windows: dict[str, _Window] = {}
        self._lock = Lock()
        self._next_sweep = 0.0

    def check(self, identifier: str) -> RateLimitResult:
        key = f'{self.prefix}:{identifier}'
        now = self._clock()

        with self._lock:
            # Expired windows are dropped at most once per window length.
            if now >= self._next_sweep:
                self._evict_expired(now)
                self._next_sweep = now + self.window_seconds
            window = self._windows.get(key)

            if window is None or window.reset_at <= now:
                window = _Window(count=1, reset_at=now + self.window_seconds)
                self._windows[key] = window
                return RateLimitResult(True, self.max_requests - 1, window.reset_at)

            if window.count >= self.max_requests:
                return RateLimitResult(False, 0, window.reset_at)

            window.count += 1
            return RateLimitResult(True, self.max_requests - window.count, window.reset_at)

    def reset(self, identifier: str | None = None) -> None:
        with self._lock:
            if identifier is None:
                self._windows.clear()
            else:
                self._windows.pop(f'{self.prefix}:{identifier}', None)

    def _evict_expired(self, now: float) -> None:
        expired = [key for key, window in self._windows.items() if window.reset_at <= now]
        for key in expired:
            del self._windows[key]


general_rate_limiter = RateLimiter(
    window_seconds=config.RATE_LIMIT_WINDOW_SECONDS,
    max_requests=config.RATE_LIMIT_MAX_REQUESTS,
    prefix='general',
)


def get_client_ip(request: Request) -> str:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()

    real_ip = request.headers.get('x-real-ip')
    if real_ip:
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host
    return 'unknown'


def enforce_rate_limit(limiter: RateLimiter, scope: str, client_ip: str) -> RateLimitResult:
    result = limiter.check(f'{scope}:{client_ip}')
    if not result.allowed:
        logger.warning('Rate limit exceeded for %s on %s', client_ip, scope)
        raise RateLimitedError(remaining=result.remaining, reset_at=result.reset_at)
    return result


def rate_limited(scope: str, limiter: RateLimiter | None = None):
    """Route dependency that rejects the request with 429 once the client is over its limit."""

    def dependency(request: Request) -> None:
        try:
            enforce_rate_limit(limiter or general_rate_limiter, scope, get_client_ip(request))
        except RateLimitedError as exc:
            raise to_http_exception(exc) from exc

    return dependency
