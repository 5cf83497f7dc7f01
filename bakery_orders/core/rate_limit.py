"""
Fixed-window rate limiting for login and write-heavy endpoints.

Counters live in Redis when ``RATE_LIMIT_STRATEGY=redis`` and in process
memory otherwise. A Redis outage degrades to the in-memory counters instead
of rejecting traffic.
"""
import threading
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Dict, Optional, Tuple

import redis
from fastapi import Depends, Request

from ..config.logging import get_logger, log_security_event
from ..config.settings import get_settings
from ..models.user import User
from .dependencies import get_current_user
from .exceptions import RateLimitExceededError
from .security import SecurityEvent

logger = get_logger(__name__)
settings = get_settings()


@dataclass(frozen=True)
class RateLimitHit:
    count: int
    expires_at: float

    def retry_after(self, now: float) -> int:
        return max(1, int(round(self.expires_at - now)))


class InMemoryRateLimitStore:
    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._windows: Dict[str, Tuple[int, float]] = {}
        self._lock = threading.Lock()

    def increment(self, key: str, window_seconds: int) -> RateLimitHit:
        now = self.clock()
        with self._lock:
            self._prune(now)
            count, expires_at = self._windows.get(key, (0, now + window_seconds))
            count += 1
            self._windows[key] = (count, expires_at)
        return RateLimitHit(count, expires_at)

    def _prune(self, now: float):
        expired = [key for key, (_, expires_at) in self._windows.items() if expires_at <= now]
        for key in expired:
            del self._windows[key]

    def __len__(self):
        return len(self._windows)

    def reset(self):
        with self._lock:
            self._windows.clear()


class RedisRateLimitStore:
    def __init__(self, client: "redis.Redis", clock: Callable[[], float] = time.time):
        self.client = client
        self.clock = clock

    def increment(self, key: str, window_seconds: int) -> RateLimitHit:
        count = int(self.client.incr(key))
        if count == 1:
            self.client.expire(key, window_seconds)
        ttl = self.client.ttl(key)
        if ttl is None or ttl < 0:
            # key lost its expiry; start a fresh window
            self.client.expire(key, window_seconds)
            ttl = window_seconds
        return RateLimitHit(count, self.clock() + int(ttl))


class FailOpenRateLimitStore:
    """Use the primary store, falling back to memory when it errors."""

    def __init__(self, primary, fallback: Optional[InMemoryRateLimitStore] = None):
        self.primary = primary
        self.fallback = fallback or InMemoryRateLimitStore()

    def increment(self, key: str, window_seconds: int) -> RateLimitHit:
        try:
            return self.primary.increment(key, window_seconds)
        except redis.RedisError as e:
            logger.warning(f"Rate limit store unavailable, using memory: {e}")
            return self.fallback.increment(key, window_seconds)


@lru_cache()
def get_rate_limit_store():
    if settings.RATE_LIMIT_STRATEGY == "redis" and settings.REDIS_URL:
        client = redis.from_url(settings.REDIS_URL, decode_responses=True)
        logger.info("Rate limiting backed by Redis")
        return FailOpenRateLimitStore(RedisRateLimitStore(client))
    return InMemoryRateLimitStore()


def client_identifier(request: Request) -> str:
    """Client address; X-Forwarded-For counts only behind a trusted proxy."""
    if settings.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded and forwarded.split(",")[0].strip():
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def login_key(request: Request, email: str) -> str:
    return f"{client_identifier(request)}:{(email or '').strip().lower() or 'unknown'}"


def check_rate_limit(name: str, identifier: str, max_requests: int, window_seconds: int, ip_address: Optional[str] = None):
    """Count one hit for ``identifier`` in the named bucket and raise once the window is full."""
    key = f"{settings.RATE_LIMIT_PREFIX}:{name}:{identifier}"
    hit = get_rate_limit_store().increment(key, window_seconds)
    if hit.count > max_requests:
        log_security_event(
            SecurityEvent.RATE_LIMIT_EXCEEDED,
            details=f"{name} limit {max_requests}/{window_seconds}s exceeded for {identifier}",
            ip_address=ip_address
        )
        raise RateLimitExceededError(
            f"Too many requests, limit is {max_requests} per {window_seconds}s",
            retry_after=hit.retry_after(time.time())
        )


def rate_limit(
    name: str,
    max_requests: int,
    window_seconds: int = 60,
    key_func: Callable[[Request], str] = client_identifier,
):
    """
    Dependency factory: allow ``max_requests`` per key and window for the
    named bucket. The key defaults to the client address.
    """
    def dependency(request: Request):
        check_rate_limit(name, key_func(request), max_requests, window_seconds, ip_address=client_identifier(request))

    return dependency


def user_rate_limit(name: str, max_requests: int, window_seconds: int = 60):
    """Like ``rate_limit`` but keyed on the authenticated user."""
    def dependency(request: Request, current_user: User = Depends(get_current_user)):
        check_rate_limit(
            name, f"user:{current_user.id}", max_requests, window_seconds, ip_address=client_identifier(request)
        )

    return dependency
