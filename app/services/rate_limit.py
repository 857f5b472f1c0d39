# app/services/rate_limit.py
"""
Fixed-window, in-process request counter.

State lives in this process only and resets on restart; it is coarse abuse
mitigation, not a correctness mechanism. Multi-instance deployments need a
shared counter instead.
"""
import hashlib
import logging
import math
import random
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

# fraction of checks that also purge expired windows
CLEANUP_PROBABILITY = 0.01


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float  # epoch seconds
    retry_after: Optional[int] = None


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._store: Dict[str, _Window] = {}

    def __len__(self) -> int:
        return len(self._store)

    def reset(self) -> None:
        self._store.clear()

    def check(self, key: str, limit: int, window_seconds: int = 60) -> RateLimitResult:
        now = self._clock()

        if random.random() < CLEANUP_PROBABILITY:
            self.cleanup(now)

        entry = self._store.get(key)
        if entry is None or now >= entry.reset_at:
            entry = _Window(count=1, reset_at=now + window_seconds)
            self._store[key] = entry
            return RateLimitResult(allowed=True, remaining=max(0, limit - 1), reset_at=entry.reset_at)

        entry.count += 1
        if entry.count > limit:
            retry_after = max(1, math.ceil(entry.reset_at - now))
            return RateLimitResult(allowed=False, remaining=0, reset_at=entry.reset_at, retry_after=retry_after)

        return RateLimitResult(allowed=True, remaining=limit - entry.count, reset_at=entry.reset_at)

    def cleanup(self, now: Optional[float] = None) -> int:
        now = self._clock() if now is None else now
        expired = [k for k, v in self._store.items() if now >= v.reset_at]
        for k in expired:
            del self._store[k]
        if expired:
            logger.info("[RATE] cleaned up %d expired rate limit entries", len(expired))
        return len(expired)


def rate_limit_key(request: Request, prefix: str = "") -> str:
    """First X-Forwarded-For address, else a hash of the User-Agent."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        ip = forwarded_for.split(",")[0].strip()
        if ip:
            return f"{prefix}:{ip}" if prefix else ip

    user_agent = request.headers.get("user-agent") or "unknown"
    digest = hashlib.sha256(user_agent.encode("utf-8")).hexdigest()[:12]
    return f"{prefix}:ua:{digest}" if prefix else f"ua:{digest}"


def rate_limit_response(result: RateLimitResult, limit: int) -> JSONResponse:
    retry_after = result.retry_after or 60
    reset_iso = datetime.fromtimestamp(result.reset_at, tz=timezone.utc).isoformat()
    return JSONResponse(
        {
            "error": "Rate limit exceeded",
            "message": f"Too many requests. Please try again in {retry_after} seconds.",
            "retryAfter": retry_after,
        },
        status_code=429,
        headers={
            "Retry-After": str(retry_after),
            "X-RateLimit-Limit": str(limit),
            "X-RateLimit-Remaining": str(result.remaining),
            "X-RateLimit-Reset": reset_iso,
        },
    )


# process-wide limiter used by the HTTP middleware
limiter = RateLimiter()
