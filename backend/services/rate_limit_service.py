from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass, field

from fastapi import HTTPException, status

from config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitRule:
    endpoint: str
    limit: int
    window_seconds: int


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: float
    reset_at: float
    retry_after_seconds: int | None = None


@dataclass
class _WindowEntry:
    count: int = 0
    reset_at: float = field(default=0.0)


AI_RATE_LIMITS: dict[str, RateLimitRule] = {
    "ai:plan": RateLimitRule("ai:plan", settings.RATE_LIMIT_AI_PLAN_PER_HOUR, 3600),
    "ai:coach": RateLimitRule("ai:coach", settings.RATE_LIMIT_AI_COACH_PER_HOUR, 3600),
    "ai:alert": RateLimitRule("ai:alert", settings.RATE_LIMIT_AI_ALERT_PER_HOUR, 3600),
    "ai:embedding": RateLimitRule("ai:embedding", settings.RATE_LIMIT_AI_EMBEDDING_PER_HOUR, 3600),
}


class FixedWindowRateLimiter:
    """Per-process fixed-window counters keyed by ``scope:endpoint``.

    Counters live in memory only. Several server instances each keep their
    own windows, so the effective limit grows with the instance count.
    """

    def __init__(self, clock=time.time) -> None:
        self._entries: dict[str, _WindowEntry] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def check(self, *, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        now = self._clock()
        max_hits = max(int(limit), 1)
        window = max(int(window_seconds), 1)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.reset_at <= now:
                entry = _WindowEntry(count=0, reset_at=now + window)

            remaining = max(0, max_hits - entry.count - 1)
            if entry.count >= max_hits:
                return RateLimitResult(
                    allowed=False,
                    remaining=0,
                    reset_at=entry.reset_at,
                    retry_after_seconds=max(int(math.ceil(entry.reset_at - now)), 1),
                )

            entry.count += 1
            self._entries[key] = entry
            return RateLimitResult(allowed=True, remaining=remaining, reset_at=entry.reset_at)

    def reset(self, scope: str, endpoint: str | None = None) -> None:
        with self._lock:
            if endpoint:
                self._entries.pop(f"{scope}:{endpoint}", None)
                return
            prefix = f"{scope}:"
            for key in [k for k in self._entries if k.startswith(prefix)]:
                del self._entries[key]

    def cleanup(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [k for k, entry in self._entries.items() if entry.reset_at <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)


_RATE_LIMITER = FixedWindowRateLimiter()


def check_rate_limit(user_id: int | str, endpoint: str) -> RateLimitResult:
    rule = AI_RATE_LIMITS.get(endpoint)
    if rule is None:
        return RateLimitResult(allowed=True, remaining=math.inf, reset_at=time.time())
    return _RATE_LIMITER.check(key=f"{user_id}:{endpoint}", limit=rule.limit, window_seconds=rule.window_seconds)


def enforce_rate_limit(*, rule: RateLimitRule, scope_key: str) -> tuple[bool, int]:
    result = _RATE_LIMITER.check(
        key=f"{scope_key}:{rule.endpoint}",
        limit=rule.limit,
        window_seconds=rule.window_seconds,
    )
    if not result.allowed:
        logger.warning("Rate limit hit for %s (retry in %ss)", rule.endpoint, result.retry_after_seconds)
    return result.allowed, int(result.retry_after_seconds or 0)


def require_ai_quota(user_id: int, endpoint: str) -> RateLimitResult:
    """Count one AI call for the user or raise 429 with Retry-After."""
    result = check_rate_limit(user_id, endpoint)
    if not result.allowed:
        logger.warning("AI rate limit hit for user %s on %s", user_id, endpoint)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Zu viele Anfragen. Bitte später erneut versuchen.",
            headers={"Retry-After": str(result.retry_after_seconds or 1)},
        )
    return result


def reset_rate_limit(user_id: int | str, endpoint: str | None = None) -> None:
    _RATE_LIMITER.reset(str(user_id), endpoint)


def cleanup_rate_limits() -> int:
    return _RATE_LIMITER.cleanup()
