from __future__ import annotations

import math
import sys
from pathlib import Path

import pytest
from fastapi import HTTPException


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from services.rate_limit_service import (  # noqa: E402
    AI_RATE_LIMITS,
    FixedWindowRateLimiter,
    RateLimitRule,
    check_rate_limit,
    cleanup_rate_limits,
    enforce_rate_limit,
    require_ai_quota,
    reset_rate_limit,
)


class _Clock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_fixed_window_counts_down_and_blocks():
    clock = _Clock()
    limiter = FixedWindowRateLimiter(clock=clock)

    first = limiter.check(key="7:ai:plan", limit=2, window_seconds=60)
    second = limiter.check(key="7:ai:plan", limit=2, window_seconds=60)
    third = limiter.check(key="7:ai:plan", limit=2, window_seconds=60)

    assert (first.allowed, first.remaining) == (True, 1)
    assert (second.allowed, second.remaining) == (True, 0)
    assert third.allowed is False
    assert third.remaining == 0
    assert third.retry_after_seconds == 60


def test_window_resets_after_expiry():
    clock = _Clock()
    limiter = FixedWindowRateLimiter(clock=clock)
    limiter.check(key="k", limit=1, window_seconds=10)
    clock.now += 4
    blocked = limiter.check(key="k", limit=1, window_seconds=10)
    assert blocked.allowed is False
    assert blocked.retry_after_seconds == 6

    clock.now += 6
    assert limiter.check(key="k", limit=1, window_seconds=10).allowed is True


def test_keys_are_independent_and_cleanup_drops_expired():
    clock = _Clock()
    limiter = FixedWindowRateLimiter(clock=clock)
    limiter.check(key="1:ai:coach", limit=1, window_seconds=10)
    assert limiter.check(key="2:ai:coach", limit=1, window_seconds=10).allowed is True

    clock.now += 11
    assert limiter.cleanup() == 2


def test_reset_clears_scope():
    limiter = FixedWindowRateLimiter(clock=_Clock())
    limiter.check(key="5:ai:plan", limit=1, window_seconds=60)
    limiter.check(key="5:ai:coach", limit=1, window_seconds=60)
    limiter.reset("5")
    assert limiter.check(key="5:ai:plan", limit=1, window_seconds=60).allowed is True
    assert limiter.check(key="5:ai:coach", limit=1, window_seconds=60).allowed is True


def test_unknown_endpoint_is_unlimited():
    result = check_rate_limit(1, "ai:unknown")
    assert result.allowed is True
    assert result.remaining == math.inf


def test_require_ai_quota_raises_429_with_retry_after():
    user_id = 424242
    reset_rate_limit(user_id)
    try:
        limit = AI_RATE_LIMITS["ai:plan"].limit
        for _ in range(limit):
            require_ai_quota(user_id, "ai:plan")
        with pytest.raises(HTTPException) as exc:
            require_ai_quota(user_id, "ai:plan")
        assert exc.value.status_code == 429
        assert exc.value.detail == "Zu viele Anfragen. Bitte später erneut versuchen."
        assert int(exc.value.headers["Retry-After"]) > 0

        # Other endpoints keep their own budget.
        assert require_ai_quota(user_id, "ai:coach").allowed is True
    finally:
        reset_rate_limit(user_id)


def test_enforce_rate_limit_reports_retry_after():
    rule = RateLimitRule("auth:test", 1, 120)
    scope = "127.0.0.1:limit@vitalplus.de"
    reset_rate_limit(scope)
    try:
        assert enforce_rate_limit(rule=rule, scope_key=scope) == (True, 0)
        allowed, retry_after = enforce_rate_limit(rule=rule, scope_key=scope)
        assert allowed is False
        assert 0 < retry_after <= 120
    finally:
        reset_rate_limit(scope)


def test_module_cleanup_keeps_live_windows():
    user_id = 515151
    reset_rate_limit(user_id)
    try:
        require_ai_quota(user_id, "ai:coach")
        cleanup_rate_limits()
        assert check_rate_limit(user_id, "ai:coach").remaining == AI_RATE_LIMITS["ai:coach"].limit - 2
    finally:
        reset_rate_limit(user_id)
