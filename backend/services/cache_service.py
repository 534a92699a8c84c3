"""Per-user AI response cache stored in ``ai_response_cache``.

Entries are keyed by (user, cache key) and expire after a per-key TTL. A miss
leaves the computation to the caller, which then overwrites the entry by
deleting the old row and inserting a new one. Two concurrent misses for the
same key may both write; the LLM calls behind them are idempotent enough that
the last write simply wins.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from db.models import AIResponseCache
from utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

CACHE_DURATIONS: dict[str, int] = {
    "daily_plan": settings.CACHE_TTL_DAILY_PLAN_SECONDS,
    "coach_analysis": settings.CACHE_TTL_COACH_ANALYSIS_SECONDS,
    "alerts": settings.CACHE_TTL_ALERTS_SECONDS,
}


def _ttl_for(cache_key: str) -> int:
    if cache_key not in CACHE_DURATIONS:
        raise ValueError(f"Unknown cache key: {cache_key}")
    return CACHE_DURATIONS[cache_key]


def get_cached_response(
    db: Session,
    user_id: int,
    cache_key: str,
    now: datetime | None = None,
) -> dict[str, Any] | None:
    """Return the stored payload if present and not yet expired, else None."""
    try:
        row = (
            db.query(AIResponseCache)
            .filter(
                AIResponseCache.user_id == user_id,
                AIResponseCache.cache_key == cache_key,
                AIResponseCache.expires_at > (now or utcnow()),
            )
            .order_by(AIResponseCache.created_at.desc())
            .first()
        )
    except SQLAlchemyError as exc:
        logger.warning(f"Cache lookup failed for {cache_key}: {exc}")
        return None
    if row is None:
        return None
    logger.info("Cache hit for %s (user %s)", cache_key, user_id)
    return row.response


def set_cached_response(
    db: Session,
    user_id: int,
    cache_key: str,
    response: dict[str, Any],
    now: datetime | None = None,
) -> datetime | None:
    """Replace the entry for (user, key); returns its expiry or None on failure."""
    expires_at = (now or utcnow()) + timedelta(seconds=_ttl_for(cache_key))
    try:
        db.query(AIResponseCache).filter(
            AIResponseCache.user_id == user_id,
            AIResponseCache.cache_key == cache_key,
        ).delete(synchronize_session=False)
        db.add(
            AIResponseCache(
                user_id=user_id,
                cache_key=cache_key,
                response=response,
                expires_at=expires_at,
            )
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning(f"Cache write failed for {cache_key}: {exc}")
        return None
    return expires_at


def invalidate_cache(db: Session, user_id: int, cache_key: str | None = None) -> int:
    query = db.query(AIResponseCache).filter(AIResponseCache.user_id == user_id)
    if cache_key:
        query = query.filter(AIResponseCache.cache_key == cache_key)
    try:
        deleted = query.delete(synchronize_session=False)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning(f"Cache invalidation failed for user {user_id}: {exc}")
        return 0
    return int(deleted or 0)


def cleanup_expired_cache(db: Session, now: datetime | None = None) -> int:
    deleted = (
        db.query(AIResponseCache)
        .filter(AIResponseCache.expires_at < (now or utcnow()))
        .delete(synchronize_session=False)
    )
    db.commit()
    return int(deleted or 0)
