import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ai.image_analyzer import ImageAnalysisParseError, analyze_image
from ai.prompts import (
    COACH_SYSTEM_PROMPT,
    COACH_TEMPERATURE,
    DEFAULT_COACH_GOAL,
    DEFAULT_PLAN_GOAL,
    NO_ANSWER_TEXT,
    NO_CONTEXT_TEXT,
    NO_RECOMMENDATION_TEXT,
    PLAN_SYSTEM_PROMPT,
    RECOMMEND_SYSTEM_PROMPT,
    coach_user_prompt,
    daily_digest_line,
    daily_plan_prompt,
    recommend_prompt,
)
from ai.providers import get_ai_provider
from ai.providers.base import AIProvider
from auth.utils import get_current_user
from db.database import get_db
from db.models import User
from services.alert_service import compute_recent_averages
from services.cache_service import (
    CACHE_DURATIONS,
    get_cached_response,
    invalidate_cache,
    set_cached_response,
)
from services.embedding_service import (
    get_user_embedding,
    refresh_embedding_quietly,
    search_similar,
)
from services.health_data_service import recent_records
from services.rate_limit_service import require_ai_quota
from utils.datetime_utils import utcnow
from utils.image_utils import decode_image_payload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["coach"])

PLAN_WINDOW = 7
COACH_WINDOW = 30


class GoalRequest(BaseModel):
    goal: Optional[str] = Field(default=None, max_length=500)


class RecommendRequest(BaseModel):
    query_text: str = Field(min_length=1, max_length=2000)


class ImageAnalysisRequest(BaseModel):
    image: str = Field(min_length=1)
    type: Literal["food", "blood_pressure", "weight", "general"] = "general"


def _goal_or(req: Optional[GoalRequest], default: str) -> str:
    goal = ((req.goal if req else None) or "").strip()
    return goal or default


@router.post("/plan")
async def daily_plan(
    req: Optional[GoalRequest] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    provider: AIProvider = Depends(get_ai_provider),
):
    cached = get_cached_response(db, user.id, "daily_plan")
    if cached is not None:
        return {**cached, "cached": True}

    rows = recent_records(db, user.id, PLAN_WINDOW)
    if not rows:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Keine Gesundheitsdaten gefunden")

    require_ai_quota(user.id, "ai:plan")

    await refresh_embedding_quietly(db, provider, user.id)
    embedding = get_user_embedding(db, user.id)
    averages = compute_recent_averages(rows)
    prompt = daily_plan_prompt(
        context=(embedding.content if embedding else None) or NO_CONTEXT_TEXT,
        calories=averages["calories"] or 0,
        steps=averages["steps"] or 0,
        weight=averages["weight"] or 0,
        goal=_goal_or(req, DEFAULT_PLAN_GOAL),
    )
    try:
        result = await provider.chat(
            messages=[{"role": "user", "content": prompt}],
            system=PLAN_SYSTEM_PROMPT,
            temperature=COACH_TEMPERATURE,
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Daily plan generation failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to generate plan")

    payload = {
        "success": True,
        "plan": result.get("content") or NO_RECOMMENDATION_TEXT,
        "generated_at": utcnow().isoformat(),
    }
    set_cached_response(db, user.id, "daily_plan", payload)
    return {**payload, "cached": False}


@router.post("/coach")
async def coach_analysis(
    req: Optional[GoalRequest] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    provider: AIProvider = Depends(get_ai_provider),
):
    cached = get_cached_response(db, user.id, "coach_analysis")
    if cached is not None:
        return {**cached, "cached": True}

    rows = recent_records(db, user.id, COACH_WINDOW)
    if not rows:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Keine Gesundheitsdaten gefunden")

    require_ai_quota(user.id, "ai:coach")

    embedding = get_user_embedding(db, user.id)
    summary = (embedding.content if embedding else None) or "\n".join(daily_digest_line(r) for r in rows)
    try:
        result = await provider.chat(
            messages=[{"role": "user", "content": coach_user_prompt(summary, _goal_or(req, DEFAULT_COACH_GOAL))}],
            system=COACH_SYSTEM_PROMPT,
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Coach analysis failed: {e}")
        raise HTTPException(status_code=500, detail="Interner Serverfehler")

    payload = {"text": result.get("content") or NO_ANSWER_TEXT, "generated_at": utcnow().isoformat()}
    set_cached_response(db, user.id, "coach_analysis", payload)
    return {**payload, "cached": False}


@router.post("/recommend")
async def recommend(
    req: RecommendRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    provider: AIProvider = Depends(get_ai_provider),
):
    query_text = req.query_text.strip()
    if not query_text:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="query_text fehlt")

    await refresh_embedding_quietly(db, provider, user.id)
    try:
        query_vector = await provider.embed(query_text)
        similar = search_similar(db, query_vector)
        context = "\n---\n".join(item["content"] for item in similar)
        result = await provider.chat(
            messages=[{"role": "user", "content": recommend_prompt(query_text, context)}],
            system=RECOMMEND_SYSTEM_PROMPT,
            temperature=COACH_TEMPERATURE,
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Recommendation failed: {e}")
        raise HTTPException(status_code=500, detail="Recommendation failed")

    return {"success": True, "recommendation": result.get("content") or NO_RECOMMENDATION_TEXT}


@router.post("/analyze-image")
async def analyze_health_image(
    req: ImageAnalysisRequest,
    user: User = Depends(get_current_user),
    provider: AIProvider = Depends(get_ai_provider),
):
    try:
        image_bytes, _mime = decode_image_payload(req.image)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    try:
        analysis = await analyze_image(provider, image_bytes, req.type)
    except ImageAnalysisParseError as e:
        logger.warning(f"Image analysis reply was not JSON for user {user.id}")
        if not e.raw:
            raise HTTPException(status_code=500, detail="Keine Antwort von der KI erhalten")
        return JSONResponse(status_code=500, content={"detail": str(e), "raw": e.raw})
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Image analysis failed: {e}")
        raise HTTPException(status_code=500, detail="Interner Serverfehler bei der Bildanalyse")

    return {
        "success": True,
        "type": req.type,
        "user_id": user.id,
        "analysis": analysis,
        "timestamp": utcnow().isoformat(),
    }


@router.delete("/cache")
def clear_cache(
    key: Optional[str] = Query(default=None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if key is not None and key not in CACHE_DURATIONS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unbekannter Cache-Schlüssel: {key}")
    deleted = invalidate_cache(db, user.id, key)
    return {"status": "ok", "deleted": deleted}
