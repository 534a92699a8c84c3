import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ai.prompts import ALERT_SYSTEM_PROMPT, COACH_TEMPERATURE, NO_RECOMMENDATION_TEXT, alert_prompt
from ai.providers import get_ai_provider
from ai.providers.base import AIProvider
from auth.utils import get_current_user
from db.database import get_db
from db.models import User
from services.alert_service import (
    NO_FINDINGS_MESSAGE,
    acknowledge_alert,
    analyze_recent_data,
    get_alert_history,
    get_alert_stats,
    resolve_thresholds,
    save_alerts,
    serialize_alert,
)
from services.cache_service import get_cached_response, set_cached_response
from services.embedding_service import refresh_embedding_quietly
from services.rate_limit_service import require_ai_quota
from utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["alerts"])

GOAL_LABELS = {
    "abnehmen": "Abnehmen",
    "zunehmen": "Zunehmen",
    "muskelaufbau": "Muskelaufbau",
    "gesund_bleiben": "Gesund bleiben",
}


@router.post("/alert")
async def generate_alert(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    provider: AIProvider = Depends(get_ai_provider),
):
    cached = get_cached_response(db, user.id, "alerts")
    if cached is not None:
        return {**cached, "cached": True}

    rows, averages, findings = analyze_recent_data(db, user)
    if not rows:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Keine aktuellen Daten vorhanden")

    if not findings:
        payload = {"success": True, "alerts": [], "message": NO_FINDINGS_MESSAGE, "averages": averages}
        set_cached_response(db, user.id, "alerts", payload)
        return {**payload, "cached": False}

    require_ai_quota(user.id, "ai:alert")
    await refresh_embedding_quietly(db, provider, user.id)

    messages = [f.message for f in findings]
    goal = GOAL_LABELS.get(user.health_goal or "", "Gesund bleiben")
    try:
        result = await provider.chat(
            messages=[{"role": "user", "content": alert_prompt(messages, goal)}],
            system=ALERT_SYSTEM_PROMPT,
            temperature=COACH_TEMPERATURE,
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Health alert generation failed: {e}")
        raise HTTPException(status_code=500, detail="Health alert generation failed")

    # Only answered requests reach the history.
    save_alerts(db, user.id, findings)

    payload = {
        "success": True,
        "alerts": messages,
        "details": [f.to_dict() for f in findings],
        "recommendation": result.get("content") or NO_RECOMMENDATION_TEXT,
        "averages": averages,
        "generated_at": utcnow().isoformat(),
    }
    set_cached_response(db, user.id, "alerts", payload)
    return {**payload, "cached": False}


@router.get("/alerts/history")
def alert_history(
    days: int = Query(default=30, ge=1, le=365),
    limit: int = Query(default=50, ge=1, le=500),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return [serialize_alert(a) for a in get_alert_history(db, user.id, days=days, limit=limit)]


@router.get("/alerts/stats")
def alert_stats(
    days: int = Query(default=30, ge=1, le=365),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return get_alert_stats(db, user.id, days=days)


@router.post("/alerts/{alert_id:int}/acknowledge")
def acknowledge(alert_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    alert = acknowledge_alert(db, user.id, alert_id)
    if alert is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Alert nicht gefunden")
    return serialize_alert(alert)


@router.get("/alerts/thresholds")
def alert_thresholds(user: User = Depends(get_current_user)):
    return resolve_thresholds(user)
