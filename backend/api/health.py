import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, model_validator
from sqlalchemy.orm import Session

from auth.utils import get_current_user
from db.database import get_db
from db.models import User
from services.cache_service import invalidate_cache
from services.dashboard_service import (
    get_dashboard_activities,
    get_dashboard_stats,
    get_dashboard_trends,
)
from services.health_data_service import (
    METRIC_FIELDS,
    create_record,
    get_record,
    list_records,
    serialize_record,
)
from services.insights_service import get_health_insights, get_health_insights_summary
from utils.datetime_utils import to_naive_utc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


# --- Pydantic Schemas ---

class HealthDataCreate(BaseModel):
    date: datetime
    steps: Optional[int] = Field(default=None, ge=0, le=200000)
    heart_rate: Optional[int] = Field(default=None, ge=20, le=250)
    sleep_hours: Optional[float] = Field(default=None, ge=0, le=24)
    weight: Optional[float] = Field(default=None, ge=20, le=300)
    calories: Optional[float] = Field(default=None, ge=0, le=20000)
    respiratory_rate: Optional[int] = Field(default=None, ge=5, le=60)
    blood_pressure_systolic: Optional[int] = Field(default=None, ge=50, le=300)
    blood_pressure_diastolic: Optional[int] = Field(default=None, ge=30, le=200)
    blood_group: Optional[str] = Field(default=None, max_length=10)
    bmi: Optional[float] = Field(default=None, gt=0, le=100)
    body_temp: Optional[float] = Field(default=None, ge=30, le=45)
    oxygen_saturation: Optional[float] = Field(default=None, ge=50, le=100)
    stair_steps: Optional[int] = Field(default=None, ge=0)
    elevation: Optional[float] = None
    muscle_mass: Optional[float] = Field(default=None, ge=0, le=100)
    body_fat: Optional[float] = Field(default=None, ge=0, le=100)
    meal_type: Optional[str] = Field(default=None, max_length=50)
    medications: Optional[str] = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def _require_metric(self):
        if all(getattr(self, name) is None for name in METRIC_FIELDS):
            raise ValueError("Mindestens ein Messwert ist erforderlich")
        return self


def _parse_date_param(value: Optional[str], name: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        return to_naive_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Ungültiger Datumswert für '{name}'")


# --- Records ---

@router.post("", status_code=status.HTTP_201_CREATED)
def create_health_record(
    req: HealthDataCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    metrics = req.model_dump(exclude={"date"}, exclude_none=True)
    row = create_record(db, user.id, req.date, metrics)
    # Stale plans and alerts would ignore the new values.
    invalidate_cache(db, user.id)
    logger.info(f"Health record {row.id} created for user {user.id}")
    return serialize_record(row)


@router.get("")
def list_health_records(
    date_from: Optional[str] = Query(default=None, alias="from"),
    date_to: Optional[str] = Query(default=None, alias="to"),
    limit: int = Query(default=100, ge=1, le=1000),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    start = _parse_date_param(date_from, "from")
    end = _parse_date_param(date_to, "to")
    if start and end and start > end:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="'from' darf nicht nach 'to' liegen")
    rows = list_records(db, user.id, start, end, limit=limit)
    return [serialize_record(r) for r in rows]


# --- Insights & dashboard ---

@router.get("/insights")
def health_insights(
    days: int = Query(default=30, ge=1, le=365),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return [i.to_dict() for i in get_health_insights(db, user.id, days=days)]


@router.get("/insights/summary")
def health_insights_summary(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return get_health_insights_summary(db, user.id)


@router.get("/activities")
def dashboard_activities(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return get_dashboard_activities(db, user.id)


@router.get("/dashboard")
def dashboard(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {
        "stats": get_dashboard_stats(db, user.id),
        "trends": get_dashboard_trends(db, user.id),
    }


# --- Single record ---

@router.get("/{record_id:int}")
def get_health_record(record_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    row = get_record(db, user.id, record_id)
    if not row:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Eintrag nicht gefunden")
    return serialize_record(row)


@router.delete("/{record_id:int}")
def delete_health_record(record_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    row = get_record(db, user.id, record_id)
    if not row:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Eintrag nicht gefunden")
    db.delete(row)
    db.commit()
    invalidate_cache(db, user.id)
    return {"status": "ok"}
