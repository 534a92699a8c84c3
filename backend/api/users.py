from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from auth.models import UserResponse
from auth.utils import get_current_user, normalize_email
from db.database import get_db
from db.models import User
from utils.datetime_utils import start_of_day

router = APIRouter(prefix="/users", tags=["users"])


class ThresholdOverrides(BaseModel):
    max_heart_rate: Optional[float] = Field(default=None, gt=0)
    min_heart_rate: Optional[float] = Field(default=None, gt=0)
    max_systolic: Optional[float] = Field(default=None, gt=0)
    max_diastolic: Optional[float] = Field(default=None, gt=0)
    min_systolic: Optional[float] = Field(default=None, gt=0)
    min_diastolic: Optional[float] = Field(default=None, gt=0)
    min_oxygen: Optional[float] = Field(default=None, gt=0, le=100)
    min_steps: Optional[float] = Field(default=None, ge=0)
    min_sleep: Optional[float] = Field(default=None, ge=0, le=24)
    max_calories: Optional[float] = Field(default=None, gt=0)


class UserUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    email: Optional[EmailStr] = None
    height: Optional[float] = Field(default=None, gt=0)
    target_weight: Optional[float] = Field(default=None, gt=0)
    date_of_birth: Optional[date] = None
    gender: Optional[str] = Field(default=None, max_length=50)
    activity_level: Optional[Literal["sedentary", "normal", "active", "athlete"]] = None
    health_goal: Optional[Literal["abnehmen", "zunehmen", "muskelaufbau", "gesund_bleiben"]] = None
    custom_alert_thresholds: Optional[ThresholdOverrides] = None


@router.get("/{user_id}", response_model=UserResponse)
def get_user(user_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    if user_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Zugriff verweigert")
    row = db.query(User).filter(User.id == user_id).first()
    if not row:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Benutzer nicht gefunden")
    return row


@router.put("", response_model=UserResponse)
def update_user(req: UserUpdate, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Partial update of the caller's profile; only fields sent are changed."""
    updates = req.model_dump(exclude_unset=True)

    if "email" in updates and updates["email"] is not None:
        email = normalize_email(updates["email"])
        taken = db.query(User).filter(User.email == email, User.id != user.id).first()
        if taken:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="E-Mail ist bereits registriert")
        updates["email"] = email
    elif "email" in updates:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="E-Mail darf nicht leer sein")

    if updates.get("date_of_birth") is not None:
        updates["date_of_birth"] = start_of_day(updates["date_of_birth"])
    if "custom_alert_thresholds" in updates and req.custom_alert_thresholds is not None:
        updates["custom_alert_thresholds"] = req.custom_alert_thresholds.model_dump(exclude_none=True)

    for field, value in updates.items():
        setattr(user, field, value)
    db.commit()
    db.refresh(user)
    return user
