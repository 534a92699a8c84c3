from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Session

from db.models import HealthData
from utils.datetime_utils import to_naive_utc

METRIC_FIELDS = (
    "steps",
    "heart_rate",
    "sleep_hours",
    "weight",
    "calories",
    "respiratory_rate",
    "blood_pressure_systolic",
    "blood_pressure_diastolic",
    "blood_group",
    "bmi",
    "body_temp",
    "oxygen_saturation",
    "stair_steps",
    "elevation",
    "muscle_mass",
    "body_fat",
    "meal_type",
    "medications",
)


def serialize_record(row: HealthData) -> dict:
    out = {
        "id": row.id,
        "user_id": row.user_id,
        "date": row.date.isoformat() if row.date else None,
    }
    for name in METRIC_FIELDS:
        out[name] = getattr(row, name)
    return out


def create_record(db: Session, user_id: int, date: datetime, metrics: dict) -> HealthData:
    row = HealthData(user_id=user_id, date=to_naive_utc(date))
    for name in METRIC_FIELDS:
        if name in metrics:
            setattr(row, name, metrics[name])
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def list_records(
    db: Session,
    user_id: int,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = 100,
) -> list[HealthData]:
    query = db.query(HealthData).filter(HealthData.user_id == user_id)
    if date_from is not None:
        query = query.filter(HealthData.date >= to_naive_utc(date_from))
    if date_to is not None:
        query = query.filter(HealthData.date <= to_naive_utc(date_to))
    return query.order_by(HealthData.date.desc(), HealthData.id.desc()).limit(limit).all()


def get_record(db: Session, user_id: int, record_id: int) -> HealthData | None:
    return (
        db.query(HealthData)
        .filter(HealthData.id == record_id, HealthData.user_id == user_id)
        .first()
    )


def recent_records(db: Session, user_id: int, limit: int) -> list[HealthData]:
    """Most recent ``limit`` records, newest first."""
    return list_records(db, user_id, limit=limit)


def records_since(db: Session, user_id: int, since: datetime) -> list[HealthData]:
    """Records from ``since`` on, oldest first."""
    return (
        db.query(HealthData)
        .filter(HealthData.user_id == user_id, HealthData.date >= since)
        .order_by(HealthData.date.asc(), HealthData.id.asc())
        .all()
    )


def positive_average(values) -> float | None:
    """Mean of the positive numbers in ``values``; zero and None count as missing."""
    valid = [float(v) for v in values if isinstance(v, (int, float)) and v > 0]
    if not valid:
        return None
    return sum(valid) / len(valid)
