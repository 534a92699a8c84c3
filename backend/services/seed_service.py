"""Synthetic health data for the demo account."""
from __future__ import annotations

import random
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from db.models import HealthData
from utils.datetime_utils import start_of_day, utcnow

BASE_WEIGHT = 75.0
DEMO_HEIGHT = 1.79


def _blood_pressure(rng: random.Random) -> tuple[int, int]:
    chance = rng.random()
    if chance < 0.7:
        return rng.randint(110, 125), rng.randint(70, 80)
    if chance < 0.9:
        return rng.randint(130, 145), rng.randint(85, 95)
    return rng.randint(145, 160), rng.randint(95, 105)


def _at(day: datetime, rng: random.Random, first_hour: int, last_hour: int) -> datetime:
    return day + timedelta(hours=rng.randint(first_hour, last_hour), minutes=rng.randint(0, 59))


def build_demo_records(user_id: int, days: int, *, now: datetime | None = None, seed: int | None = None) -> list[HealthData]:
    """One vitals row plus meal rows per day for the last ``days`` days."""
    rng = random.Random(seed)
    today = start_of_day((now or utcnow()).date())
    records: list[HealthData] = []
    for offset in range(days, 0, -1):
        day = today - timedelta(days=offset - 1)
        systolic, diastolic = _blood_pressure(rng)
        weight = round(BASE_WEIGHT + rng.random() * 2 - 1, 1)
        records.append(HealthData(
            user_id=user_id,
            date=_at(day, rng, 7, 9),
            steps=rng.randint(7000, 15000),
            heart_rate=rng.randint(60, 85),
            sleep_hours=round(rng.random() * 3 + 5, 1),
            weight=weight,
            calories=rng.randint(400, 700),
            meal_type="Frühstück",
            respiratory_rate=rng.randint(12, 20),
            blood_pressure_systolic=systolic,
            blood_pressure_diastolic=diastolic,
            bmi=round(weight / DEMO_HEIGHT ** 2, 1),
            body_temp=round(36.5 + rng.random(), 1),
            oxygen_saturation=round(rng.random() * 5 + 95, 1),
            stair_steps=rng.randint(0, 100),
            elevation=rng.randint(0, 200),
            muscle_mass=round(rng.random() * 2 + 30, 1),
            body_fat=round(rng.random() * 15 + 20, 1),
        ))
        records.append(HealthData(
            user_id=user_id, date=_at(day, rng, 12, 14), calories=rng.randint(500, 900), meal_type="Mittagessen"
        ))
        records.append(HealthData(
            user_id=user_id, date=_at(day, rng, 18, 20), calories=rng.randint(500, 800), meal_type="Abendessen"
        ))
        if rng.random() > 0.5:
            records.append(HealthData(
                user_id=user_id, date=_at(day, rng, 15, 16), calories=rng.randint(100, 300), meal_type="Snacks"
            ))
    return records


def seed_demo_data(db: Session, user_id: int, days: int, *, seed: int | None = None) -> int:
    """Insert demo rows unless the user already has data. Returns the number inserted."""
    if days <= 0:
        return 0
    if db.query(HealthData.id).filter(HealthData.user_id == user_id).first():
        return 0
    records = build_demo_records(user_id, days, seed=seed)
    db.add_all(records)
    db.commit()
    return len(records)
