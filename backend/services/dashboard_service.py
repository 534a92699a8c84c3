from __future__ import annotations

import math
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from db.models import HealthData
from services.health_data_service import records_since
from utils.datetime_utils import days_ago, start_of_day, time_ago, utcnow

ACTIVITY_WINDOW_DAYS = 7
ACTIVITY_LIMIT = 10


def _js_round(value: float) -> int:
    return int(math.floor(value + 0.5))


def format_number_de(value: float | int | None) -> str:
    """German number formatting: ``.`` groups thousands, ``,`` marks decimals."""
    if value is None:
        return "0"
    number = round(float(value), 3)
    if number.is_integer():
        return f"{int(number):,}".replace(",", ".")
    whole, _, frac = f"{number:,.3f}".partition(".")
    return f"{whole.replace(',', '.')},{frac.rstrip('0')}"


def calculate_change(current: float | None, previous: float | None) -> str:
    if current is None and previous is None:
        return "N/A"
    if not previous:
        return "Neu"
    change = ((current or 0) - previous) / previous * 100
    if abs(change) < 1:
        return "Stabil"
    return f"{'+' if change > 0 else ''}{_js_round(change)}%"


def _values(rows, name: str) -> list[float]:
    return [getattr(r, name) for r in rows if getattr(r, name) is not None]


def _avg(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0


def _split_days(db: Session, user_id: int, now: datetime | None):
    today = start_of_day((now or utcnow()).date())
    yesterday = today - timedelta(days=1)
    rows = records_since(db, user_id, yesterday)
    today_rows = [r for r in rows if r.date >= today]
    yesterday_rows = [r for r in rows if r.date < today]
    return today_rows, yesterday_rows


def _day_aggregate(rows: list[HealthData]) -> dict[str, float]:
    steps = _values(rows, "steps")
    return {
        "steps": max(steps) if steps else 0,
        "calories": sum(_values(rows, "calories")),
        "heart_rate": _avg(_values(rows, "heart_rate")),
        "sleep_hours": _avg(_values(rows, "sleep_hours")),
    }


def get_dashboard_stats(db: Session, user_id: int, now: datetime | None = None) -> dict:
    """Today's totals compared with yesterday's."""
    today_rows, yesterday_rows = _split_days(db, user_id, now)
    t = _day_aggregate(today_rows)
    y = _day_aggregate(yesterday_rows)
    return {
        "steps": format_number_de(t["steps"]),
        "calories": format_number_de(t["calories"]),
        "heart_rate": f"{_js_round(t['heart_rate'])} bpm" if t["heart_rate"] else "N/A",
        "sleep": f"{t['sleep_hours']:.1f}h" if t["sleep_hours"] else "N/A",
        "steps_change": calculate_change(t["steps"], y["steps"]),
        "calories_change": calculate_change(t["calories"], y["calories"]),
        "heart_rate_change": calculate_change(t["heart_rate"], y["heart_rate"]),
        "sleep_change": calculate_change(t["sleep_hours"], y["sleep_hours"]),
    }


def get_dashboard_trends(db: Session, user_id: int, now: datetime | None = None) -> list[dict]:
    """Latest value cards for heart rate, weight, body temperature and sleep."""
    today_rows, yesterday_rows = _split_days(db, user_id, now)
    latest = (today_rows or yesterday_rows or [None])[-1]

    def change(name: str) -> str:
        return calculate_change(_avg(_values(today_rows, name)), _avg(_values(yesterday_rows, name)))

    heart_rate = latest.heart_rate if latest else None
    weight = latest.weight if latest else None
    body_temp = latest.body_temp if latest else None
    sleep = latest.sleep_hours if latest else None

    return [
        {
            "id": "heart_rate",
            "title": "Herzfrequenz",
            "value": f"{_js_round(heart_rate)} bpm" if heart_rate else "N/A",
            "change": change("heart_rate"),
            "color": "purple",
        },
        {
            "id": "weight",
            "title": "Gewicht",
            "value": f"{weight:.1f} kg" if weight else "N/A",
            "change": change("weight"),
            "color": "blue",
        },
        {
            "id": "body_temp",
            "title": "Körpertemperatur",
            "value": f"{body_temp:.1f} °C" if body_temp else "N/A",
            "change": change("body_temp"),
            "color": "orange",
        },
        {
            "id": "sleep_duration",
            "title": "Schlafdauer",
            "value": f"{sleep:.1f}h" if sleep else "N/A",
            "change": change("sleep_hours"),
            "color": "purple",
        },
    ]


def detect_activity_type(record: HealthData) -> str:
    if record.steps and record.steps > 8000:
        return "WORKOUT"
    if record.heart_rate and record.heart_rate > 90:
        return "BLOOD_PRESSURE"
    if record.sleep_hours and record.sleep_hours < 6:
        return "SLEEP_WARNING"
    if record.meal_type:
        return "MEAL"
    return "DEFAULT"


def activity_title(record: HealthData, activity_type: str) -> str:
    if activity_type == "WORKOUT":
        return "Aktive Bewegung erfasst"
    if activity_type == "BLOOD_PRESSURE":
        return "Hohe Herzfrequenz erkannt"
    if activity_type == "SLEEP_WARNING":
        return "Zu wenig Schlaf"
    if activity_type == "MEAL":
        return f"{record.meal_type} erfasst"
    return "Aktivität erfasst"


def activity_description(record: HealthData) -> str:
    parts = []
    if record.steps:
        parts.append(f"{format_number_de(record.steps)} Schritte")
    if record.calories:
        parts.append(f"{format_number_de(record.calories)} kcal")
    if record.heart_rate:
        parts.append(f"Puls {record.heart_rate} bpm")
    if record.sleep_hours:
        parts.append(f"{record.sleep_hours:.1f}h Schlaf")
    return ", ".join(parts) or "Keine weiteren Details"


def get_dashboard_activities(db: Session, user_id: int, now: datetime | None = None) -> list[dict]:
    current = now or utcnow()
    rows = (
        db.query(HealthData)
        .filter(HealthData.user_id == user_id, HealthData.date >= days_ago(ACTIVITY_WINDOW_DAYS, current))
        .order_by(HealthData.date.desc(), HealthData.id.desc())
        .limit(ACTIVITY_LIMIT)
        .all()
    )
    activities = []
    for row in rows:
        activity_type = detect_activity_type(row)
        activities.append({
            "id": row.id,
            "type": activity_type,
            "title": activity_title(row, activity_type),
            "description": activity_description(row),
            "time_ago": time_ago(row.date, current),
        })
    return activities
