from __future__ import annotations

import logging
import math
import re
from dataclasses import asdict, dataclass
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.models import AlertHistory, User
from services.health_data_service import positive_average, recent_records
from utils.datetime_utils import days_ago

logger = logging.getLogger(__name__)

ALERT_WINDOW = 7

BASE_THRESHOLDS: dict[str, float] = {
    "max_heart_rate": 85,
    "min_heart_rate": 50,
    "max_systolic": 140,
    "max_diastolic": 90,
    "min_systolic": 90,
    "min_diastolic": 60,
    "min_oxygen": 95,
    "min_steps": 4000,
    "min_sleep": 6,
    "max_calories": 2500,
}

CRITICAL_SYSTOLIC = 180
CRITICAL_DIASTOLIC = 120
CRITICAL_OXYGEN = 90

# Averaged fields and the precision they are rounded to.
AVERAGED_FIELDS = {
    "calories": 0,
    "steps": 0,
    "sleep_hours": 1,
    "heart_rate": 0,
    "weight": 0,
    "blood_pressure_systolic": 0,
    "blood_pressure_diastolic": 0,
    "oxygen_saturation": 1,
}

NO_FINDINGS_MESSAGE = "Keine Auffälligkeiten erkannt."

_CAMEL_RE = re.compile(r"([a-z0-9])([A-Z])")


@dataclass
class AlertFinding:
    alert_type: str
    severity: str
    message: str
    value: float | None = None
    threshold: float | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def get_default_thresholds(activity_level: str | None, health_goal: str | None) -> dict[str, float]:
    thresholds = dict(BASE_THRESHOLDS)

    if activity_level in ("athlete", "active"):
        thresholds["max_heart_rate"] = 95
        thresholds["min_heart_rate"] = 40
        thresholds["min_steps"] = 8000
        thresholds["max_calories"] = 3500

    if activity_level == "sedentary":
        thresholds["min_steps"] = 2000
        thresholds["max_calories"] = 2000

    # Goal adjustments apply after the activity level.
    if health_goal == "abnehmen":
        thresholds["max_calories"] = 1800
        thresholds["min_steps"] = 6000

    if health_goal == "muskelaufbau":
        thresholds["max_calories"] = 3000
        thresholds["min_steps"] = 5000

    return thresholds


def merge_custom_thresholds(defaults: dict[str, float], custom: dict | None) -> dict[str, float]:
    """Overlay known numeric keys from ``custom``; everything else is ignored.

    camelCase keys (``maxHeartRate``) are accepted alongside snake_case ones.
    """
    merged = dict(defaults)
    if not isinstance(custom, dict):
        return merged
    for raw_key, value in custom.items():
        key = _CAMEL_RE.sub(r"\1_\2", str(raw_key)).lower()
        if key not in merged or isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            merged[key] = value
    return merged


def resolve_thresholds(user: User | None) -> dict[str, float]:
    if user is None:
        return get_default_thresholds("normal", "gesund_bleiben")
    defaults = get_default_thresholds(user.activity_level, user.health_goal)
    return merge_custom_thresholds(defaults, user.custom_alert_thresholds)


def _round_half_up(value: float, digits: int) -> float:
    factor = 10 ** digits
    rounded = math.floor(value * factor + 0.5) / factor
    return int(rounded) if digits == 0 else rounded


def compute_recent_averages(rows) -> dict[str, float | None]:
    averages: dict[str, float | None] = {}
    for name, digits in AVERAGED_FIELDS.items():
        avg = positive_average(getattr(r, name) for r in rows)
        averages[name] = None if avg is None else _round_half_up(avg, digits)
    return averages


def evaluate_alerts(averages: dict[str, float | None], thresholds: dict[str, float]) -> list[AlertFinding]:
    """Compare averages with thresholds. Metrics without data never trigger."""
    findings: list[AlertFinding] = []

    calories = averages.get("calories")
    if calories is not None and calories > thresholds["max_calories"]:
        findings.append(AlertFinding(
            "calories_high", "warning",
            "⚠️ Deine Kalorienaufnahme war in den letzten Tagen überdurchschnittlich hoch.",
            calories, thresholds["max_calories"],
        ))

    steps = averages.get("steps")
    if steps is not None and steps < thresholds["min_steps"]:
        findings.append(AlertFinding(
            "steps_low", "warning",
            "🚶‍♂️ Du hattest wenig Bewegung. Versuche, heute mehr Schritte zu machen.",
            steps, thresholds["min_steps"],
        ))

    sleep = averages.get("sleep_hours")
    if sleep is not None and sleep < thresholds["min_sleep"]:
        findings.append(AlertFinding(
            "sleep_low", "warning",
            "😴 Du schläfst zu wenig. Achte auf ausreichend Erholung.",
            sleep, thresholds["min_sleep"],
        ))

    heart_rate = averages.get("heart_rate")
    if heart_rate is not None:
        if heart_rate > thresholds["max_heart_rate"]:
            findings.append(AlertFinding(
                "heart_rate_high", "warning",
                "❤️ Deine Herzfrequenz war zuletzt erhöht. Vermeide Stress und trinke genug Wasser.",
                heart_rate, thresholds["max_heart_rate"],
            ))
        elif heart_rate < thresholds["min_heart_rate"]:
            findings.append(AlertFinding(
                "heart_rate_low", "warning",
                "💙 Deine Herzfrequenz war zuletzt sehr niedrig. Bei Schwindel ärztlich abklären lassen.",
                heart_rate, thresholds["min_heart_rate"],
            ))

    systolic = averages.get("blood_pressure_systolic")
    diastolic = averages.get("blood_pressure_diastolic")
    if systolic is not None or diastolic is not None:
        high = (systolic is not None and systolic > thresholds["max_systolic"]) or (
            diastolic is not None and diastolic > thresholds["max_diastolic"]
        )
        low = (systolic is not None and systolic < thresholds["min_systolic"]) or (
            diastolic is not None and diastolic < thresholds["min_diastolic"]
        )
        reading = f"{_fmt(systolic)}/{_fmt(diastolic)} mmHg"
        if high:
            critical = (systolic is not None and systolic >= CRITICAL_SYSTOLIC) or (
                diastolic is not None and diastolic >= CRITICAL_DIASTOLIC
            )
            if critical:
                message = f"🚨 Dein Blutdruck ist kritisch hoch ({reading}). Bitte suche zeitnah ärztliche Hilfe."
            else:
                message = f"🩺 Dein Blutdruck war zuletzt erhöht ({reading}). Reduziere Salz und Stress."
            findings.append(AlertFinding(
                "blood_pressure_high", "critical" if critical else "warning", message,
                systolic if systolic is not None else diastolic,
                thresholds["max_systolic"] if systolic is not None else thresholds["max_diastolic"],
            ))
        elif low:
            findings.append(AlertFinding(
                "blood_pressure_low", "warning",
                f"🩺 Dein Blutdruck war zuletzt niedrig ({reading}). Trinke ausreichend und steh langsam auf.",
                systolic if systolic is not None else diastolic,
                thresholds["min_systolic"] if systolic is not None else thresholds["min_diastolic"],
            ))

    oxygen = averages.get("oxygen_saturation")
    if oxygen is not None and oxygen < thresholds["min_oxygen"]:
        critical = oxygen < CRITICAL_OXYGEN
        findings.append(AlertFinding(
            "oxygen_low", "critical" if critical else "warning",
            f"🫁 Deine Sauerstoffsättigung ist niedrig ({_fmt(oxygen)} %)."
            + (" Bitte suche sofort ärztliche Hilfe." if critical else " Achte auf ruhiges, tiefes Atmen."),
            oxygen, thresholds["min_oxygen"],
        ))

    return findings


def _fmt(value: float | None) -> str:
    if value is None:
        return "?"
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def analyze_recent_data(db: Session, user: User) -> tuple[list, dict, list[AlertFinding]]:
    rows = recent_records(db, user.id, ALERT_WINDOW)
    if not rows:
        return rows, {}, []
    averages = compute_recent_averages(rows)
    return rows, averages, evaluate_alerts(averages, resolve_thresholds(user))


def save_alerts(db: Session, user_id: int, findings: list[AlertFinding]) -> int:
    if not findings:
        return 0
    try:
        db.add_all(
            AlertHistory(
                user_id=user_id,
                alert_type=f.alert_type,
                severity=f.severity,
                message=f.message,
                value=f.value,
                threshold=f.threshold,
            )
            for f in findings
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning(f"Saving alerts failed for user {user_id}: {exc}")
        return 0
    return len(findings)


def get_alert_history(
    db: Session,
    user_id: int,
    days: int = 30,
    limit: int = 50,
    now: datetime | None = None,
) -> list[AlertHistory]:
    return (
        db.query(AlertHistory)
        .filter(AlertHistory.user_id == user_id, AlertHistory.created_at >= days_ago(days, now))
        .order_by(AlertHistory.created_at.desc(), AlertHistory.id.desc())
        .limit(limit)
        .all()
    )


def get_alert_stats(db: Session, user_id: int, days: int = 30, now: datetime | None = None) -> dict[str, int]:
    """Alert counts per type over the last ``days`` days."""
    rows = (
        db.query(AlertHistory.alert_type, func.count(AlertHistory.id))
        .filter(AlertHistory.user_id == user_id, AlertHistory.created_at >= days_ago(days, now))
        .group_by(AlertHistory.alert_type)
        .all()
    )
    return {alert_type: int(count) for alert_type, count in rows}


def acknowledge_alert(db: Session, user_id: int, alert_id: int) -> AlertHistory | None:
    alert = (
        db.query(AlertHistory)
        .filter(AlertHistory.id == alert_id, AlertHistory.user_id == user_id)
        .first()
    )
    if alert is None:
        return None
    alert.acknowledged = True
    db.commit()
    db.refresh(alert)
    return alert


def serialize_alert(alert: AlertHistory) -> dict:
    return {
        "id": alert.id,
        "alert_type": alert.alert_type,
        "severity": alert.severity,
        "message": alert.message,
        "value": alert.value,
        "threshold": alert.threshold,
        "acknowledged": bool(alert.acknowledged),
        "created_at": alert.created_at.isoformat() if alert.created_at else None,
    }
