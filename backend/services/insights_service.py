"""Trend insights over a user's recent health records.

Each metric's series is split into the latest window and the window before
it. The relative change between the two means decides the label.
"""
from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Literal, Sequence

from sqlalchemy.orm import Session

from services.health_data_service import records_since
from utils.datetime_utils import days_ago

Trend = Literal["steigend", "fallend", "stabil"]

MOVING_WINDOW = 7
TREND_THRESHOLD = 0.05
INSIGHT_METRICS = ("steps", "sleep_hours", "heart_rate", "body_temp", "weight")

SUMMARY_TITLE = "Dein wöchentlicher Einblick"
SUMMARY_FALLBACK_INSIGHT = "Es sind noch nicht genügend Daten für eine detaillierte Analyse vorhanden."
SUMMARY_FALLBACK_RECOMMENDATION = (
    "Erfasse deine Gesundheitsdaten regelmäßig, um wertvolle Einblicke zu erhalten."
)


@dataclass
class Insight:
    metric: str
    trend: Trend
    delta: float
    recommendation: str

    def to_dict(self) -> dict:
        return asdict(self)


def classify_trend(delta: float) -> Trend:
    if delta > TREND_THRESHOLD:
        return "steigend"
    if delta < -TREND_THRESHOLD:
        return "fallend"
    return "stabil"


def _percent(delta: float) -> int:
    # Half values round up, also for negative deltas.
    return int(math.floor(delta * 100 + 0.5))


def build_recommendation(metric: str, trend: Trend, delta: float) -> str:
    percent = _percent(delta)
    if metric == "sleep_hours":
        if trend == "fallend":
            return f"Schlafdauer sinkt ({percent} %). Abends Routine beruhigen."
        if trend == "steigend":
            return f"Schlafdauer steigt ({percent} %). Weitermachen."
        return "Schlafdauer konstant. Zielwerte prüfen."
    if metric == "heart_rate":
        if trend == "steigend":
            return f"Herzfrequenz steigt ({percent} %). Belastung reduzieren, Hydration prüfen."
        if trend == "fallend":
            return f"Herzfrequenz sinkt ({percent} %). Gute Erholung, Fortschritt beobachten."
        return "Herzfrequenz stabil. Trainingstagebuch fortführen."
    if trend == "steigend":
        return f"{metric} steigt ({percent} %). Entwicklung beobachten."
    if trend == "fallend":
        return f"{metric} sinkt ({percent} %). Analyse lohnt sich."
    return f"{metric} unverändert."


def compute_trend(metric: str, series: Sequence[float], window: int = MOVING_WINDOW) -> Insight | None:
    """Compare the mean of the last ``window`` samples with the ``window`` before.

    ``series`` is chronological. Returns None when fewer than ``2 * window``
    samples exist or the earlier mean is zero.
    """
    values = [float(v) for v in series if isinstance(v, (int, float)) and not isinstance(v, bool)]
    if len(values) < window * 2:
        return None

    recent = values[-window:]
    previous = values[-2 * window:-window]
    recent_avg = sum(recent) / len(recent)
    previous_avg = sum(previous) / len(previous)
    if not previous_avg:
        return None

    delta = (recent_avg - previous_avg) / previous_avg
    trend = classify_trend(delta)
    return Insight(
        metric=metric,
        trend=trend,
        delta=delta,
        recommendation=build_recommendation(metric, trend, delta),
    )


def get_health_insights(
    db: Session,
    user_id: int,
    days: int = 30,
    now: datetime | None = None,
) -> list[Insight]:
    rows = records_since(db, user_id, days_ago(days, now))
    insights: list[Insight] = []
    for metric in INSIGHT_METRICS:
        series = [getattr(r, metric) for r in rows if getattr(r, metric) is not None]
        insight = compute_trend(metric, series)
        if insight is not None:
            insights.append(insight)
    return insights


def get_health_insights_summary(db: Session, user_id: int, now: datetime | None = None) -> dict:
    """The dashboard card: the first insight, or fallback texts without one."""
    insights = get_health_insights(db, user_id, now=now)
    if not insights:
        return {
            "title": SUMMARY_TITLE,
            "insight": SUMMARY_FALLBACK_INSIGHT,
            "recommendation": SUMMARY_FALLBACK_RECOMMENDATION,
        }
    first = insights[0]
    return {
        "title": SUMMARY_TITLE,
        "insight": f"Dein Trend für '{first.metric}' ist {first.trend}.",
        "recommendation": first.recommendation,
    }
