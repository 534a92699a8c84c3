from __future__ import annotations

import sys
from datetime import datetime, timedelta
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from db.database import Base  # noqa: E402
from db.models import HealthData, User  # noqa: E402
from services.dashboard_service import (  # noqa: E402
    activity_description,
    activity_title,
    calculate_change,
    detect_activity_type,
    format_number_de,
    get_dashboard_activities,
    get_dashboard_stats,
    get_dashboard_trends,
)
from utils.datetime_utils import time_ago  # noqa: E402

NOW = datetime(2025, 6, 30, 18, 0, 0)


def _new_db():
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)()


def _new_user(db) -> User:
    user = User(email="dash@vitalplus.de", name="Dash Tester", password_hash="hash")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def test_calculate_change_labels():
    assert calculate_change(None, None) == "N/A"
    assert calculate_change(500, 0) == "Neu"
    assert calculate_change(500, None) == "Neu"
    assert calculate_change(1005, 1000) == "Stabil"
    assert calculate_change(1100, 1000) == "+10%"
    assert calculate_change(850, 1000) == "-15%"


def test_format_number_de():
    assert format_number_de(12345) == "12.345"
    assert format_number_de(1234.5) == "1.234,5"
    assert format_number_de(None) == "0"
    assert format_number_de(800) == "800"


def test_activity_type_priority():
    assert detect_activity_type(HealthData(steps=9000, heart_rate=120)) == "WORKOUT"
    assert detect_activity_type(HealthData(steps=2000, heart_rate=95)) == "BLOOD_PRESSURE"
    assert detect_activity_type(HealthData(sleep_hours=5.0, meal_type="Frühstück")) == "SLEEP_WARNING"
    assert detect_activity_type(HealthData(meal_type="Abendessen")) == "MEAL"
    assert detect_activity_type(HealthData(weight=80.0)) == "DEFAULT"


def test_activity_title_and_description():
    meal = HealthData(meal_type="Mittagessen", calories=650)
    assert activity_title(meal, "MEAL") == "Mittagessen erfasst"
    assert activity_description(meal) == "650 kcal"

    walk = HealthData(steps=10250, heart_rate=88)
    assert activity_title(walk, "WORKOUT") == "Aktive Bewegung erfasst"
    assert activity_description(walk) == "10.250 Schritte, Puls 88 bpm"

    assert activity_description(HealthData(weight=80.0)) == "Keine weiteren Details"


def test_time_ago_labels():
    assert time_ago(NOW - timedelta(seconds=30), NOW) == "gerade eben"
    assert time_ago(NOW - timedelta(minutes=5), NOW) == "vor 5 Minuten"
    assert time_ago(NOW - timedelta(hours=3), NOW) == "vor 3 Stunden"
    assert time_ago(NOW - timedelta(days=2), NOW) == "vor 2 Tagen"
    assert time_ago(NOW - timedelta(days=14), NOW) == "vor 2 Wochen"


def test_stats_compare_today_with_yesterday():
    db = _new_db()
    user = _new_user(db)
    today = NOW.replace(hour=9)
    yesterday = today - timedelta(days=1)
    db.add_all([
        HealthData(user_id=user.id, date=yesterday, steps=8000, calories=2000, heart_rate=70, sleep_hours=7.0),
        HealthData(user_id=user.id, date=today, steps=4000, calories=1200, heart_rate=72),
        HealthData(user_id=user.id, date=today.replace(hour=12), steps=8800, calories=400, sleep_hours=7.5),
    ])
    db.commit()

    stats = get_dashboard_stats(db, user.id, now=NOW)
    assert stats["steps"] == "8.800"
    assert stats["calories"] == "1.600"
    assert stats["heart_rate"] == "72 bpm"
    assert stats["sleep"] == "7.5h"
    assert stats["steps_change"] == "+10%"
    assert stats["calories_change"] == "-20%"
    assert stats["heart_rate_change"] == "+3%"
    assert stats["sleep_change"] == "+7%"


def test_stats_without_data():
    db = _new_db()
    user = _new_user(db)
    stats = get_dashboard_stats(db, user.id, now=NOW)
    assert stats["steps"] == "0"
    assert stats["heart_rate"] == "N/A"
    assert stats["sleep"] == "N/A"
    assert stats["steps_change"] == "Neu"


def test_trend_cards_use_latest_record():
    db = _new_db()
    user = _new_user(db)
    db.add_all([
        HealthData(user_id=user.id, date=NOW.replace(hour=7), weight=81.0, heart_rate=64),
        HealthData(user_id=user.id, date=NOW.replace(hour=8), weight=80.4, body_temp=36.6),
    ])
    db.commit()

    cards = {card["id"]: card for card in get_dashboard_trends(db, user.id, now=NOW)}
    assert list(cards) == ["heart_rate", "weight", "body_temp", "sleep_duration"]
    assert cards["weight"]["value"] == "80.4 kg"
    assert cards["body_temp"]["value"] == "36.6 °C"
    assert cards["heart_rate"]["value"] == "N/A"
    assert cards["weight"]["change"] == "Neu"


def test_activities_feed_lists_recent_records_newest_first():
    db = _new_db()
    user = _new_user(db)
    db.add_all([
        HealthData(user_id=user.id, date=NOW - timedelta(days=10), steps=12000),
        HealthData(user_id=user.id, date=NOW - timedelta(days=1), meal_type="Frühstück", calories=450),
        HealthData(user_id=user.id, date=NOW - timedelta(hours=2), steps=9500),
    ])
    db.commit()

    feed = get_dashboard_activities(db, user.id, now=NOW)
    assert [item["type"] for item in feed] == ["WORKOUT", "MEAL"]
    assert feed[0]["time_ago"] == "vor 2 Stunden"
    assert feed[1]["title"] == "Frühstück erfasst"
    assert set(feed[0]) == {"id", "type", "title", "description", "time_ago"}
