from __future__ import annotations

import asyncio
import sys
from datetime import datetime, timedelta
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ai.providers.base import AIProvider  # noqa: E402
from db.database import Base  # noqa: E402
from db.models import HealthData, HealthEmbedding, User  # noqa: E402
from services.embedding_service import (  # noqa: E402
    get_user_embedding,
    refresh_embedding_quietly,
    search_similar,
    summarize_averages,
    update_health_embedding_for_user,
    upsert_embedding,
)


class _FakeProvider(AIProvider):
    def __init__(self, content: str = "Solide Werte, mehr Schlaf empfohlen.", vector=None):
        super().__init__(api_key="test")
        self._content = content
        self._vector = vector or [1.0, 0.0, 0.0]
        self.prompts: list[str] = []
        self.embedded: list[str] = []

    async def chat(self, messages, model=None, system="", temperature=None, max_tokens=None):
        self.prompts.append(messages[-1]["content"])
        return {"content": self._content, "tokens_in": 10, "tokens_out": 5, "model": "fake"}

    async def chat_with_vision(self, prompt, image_bytes, model=None, system="", max_tokens=None):
        raise NotImplementedError

    async def embed(self, text, model=None):
        self.embedded.append(text)
        return list(self._vector)


def _new_db():
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)()


def _new_user(db, email: str) -> User:
    user = User(email=email, name="Embedding Tester", password_hash="hash")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def test_summary_averages_use_one_decimal_and_zero_fallback():
    rows = [HealthData(steps=8000, sleep_hours=7.0), HealthData(steps=9001, sleep_hours=0)]
    summary = summarize_averages(rows)
    assert summary["steps"] == "8500.5"
    assert summary["sleep_hours"] == "7.0"
    assert summary["weight"] == "0.0"


def test_refresh_skips_users_without_data():
    db = _new_db()
    user = _new_user(db, "empty@vitalplus.de")
    provider = _FakeProvider()

    assert asyncio.run(update_health_embedding_for_user(db, provider, user.id)) is None
    assert provider.prompts == []
    assert provider.embedded == []


def test_refresh_stores_summary_and_vector():
    db = _new_db()
    user = _new_user(db, "summary@vitalplus.de")
    base = datetime(2025, 6, 1, 8, 0, 0)
    for i in range(3):
        db.add(HealthData(user_id=user.id, date=base + timedelta(days=i), steps=6000 + i * 1000, heart_rate=70))
    db.commit()
    provider = _FakeProvider(vector=[0.2, 0.4, 0.6])

    row = asyncio.run(update_health_embedding_for_user(db, provider, user.id))
    assert row is not None
    assert row.content == "Solide Werte, mehr Schlaf empfohlen."
    assert list(row.embedding) == [0.2, 0.4, 0.6]
    assert "Schritte: 7000.0" in provider.prompts[0]
    assert provider.embedded == ["Solide Werte, mehr Schlaf empfohlen."]

    # A second refresh updates the same row instead of adding one.
    asyncio.run(update_health_embedding_for_user(db, _FakeProvider(content="Neu"), user.id))
    assert db.query(HealthEmbedding).filter(HealthEmbedding.user_id == user.id).count() == 1
    assert get_user_embedding(db, user.id).content == "Neu"


def test_quiet_refresh_swallows_empty_model_reply():
    db = _new_db()
    user = _new_user(db, "quiet@vitalplus.de")
    db.add(HealthData(user_id=user.id, date=datetime(2025, 6, 1), steps=5000))
    db.commit()

    asyncio.run(refresh_embedding_quietly(db, _FakeProvider(content="   "), user.id))
    assert get_user_embedding(db, user.id) is None


def test_search_orders_by_cosine_distance_across_users():
    db = _new_db()
    near = _new_user(db, "near@vitalplus.de")
    far = _new_user(db, "far@vitalplus.de")
    middle = _new_user(db, "middle@vitalplus.de")
    blank = _new_user(db, "blank@vitalplus.de")
    upsert_embedding(db, near.id, "viel Bewegung", [1.0, 0.0, 0.0])
    upsert_embedding(db, far.id, "wenig Schlaf", [0.0, 1.0, 0.0])
    upsert_embedding(db, middle.id, "gemischt", [1.0, 1.0, 0.0])
    upsert_embedding(db, blank.id, "ohne Vektor", [])

    results = search_similar(db, [0.9, 0.1, 0.0])
    assert [r["user_id"] for r in results] == [near.id, middle.id, far.id]
    assert results[0]["distance"] < results[1]["distance"] < results[2]["distance"]
    assert set(results[0]) == {"id", "user_id", "content", "distance"}

    assert len(search_similar(db, [0.9, 0.1, 0.0], limit=1)) == 1
