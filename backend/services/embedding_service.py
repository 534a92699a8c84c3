"""Per-user health summaries and their embeddings.

Each user has at most one ``health_embeddings`` row. It holds an LLM-written
summary of the user's recent averages and the vector of that summary, which
the search and recommend endpoints use for nearest-neighbour lookups.
"""
from __future__ import annotations

import logging
import math

from sqlalchemy import text
from sqlalchemy.orm import Session

from ai.prompts import SUMMARY_SYSTEM_PROMPT, embedding_summary_prompt
from ai.providers.base import AIProvider
from db.models import HealthEmbedding
from services.health_data_service import positive_average, recent_records

logger = logging.getLogger(__name__)

SUMMARY_WINDOW = 30
SEARCH_LIMIT = 3

SUMMARY_FIELDS = (
    "steps",
    "sleep_hours",
    "heart_rate",
    "weight",
    "calories",
    "blood_pressure_systolic",
    "blood_pressure_diastolic",
    "oxygen_saturation",
)


def summarize_averages(rows) -> dict[str, str]:
    """One-decimal averages; metrics without positive values read ``0.0``."""
    out = {}
    for name in SUMMARY_FIELDS:
        avg = positive_average(getattr(r, name) for r in rows)
        out[name] = f"{avg or 0.0:.1f}"
    return out


def get_user_embedding(db: Session, user_id: int) -> HealthEmbedding | None:
    return db.query(HealthEmbedding).filter(HealthEmbedding.user_id == user_id).first()


def upsert_embedding(db: Session, user_id: int, content: str, vector: list[float]) -> HealthEmbedding:
    row = get_user_embedding(db, user_id)
    if row is None:
        row = HealthEmbedding(user_id=user_id, content=content, embedding=vector)
        db.add(row)
    else:
        row.content = content
        row.embedding = vector
    db.commit()
    db.refresh(row)
    return row


async def update_health_embedding_for_user(
    db: Session,
    provider: AIProvider,
    user_id: int,
) -> HealthEmbedding | None:
    """Summarize the latest records with the LLM and store the summary's embedding.

    Returns None without calling the provider when the user has no records.
    """
    rows = recent_records(db, user_id, SUMMARY_WINDOW)
    if not rows:
        logger.info(f"No health data for user {user_id}, skipping embedding refresh")
        return None

    prompt = embedding_summary_prompt(summarize_averages(rows))
    result = await provider.chat(
        messages=[{"role": "user", "content": prompt}],
        system=SUMMARY_SYSTEM_PROMPT,
    )
    content = (result.get("content") or "").strip()
    if not content:
        raise RuntimeError("Fehler bei der Erstellung der KI-Analyse.")

    vector = await provider.embed(content)
    row = upsert_embedding(db, user_id, content, vector)
    logger.info(f"Health embedding refreshed for user {user_id}")
    return row


async def refresh_embedding_quietly(db: Session, provider: AIProvider, user_id: int) -> None:
    """Refresh the embedding, logging instead of raising on failure."""
    try:
        await update_health_embedding_for_user(db, provider, user_id)
    except Exception as exc:
        db.rollback()
        logger.warning(f"Embedding refresh failed for user {user_id}: {exc}")


def _cosine_distance(a: list[float], b: list[float]) -> float:
    if len(a) != len(b):
        return math.inf
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if not norm_a or not norm_b:
        return 1.0
    return 1.0 - dot / (norm_a * norm_b)


def search_similar(db: Session, query_vector: list[float], limit: int = SEARCH_LIMIT) -> list[dict]:
    """Nearest stored summaries by cosine distance, closest first."""
    if db.get_bind().dialect.name == "postgresql":
        qvec = "[" + ",".join(f"{x:.6f}" for x in query_vector) + "]"
        rows = db.execute(
            text(
                """
                SELECT id, user_id, content,
                    (embedding <=> CAST(:qvec AS vector)) AS distance
                FROM health_embeddings
                WHERE embedding IS NOT NULL
                ORDER BY embedding <=> CAST(:qvec AS vector)
                LIMIT :limit
                """
            ),
            {"qvec": qvec, "limit": limit},
        ).mappings().all()
        return [
            {
                "id": int(r["id"]),
                "user_id": int(r["user_id"]),
                "content": r["content"],
                "distance": float(r["distance"]),
            }
            for r in rows
        ]

    scored = []
    for row in db.query(HealthEmbedding).all():
        if not row.embedding:
            continue
        vector = [float(v) for v in row.embedding]
        scored.append({
            "id": row.id,
            "user_id": row.user_id,
            "content": row.content,
            "distance": _cosine_distance(query_vector, vector),
        })
    scored.sort(key=lambda item: item["distance"])
    return scored[:limit]
