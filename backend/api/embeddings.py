import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ai.providers import get_ai_provider
from ai.providers.base import AIProvider
from auth.utils import get_current_user
from db.database import get_db
from db.models import User
from services.embedding_service import search_similar, upsert_embedding
from services.rate_limit_service import require_ai_quota

logger = logging.getLogger(__name__)

router = APIRouter(tags=["embeddings"])


class EmbeddingRequest(BaseModel):
    text: str = Field(min_length=1, max_length=8000)


class SearchRequest(BaseModel):
    query: str = Field(min_length=1, max_length=2000)


@router.post("/embeddings")
async def store_embedding(
    req: EmbeddingRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    provider: AIProvider = Depends(get_ai_provider),
):
    require_ai_quota(user.id, "ai:embedding")
    try:
        vector = await provider.embed(req.text)
        upsert_embedding(db, user.id, req.text, vector)
    except HTTPException:
        raise
    except Exception as e:
        db.rollback()
        logger.error(f"Embedding failed for user {user.id}: {e}")
        raise HTTPException(status_code=500, detail="Embedding failed")
    return {"success": True}


@router.post("/search")
async def search(
    req: SearchRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    provider: AIProvider = Depends(get_ai_provider),
):
    try:
        vector = await provider.embed(req.query)
        results = search_similar(db, vector)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Search failed: {e}")
        raise HTTPException(status_code=500, detail="Search failed")
    return {"results": results}
