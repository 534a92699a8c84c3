from fastapi import HTTPException

from ai.providers.base import AIProvider
from ai.providers.openai_provider import OpenAIProvider
from config import settings


def get_provider(api_key: str | None = None) -> AIProvider:
    key = (api_key or settings.OPENAI_API_KEY or "").strip()
    if not key:
        raise ValueError("OPENAI_API_KEY is not configured")
    return OpenAIProvider(
        api_key=key,
        chat_model=settings.OPENAI_MODEL,
        vision_model=settings.OPENAI_VISION_MODEL,
        embedding_model=settings.OPENAI_EMBEDDING_MODEL,
        base_url=settings.OPENAI_BASE_URL,
        timeout=settings.OPENAI_TIMEOUT_SECONDS,
    )


def get_ai_provider() -> AIProvider:
    """FastAPI dependency returning the configured provider."""
    try:
        return get_provider()
    except ValueError:
        raise HTTPException(status_code=500, detail="OpenAI API key is not configured")
