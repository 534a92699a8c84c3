import base64
import logging
from typing import Any

import httpx
from fastapi import HTTPException

from ai.providers.base import AIProvider
from utils.image_utils import sniff_image_mime

logger = logging.getLogger(__name__)


class OpenAIProvider(AIProvider):
    """OpenAI / GPT AI provider."""

    DEFAULT_BASE_URL = "https://api.openai.com/v1"
    DEFAULT_CHAT_MODEL = "gpt-4o-mini"
    DEFAULT_VISION_MODEL = "gpt-4o"
    DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"

    def __init__(
        self,
        api_key: str,
        chat_model: str | None = None,
        vision_model: str | None = None,
        embedding_model: str | None = None,
        base_url: str | None = None,
        timeout: float = 60,
    ):
        super().__init__(api_key, chat_model, vision_model, embedding_model)
        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self.timeout = timeout
        self._headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    # ------------------------------------------------------------------
    # chat
    # ------------------------------------------------------------------
    async def chat(
        self,
        messages: list[dict],
        model: str | None = None,
        system: str = "",
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> dict:
        full_messages = list(messages)
        if system:
            full_messages.insert(0, {"role": "system", "content": system})

        payload: dict[str, Any] = {
            "model": model or self.get_chat_model(),
            "messages": full_messages,
        }
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens:
            payload.update(self._token_limit_field(payload["model"], max_tokens))
        return await self._chat_completion(payload)

    async def _chat_completion(self, payload: dict) -> dict:
        data = await self._post("/chat/completions", payload)

        choice = (data.get("choices") or [{}])[0]
        content = (choice.get("message") or {}).get("content") or ""
        usage = data.get("usage") or {}

        return {
            "content": content,
            "tokens_in": usage.get("prompt_tokens", 0),
            "tokens_out": usage.get("completion_tokens", 0),
            "model": data.get("model", payload["model"]),
        }

    # ------------------------------------------------------------------
    # chat_with_vision
    # ------------------------------------------------------------------
    async def chat_with_vision(
        self,
        prompt: str,
        image_bytes: bytes,
        model: str | None = None,
        system: str = "",
        max_tokens: int | None = None,
    ) -> dict:
        b64 = base64.b64encode(image_bytes).decode("utf-8")
        media_type = sniff_image_mime(image_bytes) or "image/png"
        data_url = f"data:{media_type};base64,{b64}"

        vision_messages = []
        if system:
            vision_messages.append({"role": "system", "content": system})
        vision_messages.append({
            "role": "user",
            "content": [
                {"type": "text", "text": prompt},
                {
                    "type": "image_url",
                    "image_url": {"url": data_url, "detail": "high"},
                },
            ],
        })

        payload: dict[str, Any] = {
            "model": model or self.get_vision_model(),
            "messages": vision_messages,
        }
        if max_tokens:
            payload.update(self._token_limit_field(payload["model"], max_tokens))
        return await self._chat_completion(payload)

    # ------------------------------------------------------------------
    # embed
    # ------------------------------------------------------------------
    async def embed(self, text: str, model: str | None = None) -> list[float]:
        payload = {
            "model": model or self.get_embedding_model(),
            "input": text.replace("\n", " "),
        }
        data = await self._post("/embeddings", payload)
        items = data.get("data") or []
        if not items or "embedding" not in items[0]:
            raise HTTPException(status_code=502, detail="OpenAI embedding response was empty")
        return [float(v) for v in items[0]["embedding"]]

    async def _post(self, path: str, payload: dict) -> dict:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(f"{self.base_url}{path}", headers=self._headers, json=payload)
            if resp.status_code != 200 and self._should_retry_with_alt_token_field(resp):
                resp = await client.post(
                    f"{self.base_url}{path}",
                    headers=self._headers,
                    json=self._swap_token_limit_field(payload),
                )
            if resp.status_code != 200:
                logger.error(f"OpenAI request to {path} failed with {resp.status_code}")
                raise HTTPException(
                    status_code=resp.status_code,
                    detail=f"OpenAI API error: {resp.text}",
                )
            return resp.json()

    def _token_limit_field(self, model: str, limit: int) -> dict[str, int]:
        m = (model or "").strip().lower()
        if m.startswith("o") or m.startswith("gpt-5") or m.startswith("gpt-4.1"):
            return {"max_completion_tokens": limit}
        return {"max_tokens": limit}

    def _swap_token_limit_field(self, payload: dict[str, Any]) -> dict[str, Any]:
        swapped = dict(payload)
        if "max_tokens" in swapped:
            value = swapped.pop("max_tokens")
            swapped["max_completion_tokens"] = value
            return swapped
        if "max_completion_tokens" in swapped:
            value = swapped.pop("max_completion_tokens")
            swapped["max_tokens"] = value
        return swapped

    def _should_retry_with_alt_token_field(self, resp: httpx.Response) -> bool:
        if resp.status_code != 400:
            return False
        text = (resp.text or "").lower()
        unsupported_param = "unsupported parameter" in text
        mentions_max_tokens = "max_tokens" in text or "max_completion_tokens" in text
        return unsupported_param and mentions_max_tokens
