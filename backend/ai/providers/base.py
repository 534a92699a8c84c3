from abc import ABC, abstractmethod


class AIProvider(ABC):
    """Abstract base class for LLM providers used by the coaching endpoints."""

    DEFAULT_CHAT_MODEL = ""
    DEFAULT_VISION_MODEL = ""
    DEFAULT_EMBEDDING_MODEL = ""

    def __init__(
        self,
        api_key: str,
        chat_model: str | None = None,
        vision_model: str | None = None,
        embedding_model: str | None = None,
    ):
        self.api_key = api_key
        self._chat_model = chat_model
        self._vision_model = vision_model
        self._embedding_model = embedding_model

    @abstractmethod
    async def chat(
        self,
        messages: list[dict],
        model: str | None = None,
        system: str = "",
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> dict:
        """Send a chat request to the provider.

        Args:
            messages: List of message dicts with role and content.
            model: Model identifier; defaults to the chat model.
            system: Optional system prompt.
            temperature: Optional sampling temperature.
            max_tokens: Optional completion token limit.

        Returns:
            dict with content, tokens_in, tokens_out, model.
        """
        ...

    @abstractmethod
    async def chat_with_vision(
        self,
        prompt: str,
        image_bytes: bytes,
        model: str | None = None,
        system: str = "",
        max_tokens: int | None = None,
    ) -> dict:
        """Send a single-turn request that includes an image.

        Returns:
            dict with content, tokens_in, tokens_out, model.
        """
        ...

    @abstractmethod
    async def embed(self, text: str, model: str | None = None) -> list[float]:
        """Return the embedding vector for ``text``."""
        ...

    def get_chat_model(self) -> str:
        return self._chat_model or self.DEFAULT_CHAT_MODEL

    def get_vision_model(self) -> str:
        return self._vision_model or self.DEFAULT_VISION_MODEL

    def get_embedding_model(self) -> str:
        return self._embedding_model or self.DEFAULT_EMBEDDING_MODEL
