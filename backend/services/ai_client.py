"""
AI Client - Structured Generation

Thin client for an OpenAI-compatible chat completions API.

Used by:
- Property matcher (matching oracle for names without an exact match)
- Vendor document extractor (per-property expense amounts)

The client is created once at startup, stored on app.state and injected
into services; it owns one httpx.AsyncClient closed at shutdown.

Results are validated against a pydantic model, so callers receive a typed
object or an AIClientError, never an untyped dict.
"""

import logging
from typing import Annotated, Any, Dict, List, Literal, Optional, Type, TypeVar, Union

import httpx
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


# ==================== REQUEST MODELS ====================

class ChatMessage(BaseModel):
    """One chat message; content is plain text or a list of content parts."""
    role: Literal["system", "user", "assistant"]
    content: Union[str, List[Dict[str, Any]]]


class PromptRequest(BaseModel):
    """Single prompt, sent as one user message."""
    kind: Literal["prompt"] = "prompt"
    prompt: str

    def to_messages(self) -> List[Dict[str, Any]]:
        return [{"role": "user", "content": self.prompt}]


class MessagesRequest(BaseModel):
    """Explicit message sequence (system prompt, attachments, ...)."""
    kind: Literal["messages"] = "messages"
    messages: List[ChatMessage] = Field(..., min_length=1)

    def to_messages(self) -> List[Dict[str, Any]]:
        return [m.model_dump() for m in self.messages]


GenerationRequest = Annotated[
    Union[PromptRequest, MessagesRequest],
    Field(discriminator="kind")
]


class AIClientError(Exception):
    """Transport failure, provider error, or output that fails the result schema."""


# ==================== CLIENT ====================

class AIClient:
    """
    OpenAI-compatible structured generation client.

    Usage:
        client = AIClient(api_base, api_key, model="gpt-4o")
        result = await client.generate_structured(
            PropertyMatchOutput, PromptRequest(prompt="..."), temperature=0.3
        )
        await client.aclose()
    """

    # Low temperature for consistent structured responses
    DEFAULT_TEMPERATURE = 0.1

    def __init__(
        self,
        api_base: str,
        api_key: str,
        model: str,
        timeout: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.api_base = api_base.rstrip("/")
        self.model = model
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=10.0)
        )
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        self._enabled = bool(api_key)

    @classmethod
    def from_settings(cls, settings, model: Optional[str] = None) -> "AIClient":
        return cls(
            api_base=settings.AI_API_BASE,
            api_key=settings.AI_API_KEY,
            model=model or settings.AI_MODEL,
            timeout=settings.AI_TIMEOUT_SECONDS,
        )

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    async def generate_structured(
        self,
        result_type: Type[T],
        request: GenerationRequest,
        temperature: Optional[float] = None,
        model: Optional[str] = None
    ) -> T:
        """
        Generate an object conforming to result_type.

        Args:
            result_type: pydantic model describing the expected output
            request: prompt or message sequence
            temperature: sampling temperature (defaults to DEFAULT_TEMPERATURE)
            model: override the client's default model

        Raises:
            AIClientError: on transport errors, non-2xx responses, empty output,
                invalid JSON or schema violations
        """
        payload = {
            "model": model or self.model,
            "temperature": self.DEFAULT_TEMPERATURE if temperature is None else temperature,
            "messages": request.to_messages(),
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": result_type.__name__,
                    "schema": result_type.model_json_schema(),
                },
            },
        }

        content = await self._complete(payload)

        try:
            return result_type.model_validate_json(content)
        except ValidationError as e:
            logger.warning(
                f"AI output failed {result_type.__name__} validation: {e.error_count()} error(s)"
            )
            raise AIClientError(f"Output does not match {result_type.__name__}") from e

    async def _complete(self, payload: Dict[str, Any]) -> str:
        if not self._enabled:
            raise AIClientError("AI service unavailable: AI_API_KEY not configured")

        url = f"{self.api_base}/chat/completions"
        logger.debug(f"Calling AI model {payload['model']} at {self.api_base}")

        try:
            response = await self._client.post(url, json=payload, headers=self._headers)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise AIClientError("AI request timed out") from e
        except httpx.HTTPStatusError as e:
            raise AIClientError(
                f"AI API error {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.RequestError as e:
            raise AIClientError(f"AI request failed: {e}") from e
        except ValueError as e:
            raise AIClientError("AI response was not valid JSON") from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise AIClientError("AI response missing message content") from e

        if not content:
            raise AIClientError("AI response was empty")

        return content

    async def aclose(self):
        await self._client.aclose()
