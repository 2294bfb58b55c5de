"""Model provider adapters.

The orchestrator only knows the ``ChatProvider`` protocol.  A
``ProviderRegistry`` maps provider names to factories and caches one
adapter instance per name.  ``OpenAICompatibleProvider`` speaks the
``/chat/completions`` API (OpenAI, OpenRouter, Ollama, LM Studio, vLLM …)
over ``httpx`` with server-sent-event streaming.
"""

from __future__ import annotations

import asyncio
import json as _json
import logging
import re
from typing import Any, Callable, Protocol, Sequence, runtime_checkable

import httpx

from cognitive_ide.contracts import ChatMessage
from cognitive_ide.errors import ProviderError

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[str], Any]

TITLE_MAX_CHARS = 50
_TITLE_QUOTES_RE = re.compile(r"^[\"']|[\"']$")

TITLE_PROMPT = """Generate a concise, descriptive title (max 5 words) for this conversation:

User: {user}
Assistant: {assistant}

The title should:
- Be short and catchy
- Reflect the main topic
- Be in the same language as the user's message
- Not include quotes or special characters

Title:"""


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------


@runtime_checkable
class ChatProvider(Protocol):
    """A streaming chat backend."""

    async def send_chat_request(
        self,
        model_id: str,
        messages: Sequence[ChatMessage],
        on_chunk: ChunkCallback,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        """Stream the reply through *on_chunk*.  Raises on backend failure."""
        ...

    async def generate_title(
        self,
        model_id: str,
        user_message: str,
        assistant_response: str,
    ) -> str: ...


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class ProviderRegistry:
    """Provider name → factory, with one cached instance per name."""

    def __init__(self) -> None:
        self._factories: dict[str, Callable[[], ChatProvider]] = {}
        self._instances: dict[str, ChatProvider] = {}

    def register(self, name: str, factory: Callable[[], ChatProvider]) -> None:
        self._factories[name] = factory
        self._instances.pop(name, None)

    def create(self, name: str) -> ChatProvider:
        """Return the cached adapter for *name*, building it on first use."""
        instance = self._instances.get(name)
        if instance is not None:
            return instance
        factory = self._factories.get(name)
        if factory is None:
            raise ProviderError(f"Unknown provider: {name}", provider=name)
        instance = factory()
        self._instances[name] = instance
        return instance

    def available(self) -> list[str]:
        return list(self._factories.keys())

    def clear_cache(self) -> None:
        self._instances.clear()


# ---------------------------------------------------------------------------
# OpenAI-compatible adapter
# ---------------------------------------------------------------------------


def _headers(api_key: str) -> dict:
    headers = {"Content-Type": "application/json"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    return headers


def _error_message(status_code: int, body: bytes) -> str:
    try:
        data = _json.loads(body)
        detail = data.get("error", {}).get("message") or body.decode(errors="replace")
    except (ValueError, AttributeError):
        detail = body.decode(errors="replace")
    return f"API {status_code}: {detail}"


class OpenAICompatibleProvider:
    """``ChatProvider`` for any ``/chat/completions`` endpoint.

    Args:
        base_url: API root, e.g. ``https://api.openai.com/v1``.
        api_key: Bearer token; omitted from headers when empty.
        timeout: Request timeout in seconds.
        client: Optional pre-built ``httpx.AsyncClient`` (tests inject one
            with a ``MockTransport``).
    """

    name = "openai"

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 300.0,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = base_url.rstrip("/") + "/chat/completions"
        self._api_key = api_key
        self._timeout = timeout
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def send_chat_request(
        self,
        model_id: str,
        messages: Sequence[ChatMessage],
        on_chunk: ChunkCallback,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        body = {
            "model": model_id,
            "messages": [m.model_dump() for m in messages],
            "stream": True,
        }
        client = self._get_client()
        try:
            async with client.stream(
                "POST", self._url, headers=_headers(self._api_key), json=body
            ) as response:
                if response.status_code >= 400:
                    error_body = await response.aread()
                    raise ProviderError(
                        _error_message(response.status_code, error_body),
                        provider=self.name,
                        status_code=response.status_code,
                    )

                async for raw_line in response.aiter_lines():
                    if cancel_event is not None and cancel_event.is_set():
                        logger.debug("[provider] stream cancelled model=%s", model_id)
                        break
                    if not raw_line.startswith("data:"):
                        continue
                    payload = raw_line[5:].strip()
                    if payload == "[DONE]":
                        break
                    try:
                        data = _json.loads(payload)
                    except ValueError:
                        continue
                    text = _delta_text(data)
                    if text:
                        result = on_chunk(text)
                        if asyncio.iscoroutine(result):
                            await result
        except httpx.HTTPError as exc:
            raise ProviderError(f"Request failed: {exc}", provider=self.name) from exc

    async def complete(self, model_id: str, messages: Sequence[ChatMessage]) -> str:
        """Non-streaming completion; returns the message content."""
        body = {"model": model_id, "messages": [m.model_dump() for m in messages]}
        client = self._get_client()
        try:
            response = await client.post(self._url, headers=_headers(self._api_key), json=body)
        except httpx.HTTPError as exc:
            raise ProviderError(f"Request failed: {exc}", provider=self.name) from exc
        if response.status_code >= 400:
            raise ProviderError(
                _error_message(response.status_code, response.content),
                provider=self.name,
                status_code=response.status_code,
            )
        choices = response.json().get("choices", [])
        if not choices:
            raise ProviderError("Empty response from API", provider=self.name)
        return choices[0].get("message", {}).get("content") or ""

    async def generate_title(
        self,
        model_id: str,
        user_message: str,
        assistant_response: str,
    ) -> str:
        prompt = TITLE_PROMPT.format(user=user_message, assistant=assistant_response)
        try:
            text = await self.complete(model_id, [ChatMessage(role="user", content=prompt)])
        except ProviderError as exc:
            logger.warning("[provider] title generation failed: %s", exc)
            return fallback_title(user_message)
        title = clean_title(text)
        return title or fallback_title(user_message)


def _delta_text(data: dict) -> str:
    choices = data.get("choices") or []
    if not choices:
        return ""
    delta = choices[0].get("delta") or {}
    return delta.get("content") or ""


# ---------------------------------------------------------------------------
# Title helpers
# ---------------------------------------------------------------------------


def clean_title(text: str) -> str:
    """Trim, drop one pair of surrounding quotes, cap the length."""
    return _TITLE_QUOTES_RE.sub("", text.strip())[:TITLE_MAX_CHARS]


def fallback_title(user_message: str) -> str:
    """First four words of the user's message, capitalised."""
    words = user_message.split(" ")
    title = " ".join(words[:4]) + ("..." if len(words) > 4 else "")
    return title[:1].upper() + title[1:]


__all__ = [
    "ChatProvider",
    "OpenAICompatibleProvider",
    "ProviderRegistry",
    "clean_title",
    "fallback_title",
]
