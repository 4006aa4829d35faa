"""
Chat-completion wire models and the client the orchestrator talks to.

The orchestrator only depends on the ``CompletionClient`` protocol; the
HTTP client here speaks the OpenAI-compatible ``chat/completions`` API.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, List, Literal, Optional, Protocol

import httpx
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.z.ai/api/coding/paas/v4"
DEFAULT_MODEL = "glm-4.7"
DEFAULT_SUBAGENT_MODEL = "glm-4.5-flash"


class CompletionError(Exception):
    """Raised when a completion request cannot produce a response."""


class FunctionCall(BaseModel):
    name: str
    arguments: str = ""


class ToolCall(BaseModel):
    id: str
    type: Literal["function"] = "function"
    function: FunctionCall


class AssistantMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: Optional[Any] = None
    tool_calls: Optional[List[ToolCall]] = None

    @property
    def text(self) -> str:
        """The content as a string; structured content is rendered as JSON."""
        if self.content is None:
            return ""
        if isinstance(self.content, str):
            return self.content
        return json.dumps(self.content)


class Choice(BaseModel):
    index: int = 0
    message: AssistantMessage
    finish_reason: Optional[str] = None


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletion(BaseModel):
    id: Optional[str] = None
    model: Optional[str] = None
    choices: List[Choice] = Field(default_factory=list)
    usage: Optional[Usage] = None


class CompletionClient(Protocol):
    async def complete(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> ChatCompletion: ...


class HTTPCompletionClient:
    """
    Non-streaming ``chat/completions`` over httpx.

    The API key is resolved per request through ``api_key_getter`` so a key
    configured after start-up is used without rebuilding the client.
    """

    def __init__(
        self,
        api_key_getter: Callable[[], Optional[str]],
        api_base: str = DEFAULT_API_BASE,
        timeout: float = 120.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._api_key_getter = api_key_getter
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def complete(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> ChatCompletion:
        api_key = self._api_key_getter()
        if not api_key:
            raise CompletionError("API key not configured. Set IMPULSE_API_KEY or add api_key to config.")

        body: Dict[str, Any] = {"model": model, "messages": messages, "stream": False}
        if tools:
            body["tools"] = tools

        if self._client is None:
            self._client = httpx.AsyncClient()
        logger.debug("Completion request: model=%s messages=%d tools=%d", model, len(messages), len(tools or []))
        try:
            response = await self._client.post(
                f"{self._api_base}/chat/completions",
                headers={
                    "Authorization": f"Bearer {api_key}",
                    "Content-Type": "application/json",
                },
                json=body,
                timeout=self._timeout,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise CompletionError(
                f"Completion request failed ({e.response.status_code}): {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise CompletionError(f"Completion request failed: {e}") from e

        try:
            return ChatCompletion.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise CompletionError(f"Malformed completion response: {e}") from e

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
