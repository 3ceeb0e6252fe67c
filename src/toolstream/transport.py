"""Transports deliver the raw SSE lines of a streamed completion.

A transport is used twice per session at most: for the initial request
and for the follow-up that carries tool results.  It must not retry;
any failure ends the session.
"""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass, replace

import httpx
from openai import APIConnectionError, APIStatusError, AsyncOpenAI

from toolstream.errors import ProviderError, TransportError

logger = logging.getLogger(__name__)

BLANK_CONTENT_PLACEHOLDER = "[No message content]"


@dataclass(frozen=True)
class CompletionRequest:
    """Everything needed to issue one streamed chat completion."""

    model: str
    messages: list[dict]
    tools: list[dict] | None = None
    extra_body: dict | None = None

    def to_kwargs(self) -> dict:
        kwargs = {
            "model": self.model,
            "messages": self.messages,
            "stream": True,
        }
        if self.tools:
            kwargs["tools"] = self.tools
            kwargs["tool_choice"] = "auto"
        if self.extra_body:
            kwargs["extra_body"] = self.extra_body
        return kwargs


class Transport(ABC):
    """Opens a streamed completion and yields its lines."""

    system: str = "openai"

    def prepare(self, request: CompletionRequest) -> CompletionRequest:
        """Adjust a request for provider quirks before it is sent."""
        return request

    @abstractmethod
    def stream_lines(
        self, request: CompletionRequest,
    ) -> AbstractAsyncContextManager[AsyncIterator[str]]:
        """Open the stream; leaving the context closes the response."""
        ...


def _provider_error(err: APIStatusError) -> ProviderError:
    body = err.body if isinstance(err.body, dict) else {}
    error = body.get("error", body)
    if not isinstance(error, dict):
        error = {"message": str(error)}
    message = error.get("message") or err.message or "Unknown error"
    error_type = error.get("type") or "unknown"
    code = error.get("code") or err.status_code or "unknown"
    return ProviderError(str(message), error_type=str(error_type), code=str(code))


class OpenAICompatibleTransport(Transport):
    """Transport for any OpenAI-compatible ``/chat/completions`` endpoint.

    Uses the ``openai`` client's raw streaming response so the session
    sees the SSE lines exactly as the server sent them.

    Args:
        base_url: Endpoint base URL, e.g. ``http://localhost:8000/v1``.
        api_key: API key. Defaults to ``"DUMMY"`` for local servers.
        timeout: Request timeout in seconds.
        client: Pre-built client, mostly for tests.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float = 600.0,
        client: AsyncOpenAI | None = None,
        default_headers: dict[str, str] | None = None,
    ):
        if base_url:
            base_url = base_url.rstrip("/")
        self.base_url = base_url
        self.client = client or AsyncOpenAI(
            base_url=base_url,
            api_key=api_key or "DUMMY",
            max_retries=0,
            timeout=timeout,
            default_headers=default_headers,
        )

    @asynccontextmanager
    async def stream_lines(self, request: CompletionRequest):
        request = self.prepare(request)
        logger.info(
            "Requesting %s (%d messages, %d tools)",
            request.model, len(request.messages), len(request.tools or []),
        )
        try:
            async with self.client.chat.completions.with_streaming_response.create(
                **request.to_kwargs()
            ) as response:
                yield response.iter_lines()
        except APIStatusError as e:
            raise _provider_error(e) from e
        except (APIConnectionError, httpx.HTTPError) as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e


class OpenAITransport(OpenAICompatibleTransport):

    def __init__(self, api_key: str | None = None, **kwargs):
        if not api_key:
            api_key = os.getenv("OPENAI_API_KEY")
        super().__init__(api_key=api_key, **kwargs)


class OpenRouterTransport(OpenAICompatibleTransport):
    """OpenRouter, optionally with its server-side ``web`` plugin.

    With ``web_search=True`` OpenRouter runs the search itself and
    streams ``url_citation`` annotations alongside the content.
    """

    system = "openrouter"

    def __init__(
        self,
        api_key: str | None = None,
        web_search: bool = False,
        timeout: float = 180.0,
        **kwargs,
    ):
        if not api_key:
            api_key = os.getenv("OPENROUTER_API_KEY")
        super().__init__(
            base_url="https://openrouter.ai/api/v1",
            api_key=api_key,
            timeout=timeout,
            **kwargs,
        )
        self.web_search = web_search

    def prepare(self, request: CompletionRequest) -> CompletionRequest:
        if not self.web_search:
            return request
        extra_body = dict(request.extra_body or {})
        extra_body.setdefault("plugins", [{"id": "web"}])
        return replace(request, extra_body=extra_body)


class MistralTransport(OpenAICompatibleTransport):
    """Mistral's chat endpoint.

    Mistral rejects messages with blank content, so blank text is
    replaced with a placeholder.  Assistant tool-call requests without
    content are left alone.
    """

    system = "mistral_ai"

    def __init__(self, api_key: str | None = None, **kwargs):
        if not api_key:
            api_key = os.getenv("MISTRAL_API_KEY")
        super().__init__(
            base_url="https://api.mistral.ai/v1",
            api_key=api_key,
            **kwargs,
        )

    def prepare(self, request: CompletionRequest) -> CompletionRequest:
        messages = []
        for message in request.messages:
            if "tool_calls" not in message and not str(message.get("content", "")).strip():
                message = {**message, "content": BLANK_CONTENT_PLACEHOLDER}
            messages.append(message)
        return replace(request, messages=messages)
