"""OpenAI-compatible chat-completion client used for planning, narration and answers."""

import asyncio
import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from search_chat.config import Settings
from search_chat.exceptions import ProviderError, StreamDecodeError
from search_chat.logging import get_logger
from search_chat.text import extract_first_json_object, to_str

log = get_logger("search_chat.llm")

PROVIDER = "chat-completions"
DEFAULT_JSON_TIMEOUT_S = 9.0
DEFAULT_TEXT_TIMEOUT_S = 7.0
STREAM_DONE_MARKER = "[DONE]"

Message = dict[str, str]


class SSELineBuffer:
    """Incremental line splitter for an upstream event stream.

    Text chunks can end mid-line; the unterminated tail is carried over to the
    next ``feed`` call and only released by ``flush`` once the stream ends.
    """

    def __init__(self) -> None:
        self._carry = ""

    def feed(self, chunk: str) -> list[str]:
        self._carry += chunk
        *lines, self._carry = self._carry.split("\n")
        return lines

    def flush(self) -> list[str]:
        tail, self._carry = self._carry, ""
        return [tail] if tail.strip() else []


def parse_delta_line(line: str) -> str | None:
    """Extract ``choices[0].delta.content`` from one ``data:`` line.

    Returns None for blank, non-data and terminator lines; raises
    StreamDecodeError for data lines that are not valid delta JSON.
    """
    stripped = line.strip()
    if not stripped.startswith("data:"):
        return None

    data = stripped[5:].strip()
    if not data or data == STREAM_DONE_MARKER:
        return None

    try:
        payload = json.loads(data)
    except ValueError as e:
        raise StreamDecodeError(line, "invalid json") from e

    try:
        content = payload["choices"][0]["delta"].get("content")
    except (KeyError, IndexError, TypeError, AttributeError) as e:
        raise StreamDecodeError(line, "missing delta") from e

    return content if isinstance(content, str) else None


async def iter_content_deltas(response: httpx.Response) -> AsyncIterator[str]:
    """Yield every non-empty content delta of a streaming completion, in order."""
    buffer = SSELineBuffer()

    async def _decode(lines: list[str]) -> AsyncIterator[str]:
        for line in lines:
            try:
                content = parse_delta_line(line)
            except StreamDecodeError as e:
                log.debug("llm.stream.frame_skipped", reason=e.reason)
                continue
            if content:
                yield content

    async for chunk in response.aiter_text():
        async for content in _decode(buffer.feed(chunk)):
            yield content

    async for content in _decode(buffer.flush()):
        yield content


class LLMClient:
    """Thin request wrappers around ``POST {base}/chat/completions``.

    Every failure (non-2xx, undecodable body, network error, timeout) surfaces
    as ProviderError so call sites can fall back with a single except clause.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient) -> None:
        self.settings = settings
        self.http = http_client

    @property
    def enabled(self) -> bool:
        return self.settings.llm_enabled

    @property
    def _url(self) -> str:
        return f"{self.settings.llm_base_url}/chat/completions"

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.settings.llm_api_key}",
        }

    def _payload(
        self,
        messages: list[Message],
        *,
        model: str,
        stream: bool,
        max_tokens: int | None = None,
        temperature: float | None = None,
        disable_thinking: bool = False,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"model": model, "messages": messages, "stream": stream}
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        if temperature is not None:
            payload["temperature"] = temperature
        if disable_thinking and self.settings.llm_disable_thinking:
            payload["thinking"] = {"type": "disabled"}
        return payload

    async def _complete(
        self,
        messages: list[Message],
        *,
        model: str | None,
        timeout_s: float,
        max_tokens: int,
        temperature: float,
    ) -> dict[str, Any]:
        """Run one non-streaming completion and return the first choice's message."""
        if not self.enabled:
            raise ProviderError(PROVIDER, "LLM_API_KEY is not configured")

        resolved_model = model or self.settings.orchestrator_model
        payload = self._payload(
            messages,
            model=resolved_model,
            stream=False,
            max_tokens=max_tokens,
            temperature=temperature,
            disable_thinking=True,
        )

        try:
            async with asyncio.timeout(timeout_s):
                response = await self.http.post(self._url, json=payload, headers=self._headers)
        except TimeoutError as e:
            raise ProviderError(PROVIDER, f"timed out after {timeout_s}s") from e
        except httpx.HTTPError as e:
            raise ProviderError(PROVIDER, f"{type(e).__name__}: {e}") from e

        if response.is_error:
            log.warning(
                "llm.request.http_error",
                model=resolved_model,
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise ProviderError(PROVIDER, "non-success response", status_code=response.status_code)

        try:
            body = response.json()
        except ValueError as e:
            raise ProviderError(PROVIDER, "response body is not JSON", status_code=response.status_code) from e

        try:
            message = body["choices"][0]["message"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(PROVIDER, "response has no choices", status_code=response.status_code) from e

        return message if isinstance(message, dict) else {}

    async def request_structured(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        timeout_s: float = DEFAULT_JSON_TIMEOUT_S,
        max_tokens: int = 220,
        temperature: float = 0.2,
    ) -> Any:
        """Completion whose reply should contain a JSON object.

        Returns the parsed JSON value, or None if no JSON could be extracted.
        """
        message = await self._complete(
            messages,
            model=model,
            timeout_s=timeout_s,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        return extract_first_json_object(message.get("content"))

    async def request_text(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        timeout_s: float = DEFAULT_TEXT_TIMEOUT_S,
        max_tokens: int = 120,
        temperature: float = 0.3,
    ) -> str:
        """Completion returning trimmed text; falls back to ``reasoning_content``."""
        message = await self._complete(
            messages,
            model=model,
            timeout_s=timeout_s,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        content = to_str(message.get("content")).strip()
        if content:
            return content
        return to_str(message.get("reasoning_content")).strip()

    @asynccontextmanager
    async def request_stream(self, messages: list[Message]) -> AsyncIterator[httpx.Response]:
        """Open a streaming completion with the response model.

        No overall timeout: the answer is consumed incrementally by the caller.
        """
        if not self.enabled:
            raise ProviderError(PROVIDER, "LLM_API_KEY is not configured")

        payload = self._payload(messages, model=self.settings.response_model, stream=True)
        try:
            async with self.http.stream("POST", self._url, json=payload, headers=self._headers) as response:
                if response.is_error:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    log.warning("llm.stream.http_error", status_code=response.status_code, body=body[:500])
                    raise ProviderError(PROVIDER, "non-success response", status_code=response.status_code)
                yield response
        except httpx.HTTPError as e:
            raise ProviderError(PROVIDER, f"{type(e).__name__}: {e}") from e
