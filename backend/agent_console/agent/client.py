"""Completion source: upstream chat-completion streaming with a local fallback.

Both paths are normalized into the completion event vocabulary from
``agent_console.models.events`` so the rest of the service never sees wire
bytes.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
from typing import Any, AsyncIterator, Sequence

import httpx

from agent_console.agent.fallback import build_fallback_reply, tokenize
from agent_console.agent.sse import SSEDecoder
from agent_console.config import Settings
from agent_console.models.base import utcnow
from agent_console.models.events import (
    AssistantDoneEvent,
    AssistantTokenEvent,
    CompletionEvent,
    DegradedEvent,
    DoneData,
    ErrorData,
    ErrorEvent,
    TokenData,
)
from agent_console.models.messages import ConversationMessage

logger = logging.getLogger(__name__)

DEGRADED_MESSAGE = "Agent service unavailable. Using local fallback."


class UpstreamError(Exception):
    """The upstream completion request could not be completed."""


class CompletionClient:
    """Streams completions for one assistant message at a time.

    Lifecycle:
        client = CompletionClient(settings)
        async for event in client.stream_completion(...):
            ...
        await client.close()
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._settings = settings
        self._client = http_client or httpx.AsyncClient()
        self._owns_client = http_client is None
        self._rng = rng or random.Random()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @property
    def upstream_configured(self) -> bool:
        return self._settings.upstream_configured

    async def stream_completion(
        self,
        session_id: str,
        prompt_body: str,
        messages: Sequence[ConversationMessage],
        message_id: str,
    ) -> AsyncIterator[CompletionEvent]:
        """Yield completion events ending in exactly one terminal event.

        Tries the upstream model when a credential is configured. If that
        raises, one ``degraded`` event is emitted and the local fallback runs
        to completion. Without a credential the fallback runs directly.
        """
        if self.upstream_configured:
            try:
                async for event in self._stream_upstream(
                    session_id, prompt_body, messages, message_id
                ):
                    yield event
                return
            except Exception as exc:
                logger.warning(
                    "Falling back to local agent stream for session %s: %s",
                    session_id,
                    exc,
                )
                yield DegradedEvent(data=ErrorData(message=DEGRADED_MESSAGE))

        async for event in self._stream_fallback(
            session_id, prompt_body, messages, message_id
        ):
            yield event

    # ------------------------------------------------------------------
    # Upstream
    # ------------------------------------------------------------------

    async def _stream_upstream(
        self,
        session_id: str,
        prompt_body: str,
        messages: Sequence[ConversationMessage],
        message_id: str,
    ) -> AsyncIterator[CompletionEvent]:
        base_url = self._settings.openai_api_base_url.rstrip("/")
        request_body = {
            "model": self._settings.openai_model,
            "stream": True,
            "messages": [
                {"role": "system", "content": prompt_body},
                *(
                    {"role": m.role, "content": m.content.strip()}
                    for m in messages
                    if m.content.strip()
                ),
            ],
        }
        # The read timeout is the idle gap allowed between body chunks.
        timeout = httpx.Timeout(
            10.0, read=self._settings.completion_idle_timeout_seconds
        )

        decoder = SSEDecoder()
        emitted = 0
        reported_total: int | None = None
        first_token_at = None
        last_token_at = None

        try:
            async with self._client.stream(
                "POST",
                f"{base_url}/chat/completions",
                json=request_body,
                headers={"Authorization": f"Bearer {self._settings.openai_api_key}"},
                timeout=timeout,
            ) as response:
                if response.status_code >= 400:
                    detail = (await response.aread()).decode(errors="replace")
                    raise UpstreamError(
                        f"Upstream request failed ({response.status_code})"
                        + (f": {detail[:200]}" if detail else "")
                    )

                async for payload in _event_payloads(response, decoder):
                    chunk = _parse_chunk(payload)
                    if chunk is None:
                        continue

                    error = chunk.get("error")
                    if isinstance(error, dict):
                        message = str(error.get("message") or "Upstream error")
                        logger.error(
                            "Upstream reported error for session %s: %s",
                            session_id,
                            message,
                        )
                        yield ErrorEvent(data=ErrorData(message=message))
                        return

                    total = _usage_total(chunk)
                    if total is not None:
                        reported_total = total

                    for token in _delta_tokens(chunk):
                        at = utcnow()
                        first_token_at = first_token_at or at
                        last_token_at = at
                        emitted += 1
                        yield AssistantTokenEvent(
                            data=TokenData(message_id=message_id, token=token, at=at)
                        )
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Upstream request failed: {exc!r}") from exc

        now = utcnow()
        logger.info(
            "Upstream completed stream for session %s (message=%s, tokens=%d)",
            session_id,
            message_id,
            emitted,
        )
        yield AssistantDoneEvent(
            data=DoneData(
                message_id=message_id,
                total_tokens=reported_total if reported_total is not None else emitted,
                first_token_at=first_token_at or now,
                last_token_at=last_token_at or now,
            )
        )

    # ------------------------------------------------------------------
    # Fallback
    # ------------------------------------------------------------------

    async def _stream_fallback(
        self,
        session_id: str,
        prompt_body: str,
        messages: Sequence[ConversationMessage],
        message_id: str,
    ) -> AsyncIterator[CompletionEvent]:
        reply = build_fallback_reply(prompt_body, messages, rng=self._rng)
        delay = self._settings.fallback_token_delay_ms / 1000
        count = 0
        first_token_at = None
        last_token_at = None

        for token in tokenize(reply):
            at = utcnow()
            first_token_at = first_token_at or at
            last_token_at = at
            count += 1
            yield AssistantTokenEvent(
                data=TokenData(message_id=message_id, token=token, at=at)
            )
            await asyncio.sleep(delay)

        now = utcnow()
        yield AssistantDoneEvent(
            data=DoneData(
                message_id=message_id,
                total_tokens=count,
                first_token_at=first_token_at or now,
                last_token_at=last_token_at or now,
            )
        )
        logger.info(
            "Fallback agent response completed for session %s (message=%s, tokens=%d)",
            session_id,
            message_id,
            count,
        )


async def _event_payloads(
    response: httpx.Response, decoder: SSEDecoder
) -> AsyncIterator[str]:
    async for text in response.aiter_text():
        for payload in decoder.feed(text):
            yield payload
        if decoder.done:
            return
    for payload in decoder.flush():
        yield payload


def _parse_chunk(payload: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(payload)
    except json.JSONDecodeError:
        logger.warning("Failed to parse upstream SSE chunk: %s", payload[:200])
        return None
    if not isinstance(parsed, dict):
        logger.warning("Ignoring non-object upstream SSE chunk: %s", payload[:200])
        return None
    return parsed


def _usage_total(chunk: dict[str, Any]) -> int | None:
    usage = chunk.get("usage")
    if isinstance(usage, dict):
        total = usage.get("total_tokens")
        if isinstance(total, int) and not isinstance(total, bool):
            return total
    return None


def _delta_tokens(chunk: dict[str, Any]) -> list[str]:
    """Flatten ``choices[0].delta.content`` into non-empty token strings."""
    choices = chunk.get("choices")
    if not isinstance(choices, list) or not choices:
        return []
    choice = choices[0] if isinstance(choices[0], dict) else {}
    delta = choice.get("delta") or {}
    if not isinstance(delta, dict):
        return []

    role = delta.get("role")
    if isinstance(role, str) and role != "assistant":
        return []

    content = delta.get("content")
    if isinstance(content, str):
        return [content] if content else []
    if isinstance(content, list):
        return [
            part["text"]
            for part in content
            if isinstance(part, dict) and isinstance(part.get("text"), str) and part["text"]
        ]
    return []
