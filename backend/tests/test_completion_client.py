"""Tests for the completion source (upstream streaming + local fallback)."""

import json
from collections.abc import AsyncIterator, Callable

import httpx
import pytest

from agent_console.agent.client import DEGRADED_MESSAGE, CompletionClient
from agent_console.config import Settings
from agent_console.models.events import (
    AssistantDoneEvent,
    AssistantTokenEvent,
    DegradedEvent,
    ErrorEvent,
)
from agent_console.models.messages import ConversationMessage

MESSAGES = [ConversationMessage(role="user", content="Hello there")]


def _settings(**overrides) -> Settings:
    values = {
        "openai_api_key": "sk-test",
        "openai_api_base_url": "http://upstream.test/v1",
        "fallback_token_delay_ms": 0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def _sse(*chunks: dict | str) -> bytes:
    blocks = []
    for chunk in chunks:
        data = chunk if isinstance(chunk, str) else json.dumps(chunk)
        blocks.append(f"data: {data}\n\n")
    return "".join(blocks).encode()


def _delta(content) -> dict:
    return {"choices": [{"delta": {"content": content}}]}


def _client(
    handler: Callable[[httpx.Request], httpx.Response], **overrides
) -> CompletionClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CompletionClient(_settings(**overrides), http_client=http_client)


async def _collect(client: CompletionClient) -> list:
    return [
        event
        async for event in client.stream_completion(
            session_id="session-1",
            prompt_body="Assist the user.",
            messages=MESSAGES,
            message_id="assistant-1",
        )
    ]


@pytest.mark.asyncio
async def test_without_credential_goes_straight_to_fallback() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("upstream must not be called")

    client = _client(handler, openai_api_key="")

    events = await _collect(client)

    assert isinstance(events[0], AssistantTokenEvent)
    assert not any(isinstance(e, DegradedEvent) for e in events)
    done = events[-1]
    assert isinstance(done, AssistantDoneEvent)
    tokens = [e for e in events if isinstance(e, AssistantTokenEvent)]
    assert done.data.total_tokens == len(tokens)
    assert "Hello there" in "".join(e.data.token for e in tokens)
    assert all(e.data.message_id == "assistant-1" for e in tokens)


@pytest.mark.asyncio
async def test_fetch_failure_emits_degraded_then_falls_back() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("agent offline", request=request)

    events = await _collect(_client(handler))

    assert isinstance(events[0], DegradedEvent)
    assert events[0].data.message == DEGRADED_MESSAGE
    assert sum(isinstance(e, DegradedEvent) for e in events) == 1
    assert isinstance(events[-1], AssistantDoneEvent)
    assert sum(isinstance(e, (AssistantDoneEvent, ErrorEvent)) for e in events) == 1


@pytest.mark.asyncio
async def test_error_status_falls_back() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    events = await _collect(_client(handler))

    assert isinstance(events[0], DegradedEvent)
    assert isinstance(events[-1], AssistantDoneEvent)


@pytest.mark.asyncio
async def test_streams_upstream_tokens_and_reported_usage() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        body = _sse(
            {"choices": [{"delta": {"role": "assistant"}}]},
            _delta("Hel"),
            _delta([{"text": "lo"}, {"text": ""}, {"text": " world"}]),
            {"choices": [], "usage": {"total_tokens": 42}},
            "[DONE]",
        )
        return httpx.Response(
            200, content=body, headers={"content-type": "text/event-stream"}
        )

    events = await _collect(_client(handler))

    assert seen["url"] == "http://upstream.test/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["stream"] is True
    assert seen["body"]["messages"][0] == {
        "role": "system",
        "content": "Assist the user.",
    }
    assert seen["body"]["messages"][1:] == [{"role": "user", "content": "Hello there"}]

    tokens = [e.data.token for e in events if isinstance(e, AssistantTokenEvent)]
    assert tokens == ["Hel", "lo", " world"]
    done = events[-1]
    assert isinstance(done, AssistantDoneEvent)
    assert done.data.total_tokens == 42
    assert done.data.first_token_at <= done.data.last_token_at


@pytest.mark.asyncio
async def test_total_defaults_to_emitted_count_and_bad_chunks_are_skipped() -> None:
    async def body() -> AsyncIterator[bytes]:
        yield b'data: {"choices": [{"delta": {"content": "a"}}]}\n'
        yield b"\ndata: not-json\n\n"
        yield b'data: {"choices": [{"delta": {"role": "tool", "content": "x"}}]}\n\n'
        yield b'data: {"choices": [{"delta": {"content": "b"}}]}\n\n'
        yield b"data: [DONE]\n\n"
        yield b'data: {"choices": [{"delta": {"content": "ignored"}}]}\n\n'

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=body())

    events = await _collect(_client(handler))

    assert not any(isinstance(e, DegradedEvent) for e in events)
    tokens = [e.data.token for e in events if isinstance(e, AssistantTokenEvent)]
    assert tokens == ["a", "b"]
    assert events[-1].data.total_tokens == 2


@pytest.mark.asyncio
async def test_stream_without_done_sentinel_still_completes() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b'data: {"choices": [{"delta": {"content": "hi"}}]}')

    events = await _collect(_client(handler))

    assert [type(e) for e in events] == [AssistantTokenEvent, AssistantDoneEvent]
    assert events[-1].data.total_tokens == 1


@pytest.mark.asyncio
async def test_upstream_error_chunk_is_terminal() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        body = _sse(_delta("partial"), {"error": {"message": "context too long"}})
        return httpx.Response(200, content=body)

    events = await _collect(_client(handler))

    assert isinstance(events[-1], ErrorEvent)
    assert events[-1].data.message == "context too long"
    assert not any(isinstance(e, AssistantDoneEvent) for e in events)


@pytest.mark.asyncio
async def test_idle_read_timeout_after_tokens_falls_back() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        async def body() -> AsyncIterator[bytes]:
            yield b'data: {"choices": [{"delta": {"content": "partial"}}]}\n\n'
            raise httpx.ReadTimeout("no data within the idle window", request=request)

        return httpx.Response(200, content=body())

    events = await _collect(_client(handler, completion_idle_timeout_seconds=0.05))

    assert isinstance(events[0], AssistantTokenEvent)
    assert events[0].data.token == "partial"
    assert isinstance(events[1], DegradedEvent)
    assert sum(isinstance(e, DegradedEvent) for e in events) == 1
    fallback_tokens = [e for e in events[2:] if isinstance(e, AssistantTokenEvent)]
    assert fallback_tokens
    assert "Hello there" in "".join(e.data.token for e in fallback_tokens)
    assert isinstance(events[-1], AssistantDoneEvent)
    assert events[-1].data.total_tokens == len(fallback_tokens)
    assert sum(isinstance(e, (AssistantDoneEvent, ErrorEvent)) for e in events) == 1


@pytest.mark.asyncio
async def test_idle_timeout_is_sent_as_read_timeout() -> None:
    seen: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["timeout"] = request.extensions["timeout"]
        return httpx.Response(200, content=_sse(_delta("ok"), "[DONE]"))

    await _collect(_client(handler, completion_idle_timeout_seconds=7))

    assert seen["timeout"]["read"] == 7
