"""Tests for session event fan-out."""

import json

import pytest
from starlette.websockets import WebSocketState

from agent_console.models.base import utcnow
from agent_console.models.events import (
    AssistantTokenEvent,
    CompletionEvent,
    TokenData,
    parse_event,
)
from agent_console.stream.hub import StreamHub


class FakeWebSocket:
    def __init__(self, fail: bool = False) -> None:
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.sent: list[str] = []
        self.fail = fail

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise RuntimeError("socket broken")
        self.sent.append(data)


def _token(token: str, message_id: str = "m-1") -> AssistantTokenEvent:
    return AssistantTokenEvent(
        data=TokenData(message_id=message_id, token=token, at=utcnow())
    )


def test_broadcast_without_subscribers_is_a_noop() -> None:
    hub = StreamHub()

    hub.broadcast_event("nobody", _token("a"))

    assert not hub.has_subscribers("nobody")


@pytest.mark.asyncio
async def test_sockets_receive_events_in_order() -> None:
    hub = StreamHub()
    first, second = FakeWebSocket(), FakeWebSocket()
    subscribers = [hub.attach("s-1", first), hub.attach("s-1", second)]

    for token in ("a", "b", "c"):
        hub.broadcast_event("s-1", _token(token))
    for subscriber in subscribers:
        subscriber.close()
        await subscriber.pump()

    for socket in (first, second):
        tokens = [parse_event(frame).data.token for frame in socket.sent]
        assert tokens == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_frames_are_event_json() -> None:
    hub = StreamHub()
    socket = FakeWebSocket()
    subscriber = hub.attach("s-1", socket)

    hub.broadcast_event("s-1", _token("hi", message_id="m-9"))
    subscriber.close()
    await subscriber.pump()

    frame = json.loads(socket.sent[0])
    assert frame["type"] == "assistant_token"
    assert frame["data"]["messageId"] == "m-9"
    assert frame["data"]["token"] == "hi"


@pytest.mark.asyncio
async def test_closed_socket_is_skipped() -> None:
    hub = StreamHub()
    closed, live = FakeWebSocket(), FakeWebSocket()
    closed.client_state = WebSocketState.DISCONNECTED
    closed_sub = hub.attach("s-1", closed)
    live_sub = hub.attach("s-1", live)

    hub.broadcast_event("s-1", _token("a"))
    for subscriber in (closed_sub, live_sub):
        subscriber.close()
        await subscriber.pump()

    assert closed.sent == []
    assert len(live.sent) == 1


def test_failing_listener_does_not_affect_others() -> None:
    hub = StreamHub()
    received: list[CompletionEvent] = []

    def broken(event: CompletionEvent) -> None:
        raise RuntimeError("listener failed")

    hub.subscribe("s-1", broken)
    hub.subscribe("s-1", received.append)

    hub.broadcast_event("s-1", _token("a"))
    hub.broadcast_event("s-1", _token("b"))

    assert [e.data.token for e in received] == ["a", "b"]


def test_sessions_are_isolated() -> None:
    hub = StreamHub()
    one: list[CompletionEvent] = []
    two: list[CompletionEvent] = []
    hub.subscribe("s-1", one.append)
    hub.subscribe("s-2", two.append)

    hub.broadcast_event("s-1", _token("a"))

    assert len(one) == 1
    assert two == []


def test_unsubscribe_and_detach_clean_up() -> None:
    hub = StreamHub()
    received: list[CompletionEvent] = []
    unsubscribe = hub.subscribe("s-1", received.append)
    socket = FakeWebSocket()
    hub.attach("s-1", socket)
    assert hub.subscriber_count("s-1") == 2

    unsubscribe()
    hub.broadcast_event("s-1", _token("a"))
    assert received == []

    hub.detach("s-1", socket)
    assert not hub.has_subscribers("s-1")

    # Removing twice is harmless
    unsubscribe()
    hub.detach("s-1", socket)


@pytest.mark.asyncio
async def test_late_subscriber_sees_only_later_events() -> None:
    hub = StreamHub()
    hub.broadcast_event("s-1", _token("early"))
    received: list[CompletionEvent] = []
    hub.subscribe("s-1", received.append)

    hub.broadcast_event("s-1", _token("late"))

    assert [e.data.token for e in received] == ["late"]
