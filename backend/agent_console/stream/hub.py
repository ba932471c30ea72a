"""In-memory fan-out of completion events to every viewer of a session.

One registry keyed by session id holds two kinds of subscriber behind the
same interface:

- ``SocketSubscriber``: a WebSocket. Events are queued on a per-socket
  outbox and written by ``pump()``, so a slow socket never blocks the
  broadcaster and frames keep their broadcast order.
- ``CallbackSubscriber``: an in-process listener (used by the SSE route).

Nothing is buffered for absent viewers: broadcasting to a session with no
subscribers is a no-op, and late subscribers only see later events.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Protocol

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from agent_console.models.events import CompletionEvent

logger = logging.getLogger(__name__)

Listener = Callable[[CompletionEvent], None]


class Subscriber(Protocol):
    @property
    def is_open(self) -> bool: ...

    def deliver(self, event: CompletionEvent, payload: str) -> None: ...


class SocketSubscriber:
    """Push-socket sink with an ordered outbox."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket
        self._outbox: asyncio.Queue[str | None] = asyncio.Queue()

    @property
    def is_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def deliver(self, event: CompletionEvent, payload: str) -> None:
        self.push(payload)

    def push(self, payload: str) -> None:
        """Queue a raw text frame behind any pending events."""
        self._outbox.put_nowait(payload)

    def close(self) -> None:
        """Stop ``pump()`` once the frames queued so far are written."""
        self._outbox.put_nowait(None)

    async def pump(self) -> None:
        """Write queued frames to the socket until ``close()`` is called."""
        while True:
            payload = await self._outbox.get()
            if payload is None:
                return
            await self.websocket.send_text(payload)


class CallbackSubscriber:
    """In-process listener sink."""

    is_open = True

    def __init__(self, listener: Listener) -> None:
        self.listener = listener

    def deliver(self, event: CompletionEvent, payload: str) -> None:
        self.listener(event)


class StreamHub:
    """Session id → live subscribers."""

    def __init__(self) -> None:
        self._sessions: dict[str, dict[object, Subscriber]] = {}

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def attach(self, session_id: str, websocket: WebSocket) -> SocketSubscriber:
        subscriber = SocketSubscriber(websocket)
        self._sessions.setdefault(session_id, {})[websocket] = subscriber
        logger.info("WebSocket connected to session %s", session_id)
        return subscriber

    def detach(self, session_id: str, websocket: WebSocket) -> None:
        subscriber = self._remove(session_id, websocket)
        if isinstance(subscriber, SocketSubscriber):
            subscriber.close()
            logger.info("WebSocket disconnected from session %s", session_id)

    def subscribe(self, session_id: str, listener: Listener) -> Callable[[], None]:
        """Register a listener; the returned callable unsubscribes it."""
        key = object()
        self._sessions.setdefault(session_id, {})[key] = CallbackSubscriber(listener)

        def unsubscribe() -> None:
            self._remove(session_id, key)

        return unsubscribe

    def has_subscribers(self, session_id: str) -> bool:
        return bool(self._sessions.get(session_id))

    def subscriber_count(self, session_id: str) -> int:
        return len(self._sessions.get(session_id, {}))

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    def broadcast_event(self, session_id: str, event: CompletionEvent) -> None:
        subscribers = self._sessions.get(session_id)
        if not subscribers:
            return

        payload = event.to_json()
        for subscriber in list(subscribers.values()):
            if not subscriber.is_open:
                continue
            try:
                subscriber.deliver(event, payload)
            except Exception:
                logger.exception(
                    "Subscriber dispatch failed for session %s (event=%s)",
                    session_id,
                    event.type,
                )

    def _remove(self, session_id: str, key: object) -> Subscriber | None:
        subscribers = self._sessions.get(session_id)
        if not subscribers:
            return None
        subscriber = subscribers.pop(key, None)
        if not subscribers:
            del self._sessions[session_id]
        return subscriber
