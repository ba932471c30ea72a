"""Live session streams: Server-Sent Events and WebSocket.

Both transports register with the same ``StreamHub`` and carry the same JSON
completion events. Closing a stream only removes the viewer; the assistant
run keeps going.

Protocol:
    SSE  GET /api/stream/sessions/{id}/events
         "event: connected" first, then one "data: <event json>" per event
    WS   /api/stream/sessions/{id}
         {"type": "connected"} first, then one text frame per event;
         the client may send "ping" and receives "pong"
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import suppress
from typing import AsyncIterator, Awaitable, Callable

from fastapi import APIRouter, Depends, HTTPException, Request, WebSocket
from fastapi import WebSocketDisconnect
from fastapi.responses import StreamingResponse

from agent_console.dependencies import get_session_store, get_stream_hub
from agent_console.memory.session_store import SessionStore
from agent_console.models.events import CompletionEvent
from agent_console.stream.hub import StreamHub

logger = logging.getLogger(__name__)
router = APIRouter()

KEEPALIVE_SECONDS = 15.0
SESSION_NOT_FOUND_CLOSE_CODE = 4404

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def session_event_stream(
    hub: StreamHub,
    session_id: str,
    is_disconnected: Callable[[], Awaitable[bool]],
    keepalive: float = KEEPALIVE_SECONDS,
) -> AsyncIterator[str]:
    """Yield SSE frames for one viewer until it disconnects."""
    queue: asyncio.Queue[CompletionEvent] = asyncio.Queue()
    unsubscribe = hub.subscribe(session_id, queue.put_nowait)
    logger.info("SSE viewer connected to session %s", session_id)
    try:
        yield "event: connected\ndata: {}\n\n"
        while True:
            try:
                event = await asyncio.wait_for(queue.get(), timeout=keepalive)
            except asyncio.TimeoutError:
                if await is_disconnected():
                    break
                yield ": keep-alive\n\n"
                continue
            yield f"data: {event.to_json()}\n\n"
    finally:
        unsubscribe()
        logger.info("SSE viewer disconnected from session %s", session_id)


@router.get("/sessions/{session_id}/events")
async def session_events(
    session_id: str,
    request: Request,
    store: SessionStore = Depends(get_session_store),
    hub: StreamHub = Depends(get_stream_hub),
) -> StreamingResponse:
    session = await store.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")

    return StreamingResponse(
        session_event_stream(hub, session.id, request.is_disconnected),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.websocket("/sessions/{session_id}")
async def session_socket(
    websocket: WebSocket,
    session_id: str,
    store: SessionStore = Depends(get_session_store),
    hub: StreamHub = Depends(get_stream_hub),
) -> None:
    session = await store.get_session(session_id)
    if session is None:
        await websocket.close(code=SESSION_NOT_FOUND_CLOSE_CODE)
        return

    await websocket.accept()
    subscriber = hub.attach(session.id, websocket)
    subscriber.push(json.dumps({"type": "connected"}))
    pump = asyncio.create_task(subscriber.pump())

    try:
        while True:
            ws_message = await websocket.receive()

            # --- Graceful disconnect ---
            if ws_message.get("type") == "websocket.disconnect":
                break

            # Viewers are read-only; the only inbound frame is a heartbeat.
            if ws_message.get("text") == "ping":
                subscriber.push("pong")
    except WebSocketDisconnect:
        logger.debug("WebSocket client left session %s", session.id)
    finally:
        hub.detach(session.id, websocket)
        # The socket is gone; frames still queued have nowhere to go.
        pump.cancel()
        with suppress(asyncio.CancelledError, Exception):
            await pump
