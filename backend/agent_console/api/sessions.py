"""Session and message endpoints.

Posting a user message persists it, dispatches the assistant run in the
background and returns immediately; the reply is delivered over the session
stream endpoints.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from agent_console.dependencies import (
    get_assistant_runner,
    get_prompt_catalog,
    get_session_store,
)
from agent_console.memory.session_store import SessionStore
from agent_console.models.messages import (
    MessageCreate,
    MessageCreatedResponse,
    MessageListResponse,
)
from agent_console.models.sessions import Session, SessionCreate, SessionListResponse
from agent_console.prompts.catalog import PromptCatalog
from agent_console.stream.runner import AssistantRunner, RunInProgressError

logger = logging.getLogger(__name__)
router = APIRouter()


async def _require_session(store: SessionStore, session_id: str) -> Session:
    session = await store.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


@router.post("", status_code=201, response_model=Session)
async def create_session(
    payload: SessionCreate,
    store: SessionStore = Depends(get_session_store),
    catalog: PromptCatalog = Depends(get_prompt_catalog),
) -> Session:
    """Start a new session bound to an existing prompt."""
    if catalog.get_prompt(payload.prompt_id) is None:
        raise HTTPException(status_code=404, detail="Prompt not found")
    return await store.create_session(payload.prompt_id, payload.mode)


@router.get("", response_model=SessionListResponse)
async def list_sessions(
    limit: int = Query(10, ge=1, le=100),
    store: SessionStore = Depends(get_session_store),
) -> SessionListResponse:
    """Return the most recent sessions with their derived metrics."""
    sessions = await store.list_sessions(limit)
    for session in sessions:
        session.metrics = await store.compute_session_metrics(session.id)
    return SessionListResponse(sessions=sessions)


@router.get("/{session_id}", response_model=Session)
async def get_session(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
) -> Session:
    session = await _require_session(store, session_id)
    session.metrics = await store.compute_session_metrics(session.id)
    return session


@router.post("/{session_id}/end", response_model=Session)
async def end_session(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
) -> Session:
    """Mark a session as ended. Idempotent."""
    session = await store.end_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


@router.get("/{session_id}/messages", response_model=MessageListResponse)
async def list_messages(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
) -> MessageListResponse:
    await _require_session(store, session_id)
    return MessageListResponse(messages=await store.get_session_messages(session_id))


@router.post(
    "/{session_id}/messages", status_code=201, response_model=MessageCreatedResponse
)
async def post_message(
    session_id: str,
    payload: MessageCreate,
    store: SessionStore = Depends(get_session_store),
    catalog: PromptCatalog = Depends(get_prompt_catalog),
    runner: AssistantRunner = Depends(get_assistant_runner),
) -> MessageCreatedResponse:
    """Store a user message and kick off the assistant reply."""
    session = await _require_session(store, session_id)

    prompt = catalog.get_prompt(session.prompt_id)
    if prompt is None:
        raise HTTPException(status_code=404, detail="Prompt not found for session")

    if not payload.text and not payload.audio_url:
        raise HTTPException(status_code=400, detail="Message content is required")

    # Claimed synchronously, before the user message is stored.
    try:
        reservation = runner.reserve(session.id)
    except RunInProgressError as exc:
        logger.warning("Reply already in progress: %s", exc)
        raise HTTPException(
            status_code=409, detail="A reply is still streaming for this session"
        ) from exc

    try:
        message = await store.add_user_message(
            session.id,
            text=payload.text,
            audio_url=payload.audio_url,
            audio_duration_ms=payload.audio_duration_ms,
        )
    except BaseException:
        runner.release(session.id, reservation)
        raise

    runner.start(session, prompt, message, reservation=reservation)
    return MessageCreatedResponse(message=message)
