"""Newline-delimited JSON completion endpoint.

Streams one completion for a self-contained conversation, without touching
the session store. Each line is one of::

    {"type": "assistant_token", "token": "..."}
    {"type": "assistant_done", "totalTokens": 42}
    {"type": "error", "message": "..."}
"""

from __future__ import annotations

import json
import logging
from typing import AsyncIterator, Optional
from uuid import uuid4

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import Field

from agent_console.agent.client import CompletionClient
from agent_console.dependencies import get_completion_client
from agent_console.models.base import CamelModel
from agent_console.models.events import (
    AssistantDoneEvent,
    AssistantTokenEvent,
    CompletionEvent,
    ErrorEvent,
)
from agent_console.models.messages import ConversationMessage

logger = logging.getLogger(__name__)
router = APIRouter()


class PromptRef(CamelModel):
    id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    body: str = Field(min_length=1)
    tags: list[str] = Field(default_factory=list)


class RespondRequest(CamelModel):
    session_id: str = Field(min_length=1)
    prompt: PromptRef
    messages: list[ConversationMessage] = Field(min_length=1)


def to_ndjson(event: CompletionEvent) -> Optional[str]:
    """Encode an event as a protocol line; ``None`` for events it has no line for."""
    if isinstance(event, AssistantTokenEvent):
        line = {"type": "assistant_token", "token": event.data.token}
    elif isinstance(event, AssistantDoneEvent):
        line = {"type": "assistant_done", "totalTokens": event.data.total_tokens}
    elif isinstance(event, ErrorEvent):
        line = {"type": "error", "message": event.data.message}
    else:
        return None
    return json.dumps(line) + "\n"


async def _respond_lines(
    completions: CompletionClient, payload: RespondRequest
) -> AsyncIterator[str]:
    try:
        async for event in completions.stream_completion(
            session_id=payload.session_id,
            prompt_body=payload.prompt.body,
            messages=payload.messages,
            message_id=str(uuid4()),
        ):
            line = to_ndjson(event)
            if line is not None:
                yield line
    except Exception as exc:
        logger.exception("Failed to stream agent response")
        yield json.dumps({"type": "error", "message": str(exc) or "Unknown agent error"}) + "\n"


@router.post("")
async def respond(
    payload: RespondRequest,
    completions: CompletionClient = Depends(get_completion_client),
) -> StreamingResponse:
    logger.info(
        "Generating streaming response for session %s (prompt=%s)",
        payload.session_id,
        payload.prompt.id,
    )
    return StreamingResponse(
        _respond_lines(completions, payload),
        media_type="application/x-ndjson",
        headers={"Cache-Control": "no-cache"},
    )
