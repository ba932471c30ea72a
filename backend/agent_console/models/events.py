"""Completion events streamed from the model source to session subscribers.

Every event is ``{"type": ..., "data": {...}}`` on the wire. The ``type``
field discriminates the union so a JSON payload can be parsed back with
``parse_event``.
"""

from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import Field, TypeAdapter

from .base import CamelModel


class TokenData(CamelModel):
    message_id: str
    token: str
    at: datetime


class DoneData(CamelModel):
    message_id: str
    total_tokens: int
    first_token_at: datetime
    last_token_at: datetime


class ErrorData(CamelModel):
    message: str


class AudioData(CamelModel):
    message_id: str
    audio_url: str
    duration_ms: Optional[int] = None
    voice: Optional[str] = None


class AssistantTokenEvent(CamelModel):
    type: Literal["assistant_token"] = "assistant_token"
    data: TokenData


class AssistantDoneEvent(CamelModel):
    type: Literal["assistant_done"] = "assistant_done"
    data: DoneData


class ErrorEvent(CamelModel):
    type: Literal["error"] = "error"
    data: ErrorData


class DegradedEvent(CamelModel):
    """Upstream unreachable, local fallback engaged. Not terminal."""

    type: Literal["degraded"] = "degraded"
    data: ErrorData


class AssistantAudioEvent(CamelModel):
    type: Literal["assistant_audio"] = "assistant_audio"
    data: AudioData


CompletionEvent = Annotated[
    Union[
        AssistantTokenEvent,
        AssistantDoneEvent,
        ErrorEvent,
        DegradedEvent,
        AssistantAudioEvent,
    ],
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter[CompletionEvent] = TypeAdapter(CompletionEvent)


def parse_event(payload: str | bytes) -> CompletionEvent:
    """Parse a JSON-encoded completion event."""
    return _event_adapter.validate_json(payload)


def is_terminal(event: CompletionEvent) -> bool:
    return isinstance(event, (AssistantDoneEvent, ErrorEvent))
