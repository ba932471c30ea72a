"""Message models for session turns and upstream conversation context."""

from datetime import datetime
from enum import Enum
from typing import Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, PositiveInt

from .base import CamelModel, utcnow


class MessageRole(str, Enum):
    """Message sender role."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Message(CamelModel):
    """One persisted turn in a session.

    Assistant messages start empty and grow token by token; every timing
    field is filled in by the session store as the stream progresses.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    session_id: str
    role: MessageRole
    text: Optional[str] = None
    audio_url: Optional[str] = None
    audio_duration_ms: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)
    first_token_at: Optional[datetime] = None
    last_token_at: Optional[datetime] = None
    token_count: Optional[int] = None
    token_rate: Optional[float] = None
    error: Optional[str] = None


class MessageCreate(CamelModel):
    """Payload for posting a user message."""

    text: Optional[str] = None
    audio_url: Optional[str] = None
    audio_duration_ms: Optional[PositiveInt] = None


class MessageListResponse(CamelModel):
    messages: list[Message]


class MessageCreatedResponse(CamelModel):
    message: Message


class ConversationMessage(BaseModel):
    """A ``{role, content}`` turn as sent to the model."""

    role: Literal["user", "assistant", "system"]
    content: str = Field(min_length=1)
