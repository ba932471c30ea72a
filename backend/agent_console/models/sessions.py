"""Session models for conversation management."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import Field

from .base import CamelModel, utcnow


class SessionMode(str, Enum):
    """How the session is consumed by the console."""

    CHAT = "chat"
    VOICE = "voice"
    HYBRID = "hybrid"


class SessionMetrics(CamelModel):
    """Derived per-session timing metrics. Computed on read, never stored."""

    avg_first_token_latency_ms: Optional[int] = None
    avg_tokens_per_sec: Optional[float] = None
    error_rate_24h: Optional[float] = Field(default=None, alias="errorRate24h")


class Session(CamelModel):
    """One conversation bound to a single prompt."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    prompt_id: str
    started_at: datetime = Field(default_factory=utcnow)
    ended_at: Optional[datetime] = None
    mode: SessionMode = SessionMode.CHAT
    metrics: SessionMetrics = Field(default_factory=SessionMetrics)

    @property
    def speaks_replies(self) -> bool:
        return self.mode in (SessionMode.VOICE, SessionMode.HYBRID)


class SessionCreate(CamelModel):
    """Payload for starting a session."""

    prompt_id: str
    mode: SessionMode = SessionMode.CHAT


class SessionListResponse(CamelModel):
    """Response for listing sessions."""

    sessions: list[Session]
