"""Pydantic models shared across the API, store and stream layers."""

from .events import (
    AssistantAudioEvent,
    AssistantDoneEvent,
    AssistantTokenEvent,
    CompletionEvent,
    DegradedEvent,
    ErrorEvent,
    parse_event,
)
from .messages import ConversationMessage, Message, MessageRole
from .prompts import Prompt
from .sessions import Session, SessionMetrics, SessionMode

__all__ = [
    "AssistantAudioEvent",
    "AssistantDoneEvent",
    "AssistantTokenEvent",
    "CompletionEvent",
    "ConversationMessage",
    "DegradedEvent",
    "ErrorEvent",
    "Message",
    "MessageRole",
    "Prompt",
    "Session",
    "SessionMetrics",
    "SessionMode",
    "parse_event",
]
