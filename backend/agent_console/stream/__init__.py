"""Live session streaming: the broadcast hub and the assistant run orchestrator."""

from .hub import CallbackSubscriber, SocketSubscriber, StreamHub
from .runner import AssistantRunner, RunInProgressError

__all__ = [
    "AssistantRunner",
    "CallbackSubscriber",
    "RunInProgressError",
    "SocketSubscriber",
    "StreamHub",
]
