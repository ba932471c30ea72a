"""Completion source: upstream chat-completion streaming and local fallback."""

from .client import CompletionClient, UpstreamError

__all__ = ["CompletionClient", "UpstreamError"]
