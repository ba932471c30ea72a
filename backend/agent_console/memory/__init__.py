"""Persistence layer: the session store and its document backends."""

from .backends import InMemoryBackend, MongoBackend, create_backend
from .session_store import SessionStore

__all__ = ["InMemoryBackend", "MongoBackend", "SessionStore", "create_backend"]
