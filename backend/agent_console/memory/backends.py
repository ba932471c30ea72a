"""Document backends that persist sessions and messages.

The session store keeps its working set in memory and hands every mutated
document to a backend. Documents are JSON-compatible dicts keyed by ``id``::

    {
        "id": "6f1c...",
        "session_id": "a93e...",
        "role": "assistant",
        "text": "Hello there",
        "created_at": "2026-02-08T10:30:02+00:00",
        "token_count": 3,
        ...
    }
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Protocol

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)

logger = logging.getLogger(__name__)

SESSIONS_COLLECTION = "sessions"
MESSAGES_COLLECTION = "messages"

Document = dict[str, Any]


class DocumentBackend(Protocol):
    """Durable storage for session and message documents."""

    async def load(self) -> tuple[list[Document], list[Document]]:
        """Return every stored ``(sessions, messages)`` document."""
        ...

    async def save_session(self, doc: Document) -> None: ...

    async def save_message(self, doc: Document) -> None: ...

    async def ping(self) -> dict[str, Any]: ...

    async def close(self) -> None: ...


class InMemoryBackend:
    """Process-local backend. Nothing survives a restart."""

    name = "memory"

    def __init__(self) -> None:
        self._sessions: dict[str, Document] = {}
        self._messages: dict[str, Document] = {}

    async def load(self) -> tuple[list[Document], list[Document]]:
        return (
            [copy.deepcopy(doc) for doc in self._sessions.values()],
            [copy.deepcopy(doc) for doc in self._messages.values()],
        )

    async def save_session(self, doc: Document) -> None:
        self._sessions[doc["id"]] = copy.deepcopy(doc)

    async def save_message(self, doc: Document) -> None:
        self._messages[doc["id"]] = copy.deepcopy(doc)

    async def ping(self) -> dict[str, Any]:
        return {"status": "healthy", "backend": self.name}

    async def close(self) -> None:
        return None


class MongoBackend:
    """MongoDB backend via motor, one document per session and per message.

    Lifecycle:
        backend = MongoBackend(uri, database)
        await backend.initialize()   # optional, load() initializes lazily
        ...
        await backend.close()
    """

    name = "mongodb"

    def __init__(self, uri: str, database: str) -> None:
        self._uri = uri
        self._database_name = database
        self._client: AsyncIOMotorClient | None = None
        self._db: AsyncIOMotorDatabase | None = None

    async def initialize(self) -> None:
        if self._client is not None:
            return
        logger.info("Connecting to MongoDB at %s", self._uri)
        self._client = AsyncIOMotorClient(self._uri, serverSelectionTimeoutMS=5_000)
        self._db = self._client[self._database_name]
        await self._client.admin.command("ping")

        # Ensure index on id for upserts and per-session lookups
        await self._db[SESSIONS_COLLECTION].create_index("id", unique=True)
        await self._db[MESSAGES_COLLECTION].create_index("id", unique=True)
        await self._db[MESSAGES_COLLECTION].create_index("session_id")
        logger.info("MongoDB connection established")

    @property
    def db(self) -> AsyncIOMotorDatabase:
        if self._db is None:
            raise RuntimeError("MongoBackend not initialized - call initialize() first")
        return self._db

    def _collection(self, name: str) -> AsyncIOMotorCollection:
        return self.db[name]

    async def load(self) -> tuple[list[Document], list[Document]]:
        await self.initialize()
        sessions = await self._collection(SESSIONS_COLLECTION).find(
            {}, {"_id": 0}
        ).to_list(length=None)
        messages = await self._collection(MESSAGES_COLLECTION).find(
            {}, {"_id": 0}
        ).to_list(length=None)
        logger.info(
            "Loaded %d sessions and %d messages from MongoDB",
            len(sessions),
            len(messages),
        )
        return sessions, messages

    async def save_session(self, doc: Document) -> None:
        await self._collection(SESSIONS_COLLECTION).replace_one(
            {"id": doc["id"]}, doc, upsert=True
        )

    async def save_message(self, doc: Document) -> None:
        await self._collection(MESSAGES_COLLECTION).replace_one(
            {"id": doc["id"]}, doc, upsert=True
        )

    async def ping(self) -> dict[str, Any]:
        try:
            await self.initialize()
            await self.db.client.admin.command("ping")
            return {"status": "healthy", "backend": self.name}
        except Exception as exc:
            logger.warning("MongoDB health check failed: %s", exc)
            return {"status": "unhealthy", "backend": self.name, "error": str(exc)}

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            self._db = None
            logger.info("MongoDB connection closed")


def create_backend(mongodb_uri: str, mongodb_database: str) -> DocumentBackend:
    """Pick MongoDB when a URI is configured, process memory otherwise."""
    if mongodb_uri:
        return MongoBackend(mongodb_uri, mongodb_database)
    logger.info("MONGODB_URI not set; sessions are kept in process memory")
    return InMemoryBackend()
