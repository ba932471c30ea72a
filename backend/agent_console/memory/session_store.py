"""Session and message store: the single owner of persisted conversation state.

All reads return copies. Every mutation is applied to the in-memory working
set without suspending, then its document is persisted through a
``WriteQueue`` so writes reach the backend in the order mutations happened.
Concurrent appends, finalizes and error records on one message therefore
never interleave destructively.

Assistant messages can only be changed through four transitions:
``append_assistant_token``, ``finalize_assistant_message``,
``record_message_error`` and ``attach_message_audio``. Each returns ``None``
when the ``(session_id, message_id)`` pair is unknown.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from agent_console.memory.backends import DocumentBackend, InMemoryBackend
from agent_console.memory.write_queue import WriteQueue
from agent_console.models.base import utcnow
from agent_console.models.messages import Message, MessageRole
from agent_console.models.sessions import Session, SessionMetrics, SessionMode

logger = logging.getLogger(__name__)

ERROR_RATE_WINDOW = timedelta(hours=24)
MIN_ELAPSED_SECONDS = 0.001


class SessionStore:
    """Sessions and their messages over an injected document backend."""

    def __init__(self, backend: DocumentBackend | None = None) -> None:
        self._backend = backend or InMemoryBackend()
        self._sessions: dict[str, Session] = {}
        self._messages: dict[str, Message] = {}
        self._loaded = False
        self._load_lock = asyncio.Lock()
        self._writes = WriteQueue()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def backend(self) -> DocumentBackend:
        return self._backend

    async def initialize(self) -> None:
        await self._ensure_loaded()

    async def close(self) -> None:
        await self._writes.close()
        await self._backend.close()

    async def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        async with self._load_lock:
            if self._loaded:
                return
            session_docs, message_docs = await self._backend.load()
            for doc in session_docs:
                session = Session.model_validate(doc)
                self._sessions[session.id] = session
            for doc in sorted(message_docs, key=lambda d: d.get("created_at", "")):
                message = Message.model_validate(doc)
                self._messages[message.id] = message
            self._loaded = True
            logger.info(
                "Session store loaded (%d sessions, %d messages)",
                len(self._sessions),
                len(self._messages),
            )

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def create_session(
        self, prompt_id: str, mode: SessionMode = SessionMode.CHAT
    ) -> Session:
        await self._ensure_loaded()
        session = Session(prompt_id=prompt_id, mode=mode)
        self._sessions[session.id] = session
        logger.info(
            "Session created: %s (prompt=%s, mode=%s)",
            session.id,
            prompt_id,
            session.mode.value,
        )
        return await self._persist_session(session)

    async def list_sessions(self, limit: int = 10) -> list[Session]:
        """Most recently started sessions first."""
        await self._ensure_loaded()
        ordered = sorted(
            self._sessions.values(), key=lambda s: s.started_at, reverse=True
        )
        return [s.model_copy(deep=True) for s in ordered[:limit]]

    async def get_session(self, session_id: str) -> Optional[Session]:
        await self._ensure_loaded()
        session = self._sessions.get(session_id)
        return session.model_copy(deep=True) if session else None

    async def end_session(self, session_id: str) -> Optional[Session]:
        await self._ensure_loaded()
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if session.ended_at is None:
            session.ended_at = utcnow()
        return await self._persist_session(session)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def add_user_message(
        self,
        session_id: str,
        text: str | None = None,
        audio_url: str | None = None,
        audio_duration_ms: int | None = None,
    ) -> Message:
        await self._ensure_loaded()
        message = Message(
            session_id=session_id,
            role=MessageRole.USER,
            text=text,
            audio_url=audio_url,
            audio_duration_ms=audio_duration_ms,
        )
        self._messages[message.id] = message
        logger.info("User message stored: %s (session=%s)", message.id, session_id)
        return await self._persist_message(message)

    async def create_assistant_message(self, session_id: str) -> Message:
        await self._ensure_loaded()
        message = Message(session_id=session_id, role=MessageRole.ASSISTANT, text="")
        self._messages[message.id] = message
        logger.info(
            "Assistant message created: %s (session=%s)", message.id, session_id
        )
        return await self._persist_message(message)

    async def append_assistant_token(
        self, session_id: str, message_id: str, token: str, at: datetime
    ) -> Optional[Message]:
        await self._ensure_loaded()
        message = self._find_assistant_message(session_id, message_id)
        if message is None:
            return None

        message.text = (message.text or "") + token
        message.token_count = (message.token_count or 0) + 1
        message.last_token_at = at
        if message.first_token_at is None:
            message.first_token_at = at
        return await self._persist_message(message)

    async def finalize_assistant_message(
        self, session_id: str, message_id: str, completed_at: datetime
    ) -> Optional[Message]:
        await self._ensure_loaded()
        message = self._find_assistant_message(session_id, message_id)
        if message is None:
            return None

        message.last_token_at = completed_at
        if message.first_token_at is not None and (message.token_count or 0) > 0:
            elapsed = (completed_at - message.first_token_at).total_seconds()
            message.token_rate = round(
                message.token_count / max(elapsed, MIN_ELAPSED_SECONDS), 2
            )
        return await self._persist_message(message)

    async def record_message_error(
        self, session_id: str, message_id: str, error: str
    ) -> Optional[Message]:
        await self._ensure_loaded()
        message = self._find_assistant_message(session_id, message_id)
        if message is None:
            return None

        message.error = error
        message.last_token_at = utcnow()
        return await self._persist_message(message)

    async def attach_message_audio(
        self,
        session_id: str,
        message_id: str,
        audio_url: str,
        duration_ms: int | None = None,
    ) -> Optional[Message]:
        await self._ensure_loaded()
        message = self._find_assistant_message(session_id, message_id)
        if message is None:
            return None

        message.audio_url = audio_url
        if duration_ms is not None:
            message.audio_duration_ms = duration_ms
        return await self._persist_message(message)

    async def get_session_messages(self, session_id: str) -> list[Message]:
        """All messages of a session, oldest first."""
        await self._ensure_loaded()
        messages = [m for m in self._messages.values() if m.session_id == session_id]
        messages.sort(key=lambda m: m.created_at)
        return [m.model_copy(deep=True) for m in messages]

    # ------------------------------------------------------------------
    # Derived metrics
    # ------------------------------------------------------------------

    async def compute_session_metrics(self, session_id: str) -> SessionMetrics:
        messages = await self.get_session_messages(session_id)
        assistant_messages = [m for m in messages if m.role == MessageRole.ASSISTANT]
        if not assistant_messages:
            return SessionMetrics()

        user_messages = [m for m in messages if m.role == MessageRole.USER]

        latencies: list[float] = []
        for message in assistant_messages:
            if message.first_token_at is None:
                continue
            prompt_message = next(
                (
                    u
                    for u in reversed(user_messages)
                    if u.created_at <= message.created_at
                ),
                None,
            )
            if prompt_message is None:
                continue
            delta = message.first_token_at - prompt_message.created_at
            latencies.append(delta.total_seconds() * 1000)

        rates = [m.token_rate for m in assistant_messages if m.token_rate is not None]

        window_start = utcnow() - ERROR_RATE_WINDOW
        recent = [m for m in assistant_messages if m.created_at >= window_start]
        error_rate = None
        if recent:
            errored = sum(1 for m in recent if m.error)
            error_rate = round(errored / len(recent), 2)

        return SessionMetrics(
            avg_first_token_latency_ms=(
                round(sum(latencies) / len(latencies)) if latencies else None
            ),
            avg_tokens_per_sec=round(sum(rates) / len(rates), 2) if rates else None,
            error_rate_24h=error_rate,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _find_assistant_message(
        self, session_id: str, message_id: str
    ) -> Optional[Message]:
        message = self._messages.get(message_id)
        if (
            message is None
            or message.session_id != session_id
            or message.role != MessageRole.ASSISTANT
        ):
            logger.debug(
                "Assistant message %s not found in session %s", message_id, session_id
            )
            return None
        return message

    async def _persist_session(self, session: Session) -> Session:
        doc = session.model_dump(mode="json", exclude={"metrics"})
        snapshot = session.model_copy(deep=True)
        await self._writes.submit(lambda: self._backend.save_session(doc))
        return snapshot

    async def _persist_message(self, message: Message) -> Message:
        doc = message.model_dump(mode="json")
        snapshot = message.model_copy(deep=True)
        await self._writes.submit(lambda: self._backend.save_message(doc))
        return snapshot
