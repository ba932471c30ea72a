"""Assistant run orchestration: one background task per user message.

A run moves through ``context-loaded → streaming → (token)* → finalizing →
[audio-pending] → done``; any failure lands in ``errored``. Every event from
the completion source is applied to the session store first and then
broadcast, so viewers never see a token the store has not recorded.

The HTTP handler reserves the session's run slot, persists the user message
and calls ``start()`` with the reservation; the run lives on as an ``asyncio`` task with its own error boundary and keeps
going even if every viewer disconnects.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from enum import Enum
from typing import Optional

from agent_console.agent.client import CompletionClient
from agent_console.memory.session_store import SessionStore
from agent_console.models.events import (
    AssistantAudioEvent,
    AssistantDoneEvent,
    AssistantTokenEvent,
    AudioData,
    CompletionEvent,
    DegradedEvent,
    ErrorData,
    ErrorEvent,
    is_terminal,
)
from agent_console.models.messages import ConversationMessage, Message, MessageRole
from agent_console.models.prompts import Prompt
from agent_console.models.sessions import Session
from agent_console.observability.metrics import MessageMetric, MetricsAggregator
from agent_console.stream.hub import StreamHub
from agent_console.voice.tts import SpeechSynthesizer

logger = logging.getLogger(__name__)

MAX_CONVERSATION_MESSAGES = 30

_AGENT_ROLES = {MessageRole.USER, MessageRole.ASSISTANT, MessageRole.SYSTEM}


class RunState(str, Enum):
    CONTEXT_LOADED = "context-loaded"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    AUDIO_PENDING = "audio-pending"
    DONE = "done"
    ERRORED = "errored"


class RunInProgressError(Exception):
    """A reply for this session is still streaming."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id} already has a reply in progress")
        self.session_id = session_id


def normalize_for_agent(message: Message) -> Optional[ConversationMessage]:
    """Map a stored message to a ``{role, content}`` turn, or ``None`` to drop it."""
    content = (message.text or "").strip()
    if not content or message.role not in _AGENT_ROLES:
        return None
    return ConversationMessage(role=message.role.value, content=content)


def build_conversation(
    history: list[Message], window: int = MAX_CONVERSATION_MESSAGES
) -> list[ConversationMessage]:
    turns = [turn for turn in map(normalize_for_agent, history) if turn is not None]
    return turns[-window:] if window > 0 else []


class AssistantRunner:
    """Drives completions for user messages and fans them out to viewers."""

    def __init__(
        self,
        store: SessionStore,
        hub: StreamHub,
        metrics: MetricsAggregator,
        completions: CompletionClient,
        synthesizer: SpeechSynthesizer | None = None,
        conversation_window: int = MAX_CONVERSATION_MESSAGES,
    ) -> None:
        self._store = store
        self._hub = hub
        self._metrics = metrics
        self._completions = completions
        self._synthesizer = synthesizer
        self._window = conversation_window
        self._active: dict[str, asyncio.Task[None]] = {}
        self._reservations: dict[str, object] = {}
        self._states: dict[str, RunState] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def is_running(self, session_id: str) -> bool:
        """True while a run is reserved or in flight for the session."""
        if session_id in self._reservations:
            return True
        task = self._active.get(session_id)
        return task is not None and not task.done()

    def active_task(self, session_id: str) -> Optional[asyncio.Task[None]]:
        return self._active.get(session_id)

    def run_state(self, session_id: str) -> Optional[RunState]:
        """Current state of the session's in-flight run, if any."""
        return self._states.get(session_id)

    def reserve(self, session_id: str) -> object:
        """Claim the session's run slot before any awaiting work.

        The returned token is passed to ``start()`` or ``release()``.

        Raises:
            RunInProgressError: If the slot is already reserved or running.
        """
        if self.is_running(session_id):
            raise RunInProgressError(session_id)
        token = object()
        self._reservations[session_id] = token
        return token

    def release(self, session_id: str, token: object) -> None:
        if self._reservations.get(session_id) is token:
            del self._reservations[session_id]

    def start(
        self,
        session: Session,
        prompt: Prompt,
        user_message: Message,
        reservation: object | None = None,
    ) -> asyncio.Task[None]:
        """Dispatch a run in the background and return its task.

        Raises:
            RunInProgressError: If the session already has a run in flight,
                or its slot is reserved under a different token.
        """
        held = self._reservations.get(session.id)
        task = self._active.get(session.id)
        if (task is not None and not task.done()) or held is not reservation:
            raise RunInProgressError(session.id)
        self._reservations.pop(session.id, None)

        task = asyncio.create_task(
            self.run(session, prompt, user_message),
            name=f"assistant-run-{session.id}",
        )
        self._active[session.id] = task
        task.add_done_callback(lambda t, sid=session.id: self._forget(sid, t))
        return task

    async def run(self, session: Session, prompt: Prompt, user_message: Message) -> None:
        """Run one assistant reply to completion. Never raises."""
        assistant_message: Optional[Message] = None
        try:
            history = await self._store.get_session_messages(session.id)
            conversation = build_conversation(history, self._window)
            assistant_message = await self._store.create_assistant_message(session.id)
            self._advance(session.id, RunState.CONTEXT_LOADED)

            self._advance(session.id, RunState.STREAMING)
            stream = self._completions.stream_completion(
                session_id=session.id,
                prompt_body=prompt.body,
                messages=conversation,
                message_id=assistant_message.id,
            )
            async with aclosing(stream) as events:
                async for event in events:
                    await self._dispatch(
                        session, user_message, assistant_message, event
                    )
                    # Nothing may follow the terminal event
                    if is_terminal(event):
                        break
        except Exception as exc:
            await self._fail(session.id, assistant_message, exc)

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Give in-flight runs ``timeout`` seconds, then cancel the rest."""
        tasks = [t for t in self._active.values() if not t.done()]
        if not tasks:
            return
        logger.info("Waiting for %d in-flight assistant runs", len(tasks))
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning("Cancelled %d assistant runs at shutdown", len(pending))

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    async def _dispatch(
        self,
        session: Session,
        user_message: Message,
        assistant_message: Message,
        event: CompletionEvent,
    ) -> None:
        if isinstance(event, AssistantTokenEvent):
            appended = await self._store.append_assistant_token(
                session.id, assistant_message.id, event.data.token, event.data.at
            )
            if appended is None:
                logger.warning(
                    "Assistant message %s vanished while streaming (session=%s)",
                    assistant_message.id,
                    session.id,
                )
            self._hub.broadcast_event(session.id, event)

        elif isinstance(event, DegradedEvent):
            self._hub.broadcast_event(session.id, event)
            logger.warning(
                "Agent degraded mode (fallback active) for session %s",
                session.id,
                extra={"meta": {"sessionId": session.id}},
            )

        elif isinstance(event, AssistantDoneEvent):
            await self._complete(session, user_message, assistant_message, event)

        elif isinstance(event, ErrorEvent):
            await self._store.record_message_error(
                session.id, assistant_message.id, event.data.message
            )
            self._metrics.record_error_metric()
            self._hub.broadcast_event(session.id, event)
            self._advance(session.id, RunState.ERRORED)

        elif isinstance(event, AssistantAudioEvent):
            self._hub.broadcast_event(session.id, event)

        else:
            logger.warning("Ignoring unknown completion event: %r", event)

    async def _complete(
        self,
        session: Session,
        user_message: Message,
        assistant_message: Message,
        event: AssistantDoneEvent,
    ) -> None:
        self._advance(session.id, RunState.FINALIZING)
        finalized = await self._store.finalize_assistant_message(
            session.id, assistant_message.id, event.data.last_token_at
        )
        if finalized is None:
            logger.warning(
                "Assistant message %s vanished before finalizing (session=%s)",
                assistant_message.id,
                session.id,
            )
        elif finalized.first_token_at is not None:
            latency = finalized.first_token_at - user_message.created_at
            latency_ms = latency.total_seconds() * 1000
            if latency_ms >= 0 and finalized.token_rate is not None:
                self._metrics.record_message_metric(
                    MessageMetric(
                        first_token_latency_ms=latency_ms,
                        tokens_per_sec=finalized.token_rate,
                    )
                )

        self._hub.broadcast_event(session.id, event)

        if (
            finalized is not None
            and session.speaks_replies
            and (finalized.text or "").strip()
        ):
            self._advance(session.id, RunState.AUDIO_PENDING)
            await self._attach_audio(session.id, finalized)

        self._advance(session.id, RunState.DONE)

    async def _attach_audio(self, session_id: str, message: Message) -> None:
        if self._synthesizer is None:
            return
        try:
            result = await self._synthesizer.synthesize(message.text or "")
            await self._store.attach_message_audio(
                session_id, message.id, result.audio_url, result.duration_ms
            )
            self._hub.broadcast_event(
                session_id,
                AssistantAudioEvent(
                    data=AudioData(
                        message_id=message.id,
                        audio_url=result.audio_url,
                        duration_ms=result.duration_ms,
                        voice=result.voice,
                    )
                ),
            )
        except Exception as exc:
            logger.warning(
                "Failed to synthesize assistant audio for message %s (session=%s): %s",
                message.id,
                session_id,
                exc,
            )

    async def _fail(
        self, session_id: str, assistant_message: Optional[Message], exc: Exception
    ) -> None:
        message = str(exc) or exc.__class__.__name__
        failed_in = self.run_state(session_id)
        self._advance(session_id, RunState.ERRORED)
        if assistant_message is not None:
            try:
                await self._store.record_message_error(
                    session_id, assistant_message.id, message
                )
            except Exception:
                logger.exception(
                    "Could not record error on message %s", assistant_message.id
                )
        self._metrics.record_error_metric()
        self._hub.broadcast_event(session_id, ErrorEvent(data=ErrorData(message=message)))
        logger.error(
            "Assistant stream failed for session %s (state=%s): %s",
            session_id,
            failed_in.value if failed_in else "starting",
            message,
            exc_info=exc,
            extra={"meta": {"sessionId": session_id, "error": message}},
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _advance(self, session_id: str, state: RunState) -> None:
        self._states[session_id] = state
        logger.debug("Assistant run for session %s -> %s", session_id, state.value)

    def _forget(self, session_id: str, task: asyncio.Task[None]) -> None:
        if self._active.get(session_id) is task:
            del self._active[session_id]
            self._states.pop(session_id, None)
