"""Dependency injection providers for FastAPI."""

from agent_console.agent.client import CompletionClient
from agent_console.config import settings
from agent_console.memory.backends import create_backend
from agent_console.memory.session_store import SessionStore
from agent_console.observability.metrics import MetricsAggregator
from agent_console.prompts.catalog import PromptCatalog
from agent_console.stream.hub import StreamHub
from agent_console.stream.runner import AssistantRunner
from agent_console.voice.tts import SpeechSynthesizer

# Global singleton instances (shared by every request in this process)
_session_store: SessionStore | None = None
_stream_hub: StreamHub | None = None
_metrics: MetricsAggregator | None = None
_prompt_catalog: PromptCatalog | None = None
_completion_client: CompletionClient | None = None
_speech_synthesizer: SpeechSynthesizer | None = None
_assistant_runner: AssistantRunner | None = None


def get_session_store() -> SessionStore:
    """Return singleton SessionStore instance."""
    global _session_store
    if _session_store is None:
        _session_store = SessionStore(
            create_backend(settings.mongodb_uri, settings.mongodb_database)
        )
    return _session_store


def get_stream_hub() -> StreamHub:
    """Return singleton StreamHub instance."""
    global _stream_hub
    if _stream_hub is None:
        _stream_hub = StreamHub()
    return _stream_hub


def get_metrics() -> MetricsAggregator:
    """Return singleton MetricsAggregator instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsAggregator()
    return _metrics


def get_prompt_catalog() -> PromptCatalog:
    """Return singleton PromptCatalog instance."""
    global _prompt_catalog
    if _prompt_catalog is None:
        _prompt_catalog = PromptCatalog.from_file(settings.prompts_file)
    return _prompt_catalog


def get_completion_client() -> CompletionClient:
    """Return singleton CompletionClient instance."""
    global _completion_client
    if _completion_client is None:
        _completion_client = CompletionClient(settings)
    return _completion_client


def get_speech_synthesizer() -> SpeechSynthesizer:
    """Return singleton SpeechSynthesizer instance."""
    global _speech_synthesizer
    if _speech_synthesizer is None:
        _speech_synthesizer = SpeechSynthesizer(settings)
    return _speech_synthesizer


def get_assistant_runner() -> AssistantRunner:
    """Return singleton AssistantRunner wired to the other singletons."""
    global _assistant_runner
    if _assistant_runner is None:
        _assistant_runner = AssistantRunner(
            store=get_session_store(),
            hub=get_stream_hub(),
            metrics=get_metrics(),
            completions=get_completion_client(),
            synthesizer=get_speech_synthesizer(),
            conversation_window=settings.conversation_window,
        )
    return _assistant_runner
