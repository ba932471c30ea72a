"""Shared test fixtures for the agent console backend."""

from collections.abc import AsyncGenerator, Iterator
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from agent_console.agent.client import CompletionClient
from agent_console.config import Settings
from agent_console.dependencies import (
    get_assistant_runner,
    get_completion_client,
    get_metrics,
    get_prompt_catalog,
    get_session_store,
    get_speech_synthesizer,
    get_stream_hub,
)
from agent_console.main import app
from agent_console.memory.backends import InMemoryBackend
from agent_console.memory.session_store import SessionStore
from agent_console.observability.metrics import MetricsAggregator
from agent_console.prompts.catalog import PromptCatalog
from agent_console.stream.hub import StreamHub
from agent_console.stream.runner import AssistantRunner
from agent_console.voice.tts import SpeechSynthesizer

PROMPTS_FILE = (
    Path(__file__).resolve().parents[1] / "agent_console" / "prompts" / "default.yaml"
)


@pytest.fixture
def settings() -> Settings:
    """Settings with no upstream credential and no fallback delay."""
    return Settings(
        _env_file=None,
        openai_api_key=None,
        fallback_token_delay_ms=0,
        mongodb_uri="",
    )


@pytest.fixture
def backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture
def store(backend: InMemoryBackend) -> SessionStore:
    return SessionStore(backend)


@pytest.fixture
def hub() -> StreamHub:
    return StreamHub()


@pytest.fixture
def metrics() -> MetricsAggregator:
    return MetricsAggregator()


@pytest.fixture
def catalog() -> PromptCatalog:
    return PromptCatalog.from_file(PROMPTS_FILE)


@pytest.fixture
def completions(settings: Settings) -> CompletionClient:
    return CompletionClient(settings)


@pytest.fixture
def synthesizer(settings: Settings) -> SpeechSynthesizer:
    return SpeechSynthesizer(settings)


@pytest.fixture
def runner(
    store: SessionStore,
    hub: StreamHub,
    metrics: MetricsAggregator,
    completions: CompletionClient,
    synthesizer: SpeechSynthesizer,
) -> AssistantRunner:
    return AssistantRunner(store, hub, metrics, completions, synthesizer)


@pytest.fixture
def overridden_app(
    store: SessionStore,
    hub: StreamHub,
    metrics: MetricsAggregator,
    catalog: PromptCatalog,
    completions: CompletionClient,
    synthesizer: SpeechSynthesizer,
    runner: AssistantRunner,
) -> Iterator:
    """The FastAPI app wired to fresh in-memory collaborators."""
    app.dependency_overrides.update(
        {
            get_session_store: lambda: store,
            get_stream_hub: lambda: hub,
            get_metrics: lambda: metrics,
            get_prompt_catalog: lambda: catalog,
            get_completion_client: lambda: completions,
            get_speech_synthesizer: lambda: synthesizer,
            get_assistant_runner: lambda: runner,
        }
    )
    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(overridden_app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing FastAPI endpoints."""
    transport = ASGITransport(app=overridden_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
