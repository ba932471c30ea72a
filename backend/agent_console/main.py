"""FastAPI application entry point with lifespan management."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from agent_console.api.router import api_router
from agent_console.config import settings
from agent_console.dependencies import (
    get_assistant_runner,
    get_completion_client,
    get_session_store,
    get_speech_synthesizer,
)
from agent_console.observability.logs import install_log_sink

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    logger.info("Starting %s backend...", settings.app_name)

    # Load persisted sessions (connects to MongoDB when configured)
    store = get_session_store()
    await store.initialize()
    logger.info("Session store initialized (backend=%s)", store.backend.name)

    if settings.upstream_configured:
        logger.info("Upstream model: %s", settings.openai_model)
    else:
        logger.warning("OPENAI_API_KEY not set; replies use the local fallback")

    yield

    # Cleanup
    await get_assistant_runner().shutdown()
    await get_completion_client().close()
    await get_speech_synthesizer().close()
    await store.close()
    logger.info("%s backend shut down cleanly", settings.app_name)


app = FastAPI(
    title="Agent Console API",
    description="Prompt console with streamed, multi-viewer chat and voice sessions",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.frontend_url,
        "http://localhost:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount API routes
app.include_router(api_router, prefix="/api")

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
install_log_sink()
