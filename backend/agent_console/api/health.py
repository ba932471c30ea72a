"""Health check endpoint for infrastructure monitoring."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends

from agent_console.agent.client import CompletionClient
from agent_console.dependencies import get_completion_client, get_session_store
from agent_console.memory.session_store import SessionStore

logger = logging.getLogger(__name__)
router = APIRouter()


async def _check_store(store: SessionStore) -> dict[str, Any]:
    """Ping the persistence backend and return status."""
    try:
        return await store.backend.ping()
    except Exception as exc:
        logger.warning("Store health check failed: %s", exc)
        return {"status": "unhealthy", "error": str(exc)}


def _check_upstream(completions: CompletionClient) -> dict[str, Any]:
    """Report whether replies come from the upstream model or the fallback."""
    if completions.upstream_configured:
        return {"status": "healthy", "mode": "upstream"}
    return {"status": "degraded", "mode": "fallback"}


@router.get("")
async def health_check(
    store: SessionStore = Depends(get_session_store),
    completions: CompletionClient = Depends(get_completion_client),
) -> dict[str, Any]:
    """Return aggregate health of the backend and its collaborators."""
    services = {
        "store": await _check_store(store),
        "upstream": _check_upstream(completions),
    }

    overall = (
        "healthy"
        if all(s["status"] == "healthy" for s in services.values())
        else "degraded"
    )

    return {
        "status": overall,
        "services": services,
    }
