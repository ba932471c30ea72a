"""Central API router that aggregates all route modules."""

from fastapi import APIRouter

from agent_console.api.health import router as health_router
from agent_console.api.metrics import router as metrics_router
from agent_console.api.prompts import router as prompts_router
from agent_console.api.respond import router as respond_router
from agent_console.api.sessions import router as sessions_router
from agent_console.api.stream import router as stream_router

api_router = APIRouter()

api_router.include_router(health_router, prefix="/health", tags=["health"])
api_router.include_router(prompts_router, prefix="/prompts", tags=["prompts"])
api_router.include_router(sessions_router, prefix="/sessions", tags=["sessions"])
api_router.include_router(stream_router, prefix="/stream", tags=["stream"])
api_router.include_router(respond_router, prefix="/respond", tags=["agent"])
api_router.include_router(metrics_router, tags=["observability"])
