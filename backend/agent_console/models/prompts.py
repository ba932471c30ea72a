"""Prompt models served by the prompt catalog."""

from datetime import datetime

from pydantic import Field

from .base import CamelModel, utcnow


class Prompt(CamelModel):
    """A system prompt a session is bound to."""

    id: str
    title: str
    body: str
    tags: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = 1


class PromptListResponse(CamelModel):
    prompts: list[Prompt]
