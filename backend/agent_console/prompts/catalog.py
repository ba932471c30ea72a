"""Read-only prompt catalog loaded from a YAML seed file."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, Optional

import yaml

from agent_console.models.prompts import Prompt

logger = logging.getLogger(__name__)


def load_prompts(path: Path) -> list[Prompt]:
    """Load prompt definitions from a YAML file.

    Raises:
        FileNotFoundError: If the prompts file does not exist.
        yaml.YAMLError: If the file contains invalid YAML.
    """
    if not path.exists():
        raise FileNotFoundError(f"Prompts file not found: {path}")

    with open(path) as f:
        config: dict[str, Any] = yaml.safe_load(f) or {}

    return [Prompt.model_validate(entry) for entry in config.get("prompts", [])]


class PromptCatalog:
    """Prompt lookup for sessions."""

    def __init__(self, prompts: Iterable[Prompt] = ()) -> None:
        self._prompts: dict[str, Prompt] = {p.id: p for p in prompts}

    @classmethod
    def from_file(cls, path: Path) -> "PromptCatalog":
        prompts = load_prompts(path)
        logger.info("Loaded %d prompts from %s", len(prompts), path)
        return cls(prompts)

    def get_prompt(self, prompt_id: str) -> Optional[Prompt]:
        prompt = self._prompts.get(prompt_id)
        return prompt.model_copy(deep=True) if prompt else None

    def list_prompts(
        self, search: str | None = None, tag: str | None = None
    ) -> list[Prompt]:
        """Most recently updated first, optionally filtered."""
        matches = []
        for prompt in self._prompts.values():
            if search:
                needle = search.lower()
                if needle not in prompt.title.lower() and needle not in prompt.body.lower():
                    continue
            if tag and tag.lower() not in (t.lower() for t in prompt.tags):
                continue
            matches.append(prompt.model_copy(deep=True))
        return sorted(matches, key=lambda p: p.updated_at, reverse=True)
