"""Prompt lookup for sessions."""

from .catalog import PromptCatalog, load_prompts

__all__ = ["PromptCatalog", "load_prompts"]
