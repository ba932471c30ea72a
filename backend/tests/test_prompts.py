"""Tests for the prompt catalog."""

from pathlib import Path

import pytest

from agent_console.prompts.catalog import PromptCatalog, load_prompts


def test_default_catalog_loads(catalog: PromptCatalog) -> None:
    prompts = catalog.list_prompts()

    assert len(prompts) >= 2
    assert all(p.body for p in prompts)


def test_filters(catalog: PromptCatalog) -> None:
    support = catalog.list_prompts(tag="SUPPORT")
    assert support and all("support" in [t.lower() for t in p.tags] for p in support)

    creative = catalog.list_prompts(search="creative")
    assert [p.title for p in creative] == ["Creative Writing Partner"]

    assert catalog.list_prompts(search="no such prompt") == []


def test_get_prompt_returns_copy(catalog: PromptCatalog) -> None:
    prompt = catalog.list_prompts()[0]

    fetched = catalog.get_prompt(prompt.id)
    fetched.body = "changed"

    assert catalog.get_prompt(prompt.id).body == prompt.body
    assert catalog.get_prompt("missing") is None


def test_load_prompts_from_yaml(tmp_path: Path) -> None:
    path = tmp_path / "prompts.yaml"
    path.write_text(
        "prompts:\n"
        "  - id: p-1\n"
        "    title: Tester\n"
        "    body: You test things.\n"
        "    tags: [qa]\n"
    )

    prompts = load_prompts(path)

    assert [(p.id, p.tags, p.version) for p in prompts] == [("p-1", ["qa"], 1)]


def test_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_prompts(tmp_path / "absent.yaml")
