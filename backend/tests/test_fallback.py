"""Tests for the canned fallback replies."""

import random

import pytest

from agent_console.agent.fallback import (
    NO_MESSAGE_REPLY,
    build_fallback_reply,
    reply_category,
    tokenize,
)
from agent_console.models.messages import ConversationMessage


@pytest.mark.parametrize(
    ("prompt", "category"),
    [
        ("You are a helpful SUPPORT agent.", "support"),
        ("You are a creative partner.", "creative"),
        ("Help the user write poems.", "creative"),
        ("Answer questions about geography.", "general"),
    ],
)
def test_reply_category(prompt: str, category: str) -> None:
    assert reply_category(prompt) == category


def test_reply_quotes_last_user_message() -> None:
    messages = [
        ConversationMessage(role="user", content="first question"),
        ConversationMessage(role="assistant", content="an answer"),
        ConversationMessage(role="user", content="  second question "),
    ]

    reply = build_fallback_reply("support desk", messages, rng=random.Random(7))

    assert '"second question"' in reply
    assert "first question" not in reply


def test_reply_without_user_message() -> None:
    messages = [ConversationMessage(role="assistant", content="hello")]

    assert build_fallback_reply("anything", messages) == NO_MESSAGE_REPLY


def test_tokenize_preserves_whitespace() -> None:
    text = "Hello  there,\nfriend! "

    tokens = tokenize(text)

    assert "".join(tokens) == text
    assert tokens == ["Hello", "  ", "there,", "\n", "friend!", " "]
    assert all(tokens)
