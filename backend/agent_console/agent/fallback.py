"""Canned replies used when no upstream model is reachable."""

from __future__ import annotations

import random
import re
from typing import Sequence

from agent_console.models.messages import ConversationMessage

NO_MESSAGE_REPLY = "I didn't receive any message content to respond to yet."

SUPPORT_REPLIES = (
    'Hello! I\'m here to help you with your question: "{message}". As your support '
    "agent, I can assist with troubleshooting, provide documentation links, and guide "
    "you through solutions. What specific issue are you experiencing?",
    'Hi there! Thanks for reaching out. I see you asked: "{message}". I\'m ready to '
    "provide support and help resolve any issues you might have. Could you share more "
    "details about what you're trying to accomplish?",
    'Welcome! I\'m your friendly support agent. Regarding your question "{message}", '
    "I'm here to provide clear, helpful answers and guide you to the right resources. "
    "What would you like to know more about?",
)

CREATIVE_REPLIES = (
    'What an interesting prompt: "{message}"! I\'m excited to help you explore creative '
    "possibilities. I can help brainstorm ideas, provide writing assistance, or offer "
    "creative solutions. What direction would you like to take this?",
    'Creative minds think alike! You asked: "{message}". I\'m here to help spark '
    "innovation and provide imaginative solutions. Let's dive into the creative process "
    "together. What's your vision?",
    'I love creative challenges! Your question "{message}" opens up many possibilities. '
    "Whether you need writing help, brainstorming, or creative problem-solving, I'm "
    "ready to collaborate. What's your next step?",
)

GENERAL_REPLIES = (
    'Thank you for your message: "{message}". I\'m here to assist you with information, '
    "answer questions, and help solve problems. I aim to be helpful, accurate, and "
    "concise. How can I best help you today?",
    'Hello! I received your question: "{message}". I\'m designed to provide helpful, '
    "informative responses while following my guidelines. What would you like to explore?",
    'Hi there! Regarding your question "{message}", I\'m here to help provide useful '
    "information and assistance. What can I help you with?",
)

_WHITESPACE_SPLIT = re.compile(r"(\s+)")


def reply_category(system_prompt: str) -> str:
    """Classify a system prompt as ``support``, ``creative`` or ``general``."""
    lowered = system_prompt.lower()
    if "support" in lowered:
        return "support"
    if "creative" in lowered or "write" in lowered:
        return "creative"
    return "general"


def build_fallback_reply(
    system_prompt: str,
    messages: Sequence[ConversationMessage],
    rng: random.Random | None = None,
) -> str:
    """Pick a canned reply for the latest user turn."""
    last_user = next(
        (m for m in reversed(messages) if m.role == "user" and m.content.strip()),
        None,
    )
    if last_user is None:
        return NO_MESSAGE_REPLY

    templates = {
        "support": SUPPORT_REPLIES,
        "creative": CREATIVE_REPLIES,
        "general": GENERAL_REPLIES,
    }[reply_category(system_prompt)]
    template = (rng or random).choice(templates)
    return template.format(message=last_user.content.strip())


def tokenize(text: str) -> list[str]:
    """Split on whitespace runs, keeping the whitespace as its own tokens.

    ``"".join(tokenize(text)) == text`` always holds.
    """
    return [part for part in _WHITESPACE_SPLIT.split(text) if part]
