"""Shared abstractions for language model clients."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ChatReply:
    text: str
    usage: dict[str, Any] | None = field(default=None)


class BaseLLMClient(ABC):
    """Abstract base class for the text-chat fallback."""

    @abstractmethod
    async def chat(
        self,
        messages: Iterable[dict[str, str]],
        *,
        temperature: float = 0.7,
    ) -> ChatReply:
        """Return a chat-style completion."""


def build_chat_messages(
    system_prompt: str,
    message: str,
    history: Iterable[dict[str, Any]] = (),
) -> list[dict[str, str]]:
    """Flatten UI conversation items into chat messages.

    Items without a role or without text in their first content part are skipped.
    """

    messages = [{"role": "system", "content": system_prompt}]
    for item in history:
        role = item.get("role")
        content = item.get("content") or []
        if not role or not content or not isinstance(content[0], dict):
            continue
        text = content[0].get("text")
        if text:
            messages.append({"role": str(role), "content": str(text)})
    messages.append({"role": "user", "content": message})
    return messages
