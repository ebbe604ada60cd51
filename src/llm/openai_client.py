"""OpenAI chat completion client backing the text-chat proxy."""

from __future__ import annotations

import logging
from collections.abc import Iterable

import openai
from openai import AsyncOpenAI

from config.settings import get_settings
from llm.base import BaseLLMClient, ChatReply
from relay.errors import ConfigurationError, UpstreamError

LOGGER = logging.getLogger(__name__)


class OpenAIClient(BaseLLMClient):
    """Wrapper for the OpenAI Chat Completion API."""

    def __init__(self) -> None:
        settings = get_settings()
        if not settings.openai_api_key:
            raise ConfigurationError("OpenAI API key not configured")

        self._client = AsyncOpenAI(api_key=settings.openai_api_key)
        self._model = settings.chat_model
        self._max_tokens = settings.chat_max_tokens

    async def chat(
        self,
        messages: Iterable[dict[str, str]],
        *,
        temperature: float = 0.7,
    ) -> ChatReply:
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=list(messages),
                temperature=temperature,
                max_tokens=self._max_tokens,
            )
        except openai.OpenAIError as exc:
            LOGGER.error("OpenAI API error: %s", exc)
            raise UpstreamError("Failed to get AI response") from exc

        text = response.choices[0].message.content if response.choices else None
        usage = response.usage.model_dump() if response.usage else None
        return ChatReply(text=text or "Sorry, I could not generate a response.", usage=usage)
