"""Shared FastAPI dependencies.

Separated to avoid circular imports between route modules.
"""

from __future__ import annotations

from functools import lru_cache
from typing import TYPE_CHECKING

from config.settings import get_settings
from relay.functions import FunctionDispatcher
from relay.relay import SessionRelay
from relay.tools import build_default_dispatcher

if TYPE_CHECKING:  # pragma: no cover
    from llm.base import BaseLLMClient


@lru_cache(maxsize=1)
def _dispatcher_factory() -> FunctionDispatcher:
    return build_default_dispatcher()


@lru_cache(maxsize=1)
def _relay_factory() -> SessionRelay:
    return SessionRelay(get_settings(), _dispatcher_factory())


@lru_cache(maxsize=1)
def _llm_factory() -> BaseLLMClient:
    # Lazy import so the relay runs without the openai package configured.
    from llm.openai_client import OpenAIClient

    return OpenAIClient()


def get_dispatcher() -> FunctionDispatcher:
    return _dispatcher_factory()


def get_relay() -> SessionRelay:
    return _relay_factory()


def get_llm_client() -> BaseLLMClient:
    return _llm_factory()
