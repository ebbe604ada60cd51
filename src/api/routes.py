"""HTTP routes around the relay: health, tool listing and the text-chat proxy."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_dispatcher, get_llm_client, get_relay
from api.schemas import ChatRequest, ChatResponse, HealthResponse, PublicUrlResponse, SessionStatusResponse
from config.settings import get_settings
from llm.base import build_chat_messages
from relay.functions import FunctionDispatcher
from relay.relay import SessionRelay

if TYPE_CHECKING:  # pragma: no cover
    from llm.base import BaseLLMClient

LOGGER = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(relay: SessionRelay = Depends(get_relay)) -> HealthResponse:
    return HealthResponse(
        timestamp=datetime.now(timezone.utc),
        public_url=get_settings().public_base_url or "",
        session_state=relay.state.value,
    )


@router.get("/public-url", response_model=PublicUrlResponse)
async def public_url() -> PublicUrlResponse:
    return PublicUrlResponse(public_url=get_settings().public_base_url or "")


@router.get("/tools")
async def list_tools(dispatcher: FunctionDispatcher = Depends(get_dispatcher)) -> list[dict[str, Any]]:
    return dispatcher.schemas()


@router.get("/session", response_model=SessionStatusResponse)
async def session_status(relay: SessionRelay = Depends(get_relay)) -> SessionStatusResponse:
    session = relay.current_session
    return SessionStatusResponse(
        state=relay.state.value,
        session=session.snapshot() if session is not None else None,
        config=relay.config.payload(),
        observer_attached=relay.observer.attached,
    )


@router.post("/chat", response_model=ChatResponse)
async def chat(
    payload: ChatRequest,
    llm: BaseLLMClient = Depends(get_llm_client),
) -> ChatResponse:
    if not payload.message:
        raise HTTPException(status_code=400, detail="Message is required")

    settings = get_settings()
    messages = build_chat_messages(settings.chat_system_prompt, payload.message, payload.conversation_history)
    reply = await llm.chat(messages, temperature=settings.chat_temperature)
    return ChatResponse(response=reply.text, usage=reply.usage)
