"""API-facing Pydantic models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    status: str = "ok"
    timestamp: datetime
    public_url: str = Field(default="", serialization_alias="publicUrl")
    session_state: str = Field(serialization_alias="sessionState")


class PublicUrlResponse(BaseModel):
    public_url: str = Field(default="", serialization_alias="publicUrl")


class SessionStatusResponse(BaseModel):
    state: str
    session: dict[str, Any] | None = None
    config: dict[str, Any]
    observer_attached: bool = Field(serialization_alias="observerAttached")


class OutboundCallRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    to: str | None = None
    from_: str | None = Field(default=None, alias="from")


class OutboundCallResponse(BaseModel):
    success: bool = True
    call_sid: str = Field(serialization_alias="callSid")
    status: str | None = None
    to: str
    from_: str = Field(serialization_alias="from")


class ChatRequest(BaseModel):
    message: str | None = None
    conversation_history: list[dict[str, Any]] = Field(default_factory=list)


class ChatResponse(BaseModel):
    response: str
    usage: dict[str, Any] | None = None
