"""Pydantic schemas exchanged between the relay, the model and the observer."""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from relay.errors import DispatchError


class SessionConfig(BaseModel):
    """Negotiated session options sent to the model in ``session.update``.

    Unknown keys coming from the observer UI are kept and forwarded as-is.
    """

    model_config = ConfigDict(extra="allow")

    modalities: list[str] = Field(default_factory=lambda: ["text", "audio"])
    voice: str = "ash"
    instructions: str | None = None
    turn_detection: dict[str, Any] | None = Field(default_factory=lambda: {"type": "server_vad"})
    input_audio_transcription: dict[str, Any] | None = Field(
        default_factory=lambda: {"model": "whisper-1"}
    )
    input_audio_format: str = "pcm16"
    output_audio_format: str = "pcm16"
    tools: list[dict[str, Any]] = Field(default_factory=list)

    def payload(self) -> dict[str, Any]:
        """Dump without unset ``None`` defaults.

        A ``None`` that was set explicitly is kept: ``turn_detection: null``
        is how server VAD gets switched off.
        """

        data = self.model_dump()
        return {key: value for key, value in data.items() if value is not None or key in self.model_fields_set}

    def merged(self, update: dict[str, Any]) -> SessionConfig:
        """Return a copy with ``update`` applied, last write wins per key."""

        current = self.payload()
        current.update(update)
        return SessionConfig.model_validate(current)

    def to_event(self, *, audio_format: str | None = None) -> dict[str, Any]:
        session = self.payload()
        if audio_format:
            session["input_audio_format"] = audio_format
            session["output_audio_format"] = audio_format
        return {"type": "session.update", "session": session}


class FunctionCallRequest(BaseModel):
    call_id: str
    name: str
    arguments: str = ""


class FunctionCallResult(BaseModel):
    call_id: str
    ok: bool
    output: str

    @classmethod
    def success(cls, call_id: str, value: Any) -> FunctionCallResult:
        return cls(call_id=call_id, ok=True, output=json.dumps(value, default=str))

    @classmethod
    def failure(cls, call_id: str, error: DispatchError) -> FunctionCallResult:
        return cls(call_id=call_id, ok=False, output=json.dumps(error.to_payload()))

    def to_events(self) -> list[dict[str, Any]]:
        """Events that hand the result back to the model and resume the response."""

        return [
            {
                "type": "conversation.item.create",
                "item": {
                    "type": "function_call_output",
                    "call_id": self.call_id,
                    "output": self.output,
                },
            },
            {"type": "response.create"},
        ]
