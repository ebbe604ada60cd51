"""Decoding of realtime model events into tagged variants.

Every inbound event maps to exactly one variant. Types the relay does not act
on become :class:`Passthrough` so they can still be shown to the observer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from relay.schemas import FunctionCallRequest


@dataclass(frozen=True, slots=True)
class ModelEvent:
    raw: dict[str, Any]

    @property
    def type(self) -> str:
        return str(self.raw.get("type") or "")


@dataclass(frozen=True, slots=True)
class AudioDelta(ModelEvent):
    item_id: str
    delta: str


@dataclass(frozen=True, slots=True)
class TranscriptDelta(ModelEvent):
    item_id: str
    delta: str
    role: str
    final: bool


@dataclass(frozen=True, slots=True)
class ItemCreated(ModelEvent):
    item: dict[str, Any]


@dataclass(frozen=True, slots=True)
class ItemDone(ModelEvent):
    item_id: str


@dataclass(frozen=True, slots=True)
class SpeechStarted(ModelEvent):
    pass


@dataclass(frozen=True, slots=True)
class SpeechStopped(ModelEvent):
    pass


@dataclass(frozen=True, slots=True)
class FunctionCallRequested(ModelEvent):
    request: FunctionCallRequest


@dataclass(frozen=True, slots=True)
class FunctionOutputAcknowledged(ModelEvent):
    call_id: str


@dataclass(frozen=True, slots=True)
class ModelError(ModelEvent):
    message: str


@dataclass(frozen=True, slots=True)
class Passthrough(ModelEvent):
    pass


def _function_call(raw: dict[str, Any], item: dict[str, Any]) -> FunctionCallRequested | Passthrough:
    call_id = str(item.get("call_id") or "")
    name = str(item.get("name") or "")
    if not call_id or not name:
        return Passthrough(raw)
    arguments = item.get("arguments")
    return FunctionCallRequested(
        raw,
        FunctionCallRequest(call_id=call_id, name=name, arguments=str(arguments or "")),
    )


def _item_created(raw: dict[str, Any]) -> ModelEvent:
    item = raw.get("item") or {}
    if not isinstance(item, dict):
        return Passthrough(raw)

    item_type = item.get("type")
    if item_type == "function_call_output":
        return FunctionOutputAcknowledged(raw, str(item.get("call_id") or ""))
    if item_type == "function_call":
        # Arguments are still streaming while the item is in progress; the
        # request is picked up from response.output_item.done instead.
        if item.get("status") == "in_progress":
            return Passthrough(raw)
        return _function_call(raw, item)
    return ItemCreated(raw, item)


def _item_done(raw: dict[str, Any]) -> ModelEvent:
    item = raw.get("item") or {}
    if not isinstance(item, dict):
        return Passthrough(raw)
    if item.get("type") == "function_call":
        return _function_call(raw, item)
    return ItemDone(raw, str(item.get("id") or ""))


def decode_model_event(raw: dict[str, Any]) -> ModelEvent:
    event_type = str(raw.get("type") or "")

    if event_type == "response.audio.delta":
        return AudioDelta(raw, str(raw.get("item_id") or ""), str(raw.get("delta") or ""))
    if event_type == "response.audio_transcript.delta":
        return TranscriptDelta(
            raw, str(raw.get("item_id") or ""), str(raw.get("delta") or ""), "assistant", False
        )
    if event_type == "conversation.item.input_audio_transcription.completed":
        return TranscriptDelta(
            raw, str(raw.get("item_id") or ""), str(raw.get("transcript") or ""), "user", True
        )
    if event_type == "conversation.item.created":
        return _item_created(raw)
    if event_type == "response.output_item.done":
        return _item_done(raw)
    if event_type == "input_audio_buffer.speech_started":
        return SpeechStarted(raw)
    if event_type == "input_audio_buffer.speech_stopped":
        return SpeechStopped(raw)
    if event_type == "error":
        error = raw.get("error") or {}
        message = error.get("message") if isinstance(error, dict) else str(error)
        return ModelError(raw, str(message or "unknown model error"))
    return Passthrough(raw)
