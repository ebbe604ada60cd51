"""Framing of the Twilio Media Streams websocket protocol.

The browser transport on ``/webrtc`` reuses the same frame shapes.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class MediaStreamFrame:
    event: str
    stream_sid: str | None
    payload: str | None
    timestamp: int | None
    track: str | None
    raw: dict[str, Any]


def parse_twilio_ws_message(text: str) -> dict[str, Any]:
    message = json.loads(text)
    if not isinstance(message, dict):
        raise ValueError("Media stream message must be a JSON object")
    return message


def _timestamp(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _section(message: dict[str, Any], key: str) -> dict[str, Any]:
    section = message.get(key) or {}
    if not isinstance(section, dict):
        raise ValueError(f"Media stream {key!r} section must be a JSON object")
    return section


def parse_media_stream_frame(text: str) -> MediaStreamFrame:
    """Parse one inbound frame.

    Raises:
        ValueError: if the text or its ``start``/``media`` section is not a JSON object.
    """

    message = parse_twilio_ws_message(text)
    event = str(message.get("event") or message.get("type") or "")

    stream_sid = message.get("streamSid")
    payload = None
    timestamp = None
    track = None

    if event == "start":
        start = _section(message, "start")
        stream_sid = start.get("streamSid") or stream_sid
    elif event == "media":
        media = _section(message, "media")
        payload = media.get("payload")
        timestamp = _timestamp(media.get("timestamp"))
        track = media.get("track")

    return MediaStreamFrame(
        event=event,
        stream_sid=str(stream_sid) if stream_sid else None,
        payload=payload if isinstance(payload, str) else None,
        timestamp=timestamp,
        track=str(track) if track else None,
        raw=message,
    )


def build_media_message(stream_sid: str, payload_b64: str) -> str:
    return json.dumps({"event": "media", "streamSid": stream_sid, "media": {"payload": payload_b64}})


def build_mark_message(stream_sid: str, name: str = "responsePart") -> str:
    return json.dumps({"event": "mark", "streamSid": stream_sid, "mark": {"name": name}})


def build_clear_message(stream_sid: str) -> str:
    return json.dumps({"event": "clear", "streamSid": stream_sid})
