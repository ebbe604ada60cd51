"""Call-side link: the live call (or browser microphone) websocket of a Session."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from integrations.twilio_streaming import (
    MediaStreamFrame,
    build_clear_message,
    build_mark_message,
    build_media_message,
    parse_media_stream_frame,
)
from relay.errors import CodecError, LinkError
from telephony.codec import AudioFrame, PassthroughCodec, TelephonyCodec

LOGGER = logging.getLogger(__name__)


class AudioCodec(Protocol):
    def to_model_format(self, frame: AudioFrame) -> AudioFrame:  # pragma: no cover - protocol stub
        ...

    def to_call_format(self, frame: AudioFrame) -> AudioFrame:  # pragma: no cover - protocol stub
        ...


class CallEventSink(Protocol):
    async def on_stream_started(self, stream_sid: str) -> None:  # pragma: no cover - protocol stub
        ...

    async def on_call_audio(self, frame: AudioFrame, timestamp: int | None) -> None:  # pragma: no cover
        ...

    async def on_call_config(self, update: dict[str, Any]) -> None:  # pragma: no cover
        ...


class CallLink:
    """Owns the inbound call socket.

    Inbound ``media`` frames are converted to model audio and handed to the
    sink in arrival order. Model audio written back is converted to the call
    encoding and tagged with the stream id latched from ``start``.
    """

    origin = "call"
    model_audio_format = "pcm16"

    def __init__(self, websocket: WebSocket, codec: AudioCodec) -> None:
        self._ws = websocket
        self._codec = codec
        self._stream_sid: str | None = None
        self._closed = False
        self._in_sequence = 0
        self._out_sequence = 0
        self.dropped_frames = 0

    @property
    def stream_sid(self) -> str | None:
        return self._stream_sid

    @property
    def closed(self) -> bool:
        return self._closed

    async def accept(self) -> None:
        await self._ws.accept()

    async def serve(self, sink: CallEventSink) -> str:
        """Run the receive loop until ``stop`` or disconnect; return the reason."""

        try:
            while not self._closed:
                text = await self._ws.receive_text()
                try:
                    frame = parse_media_stream_frame(text)
                except ValueError:
                    LOGGER.warning("Dropping unparseable %s frame", self.origin)
                    continue

                if frame.event == "stop":
                    LOGGER.info("Stream %s stopped by %s", self._stream_sid, self.origin)
                    return "stop"
                await self._handle_frame(frame, sink)
        except WebSocketDisconnect:
            return "disconnected"
        return "closed"

    async def _handle_frame(self, frame: MediaStreamFrame, sink: CallEventSink) -> None:
        if frame.event == "start":
            if self._stream_sid and frame.stream_sid != self._stream_sid:
                LOGGER.warning("Ignoring second start frame for stream %s", self._stream_sid)
                return
            self._stream_sid = frame.stream_sid
            if self._stream_sid:
                await sink.on_stream_started(self._stream_sid)
        elif frame.event == "media":
            if frame.track and frame.track != "inbound":
                return
            if not frame.payload:
                return
            self._in_sequence += 1
            try:
                converted = self._codec.to_model_format(
                    AudioFrame(frame.payload, "call-native", self._in_sequence, self.origin)
                )
            except CodecError as exc:
                self.dropped_frames += 1
                LOGGER.warning("Dropping inbound audio frame: %s", exc)
                return
            await sink.on_call_audio(converted, frame.timestamp)
        elif frame.event in ("mark", "connected"):
            return
        else:
            await self._handle_other(frame, sink)

    async def _handle_other(self, frame: MediaStreamFrame, sink: CallEventSink) -> None:
        LOGGER.debug("Ignoring %s frame %r", self.origin, frame.event)

    async def send_audio(self, payload_b64: str) -> bool:
        """Write one chunk of model audio to the call. Returns False if dropped."""

        if self._closed or not self._stream_sid:
            return False

        self._out_sequence += 1
        try:
            converted = self._codec.to_call_format(
                AudioFrame(payload_b64, "model-native", self._out_sequence, "model")
            )
        except CodecError as exc:
            self.dropped_frames += 1
            LOGGER.warning("Dropping outbound audio frame: %s", exc)
            return False

        await self._send(build_media_message(self._stream_sid, converted.payload))
        await self._send(build_mark_message(self._stream_sid))
        return True

    async def clear(self) -> None:
        """Ask the transport to discard audio it has buffered for playback."""

        if self._closed or not self._stream_sid:
            return
        await self._send(build_clear_message(self._stream_sid))

    async def _send(self, text: str) -> None:
        try:
            await self._ws.send_text(text)
        except (WebSocketDisconnect, RuntimeError) as exc:
            raise LinkError(self.origin, f"send failed: {exc}") from exc

    async def close(self, reason: str = "closed") -> None:
        if self._closed:
            return
        self._closed = True
        LOGGER.info("Closing %s link (%s)", self.origin, reason)
        if self._ws.application_state == WebSocketState.DISCONNECTED:
            return
        if self._ws.client_state == WebSocketState.DISCONNECTED:
            return
        try:
            await self._ws.close(code=1000)
        except RuntimeError as exc:
            LOGGER.debug("%s socket already closed: %s", self.origin, exc)


class TwilioCallLink(CallLink):
    """``/call``: Twilio Media Streams, mu-law 8 kHz."""

    origin = "call"

    def __init__(self, websocket: WebSocket, *, model_sample_rate: int = 24000) -> None:
        super().__init__(websocket, TelephonyCodec(model_sample_rate))


class BrowserCallLink(CallLink):
    """``/webrtc``: browser microphone, audio already in the model's PCM16 format."""

    origin = "webrtc"

    def __init__(self, websocket: WebSocket) -> None:
        super().__init__(websocket, PassthroughCodec())

    async def _handle_other(self, frame: MediaStreamFrame, sink: CallEventSink) -> None:
        if frame.event == "session.update":
            update = frame.raw.get("session") or {}
            if isinstance(update, dict):
                await sink.on_call_config(update)
            return
        await super()._handle_other(frame, sink)
