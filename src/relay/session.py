"""One end-to-end call: a Call Link wired to a Model Link, tapped by the observer."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from relay.call_link import CallLink
from relay.conversation import Conversation
from relay.errors import HandshakeTimeoutError, RelayError
from relay.events import AudioDelta, ItemCreated, ItemDone, ModelEvent, SpeechStarted, SpeechStopped, TranscriptDelta
from relay.model_link import ModelLink
from relay.observer import ObserverFanout
from relay.schemas import SessionConfig
from telephony.codec import AudioFrame

LOGGER = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.CONNECTING, SessionState.CLOSING}),
    SessionState.CONNECTING: frozenset({SessionState.ACTIVE, SessionState.CLOSING}),
    SessionState.ACTIVE: frozenset({SessionState.CLOSING}),
    SessionState.CLOSING: frozenset({SessionState.CLOSED}),
    SessionState.CLOSED: frozenset(),
}


class Session:
    """Relays audio and events between one call and one model connection.

    The Session owns no thread of its own: :meth:`run` starts the receive loops
    of both links and tears everything down as soon as either one ends.
    """

    def __init__(
        self,
        call: CallLink,
        model: ModelLink,
        observer: ObserverFanout,
        *,
        config: Callable[[], SessionConfig],
        on_config_update: Callable[[dict[str, Any]], Awaitable[None]],
        handshake_timeout: float = 10.0,
    ) -> None:
        self.id = uuid.uuid4().hex
        self.state = SessionState.IDLE
        self.call = call
        self.model = model
        self.conversation = Conversation()
        self.listening = False
        self.close_reason: str | None = None
        self._observer = observer
        self._config = config
        self._on_config_update = on_config_update
        self._handshake_timeout = handshake_timeout
        self._stream_sid: str | None = None
        self._latest_media_timestamp = 0
        self._response_start_timestamp: int | None = None
        self._last_assistant_item: str | None = None
        self._tasks: list[asyncio.Task] = []
        self._closed = asyncio.Event()

    @property
    def stream_sid(self) -> str | None:
        return self._stream_sid

    def snapshot(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "state": self.state.value,
            "streamSid": self._stream_sid,
            "listening": self.listening,
            "items": len(self.conversation),
            "pendingCalls": self.model.pending_calls,
        }

    def advance(self, target: SessionState) -> bool:
        """Apply a state transition; refused transitions return False."""

        if target not in _TRANSITIONS[self.state]:
            LOGGER.debug("Session %s: refusing %s -> %s", self.id, self.state.value, target.value)
            return False
        LOGGER.info("Session %s: %s -> %s", self.id, self.state.value, target.value)
        self.state = target
        event: dict[str, Any] = {"type": "relay.session.state", "session_id": self.id, "state": target.value}
        if self.close_reason and target in (SessionState.CLOSING, SessionState.CLOSED):
            event["reason"] = self.close_reason
        self._observer.publish(event)
        return True

    async def run(self) -> None:
        if not self.advance(SessionState.CONNECTING):
            return

        model_task = asyncio.create_task(self._run_model())
        call_task = asyncio.create_task(self.call.serve(self))
        self._tasks = [model_task, call_task]

        reason = "ended"
        try:
            done, _ = await asyncio.wait(self._tasks, return_when=asyncio.FIRST_COMPLETED)
            reason = self._describe(done, call_task)
        finally:
            await self.close(reason)

    def _describe(self, done: set[asyncio.Task], call_task: asyncio.Task) -> str:
        for task in done:
            if task.cancelled():
                return "cancelled"
            exc = task.exception()
            if isinstance(exc, RelayError):
                LOGGER.warning("Session %s: %s", self.id, exc)
                return f"error: {exc.detail}"
            if exc is not None:
                LOGGER.error("Session %s crashed", self.id, exc_info=exc)
                return f"error: {exc}"
            if task is call_task:
                return f"call {task.result()}"
        return "model closed"

    async def _run_model(self) -> None:
        try:
            first = await asyncio.wait_for(self.model.connect(self._config), timeout=self._handshake_timeout)
        except asyncio.TimeoutError as exc:
            raise HandshakeTimeoutError(
                "model", f"no handshake within {self._handshake_timeout:g}s"
            ) from exc

        if first:
            self._observer.publish(first)
        if not self.advance(SessionState.ACTIVE):
            return
        await self.model.serve(self)

    async def close(self, reason: str = "closed") -> None:
        if self.state == SessionState.CLOSED:
            return
        if self.state == SessionState.CLOSING:
            await self._closed.wait()
            return

        self.close_reason = reason
        self.advance(SessionState.CLOSING)

        current = asyncio.current_task()
        tasks = [task for task in self._tasks if task is not current and not task.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        try:
            await self.model.close(reason)
        finally:
            await self.call.close(reason)
            self.advance(SessionState.CLOSED)
            self._closed.set()

    # Call link callbacks

    async def on_stream_started(self, stream_sid: str) -> None:
        self._stream_sid = stream_sid
        self._latest_media_timestamp = 0
        self._response_start_timestamp = None
        self._last_assistant_item = None
        self._observer.publish({"type": "relay.call.started", "streamSid": stream_sid})

    async def on_call_audio(self, frame: AudioFrame, timestamp: int | None) -> None:
        if self.state not in (SessionState.CONNECTING, SessionState.ACTIVE):
            return
        if timestamp is not None:
            self._latest_media_timestamp = timestamp
        self.model.send_audio(frame)

    async def on_call_config(self, update: dict[str, Any]) -> None:
        await self._on_config_update(update)

    # Model link callbacks

    def publish(self, event: dict[str, Any]) -> None:
        self._observer.publish(event)

    async def on_model_event(self, event: ModelEvent) -> None:
        self._observer.publish(event.raw)

        if isinstance(event, AudioDelta):
            await self._forward_audio(event)
        elif isinstance(event, TranscriptDelta):
            if event.item_id:
                self.conversation.append_delta(event.item_id, event.delta, role=event.role)
                if event.final:
                    self.conversation.complete(event.item_id)
        elif isinstance(event, ItemCreated):
            self.conversation.start(event.item)
        elif isinstance(event, ItemDone):
            self.conversation.complete(event.item_id)
        elif isinstance(event, SpeechStarted):
            self.listening = True
            await self._truncate_playback()
        elif isinstance(event, SpeechStopped):
            self.listening = False

    async def _forward_audio(self, event: AudioDelta) -> None:
        if self._response_start_timestamp is None:
            self._response_start_timestamp = self._latest_media_timestamp
        if event.item_id:
            self._last_assistant_item = event.item_id
        await self.call.send_audio(event.delta)

    async def _truncate_playback(self) -> None:
        """Barge-in: cut the assistant's reply at what the caller actually heard."""

        item_id = self._last_assistant_item
        started = self._response_start_timestamp
        self._last_assistant_item = None
        self._response_start_timestamp = None
        if item_id is None or started is None:
            return

        elapsed = max(0, self._latest_media_timestamp - started)
        await self.model.send(
            {
                "type": "conversation.item.truncate",
                "item_id": item_id,
                "content_index": 0,
                "audio_end_ms": elapsed,
            }
        )
        await self.call.clear()
