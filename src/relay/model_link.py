"""Model-side link: the outbound websocket to the hosted realtime model."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Protocol
from urllib.parse import urlencode

import websockets

from config.settings import Settings
from relay.errors import ConfigurationError, DispatchError, HandlerFailedError, LinkError
from relay.events import FunctionCallRequested, FunctionOutputAcknowledged, ModelError, ModelEvent, decode_model_event
from relay.functions import FunctionDispatcher
from relay.schemas import FunctionCallRequest, FunctionCallResult, SessionConfig
from telephony.codec import AudioFrame

LOGGER = logging.getLogger(__name__)


class ModelSocket(Protocol):
    async def send(self, message: str) -> None:  # pragma: no cover - protocol stub
        ...

    async def recv(self) -> str | bytes:  # pragma: no cover - protocol stub
        ...

    async def close(self) -> None:  # pragma: no cover - protocol stub
        ...

    def __aiter__(self) -> AsyncIterator[str | bytes]:  # pragma: no cover - protocol stub
        ...


class ModelEventSink(Protocol):
    async def on_model_event(self, event: ModelEvent) -> None:  # pragma: no cover - protocol stub
        ...

    def publish(self, event: dict[str, Any]) -> None:  # pragma: no cover - protocol stub
        ...


Connector = Callable[[], Awaitable[ModelSocket]]


def realtime_connector(settings: Settings) -> Connector:
    """Connector for the OpenAI Realtime websocket, authenticated with a bearer key."""

    async def connect() -> ModelSocket:
        if not settings.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY is not configured")

        url = f"{settings.realtime_url}?{urlencode({'model': settings.realtime_model})}"
        headers = {
            "Authorization": f"Bearer {settings.openai_api_key}",
            "OpenAI-Beta": "realtime=v1",
        }
        return await websockets.connect(url, additional_headers=headers, ping_interval=20, ping_timeout=20)

    return connect


def _decode(message: str | bytes) -> dict[str, Any] | None:
    try:
        event = json.loads(message)
    except (json.JSONDecodeError, UnicodeDecodeError):
        LOGGER.warning("Dropping non-JSON model message")
        return None
    if not isinstance(event, dict):
        LOGGER.warning("Dropping model message that is not an object")
        return None
    return event


class ModelLink:
    """Owns the single model connection of a Session.

    Outbound traffic goes through one bounded queue drained by a writer task,
    which keeps the send order of the link. Audio is dropped when the queue is
    full; control events wait for room.
    """

    origin = "model"

    def __init__(
        self,
        connector: Connector,
        dispatcher: FunctionDispatcher,
        *,
        audio_format: str = "pcm16",
        queue_size: int = 512,
        function_timeout: float = 30.0,
    ) -> None:
        self._connector = connector
        self._dispatcher = dispatcher
        self._audio_format = audio_format
        self._function_timeout = function_timeout
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_size)
        self._socket: ModelSocket | None = None
        self._writer_task: asyncio.Task | None = None
        self._function_tasks: set[asyncio.Task] = set()
        self._dispatched: set[str] = set()
        self._pending: dict[str, FunctionCallRequest] = {}
        self._closed = False
        self.dropped_frames = 0

    @property
    def connected(self) -> bool:
        return self._socket is not None and self._writer_task is not None and not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_calls(self) -> list[str]:
        """Call ids whose result has not yet been acknowledged by the model."""

        return list(self._pending)

    async def connect(self, config: Callable[[], SessionConfig]) -> dict[str, Any]:
        """Open the socket, wait for the model's first event, then configure the session.

        ``config`` is read after the socket is ready so the handshake carries
        the latest configuration. Returns the model's first event.

        Raises:
            LinkError: if the connection fails or the model answers with an error.
        """

        try:
            self._socket = await self._connector()
        except (ConfigurationError, LinkError):
            raise
        except (OSError, websockets.WebSocketException) as exc:
            raise LinkError(self.origin, f"connect failed: {exc}") from exc

        try:
            first = await self._socket.recv()
        except websockets.ConnectionClosed as exc:
            raise LinkError(self.origin, "closed during handshake") from exc

        event = _decode(first) or {}
        if event.get("type") == "error":
            error = event.get("error") or {}
            message = error.get("message") if isinstance(error, dict) else error
            raise LinkError(self.origin, f"handshake rejected: {message}")
        if self._closed:
            raise LinkError(self.origin, "closed during handshake")

        # No await between reading the config and starting the writer: an
        # update arriving after this point goes through update_session().
        handshake = json.dumps(config().to_event(audio_format=self._audio_format))
        self._writer_task = asyncio.create_task(self._writer(handshake))
        LOGGER.info("Model link ready (%s)", event.get("type") or "unknown first event")
        return event

    async def update_session(self, config: SessionConfig) -> bool:
        """Re-send the session configuration. No-op until the handshake is done."""

        if not self.connected:
            return False
        await self.send(config.to_event(audio_format=self._audio_format))
        return True

    def send_audio(self, frame: AudioFrame) -> bool:
        if self._closed:
            return False
        message = json.dumps({"type": "input_audio_buffer.append", "audio": frame.payload})
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            self.dropped_frames += 1
            if self.dropped_frames % 100 == 1:
                LOGGER.warning("Model send queue full; dropped %d audio frames", self.dropped_frames)
            return False
        return True

    async def send(self, event: dict[str, Any]) -> None:
        if self._closed:
            LOGGER.debug("Model link closed; not sending %s", event.get("type"))
            return
        await self._queue.put(json.dumps(event))

    async def _writer(self, handshake: str) -> None:
        """Send the handshake ``session.update``, then drain the queue in order."""

        assert self._socket is not None
        message = handshake
        while True:
            try:
                await self._socket.send(message)
            except websockets.ConnectionClosed:
                LOGGER.info("Model socket closed while sending")
                return
            message = await self._queue.get()

    async def serve(self, sink: ModelEventSink) -> None:
        """Receive loop: decode, classify and hand every event to ``sink``."""

        if self._socket is None:
            raise LinkError(self.origin, "serve() called before connect()")

        try:
            async for message in self._socket:
                raw = _decode(message)
                if raw is None:
                    continue

                event = decode_model_event(raw)
                if isinstance(event, FunctionCallRequested):
                    self._schedule_function_call(event.request, sink)
                elif isinstance(event, FunctionOutputAcknowledged):
                    self._pending.pop(event.call_id, None)
                elif isinstance(event, ModelError):
                    LOGGER.error("Model reported an error: %s", event.message)

                await sink.on_model_event(event)
        except websockets.ConnectionClosedError as exc:
            if not self._closed:
                raise LinkError(self.origin, f"connection lost: {exc}") from exc

    def _schedule_function_call(self, request: FunctionCallRequest, sink: ModelEventSink) -> None:
        if request.call_id in self._dispatched:
            LOGGER.debug("Function call %s already dispatched", request.call_id)
            return
        self._dispatched.add(request.call_id)
        self._pending[request.call_id] = request

        task = asyncio.create_task(self._complete_function_call(request, sink))
        self._function_tasks.add(task)
        task.add_done_callback(self._function_tasks.discard)

    async def _complete_function_call(self, request: FunctionCallRequest, sink: ModelEventSink) -> None:
        LOGGER.info("Dispatching function %s (call %s)", request.name, request.call_id)
        try:
            value = await asyncio.wait_for(
                self._dispatcher.invoke(request.name, request.arguments),
                timeout=self._function_timeout,
            )
            result = FunctionCallResult.success(request.call_id, value)
        except DispatchError as exc:
            LOGGER.warning("Function call %s failed: %s", request.call_id, exc)
            result = FunctionCallResult.failure(request.call_id, exc)
        except asyncio.TimeoutError:
            LOGGER.warning("Function call %s timed out", request.call_id)
            result = FunctionCallResult.failure(
                request.call_id,
                HandlerFailedError(request.name, f"Timed out after {self._function_timeout:g}s."),
            )

        for event in result.to_events():
            await self.send(event)
        sink.publish(
            {
                "type": "relay.function_call.completed",
                "call_id": request.call_id,
                "name": request.name,
                "ok": result.ok,
                "output": result.output,
            }
        )

    async def close(self, reason: str = "closed") -> None:
        if self._closed:
            return
        self._closed = True
        LOGGER.info("Closing model link (%s)", reason)

        tasks = list(self._function_tasks)
        if self._writer_task is not None:
            tasks.append(self._writer_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        if self._socket is not None:
            try:
                await self._socket.close()
            except (OSError, websockets.WebSocketException) as exc:
                LOGGER.debug("Model socket close failed: %s", exc)
