"""Observer Fan-out: mirrors relay events to the monitoring UI on ``/logs``."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from relay.slots import ConnectionSlot

LOGGER = logging.getLogger(__name__)

ConfigUpdateHandler = Callable[[dict[str, Any]], Awaitable[None]]


class ObserverLink:
    """One observer socket with its own bounded outbound queue."""

    def __init__(self, websocket: WebSocket, *, queue_size: int = 256) -> None:
        self._ws = websocket
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=queue_size)
        self._writer_task: asyncio.Task | None = None
        self._closed = False
        self.dropped_events = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def offer(self, event: dict[str, Any]) -> bool:
        if self._closed:
            return False
        try:
            self._queue.put_nowait(json.dumps(event, default=str))
        except asyncio.QueueFull:
            self.dropped_events += 1
            if self.dropped_events % 100 == 1:
                LOGGER.warning("Observer queue full; dropped %d events", self.dropped_events)
            return False
        return True

    async def accept(self) -> None:
        await self._ws.accept()
        self._writer_task = asyncio.create_task(self._writer())

    async def _writer(self) -> None:
        while True:
            text = await self._queue.get()
            try:
                await self._ws.send_text(text)
            except (WebSocketDisconnect, RuntimeError):
                LOGGER.info("Observer socket gone; stopping writer")
                return

    async def receive(self) -> dict[str, Any] | None:
        """Next JSON object from the observer, or None for non-object frames.

        Raises:
            WebSocketDisconnect: when the observer goes away.
        """

        text = await self._ws.receive_text()
        try:
            message = json.loads(text)
        except json.JSONDecodeError:
            LOGGER.warning("Dropping non-JSON observer message")
            return None
        return message if isinstance(message, dict) else None

    async def close(self, reason: str = "closed") -> None:
        if self._closed:
            return
        self._closed = True
        LOGGER.info("Closing observer link (%s)", reason)
        if self._writer_task is not None:
            self._writer_task.cancel()
            await asyncio.gather(self._writer_task, return_exceptions=True)
        if WebSocketState.DISCONNECTED in (self._ws.application_state, self._ws.client_state):
            return
        try:
            await self._ws.close(code=1000)
        except RuntimeError as exc:
            LOGGER.debug("Observer socket already closed: %s", exc)


class ObserverFanout:
    """Process-wide tap of relay events with at most one attached observer.

    :meth:`publish` never blocks and never buffers for an absent observer.
    """

    def __init__(self, *, queue_size: int = 256) -> None:
        self._queue_size = queue_size
        self._slot: ConnectionSlot[ObserverLink] = ConnectionSlot("observer")

    @property
    def attached(self) -> bool:
        link = self._slot.current
        return link is not None and not link.closed

    def publish(self, event: dict[str, Any]) -> None:
        link = self._slot.current
        if link is None:
            return
        link.offer(event)

    def link_for(self, websocket: WebSocket) -> ObserverLink:
        return ObserverLink(websocket, queue_size=self._queue_size)

    async def serve(self, link: ObserverLink, on_config_update: ConfigUpdateHandler) -> None:
        """Attach ``link`` (closing any previous observer) and run its receive loop."""

        await self._slot.replace(link)
        try:
            await link.accept()
            LOGGER.info("Observer connected")
            while not link.closed:
                message = await link.receive()
                if message is None:
                    continue
                if message.get("type") == "session.update":
                    update = message.get("session") or {}
                    if isinstance(update, dict):
                        await on_config_update(update)
                else:
                    LOGGER.debug("Ignoring observer message %r", message.get("type"))
        except WebSocketDisconnect:
            LOGGER.info("Observer disconnected")
        finally:
            await self._slot.release(link)
            await link.close("observer loop ended")
