from __future__ import annotations

import asyncio
import json
import sys
import time
from collections.abc import Callable
from pathlib import Path

import pytest
import websockets
from fastapi import WebSocketDisconnect
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketState

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from config.settings import Settings  # noqa: E402
from relay.functions import FunctionDispatcher  # noqa: E402
from relay.relay import SessionRelay  # noqa: E402


class FakeWebSocket:
    """Stands in for a FastAPI WebSocket on the call or observer side."""

    def __init__(self, name: str = "ws", journal: list[str] | None = None) -> None:
        self.name = name
        self.journal = journal if journal is not None else []
        self.incoming: asyncio.Queue[str | None] = asyncio.Queue()
        self.sent: list[str] = []
        self.accepted = False
        self.closed = False
        self.application_state = WebSocketState.CONNECTING
        self.client_state = WebSocketState.CONNECTED

    async def accept(self) -> None:
        self.accepted = True
        self.application_state = WebSocketState.CONNECTED
        self.journal.append(f"{self.name} accepted")

    async def receive_text(self) -> str:
        item = await self.incoming.get()
        if item is None:
            raise WebSocketDisconnect(code=1000)
        return item

    async def send_text(self, text: str) -> None:
        if self.closed:
            raise RuntimeError("socket closed")
        self.sent.append(text)

    async def close(self, code: int = 1000) -> None:
        self.closed = True
        self.application_state = WebSocketState.DISCONNECTED
        self.journal.append(f"{self.name} closed")
        self.incoming.put_nowait(None)

    def push(self, message: dict) -> None:
        self.incoming.put_nowait(json.dumps(message))

    def disconnect(self) -> None:
        self.client_state = WebSocketState.DISCONNECTED
        self.incoming.put_nowait(None)

    def sent_json(self) -> list[dict]:
        return [json.loads(text) for text in self.sent]


class FakeModelSocket:
    """Stands in for the realtime model websocket."""

    def __init__(self, first: dict | None = None, *, ready: bool = True) -> None:
        self.incoming: asyncio.Queue[dict | None] = asyncio.Queue()
        self.sent: list[dict] = []
        self.closed = False
        if ready:
            self.incoming.put_nowait(first or {"type": "session.created", "session": {"id": "sess_1"}})

    async def send(self, message: str) -> None:
        self.sent.append(json.loads(message))

    async def recv(self) -> str:
        item = await self.incoming.get()
        if item is None:
            raise websockets.ConnectionClosedOK(None, None)
        return json.dumps(item)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        while True:
            item = await self.incoming.get()
            if item is None:
                return
            yield json.dumps(item)

    async def close(self) -> None:
        self.closed = True
        self.incoming.put_nowait(None)

    def push(self, event: dict) -> None:
        self.incoming.put_nowait(event)

    def sent_of_type(self, event_type: str) -> list[dict]:
        return [event for event in self.sent if event.get("type") == event_type]


class SlowModelSocket(FakeModelSocket):
    """Model socket whose sends take a while, like a congested network."""

    def __init__(self, delay: float = 0.05) -> None:
        super().__init__()
        self.delay = delay
        self.sending = False

    async def send(self, message: str) -> None:
        self.sending = True
        await asyncio.sleep(self.delay)
        await super().send(message)


def connector_for(*sockets: FakeModelSocket):
    pending = list(sockets)

    async def connect() -> FakeModelSocket:
        return pending.pop(0)

    return connect


def make_settings(**overrides) -> Settings:
    values = {
        "openai_api_key": "sk-test",
        "handshake_timeout_seconds": 1.0,
        "function_timeout_seconds": 1.0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_relay(*sockets: FakeModelSocket, dispatcher: FunctionDispatcher | None = None, **overrides) -> SessionRelay:
    return SessionRelay(
        make_settings(**overrides),
        dispatcher or FunctionDispatcher(),
        connector=connector_for(*sockets),
    )


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


def poll_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        time.sleep(0.01)


@pytest.fixture(scope="session")
def app():
    import main

    return main.app


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
