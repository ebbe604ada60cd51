from __future__ import annotations

from conftest import FakeModelSocket, make_relay, poll_until

from config.settings import get_settings
from llm.base import BaseLLMClient, ChatReply
from relay.errors import UpstreamError
from relay.session import SessionState


class FakeLLM(BaseLLMClient):
    def __init__(self) -> None:
        self.messages = []

    async def chat(self, messages, *, temperature: float = 0.7) -> ChatReply:
        self.messages = list(messages)
        return ChatReply(text="Hello there", usage={"total_tokens": 12})


class FailingLLM(BaseLLMClient):
    async def chat(self, messages, *, temperature: float = 0.7) -> ChatReply:
        raise UpstreamError("Failed to get AI response")


def test_health_reports_idle_relay(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["sessionState"] == "idle"
    assert "timestamp" in body


def test_public_url(client, monkeypatch):
    monkeypatch.setattr(get_settings(), "public_base_url", "https://relay.example.com")

    resp = client.get("/public-url")

    assert resp.json() == {"publicUrl": "https://relay.example.com"}


def test_tools_lists_registered_schemas(client):
    resp = client.get("/tools")

    assert resp.status_code == 200
    names = [tool["name"] for tool in resp.json()]
    assert "get_weather_from_coords" in names


def test_session_status_without_call(app, client):
    import api.dependencies as deps

    relay = make_relay()
    app.dependency_overrides[deps.get_relay] = lambda: relay

    resp = client.get("/session")

    assert resp.status_code == 200
    body = resp.json()
    assert body["state"] == "idle"
    assert body["session"] is None
    assert body["observerAttached"] is False
    assert body["config"]["voice"] == "ash"


def test_chat_proxies_history_to_llm(app, client):
    import api.dependencies as deps

    llm = FakeLLM()
    app.dependency_overrides[deps.get_llm_client] = lambda: llm

    resp = client.post(
        "/chat",
        json={
            "message": "What's next?",
            "conversation_history": [
                {"role": "user", "content": [{"type": "input_text", "text": "Hi"}]},
                {"role": "assistant", "content": []},
                {"content": [{"text": "no role"}]},
            ],
        },
    )

    assert resp.status_code == 200
    assert resp.json() == {"response": "Hello there", "usage": {"total_tokens": 12}}
    assert [m["role"] for m in llm.messages] == ["system", "user", "user"]
    assert llm.messages[-1]["content"] == "What's next?"


def test_chat_requires_message(app, client):
    import api.dependencies as deps

    app.dependency_overrides[deps.get_llm_client] = lambda: FakeLLM()

    resp = client.post("/chat", json={"message": ""})

    assert resp.status_code == 400
    assert resp.json()["detail"] == "Message is required"


def test_chat_maps_upstream_errors(app, client):
    import api.dependencies as deps

    app.dependency_overrides[deps.get_llm_client] = lambda: FailingLLM()

    resp = client.post("/chat", json={"message": "Hi"})

    assert resp.status_code == 503
    assert resp.json()["detail"] == "Failed to get AI response"


def test_call_stream_relays_audio_and_mirrors_to_observer(app, client):
    import api.dependencies as deps

    model = FakeModelSocket()
    relay = make_relay(model)
    app.dependency_overrides[deps.get_relay] = lambda: relay

    with client.websocket_connect("/logs") as logs:
        with client.websocket_connect("/call") as call:
            call.send_json({"event": "start", "start": {"streamSid": "SM123"}})
            call.send_json({"event": "media", "media": {"timestamp": "0", "payload": "/////w=="}})

            seen: list[str] = []
            while "active" not in seen:
                event = logs.receive_json()
                if event["type"] == "relay.session.state":
                    seen.append(event["state"])
            assert seen == ["connecting", "active"]

            poll_until(lambda: model.sent_of_type("input_audio_buffer.append"))
            assert model.sent[0]["type"] == "session.update"

        poll_until(lambda: relay.state == SessionState.IDLE)

    assert model.closed
