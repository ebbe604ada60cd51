"""Websocket endpoints: live call, browser microphone and observer."""

from __future__ import annotations

from fastapi import APIRouter, Depends, WebSocket

from api.dependencies import get_relay
from config.settings import get_settings
from relay.call_link import BrowserCallLink, TwilioCallLink
from relay.relay import SessionRelay

router = APIRouter(tags=["streams"])


@router.websocket("/call")
async def call_stream(websocket: WebSocket, relay: SessionRelay = Depends(get_relay)) -> None:
    link = TwilioCallLink(websocket, model_sample_rate=get_settings().model_sample_rate)
    await relay.handle_call(link)


@router.websocket("/webrtc")
async def browser_stream(websocket: WebSocket, relay: SessionRelay = Depends(get_relay)) -> None:
    await relay.handle_call(BrowserCallLink(websocket))


@router.websocket("/logs")
async def observer_stream(websocket: WebSocket, relay: SessionRelay = Depends(get_relay)) -> None:
    await relay.handle_observer(relay.observer.link_for(websocket))
