"""Twilio Voice integration.

This module provides:
- TwiML webhook that points the call's media stream at the ``/call`` socket.
- Outbound call endpoint.
"""

from __future__ import annotations

import asyncio
import logging
from xml.sax.saxutils import escape

from fastapi import APIRouter, Depends, HTTPException, Response

from api.schemas import OutboundCallRequest, OutboundCallResponse
from config.settings import get_settings
from integrations.twilio_client import build_twilio_client, get_twilio_config

LOGGER = logging.getLogger(__name__)

router = APIRouter(tags=["twilio"])


def _to_ws_url(http_url: str) -> str:
    if http_url.startswith("https://"):
        return "wss://" + http_url.removeprefix("https://")
    if http_url.startswith("http://"):
        return "wss://" + http_url.removeprefix("http://")
    return http_url


def _twiml_response(xml: str) -> Response:
    # Twilio expects XML
    return Response(content=xml, media_type="text/xml")


def _twiml_connect_stream(*, stream_url: str) -> str:
    stream = escape(stream_url, {'"': "&quot;"})
    return (
        "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
        "<Response>"
        "<Say>Connected</Say>"
        "<Connect>"
        f"<Stream url=\"{stream}\" />"
        "</Connect>"
        "<Say>Disconnected</Say>"
        "</Response>"
    )


@router.api_route("/twiml", methods=["GET", "POST"])
async def twiml() -> Response:
    settings = get_settings()
    if not settings.public_base_url:
        raise HTTPException(status_code=500, detail="PUBLIC_URL not configured")

    stream_url = _to_ws_url(settings.public_base_url.rstrip("/")) + "/call"
    return _twiml_response(_twiml_connect_stream(stream_url=stream_url))


def get_twilio_client():
    return build_twilio_client()


def get_twilio_cfg():
    return get_twilio_config()


@router.post("/twilio/call", response_model=OutboundCallResponse)
async def create_outbound_call(
    payload: OutboundCallRequest,
    twilio_client=Depends(get_twilio_client),
    cfg=Depends(get_twilio_cfg),
) -> OutboundCallResponse:
    from_number = payload.from_ or cfg.from_number
    if not payload.to or not from_number:
        raise HTTPException(status_code=400, detail="Missing 'to' or 'from' phone number")

    try:
        # Twilio SDK calls block.
        call = await asyncio.to_thread(
            twilio_client.calls.create,
            to=payload.to,
            from_=from_number,
            url=cfg.twiml_url,
            method="POST",
        )
    except Exception as exc:
        LOGGER.exception("Error creating outbound call: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc) or "Failed to create call") from exc

    return OutboundCallResponse(
        call_sid=str(call.sid),
        status=getattr(call, "status", None),
        to=payload.to,
        from_=from_number,
    )
