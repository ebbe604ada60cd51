"""Built-in tools offered to the realtime model."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from config.settings import get_settings
from relay.functions import FunctionDispatcher

LOGGER = logging.getLogger(__name__)

WEATHER_SCHEMA: dict[str, Any] = {
    "type": "function",
    "description": "Get the current weather at the given coordinates.",
    "parameters": {
        "type": "object",
        "properties": {
            "latitude": {"type": "number"},
            "longitude": {"type": "number"},
        },
        "required": ["latitude", "longitude"],
    },
}


async def get_weather_from_coords(latitude: float, longitude: float) -> dict[str, Any]:
    settings = get_settings()
    params = {
        "latitude": latitude,
        "longitude": longitude,
        "current": "temperature_2m,wind_speed_10m",
    }
    async with httpx.AsyncClient(timeout=10) as client:
        response = await client.get(settings.weather_api_url, params=params)
    try:
        response.raise_for_status()
    except httpx.HTTPError as exc:
        LOGGER.error("Weather lookup failed: %s", exc)
        raise

    current = response.json().get("current") or {}
    return {"temp": current.get("temperature_2m"), "wind_speed": current.get("wind_speed_10m")}


def build_default_dispatcher() -> FunctionDispatcher:
    dispatcher = FunctionDispatcher()
    dispatcher.add("get_weather_from_coords", get_weather_from_coords, WEATHER_SCHEMA)
    return dispatcher
