"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")

    # Realtime model connectivity
    openai_api_key: str | None = Field(
        default=None,
        description="Bearer credential for the realtime model and the chat proxy.",
    )
    realtime_url: str = Field(default="wss://api.openai.com/v1/realtime")
    realtime_model: str = Field(default="gpt-4o-realtime-preview-2024-12-17")
    default_voice: str = Field(default="ash")
    model_sample_rate: int = Field(
        default=24000,
        description="Sample rate of the model-side PCM16 audio. Must be a multiple of 8000.",
    )
    handshake_timeout_seconds: float = Field(default=10.0, gt=0)
    function_timeout_seconds: float = Field(default=30.0, gt=0)

    # Backpressure
    model_send_queue_size: int = Field(
        default=512,
        ge=1,
        description="Outbound messages buffered per model link; audio is dropped when full.",
    )
    observer_queue_size: int = Field(
        default=256,
        ge=1,
        description="Events buffered for the observer; events are dropped when full.",
    )

    # Text chat proxy
    chat_model: str = Field(default="gpt-4")
    chat_max_tokens: int = Field(default=500)
    chat_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    chat_system_prompt: str = Field(
        default="You are a helpful AI assistant. Be conversational and friendly."
    )

    # Built-in tools
    weather_api_url: str = Field(default="https://api.open-meteo.com/v1/forecast")

    # Twilio (Voice)
    twilio_account_sid: str | None = Field(default=None)
    twilio_auth_token: str | None = Field(default=None)
    twilio_from_number: str | None = Field(default=None, description="E.164, e.g. +4144...")
    public_base_url: str | None = Field(
        default=None,
        description="Public base URL for Twilio webhooks (e.g. https://<ngrok>.ngrok-free.app).",
    )

    # HTTP server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8081)

    # Web UI
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])

    @field_validator("model_sample_rate")
    @classmethod
    def ensure_telephony_multiple(cls, value: int) -> int:
        if value <= 0 or value % 8000:
            raise ValueError("model_sample_rate must be a positive multiple of 8000")
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
