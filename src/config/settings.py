"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
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

    log_level: str = Field(default="INFO")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/calls.db",
        description="SQLAlchemy connection string.",
    )

    # Migrations / schema
    auto_create_db_schema: bool = Field(
        default=True,
        description="If true, creates tables automatically on startup (useful for local/dev).",
    )

    # Twilio (Voice + SMS)
    twilio_account_sid: str | None = Field(default=None)
    twilio_auth_token: str | None = Field(default=None)
    twilio_from_number: str | None = Field(default=None, description="E.164, e.g. +1555...")
    public_base_url: str | None = Field(
        default=None,
        description="Public base URL for Twilio webhooks (e.g. https://<ngrok>.ngrok-free.app).",
    )
    twilio_say_voice: str = Field(default="alice")
    twilio_say_language: str = Field(default="en-US")
    twilio_recording_format: Literal["mp3", "wav"] = Field(
        default="mp3",
        description="Media format requested when downloading a Twilio recording.",
    )

    # Speech recognition (Deepgram pre-recorded API)
    deepgram_api_key: str | None = Field(default=None)
    deepgram_base_url: str = Field(default="https://api.deepgram.com")
    deepgram_model: str = Field(default="nova-2")
    http_timeout_seconds: float = Field(default=30.0, gt=0)

    # Recording webhook
    recording_settle_seconds: float = Field(
        default=3.0,
        ge=0.0,
        description="Delay before fetching a recording so Twilio can finalize the audio.",
    )
    transcription_max_retries: int = Field(default=3, ge=0)
    transcription_backoff_seconds: float = Field(default=0.5, ge=0.0)
    transcription_backoff_max_seconds: float = Field(default=8.0, ge=0.0)

    # Fallback escalation
    fallback_sms_body: str = Field(
        default=(
            "We called to check on your medications but could not reach you. "
            "Please call us back or take your medications as prescribed."
        ),
    )

    data_dir: Path = Field(default=Path("./data"))

    @field_validator("data_dir")
    @classmethod
    def ensure_data_dir(cls, value: Path) -> Path:
        value.mkdir(parents=True, exist_ok=True)
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
