"""
Application configuration loaded from environment variables.

Uses pydantic-settings for type-safe env var parsing with automatic
.env file loading. The Gemini key is the only secret and is injected via
environment — never hard-coded.

To extend: add new fields here; every field maps to an upper-case env var.
See https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # ─── Core ──────────────────────────────────────────────────────
    environment: str = "development"
    debug: bool = False

    # ─── CORS ──────────────────────────────────────────────────────
    # Comma-separated allowed origins for the web UI.
    cors_origins_str: str = "http://localhost:5173,http://localhost:3000"

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins_str.split(",") if o.strip()]

    # ─── AI ────────────────────────────────────────────────────────
    # Get from https://aistudio.google.com/
    # API_KEY is accepted too, matching the name the web build used.
    gemini_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("GEMINI_API_KEY", "API_KEY"),
    )

    # When True, all AI calls return canned mock responses.
    # Always True in tests. When False, a missing key is a fatal config error.
    ai_mock_mode: bool = False

    # Upper bound for one request/response cycle against Gemini.
    request_timeout_s: float = 30.0

    # ─── Live scanner ──────────────────────────────────────────────
    live_frame_interval_s: float = 1.5
    live_frame_jpeg_quality: int = 50

    # ─── Uploads ───────────────────────────────────────────────────
    max_upload_bytes: int = 10 * 1024 * 1024

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Don't fail on unknown env vars
        populate_by_name=True,
    )


# Module-level singleton — import this everywhere instead of instantiating Settings()
settings = Settings()
