"""
Configuration loaded from environment variables (SCHEMEDOC_*) or a .env file.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):

    model_config = SettingsConfigDict(
        env_prefix="SCHEMEDOC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Sessions ───────────────────────────────────────────────────────────

    sessions_dir: Path = Field(default_factory=lambda: Path.home() / ".schemedoc" / "sessions")
    persist_sessions: bool = False

    # ── Documents ──────────────────────────────────────────────────────────

    # Fence languages whose blocks are evaluated
    example_languages: list[str] = ["scheme-examples", "racket-examples"]
    # Fence language of the rendered transcripts
    transcript_language: str = "scheme"
    prompt: str = "> "

    # ── Logging ────────────────────────────────────────────────────────────

    log_level: str = "WARNING"


@lru_cache
def get_settings() -> Settings:
    return Settings()
