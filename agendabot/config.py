"""
Agenda Bot — Centralized configuration.

Loads all settings from .env and validates required keys.
Every other module reads its knobs from here.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator, model_validator

# Load .env from project root (one level up from agendabot/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str

    # Users allowed to run mutating commands (/addact, /extend, ...)
    ADMIN_USER_IDS: list[int] = []

    # All window math happens in this zone
    TIMEZONE: str = "Asia/Manila"

    # SQLite
    DATABASE_PATH: str = "data/agenda.db"

    # Pre-multi-tenant snapshot ({"activities": [...]})
    LEGACY_ACTIVITIES_PATH: str = "data/activities.json"
    MIGRATE_LEGACY: bool = True

    # Reminder gates
    MORNING_REMINDER_HOUR: int = 8
    TODAY_REMINDER_HOUR: int = 7
    URGENT_BAND_MIN: int = 28
    URGENT_BAND_MAX: int = 31

    # Tick cadence
    TICK_INTERVAL_SECONDS: int = 60

    @field_validator("ADMIN_USER_IDS", mode="before")
    @classmethod
    def parse_user_ids(cls, v: str | list[int]) -> list[int]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [int(uid.strip()) for uid in v.split(",") if uid.strip()]
        return []

    @field_validator("MIGRATE_LEGACY", mode="before")
    @classmethod
    def parse_flag(cls, v: str | bool) -> bool:
        if isinstance(v, bool):
            return v
        return str(v).strip().lower() in ("1", "true", "yes", "on")

    @field_validator(
        "MORNING_REMINDER_HOUR", "TODAY_REMINDER_HOUR", mode="before",
    )
    @classmethod
    def parse_hour(cls, v: str | int) -> int:
        hour = int(v)
        if not 0 <= hour <= 23:
            raise ValueError(f"Hour out of range: {hour}")
        return hour

    @model_validator(mode="after")
    def check_band(self) -> Settings:
        if self.URGENT_BAND_MIN > self.URGENT_BAND_MAX:
            raise ValueError("URGENT_BAND_MIN must not exceed URGENT_BAND_MAX")
        return self


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("TELEGRAM_BOT_TOKEN", "")

    if not token or token.startswith("your-"):
        print("ERROR: TELEGRAM_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        TELEGRAM_BOT_TOKEN=token,
        ADMIN_USER_IDS=os.getenv("ADMIN_USER_IDS", ""),
        TIMEZONE=os.getenv("TIMEZONE", "Asia/Manila"),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/agenda.db"),
        LEGACY_ACTIVITIES_PATH=os.getenv("LEGACY_ACTIVITIES_PATH", "data/activities.json"),
        MIGRATE_LEGACY=os.getenv("MIGRATE_LEGACY", "true"),
        MORNING_REMINDER_HOUR=os.getenv("MORNING_REMINDER_HOUR", "8"),
        TODAY_REMINDER_HOUR=os.getenv("TODAY_REMINDER_HOUR", "7"),
        URGENT_BAND_MIN=int(os.getenv("URGENT_BAND_MIN", "28")),
        URGENT_BAND_MAX=int(os.getenv("URGENT_BAND_MAX", "31")),
        TICK_INTERVAL_SECONDS=int(os.getenv("TICK_INTERVAL_SECONDS", "60")),
    )


# Singleton — imported by all other modules as:
#   from agendabot.config import settings
settings = _load_settings()
