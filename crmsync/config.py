"""
CRM Sync — Centralized configuration.

Loads all settings from .env and validates required keys.
Every other module reads its defaults from here, lazily.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from crmsync/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # CRM backend (REST + Socket.IO share the same origin)
    CRM_API_URL: str = "http://localhost:5001"
    CRM_API_TOKEN: str

    # HTTP timeouts
    REQUEST_TIMEOUT_SECONDS: float = 15.0
    SYNC_TIMEOUT_SECONDS: float = 300.0   # Google Calendar / Tasks sync is slow

    # Socket.IO reconnection (the transport retries, we only configure it)
    SOCKET_RECONNECTION_ATTEMPTS: int = 5
    SOCKET_RECONNECTION_DELAY_MS: int = 1000

    # Transient UI state
    HIGHLIGHT_SECONDS: float = 3.0
    TOAST_SECONDS: float = 5.0
    TOAST_LIMIT: int = 5

    # Re-fetch every task on contact-updated instead of patching locally
    RESYNC_ON_CONTACT_UPDATE: bool = False

    # SQLite (durable user preferences)
    DATABASE_PATH: str = "data/crmsync.db"
    USER_ID: str = "default"

    # Telegram toast relay (optional)
    TELEGRAM_BOT_TOKEN: str = ""
    TELEGRAM_CHAT_ID: int = 0

    @field_validator(
        "REQUEST_TIMEOUT_SECONDS", "SYNC_TIMEOUT_SECONDS",
        "HIGHLIGHT_SECONDS", "TOAST_SECONDS",
        mode="before",
    )
    @classmethod
    def parse_seconds(cls, v: str | float) -> float:
        return float(v)

    @field_validator(
        "SOCKET_RECONNECTION_ATTEMPTS", "SOCKET_RECONNECTION_DELAY_MS",
        "TOAST_LIMIT", "TELEGRAM_CHAT_ID",
        mode="before",
    )
    @classmethod
    def parse_int(cls, v: str | int) -> int:
        if isinstance(v, str) and not v.strip():
            return 0
        return int(v)

    @field_validator("RESYNC_ON_CONTACT_UPDATE", mode="before")
    @classmethod
    def parse_flag(cls, v: str | bool) -> bool:
        if isinstance(v, bool):
            return v
        return str(v).strip().lower() in ("1", "true", "yes", "on")


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    token = os.getenv("CRM_API_TOKEN", "")

    if not token or token.startswith("your-"):
        print("ERROR: CRM_API_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        CRM_API_URL=os.getenv("CRM_API_URL", "http://localhost:5001"),
        CRM_API_TOKEN=token,
        REQUEST_TIMEOUT_SECONDS=os.getenv("REQUEST_TIMEOUT_SECONDS", "15"),
        SYNC_TIMEOUT_SECONDS=os.getenv("SYNC_TIMEOUT_SECONDS", "300"),
        SOCKET_RECONNECTION_ATTEMPTS=os.getenv("SOCKET_RECONNECTION_ATTEMPTS", "5"),
        SOCKET_RECONNECTION_DELAY_MS=os.getenv("SOCKET_RECONNECTION_DELAY_MS", "1000"),
        HIGHLIGHT_SECONDS=os.getenv("HIGHLIGHT_SECONDS", "3"),
        TOAST_SECONDS=os.getenv("TOAST_SECONDS", "5"),
        TOAST_LIMIT=os.getenv("TOAST_LIMIT", "5"),
        RESYNC_ON_CONTACT_UPDATE=os.getenv("RESYNC_ON_CONTACT_UPDATE", "false"),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/crmsync.db"),
        USER_ID=os.getenv("USER_ID", "default"),
        TELEGRAM_BOT_TOKEN=os.getenv("TELEGRAM_BOT_TOKEN", ""),
        TELEGRAM_CHAT_ID=os.getenv("TELEGRAM_CHAT_ID", "0"),
    )


# Singleton — imported by all other modules as:
#   from crmsync.config import settings
settings = _load_settings()
