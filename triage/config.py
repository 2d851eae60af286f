from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

# -----------------------------
# .env Loader
# -----------------------------
from dotenv import load_dotenv

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
ENV_PATH = os.path.join(BASE_DIR, "..", ".env")
load_dotenv(dotenv_path=ENV_PATH, override=True)


# -----------------------------
# Env helpers
# -----------------------------
def env_bool(key: str, default: bool = False) -> bool:
    v = os.getenv(key)
    if v is None:
        return default
    return str(v).strip().lower() in ("1", "true", "yes", "on")


def env_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, default))
    except (TypeError, ValueError):
        return default


def env_float(key: str, default: float) -> float:
    try:
        return float(os.getenv(key, default))
    except (TypeError, ValueError):
        return default


def env_str(key: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(key)
    return v if (v and str(v).strip() != "") else default


# -----------------------------
# Constants
# -----------------------------
SOURCES = ("whatsapp", "phone", "mail", "events", "website")
PLACEHOLDER_CLIENT_NAME = "Valued Customer"
WEBHOOK_OPERATOR = "WhatsApp Bot"
SHEETS_SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]


# -----------------------------
# Settings Object
# -----------------------------
@dataclass(frozen=True)
class Settings:
    OPENAI_API_KEY: Optional[str]
    OPENAI_MODEL: str
    OPENAI_TEMPERATURE: float
    OPENAI_TIMEOUT: float
    OPENAI_MAX_TOKENS: int
    TWILIO_ACCOUNT_SID: Optional[str]
    TWILIO_AUTH_TOKEN: Optional[str]
    TWILIO_WHATSAPP_NUMBER: Optional[str]
    TWILIO_API_BASE: str
    TWILIO_TIMEOUT: float
    TWILIO_DRY_RUN: bool
    GOOGLE_SHEETS_CLIENT_EMAIL: Optional[str]
    GOOGLE_SHEETS_PRIVATE_KEY: Optional[str]
    GOOGLE_SHEET_ID: Optional[str]
    GOOGLE_SHEET_NAME: Optional[str]
    WEBHOOK_TOKEN: Optional[str]
    WHATSAPP_REQUIRE_TO: bool
    BACKGROUND_DRAIN_TIMEOUT: float
    ERROR_SINK_SIZE: int
    FORM_DEFAULT_OPERATOR: str
    FORM_MAX_SESSIONS: int
    FORM_SESSION_TTL: float


@lru_cache(maxsize=1)
def settings() -> Settings:
    return Settings(
        OPENAI_API_KEY=env_str("OPENAI_API_KEY"),
        OPENAI_MODEL=env_str("OPENAI_MODEL", "gpt-4o-mini"),
        OPENAI_TEMPERATURE=env_float("OPENAI_TEMPERATURE", 0.2),
        OPENAI_TIMEOUT=env_float("OPENAI_TIMEOUT", 30.0),
        OPENAI_MAX_TOKENS=env_int("OPENAI_MAX_TOKENS", 600),
        TWILIO_ACCOUNT_SID=env_str("TWILIO_ACCOUNT_SID"),
        TWILIO_AUTH_TOKEN=env_str("TWILIO_AUTH_TOKEN"),
        TWILIO_WHATSAPP_NUMBER=env_str("TWILIO_WHATSAPP_NUMBER"),
        TWILIO_API_BASE=env_str("TWILIO_API_BASE", "https://api.twilio.com/2010-04-01"),
        TWILIO_TIMEOUT=env_float("TWILIO_TIMEOUT", 15.0),
        TWILIO_DRY_RUN=env_bool("TWILIO_DRY_RUN"),
        GOOGLE_SHEETS_CLIENT_EMAIL=env_str("GOOGLE_SHEETS_CLIENT_EMAIL"),
        GOOGLE_SHEETS_PRIVATE_KEY=env_str("GOOGLE_SHEETS_PRIVATE_KEY"),
        GOOGLE_SHEET_ID=env_str("GOOGLE_SHEET_ID"),
        GOOGLE_SHEET_NAME=env_str("GOOGLE_SHEET_NAME"),
        WEBHOOK_TOKEN=env_str("WEBHOOK_TOKEN"),
        WHATSAPP_REQUIRE_TO=env_bool("WHATSAPP_REQUIRE_TO"),
        BACKGROUND_DRAIN_TIMEOUT=env_float("BACKGROUND_DRAIN_TIMEOUT", 30.0),
        ERROR_SINK_SIZE=env_int("ERROR_SINK_SIZE", 100),
        FORM_DEFAULT_OPERATOR=env_str("FORM_DEFAULT_OPERATOR", ""),
        FORM_MAX_SESSIONS=env_int("FORM_MAX_SESSIONS", 200),
        FORM_SESSION_TTL=env_float("FORM_SESSION_TTL", 3600.0),
    )
