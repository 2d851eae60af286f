"""
🧠 Triage Runtime Core
----------------------
Centralized utilities for logging, timestamps, WhatsApp address
normalization and environment introspection.
"""

from __future__ import annotations
import logging
import os
import re
from datetime import datetime, timezone
from typing import Optional

# Internal state flags
_LOGGING_CONFIGURED = False
_CORE_ENV_LOGGED = False
_DIGIT_PATTERN = re.compile(r"\d+")
WHATSAPP_PREFIX = "whatsapp:"


# ────────────────────────────────────────────────
# ENV MASKING + LOGGING CONFIG
# ────────────────────────────────────────────────
def _mask_env_value(value: Optional[str]) -> str:
    """Mask sensitive env values (API keys, tokens, etc.)."""
    if not value:
        return "<missing>"
    trimmed = value.strip()
    if len(trimmed) <= 4:
        return "*" * len(trimmed)
    if len(trimmed) <= 8:
        return f"{trimmed[:2]}...{trimmed[-2:]}"
    return f"{trimmed[:4]}...{trimmed[-4:]}"


def _normalize_level(value: int | str | None) -> int:
    """Normalize string or int log level."""
    if value is None:
        env_level = os.getenv("TRIAGE_LOG_LEVEL")
        if env_level:
            value = env_level
        else:
            return logging.INFO
    if isinstance(value, int):
        return value
    level = logging.getLevelName(value.upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(level: int | str | None = None) -> None:
    """Initialize root logging configuration once."""
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return
    logging.basicConfig(
        level=_normalize_level(level),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    _LOGGING_CONFIGURED = True


def get_logger(name: str = "triage") -> logging.Logger:
    """Return module-specific logger."""
    if not _LOGGING_CONFIGURED:
        configure_logging()
    return logging.getLogger(name)


# ────────────────────────────────────────────────
# CORE ENV LOGGING
# ────────────────────────────────────────────────
def log_core_env() -> None:
    """Logs masked integration settings once per process."""
    global _CORE_ENV_LOGGED
    if _CORE_ENV_LOGGED:
        return
    logger = get_logger("env")

    logger.info(
        "Core env summary:\n"
        "• OpenAI Key=%s | Model=%s\n"
        "• Twilio SID=%s | Token=%s | WhatsApp From=%s | DryRun=%s\n"
        "• Sheets Email=%s | Key=%s | SheetId=%s | Tab=%s\n"
        "• WebhookToken=%s | RequireTo=%s",
        _mask_env_value(os.getenv("OPENAI_API_KEY")),
        os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        _mask_env_value(os.getenv("TWILIO_ACCOUNT_SID")),
        _mask_env_value(os.getenv("TWILIO_AUTH_TOKEN")),
        os.getenv("TWILIO_WHATSAPP_NUMBER") or "<missing>",
        os.getenv("TWILIO_DRY_RUN", "false"),
        os.getenv("GOOGLE_SHEETS_CLIENT_EMAIL") or "<missing>",
        "<present>" if os.getenv("GOOGLE_SHEETS_PRIVATE_KEY") else "<missing>",
        os.getenv("GOOGLE_SHEET_ID") or "<missing>",
        os.getenv("GOOGLE_SHEET_NAME") or "<missing>",
        bool(os.getenv("WEBHOOK_TOKEN")),
        os.getenv("WHATSAPP_REQUIRE_TO", "false"),
    )
    _CORE_ENV_LOGGED = True


# ────────────────────────────────────────────────
# TIME UTILITIES
# ────────────────────────────────────────────────
def utc_now() -> datetime:
    """Return UTC datetime (always timezone-aware)."""
    return datetime.now(timezone.utc)


def iso_now() -> str:
    """Return ISO8601 UTC timestamp with millisecond precision (Z suffix)."""
    return utc_now().isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ────────────────────────────────────────────────
# PHONE UTILITIES
# ────────────────────────────────────────────────
def only_digits(value: str | None) -> str:
    """Extract all digits from a string."""
    if value is None:
        return ""
    return "".join(_DIGIT_PATTERN.findall(str(value)))


def whatsapp_address(value: str | None) -> Optional[str]:
    """
    Normalize a phone / WhatsApp identifier to 'whatsapp:+<E.164>'.
    Accepts 'whatsapp:+1555...', '+1555...', or bare digits with country code.
    Returns None when no plausible E.164 number can be recovered.
    """
    if not value:
        return None
    raw = str(value).strip()
    if raw.lower().startswith(WHATSAPP_PREFIX):
        raw = raw[len(WHATSAPP_PREFIX):].strip()
    digits = only_digits(raw)
    if not 8 <= len(digits) <= 15:
        return None
    return f"{WHATSAPP_PREFIX}+{digits}"
