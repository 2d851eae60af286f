# triage/notifier.py
"""
📡 WhatsApp Notifier: Twilio Messages API transport
- Uses the 2010-04-01 Messages endpoint (form-encoded, basic auth)
- One client per process, built from settings at startup and passed around
- Fails fast on missing credentials; never retries
"""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

import httpx

from .config import Settings, settings
from .errors import ConfigurationError, TransportError, ValidationError
from .runtime import get_logger, whatsapp_address

logger = get_logger("notifier")

PROVIDER = "twilio"
MAX_BODY_CHARS = 1600
DELIVERED_STATES = {"queued", "accepted", "scheduled", "sending", "sent", "delivered", "read"}


# =========================
# Small helpers
# =========================
def _extract_error_body(resp: httpx.Response) -> Any:
    """Parse JSON body if available; fallback to plain text."""
    try:
        return resp.json()
    except ValueError:
        return (resp.text or "").strip()


def _summarize_error_body(body: Any) -> str:
    if body is None:
        return ""
    if isinstance(body, dict):
        for key in ("message", "error", "detail", "error_message"):
            value = body.get(key)
            if value not in (None, ""):
                return str(value)
        return str(body)
    return str(body)


class WhatsAppNotifier:
    def __init__(
        self,
        *,
        account_sid: Optional[str],
        auth_token: Optional[str],
        from_number: Optional[str],
        api_base: str = "https://api.twilio.com/2010-04-01",
        timeout: float = 15.0,
        dry_run: bool = False,
        http: Optional[httpx.Client] = None,
    ) -> None:
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.api_base = api_base.rstrip("/")
        self.dry_run = dry_run
        self.http = http or httpx.Client(timeout=timeout)

        if self.missing_settings():
            logger.warning(
                "Twilio credentials are not fully configured (%s). WhatsApp replies will fail until they are set.",
                ", ".join(self.missing_settings()),
            )

    @classmethod
    def from_settings(cls, s: Optional[Settings] = None, http: Optional[httpx.Client] = None) -> "WhatsAppNotifier":
        s = s or settings()
        return cls(
            account_sid=s.TWILIO_ACCOUNT_SID,
            auth_token=s.TWILIO_AUTH_TOKEN,
            from_number=s.TWILIO_WHATSAPP_NUMBER,
            api_base=s.TWILIO_API_BASE,
            timeout=s.TWILIO_TIMEOUT,
            dry_run=s.TWILIO_DRY_RUN,
            http=http,
        )

    def missing_settings(self) -> List[str]:
        missing = []
        if not self.account_sid:
            missing.append("TWILIO_ACCOUNT_SID")
        if not self.auth_token:
            missing.append("TWILIO_AUTH_TOKEN")
        if not self.from_number:
            missing.append("TWILIO_WHATSAPP_NUMBER")
        return missing

    @property
    def configured(self) -> bool:
        return not self.missing_settings()

    @property
    def messages_url(self) -> str:
        return f"{self.api_base}/Accounts/{self.account_sid}/Messages.json"

    def close(self) -> None:
        self.http.close()

    def notify(self, destination: str, body: str) -> Dict[str, Any]:
        """
        Send one WhatsApp message. Returns {"status", "sid", "raw"}.
        Raises ConfigurationError, ValidationError or TransportError.
        """
        missing = self.missing_settings()
        if missing:
            raise ConfigurationError(
                "Twilio is not configured. Please set "
                + ", ".join(missing)
                + " in your .env file.",
                missing=missing,
            )

        to = whatsapp_address(destination)
        if not to:
            raise ValidationError(f'Recipient must look like "whatsapp:+<E.164>"; got "{destination}"')
        sender = whatsapp_address(self.from_number)
        if not sender:
            raise ConfigurationError(
                f'TWILIO_WHATSAPP_NUMBER must look like "whatsapp:+<E.164>"; got "{self.from_number}"',
                missing=["TWILIO_WHATSAPP_NUMBER"],
            )
        text = (body or "").strip()
        if not text:
            raise ValidationError("Message body is empty")
        if len(text) > MAX_BODY_CHARS:
            raise ValidationError(f"Message body exceeds {MAX_BODY_CHARS} characters")

        data = {"From": sender, "To": to, "Body": text}

        if self.dry_run:
            logger.info("[DRY RUN] POST %s data=%s", self.messages_url, data)
            return {"status": "queued", "sid": f"SM_fake_{int(time.time())}", "raw": {}}

        logger.info("📤 Sending WhatsApp → %s: %s...", to, text[:60])
        try:
            resp = self.http.post(self.messages_url, data=data, auth=(self.account_sid, self.auth_token))
        except httpx.HTTPError as e:
            logger.error("Failed to send WhatsApp message to %s: %s", to, e)
            raise TransportError(
                f"Failed to send WhatsApp message via Twilio: {e}",
                provider=PROVIDER,
            ) from e

        if resp.is_error:
            err_body = _extract_error_body(resp)
            summary = _summarize_error_body(err_body)
            logger.error("Twilio %s error body: %s", resp.status_code, resp.text)
            message = f"Failed to send WhatsApp message via Twilio: HTTP {resp.status_code}"
            if summary:
                message = f"{message}: {summary}"
            raise TransportError(message, provider=PROVIDER, status_code=resp.status_code, body=err_body)

        try:
            payload = resp.json()
        except ValueError:
            payload = {"raw": resp.text}

        sid = payload.get("sid")
        provider_status = str(payload.get("status") or "queued").lower()
        if provider_status not in DELIVERED_STATES:
            raise TransportError(
                f"Failed to send WhatsApp message via Twilio: status={provider_status}",
                provider=PROVIDER,
                status_code=resp.status_code,
                body=payload,
            )
        logger.info("WhatsApp message sent successfully to %s (sid=%s)", to, sid)
        return {"status": "sent", "sid": sid, "raw": payload}
