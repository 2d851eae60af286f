# triage/whatsapp_webhook.py
"""
WhatsApp (Twilio) inbound webhook
---------------------------------
POST /api/whatsapp   validate Body/From, ack with empty TwiML right away,
                     run extract → draft → notify → log in the background
GET  /api/whatsapp   plain-text setup instructions
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException

from .auth import require_webhook_token
from .config import settings
from .runtime import get_logger

logger = get_logger("whatsapp_webhook")

router = APIRouter(prefix="/api/whatsapp", tags=["WhatsApp"])

EMPTY_TWIML = '<?xml version="1.0" encoding="UTF-8"?><Response></Response>'

SETUP_INSTRUCTIONS = """WhatsApp webhook is running.

To connect it:
1. In the Twilio console open Messaging > Try it out > Send a WhatsApp message
   (or your WhatsApp sender's configuration).
2. Set "When a message comes in" to POST https://<your-host>/api/whatsapp
3. Set TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN and TWILIO_WHATSAPP_NUMBER
   (e.g. whatsapp:+14155238886) so replies can be sent.
4. Set OPENAI_API_KEY for extraction and reply drafting.
5. Set GOOGLE_SHEETS_CLIENT_EMAIL, GOOGLE_SHEETS_PRIVATE_KEY, GOOGLE_SHEET_ID
   and GOOGLE_SHEET_NAME to log every interaction to a spreadsheet.

Incoming messages are acknowledged immediately; the reply is generated,
sent and logged in the background.
"""


class InvalidPayload(ValueError):
    pass


# === BODY PARSING ===
async def _parse_body(request: Request) -> Dict[str, Any]:
    """Parse request body supporting both form data (Twilio default) and JSON."""
    content_type = request.headers.get("content-type", "").lower()
    try:
        if "application/json" in content_type:
            body = await request.json()
            return dict(body) if isinstance(body, dict) else {}
        form = await request.form()
        return {k: (v if isinstance(v, str) else str(v)) for k, v in form.items()}
    except (ValueError, MultiPartException) as e:
        raise InvalidPayload(str(e)) from e
    except StarletteHTTPException as e:
        # Starlette turns multipart parse failures into a 400 inside an app
        raise InvalidPayload(str(e.detail)) from e


def _field(data: Dict[str, Any], name: str) -> str:
    value = data.get(name)
    return str(value).strip() if value is not None else ""


def _missing_fields(data: Dict[str, Any]) -> list[str]:
    required = ["Body", "From"]
    if settings().WHATSAPP_REQUIRE_TO:
        required.append("To")
    return [name for name in required if not _field(data, name)]


# === FASTAPI ROUTES ===
@router.get("", response_class=PlainTextResponse)
async def whatsapp_setup_info():
    return PlainTextResponse(SETUP_INSTRUCTIONS)


@router.post("", dependencies=[Depends(require_webhook_token)])
async def whatsapp_inbound(request: Request):
    try:
        try:
            data = await _parse_body(request)
        except InvalidPayload as e:
            logger.warning("Unparseable WhatsApp webhook payload: %s", e)
            return JSONResponse({"error": "Invalid webhook payload."}, status_code=400)

        missing = _missing_fields(data)
        if missing:
            logger.warning("WhatsApp webhook rejected; missing %s", ", ".join(missing))
            return JSONResponse(
                {"error": f"Invalid webhook payload. Missing {' or '.join(missing)}."},
                status_code=400,
            )

        message = str(data["Body"])
        sender = _field(data, "From")
        logger.info("📥 WhatsApp inbound from %s (%d chars)", sender, len(message))

        services = request.app.state.services
        services.dispatcher.spawn(f"whatsapp:{sender}", services.pipeline.run, message, sender)

        return Response(content=EMPTY_TWIML, media_type="text/xml")
    except Exception as e:
        logger.error("WhatsApp webhook error: %s", e, exc_info=True)
        return JSONResponse(
            {"error": "Internal Server Error", "details": str(e) or e.__class__.__name__},
            status_code=500,
        )
