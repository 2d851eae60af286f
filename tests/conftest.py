import json
import os
import sys
import threading
from types import SimpleNamespace

# Ensure project root is in sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest

from triage import error_sink
from triage.config import settings
from triage.dispatch import BackgroundDispatcher
from triage.models import ExtractedRecord, ReplyDraft
from triage.pipeline import TriagePipeline
from triage.services import Services

_ENV_KEYS = [
    "OPENAI_API_KEY",
    "OPENAI_MODEL",
    "TWILIO_ACCOUNT_SID",
    "TWILIO_AUTH_TOKEN",
    "TWILIO_WHATSAPP_NUMBER",
    "TWILIO_DRY_RUN",
    "GOOGLE_SHEETS_CLIENT_EMAIL",
    "GOOGLE_SHEETS_PRIVATE_KEY",
    "GOOGLE_SHEET_ID",
    "GOOGLE_SHEET_NAME",
    "WEBHOOK_TOKEN",
    "WHATSAPP_REQUIRE_TO",
    "FORM_DEFAULT_OPERATOR",
    "FORM_MAX_SESSIONS",
    "FORM_SESSION_TTL",
    "ERROR_SINK_SIZE",
]


@pytest.fixture(autouse=True)
def _reset_env():
    for key in _ENV_KEYS:
        os.environ.pop(key, None)
    settings.cache_clear()
    error_sink.clear()
    yield
    settings.cache_clear()
    error_sink.clear()


# ─────────────────────── OpenAI SDK stand-in ───────────────────────
class FakeCompletions:
    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        if not isinstance(reply, str):
            reply = json.dumps(reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=reply))])


def fake_sdk(*replies):
    completions = FakeCompletions(replies)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


# ─────────────────────── Pipeline collaborators ───────────────────────
class StubExtractor:
    def __init__(self, delay=0.0, error=None):
        self.delay = delay
        self.error = error
        self.calls = []

    def extract(self, message):
        self.calls.append(message)
        if self.delay:
            threading.Event().wait(self.delay)
        if self.error:
            raise self.error
        return ExtractedRecord(
            client_name="John Doe",
            phone_number="555-123-4567",
            query="Asks about enterprise plan pricing.",
            message_details=message,
        )


class StubDrafter:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def draft(self, client_name, query):
        self.calls.append((client_name, query))
        if self.error:
            raise self.error
        return ReplyDraft(reply_message=f"Hi {client_name}, thanks for reaching out!")


class StubNotifier:
    configured = True

    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def notify(self, destination, body):
        self.calls.append((destination, body))
        if self.error:
            raise self.error
        return {"status": "sent", "sid": "SM123", "raw": {}}

    def missing_settings(self):
        return []

    def close(self):
        pass


class StubLedger:
    configured = True

    def __init__(self, error=None):
        self.error = error
        self.rows = []
        self.done = threading.Event()

    def append(self, row):
        if self.error:
            self.done.set()
            raise self.error
        self.rows.append(row.stamped())
        self.done.set()
        return {"ok": True, "updatedRange": f"Sheet1!A{len(self.rows) + 1}:G{len(self.rows) + 1}"}

    def missing_settings(self):
        return []


def make_services(extractor=None, drafter=None, notifier=None, ledger=None):
    extractor = extractor or StubExtractor()
    drafter = drafter or StubDrafter()
    notifier = notifier or StubNotifier()
    ledger = ledger or StubLedger()
    return Services(
        ai=SimpleNamespace(configured=True),
        extractor=extractor,
        drafter=drafter,
        notifier=notifier,
        ledger=ledger,
        pipeline=TriagePipeline(extractor=extractor, drafter=drafter, notifier=notifier, ledger=ledger),
        dispatcher=BackgroundDispatcher(),
    )
