# triage/ai/extractor.py
from __future__ import annotations

import json
from typing import Optional

from ..errors import ValidationError
from ..models import ExtractedRecord
from ..runtime import get_logger
from .client import AIClient

logger = get_logger("ai.extractor")

SYSTEM_PROMPT = (
    "You extract structured contact details from unstructured messages "
    "(chat transcripts, emails, free text). Reply with a single JSON object "
    "with exactly these string keys: clientName, phoneNumber, query, messageDetails.\n"
    "- clientName: the full name of the person writing. Empty string if no name is mentioned.\n"
    "- phoneNumber: any phone number in the message, in a standard format if you are sure, "
    "otherwise exactly as written. Empty string if there is none.\n"
    "- query: a concise, one-sentence summary of the person's main question or request, "
    "in your own words.\n"
    "- messageDetails: the complete, verbatim original message.\n"
    "Never invent a name or number that is not in the message. Never use null."
)


class FieldExtractor:
    def __init__(self, client: AIClient) -> None:
        self.client = client

    def extract(self, message: Optional[str]) -> ExtractedRecord:
        """Turn raw message text into an ExtractedRecord. messageDetails is always the input verbatim."""
        if message is None or not str(message).strip():
            raise ValidationError("Please enter a message to process.")

        user_msg = "Message to analyze (JSON-encoded):\n" + json.dumps({"message": message}, ensure_ascii=False)
        out = self.client.complete_json(
            system=SYSTEM_PROMPT,
            user=user_msg,
            schema=ExtractedRecord,
            task="Message extraction",
        )
        # the model's copy of the message is never trusted
        record = out.model_copy(update={"message_details": message})
        logger.info(
            "🔎 Extracted | name=%s | phone=%s | query=%s",
            bool(record.client_name),
            bool(record.phone_number),
            record.query[:80],
        )
        return record
