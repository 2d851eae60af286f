# triage/ai/drafter.py
from __future__ import annotations

import json
from typing import Optional

from ..config import PLACEHOLDER_CLIENT_NAME
from ..errors import ValidationError
from ..models import ReplyDraft
from ..runtime import get_logger
from .client import AIClient

logger = get_logger("ai.drafter")

SYSTEM_PROMPT = (
    "You draft replies to customer inquiries on behalf of a small business. "
    "Given the client's name and a summary of their query, write a polite, helpful "
    "draft reply addressed to the client. Do not promise prices, dates or facts "
    "that are not in the query. Reply with a single JSON object with one string key: replyMessage."
)


class ReplyDrafter:
    def __init__(self, client: AIClient) -> None:
        self.client = client

    def draft(self, client_name: Optional[str], query: Optional[str]) -> ReplyDraft:
        name = (client_name or "").strip() or PLACEHOLDER_CLIENT_NAME
        query = (query or "").strip()
        if not query:
            raise ValidationError("A query is required to draft a reply.")

        user_msg = json.dumps({"clientName": name, "query": query}, ensure_ascii=False)
        draft = self.client.complete_json(
            system=SYSTEM_PROMPT,
            user=user_msg,
            schema=ReplyDraft,
            task="Reply generation",
        )
        logger.info("✍️ Drafted reply for %s (%d chars)", name, len(draft.reply_message))
        return draft
