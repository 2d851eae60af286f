# triage/form.py
"""
Interactive triage form
-----------------------
Server-side state for one operator working through one message:

    IDLE → EXTRACTING → EXTRACTED → DRAFTING → DRAFTED → EXPORTING → EXPORTED

Every forward step is an explicit call. Fields stay editable the whole time;
when an AI call returns, its result replaces the fields wholesale (last writer
wins). A failed step drops back to the last stable state and raises an issue
overlay that the next edit clears. reset() goes back to IDLE from anywhere.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from .errors import TriageError, ValidationError, is_credential_problem
from .models import ExportRow, ExtractedRecord, Source
from .runtime import get_logger, iso_now

logger = get_logger("form")


class FormState(str, Enum):
    IDLE = "idle"
    EXTRACTING = "extracting"
    EXTRACTED = "extracted"
    DRAFTING = "drafting"
    DRAFTED = "drafted"
    EXPORTING = "exporting"
    EXPORTED = "exported"


IN_FLIGHT = {FormState.EXTRACTING, FormState.DRAFTING, FormState.EXPORTING}

EDITABLE_FIELDS = {
    "clientName": "client_name",
    "phoneNumber": "phone_number",
    "query": "query",
    "client_name": "client_name",
    "phone_number": "phone_number",
}

AI_KEY_MESSAGE = "Your AI API key is missing or invalid. Please check your .env configuration."
EXTRACT_FAILED_MESSAGE = "The AI could not process the message. Please try again."
DRAFT_FAILED_MESSAGE = "The AI could not generate a reply. Please try again."
EXPORT_FAILED_MESSAGE = (
    "An unknown error occurred. Make sure your environment variables are set up correctly."
)
OPERATOR_REQUIRED_MESSAGE = 'Please provide a name in the "Updated By" field before exporting.'


@dataclass
class FormIssue:
    stage: str
    title: str
    message: str
    details: str
    credential: bool

    def as_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "title": self.title,
            "message": self.message,
            "details": self.details,
            "credential": self.credential,
        }


class InteractiveForm:
    def __init__(
        self,
        *,
        extractor: Any,
        drafter: Any,
        ledger: Any,
        operator: str = "",
        source: Source | str = Source.WHATSAPP,
        message: str = "",
    ) -> None:
        self.extractor = extractor
        self.drafter = drafter
        self.ledger = ledger

        self.message = message
        self.record: Optional[ExtractedRecord] = None
        self.reply = ""
        self.operator = operator
        self.source = Source(source)
        self.state = FormState.IDLE
        self.issue: Optional[FormIssue] = None
        self.export_result: Optional[Dict[str, Any]] = None
        self.updated_at = iso_now()

        self._lock = threading.RLock()
        self._generation = 0

    # ─────────────────────── edits ───────────────────────
    def _touch(self) -> None:
        self.issue = None
        self.updated_at = iso_now()

    def set_message(self, text: str) -> None:
        with self._lock:
            self.message = text or ""
            self._touch()

    def edit_field(self, name: str, value: str) -> ExtractedRecord:
        attr = EDITABLE_FIELDS.get(name)
        if attr is None:
            raise ValidationError(f"Unknown field '{name}'")
        with self._lock:
            if self.record is None:
                raise ValidationError("Nothing has been extracted yet.")
            self.record = self.record.model_copy(update={attr: value or ""})
            self._touch()
            return self.record

    def set_reply(self, text: str) -> None:
        with self._lock:
            self.reply = text or ""
            self._touch()

    def set_operator(self, name: str) -> None:
        with self._lock:
            self.operator = name or ""
            self._touch()

    def set_source(self, source: str) -> None:
        try:
            value = Source(source)
        except ValueError:
            raise ValidationError(
                f"Unknown source '{source}'. Use one of: {', '.join(s.value for s in Source)}"
            ) from None
        with self._lock:
            self.source = value
            self._touch()

    def reset(self) -> None:
        with self._lock:
            self._generation += 1
            self.message = ""
            self.record = None
            self.reply = ""
            self.export_result = None
            self.state = FormState.IDLE
            self._touch()

    # ─────────────────────── transitions ───────────────────────
    def _begin(self, target: FormState) -> int:
        if self.state in IN_FLIGHT:
            raise ValidationError(f"Cannot start {target.value}: {self.state.value} is still in progress.")
        self.state = target
        self._touch()
        return self._generation

    def _fail(self, generation: int, fallback: FormState, issue: FormIssue) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self.state = fallback
            self.issue = issue

    def extract(self) -> ExtractedRecord:
        with self._lock:
            if not self.message.strip():
                raise ValidationError("Please enter a message to process.")
            gen = self._begin(FormState.EXTRACTING)
            self.record = None
            self.reply = ""
            self.export_result = None
            message = self.message

        try:
            record = self.extractor.extract(message)
        except Exception as e:
            self._fail(gen, FormState.IDLE, self._ai_issue("extract", "Extraction Failed", EXTRACT_FAILED_MESSAGE, e))
            logger.warning("Extraction failed: %s", e)
            raise

        with self._lock:
            if gen == self._generation:
                self.record = record
                self.state = FormState.EXTRACTED
                self.updated_at = iso_now()
        return record

    def draft(self) -> str:
        with self._lock:
            if self.record is None:
                raise ValidationError("Extract the message details before generating a reply.")
            gen = self._begin(FormState.DRAFTING)
            self.reply = ""
            self.export_result = None
            name, query = self.record.client_name, self.record.query

        try:
            draft = self.drafter.draft(name, query)
        except Exception as e:
            self._fail(gen, FormState.EXTRACTED, self._ai_issue("draft", "Generation Failed", DRAFT_FAILED_MESSAGE, e))
            logger.warning("Reply generation failed: %s", e)
            raise

        with self._lock:
            if gen == self._generation:
                self.reply = draft.reply_message
                self.state = FormState.DRAFTED
                self.updated_at = iso_now()
        return draft.reply_message

    def export(self) -> Dict[str, Any]:
        with self._lock:
            if self.record is None or not self.reply.strip() or not self.operator.strip():
                raise ValidationError(OPERATOR_REQUIRED_MESSAGE)
            gen = self._begin(FormState.EXPORTING)
            row = ExportRow.build(
                self.record,
                self.reply,
                updated_by=self.operator.strip(),
                source=self.source,
            )

        try:
            result = self.ledger.append(row)
        except Exception as e:
            message = str(e) if isinstance(e, TriageError) and str(e) else EXPORT_FAILED_MESSAGE
            issue = FormIssue(
                stage="export",
                title="Export Failed",
                message=message,
                details=str(e),
                credential=is_credential_problem(e),
            )
            self._fail(gen, FormState.DRAFTED, issue)
            logger.warning("Export failed: %s", e)
            raise

        with self._lock:
            if gen == self._generation:
                self.export_result = result
                self.state = FormState.EXPORTED
                self.updated_at = iso_now()
        return result

    @staticmethod
    def _ai_issue(stage: str, title: str, generic: str, err: BaseException) -> FormIssue:
        credential = is_credential_problem(err)
        if isinstance(err, ValidationError):
            message = str(err)
        elif credential:
            message = AI_KEY_MESSAGE
        else:
            message = generic
        return FormIssue(stage=stage, title=title, message=message, details=str(err), credential=credential)

    # ─────────────────────── view ───────────────────────
    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            busy = self.state in IN_FLIGHT
            return {
                "state": self.state.value,
                "message": self.message,
                "extracted": self.record.model_dump(by_alias=True) if self.record else None,
                "replyMessage": self.reply,
                "updatedBy": self.operator,
                "source": self.source.value,
                "issue": self.issue.as_dict() if self.issue else None,
                "exportResult": self.export_result,
                "updatedAt": self.updated_at,
                "actions": {
                    "extract": not busy and bool(self.message.strip()),
                    "draft": not busy and self.record is not None,
                    "export": (
                        not busy
                        and self.record is not None
                        and bool(self.reply.strip())
                        and bool(self.operator.strip())
                    ),
                },
            }
