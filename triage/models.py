# triage/models.py
"""
Data model for one triage interaction.

ExtractedRecord / ReplyDraft are the (strict) shapes the AI backend must
return; ExportRow is the only durable entity, one spreadsheet row.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .runtime import iso_now


class Source(str, Enum):
    WHATSAPP = "whatsapp"
    PHONE = "phone"
    MAIL = "mail"
    EVENTS = "events"
    WEBSITE = "website"


# Fixed spreadsheet column order
LEDGER_COLUMNS: List[str] = [
    "timestamp",
    "updatedBy",
    "source",
    "clientName",
    "phoneNumber",
    "query",
    "replyMessage",
]


class ExtractedRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, strict=True)

    client_name: str = Field(alias="clientName")
    phone_number: str = Field(alias="phoneNumber")
    query: str
    message_details: str = Field(alias="messageDetails")

    @field_validator("client_name", "phone_number", "query")
    @classmethod
    def _trim(cls, v: str) -> str:
        return v.strip()


class ReplyDraft(BaseModel):
    model_config = ConfigDict(populate_by_name=True, strict=True)

    reply_message: str = Field(alias="replyMessage")


class ExportRow(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    timestamp: str
    updated_by: str = Field(alias="updatedBy")
    source: Source
    client_name: str = Field("", alias="clientName")
    phone_number: str = Field("", alias="phoneNumber")
    query: str = ""
    reply_message: str = Field("", alias="replyMessage")

    @classmethod
    def build(
        cls,
        record: ExtractedRecord,
        reply: str,
        *,
        updated_by: str,
        source: Source | str,
        timestamp: Optional[str] = None,
    ) -> "ExportRow":
        return cls(
            timestamp=timestamp or iso_now(),
            updated_by=updated_by,
            source=Source(source),
            client_name=record.client_name,
            phone_number=record.phone_number,
            query=record.query,
            reply_message=reply,
        )

    def stamped(self) -> "ExportRow":
        """Copy with the timestamp set to now (rows are stamped at write time)."""
        return self.model_copy(update={"timestamp": iso_now()})

    def values(self) -> List[str]:
        data = self.model_dump(by_alias=True, mode="json")
        return [data[col] for col in LEDGER_COLUMNS]
