"""Process-wide integration clients, built once at startup and handed to every route."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .ai import AIClient, FieldExtractor, ReplyDrafter
from .config import Settings, settings
from .dispatch import BackgroundDispatcher
from .ledger import SheetsLedger
from .notifier import WhatsAppNotifier
from .pipeline import TriagePipeline


@dataclass
class Services:
    ai: AIClient
    extractor: FieldExtractor
    drafter: ReplyDrafter
    notifier: WhatsAppNotifier
    ledger: SheetsLedger
    pipeline: TriagePipeline
    dispatcher: BackgroundDispatcher

    def integrations(self) -> Dict[str, Any]:
        return {
            "ai": self.ai.configured,
            "whatsapp": {"configured": self.notifier.configured, "missing": self.notifier.missing_settings()},
            "sheets": {"configured": self.ledger.configured, "missing": self.ledger.missing_settings()},
        }

    def close(self) -> None:
        self.notifier.close()


def build_services(
    s: Optional[Settings] = None,
    *,
    ai: Optional[AIClient] = None,
    notifier: Optional[WhatsAppNotifier] = None,
    ledger: Optional[SheetsLedger] = None,
) -> Services:
    s = s or settings()
    ai = ai or AIClient.from_settings(s)
    notifier = notifier or WhatsAppNotifier.from_settings(s)
    ledger = ledger or SheetsLedger.from_settings(s)
    extractor = FieldExtractor(ai)
    drafter = ReplyDrafter(ai)
    return Services(
        ai=ai,
        extractor=extractor,
        drafter=drafter,
        notifier=notifier,
        ledger=ledger,
        pipeline=TriagePipeline(extractor=extractor, drafter=drafter, notifier=notifier, ledger=ledger),
        dispatcher=BackgroundDispatcher(),
    )
