# triage/pipeline.py
"""
Webhook pipeline: extract → draft → notify → log.

Each stage feeds the next, so they run strictly in order. The first failure
aborts the remaining stages; the run records which stage it died in.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .ai.drafter import ReplyDrafter
from .ai.extractor import FieldExtractor
from .config import WEBHOOK_OPERATOR
from .errors import TriageError
from .ledger import SheetsLedger
from .models import ExportRow, ExtractedRecord, Source
from .notifier import WhatsAppNotifier
from .runtime import get_logger, iso_now

logger = get_logger("pipeline")


class Stage(str, Enum):
    EXTRACTING = "extracting"
    DRAFTING = "drafting"
    NOTIFYING = "notifying"
    LOGGING = "logging"
    DONE = "done"
    FAILED = "failed"


class PipelineError(TriageError):
    """A stage failed; `run` holds how far the interaction got, `__cause__` the stage's error."""

    def __init__(self, run: "PipelineRun", cause: BaseException) -> None:
        stage = run.failed_stage.value if run.failed_stage else "unknown"
        super().__init__(f"{stage} failed: {cause}")
        self.run = run
        self.cause = cause


@dataclass
class PipelineRun:
    sender: str
    message: str
    stage: Stage = Stage.EXTRACTING
    history: List[Stage] = field(default_factory=list)
    record: Optional[ExtractedRecord] = None
    reply: Optional[str] = None
    sid: Optional[str] = None
    failed_stage: Optional[Stage] = None
    error: Optional[str] = None
    started_at: str = field(default_factory=iso_now)
    finished_at: Optional[str] = None

    def enter(self, stage: Stage) -> None:
        self.stage = stage
        self.history.append(stage)

    def summary(self) -> Dict[str, Any]:
        return {
            "sender": self.sender,
            "stage": self.stage.value,
            "history": [s.value for s in self.history],
            "failed_stage": self.failed_stage.value if self.failed_stage else None,
            "error": self.error,
            "sid": self.sid,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }


class TriagePipeline:
    def __init__(
        self,
        *,
        extractor: FieldExtractor,
        drafter: ReplyDrafter,
        notifier: WhatsAppNotifier,
        ledger: SheetsLedger,
        updated_by: str = WEBHOOK_OPERATOR,
        source: Source = Source.WHATSAPP,
    ) -> None:
        self.extractor = extractor
        self.drafter = drafter
        self.notifier = notifier
        self.ledger = ledger
        self.updated_by = updated_by
        self.source = source

    def run(self, message: str, sender: str) -> PipelineRun:
        """Run every stage in order. The first stage error is raised as PipelineError."""
        run = PipelineRun(sender=sender, message=message)
        try:
            run.enter(Stage.EXTRACTING)
            run.record = self.extractor.extract(message)

            run.enter(Stage.DRAFTING)
            draft = self.drafter.draft(run.record.client_name, run.record.query)
            run.reply = draft.reply_message

            run.enter(Stage.NOTIFYING)
            sent = self.notifier.notify(sender, run.reply)
            run.sid = sent.get("sid")

            run.enter(Stage.LOGGING)
            row = ExportRow.build(
                run.record,
                run.reply,
                updated_by=self.updated_by,
                source=self.source,
            )
            self.ledger.append(row)
        except Exception as e:
            run.failed_stage = run.stage
            run.error = str(e)
            run.enter(Stage.FAILED)
            run.finished_at = iso_now()
            logger.warning("Pipeline for %s aborted while %s: %s", sender, run.failed_stage.value, e)
            raise PipelineError(run, e) from e

        run.enter(Stage.DONE)
        run.finished_at = iso_now()
        logger.info("✅ Pipeline for %s done (sid=%s)", sender, run.sid)
        return run
