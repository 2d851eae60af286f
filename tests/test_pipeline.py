import pytest

from conftest import StubDrafter, StubExtractor, StubLedger, StubNotifier
from triage.errors import TransportError, UpstreamError
from triage.pipeline import PipelineError, Stage, TriagePipeline

SENDER = "whatsapp:+15551234567"


def _pipeline(**overrides):
    parts = dict(
        extractor=StubExtractor(),
        drafter=StubDrafter(),
        notifier=StubNotifier(),
        ledger=StubLedger(),
    )
    parts.update(overrides)
    return TriagePipeline(**parts), parts


def test_happy_path_runs_every_stage_in_order():
    pipeline, parts = _pipeline()

    run = pipeline.run("Hi, this is John Doe", SENDER)

    assert run.history == [Stage.EXTRACTING, Stage.DRAFTING, Stage.NOTIFYING, Stage.LOGGING, Stage.DONE]
    assert run.sid == "SM123"
    assert parts["drafter"].calls == [("John Doe", "Asks about enterprise plan pricing.")]
    assert parts["notifier"].calls == [(SENDER, "Hi John Doe, thanks for reaching out!")]

    (row,) = parts["ledger"].rows
    assert row.updated_by == "WhatsApp Bot"
    assert row.source.value == "whatsapp"
    assert row.values()[2:] == [
        "whatsapp",
        "John Doe",
        "555-123-4567",
        "Asks about enterprise plan pricing.",
        "Hi John Doe, thanks for reaching out!",
    ]


def test_draft_failure_aborts_before_notify_and_log():
    boom = UpstreamError("Failed to generate reply")
    pipeline, parts = _pipeline(drafter=StubDrafter(error=boom))

    with pytest.raises(PipelineError) as exc:
        pipeline.run("hello", SENDER)

    assert exc.value.__cause__ is boom
    assert exc.value.run.failed_stage is Stage.DRAFTING
    assert exc.value.run.stage is Stage.FAILED
    assert parts["notifier"].calls == []
    assert parts["ledger"].rows == []


def test_notify_failure_skips_logging():
    pipeline, parts = _pipeline(notifier=StubNotifier(error=TransportError("HTTP 400")))

    with pytest.raises(PipelineError) as exc:
        pipeline.run("hello", SENDER)

    summary = exc.value.run.summary()
    assert summary["failed_stage"] == "notifying"
    assert summary["history"] == ["extracting", "drafting", "notifying", "failed"]
    assert "HTTP 400" in summary["error"]
    assert str(exc.value).startswith("notifying failed:")
    assert parts["ledger"].rows == []


def test_extract_failure_skips_every_later_stage():
    pipeline, parts = _pipeline(extractor=StubExtractor(error=UpstreamError("AI unreachable")))

    with pytest.raises(PipelineError) as exc:
        pipeline.run("hello", SENDER)

    assert exc.value.run.failed_stage is Stage.EXTRACTING
    assert exc.value.run.record is None
    assert parts["drafter"].calls == []
    assert parts["notifier"].calls == []
    assert parts["ledger"].rows == []


def test_log_failure_after_reply_was_sent():
    boom = UpstreamError("Failed to export to Google Sheets. quota")
    pipeline, parts = _pipeline(ledger=StubLedger(error=boom))

    with pytest.raises(PipelineError) as exc:
        pipeline.run("hello", SENDER)

    summary = exc.value.run.summary()
    assert summary["failed_stage"] == "logging"
    assert summary["sid"] == "SM123"
    assert summary["history"] == ["extracting", "drafting", "notifying", "logging", "failed"]
    assert len(parts["notifier"].calls) == 1
    assert parts["ledger"].rows == []
