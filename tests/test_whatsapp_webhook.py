import time

from fastapi.testclient import TestClient

from conftest import StubDrafter, StubExtractor, StubLedger, StubNotifier, make_services
from triage.config import settings
from triage.errors import UpstreamError
from triage.main import create_app
from triage.whatsapp_webhook import EMPTY_TWIML

SENDER = "whatsapp:+15551234567"


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return False


def test_missing_body_is_rejected_and_nothing_runs():
    services = make_services()
    with TestClient(create_app(services)) as client:
        r = client.post("/api/whatsapp", data={"From": SENDER})

    assert r.status_code == 400
    assert "Body" in r.json()["error"]
    assert services.extractor.calls == []
    assert services.notifier.calls == []
    assert services.ledger.rows == []


def test_missing_from_is_rejected():
    services = make_services()
    with TestClient(create_app(services)) as client:
        r = client.post("/api/whatsapp", data={"Body": "hello"})

    assert r.status_code == 400
    assert r.json() == {"error": "Invalid webhook payload. Missing From."}
    assert services.extractor.calls == []


def test_to_is_required_only_when_configured(monkeypatch):
    monkeypatch.setenv("WHATSAPP_REQUIRE_TO", "true")
    settings.cache_clear()
    services = make_services()
    with TestClient(create_app(services)) as client:
        r = client.post("/api/whatsapp", data={"Body": "hello", "From": SENDER})

    assert r.status_code == 400
    assert "To" in r.json()["error"]


def test_ack_returns_before_the_pipeline_finishes():
    services = make_services(extractor=StubExtractor(delay=1.5))
    with TestClient(create_app(services)) as client:
        started = time.monotonic()
        r = client.post(
            "/api/whatsapp",
            data={"Body": "Hi, this is John Doe", "From": SENDER, "To": "whatsapp:+14155238886"},
        )
        elapsed = time.monotonic() - started

        assert r.status_code == 200
        assert r.headers["content-type"].startswith("text/xml")
        assert r.text == EMPTY_TWIML
        assert elapsed < 1.0
        assert services.ledger.rows == []

        assert services.ledger.done.wait(5)

    assert services.notifier.calls == [(SENDER, "Hi John Doe, thanks for reaching out!")]
    (row,) = services.ledger.rows
    assert row.updated_by == "WhatsApp Bot"
    assert row.source.value == "whatsapp"
    assert services.dispatcher.stats() == {"pending": 0, "completed": 1, "failed": 0}


def test_json_payload_is_accepted():
    services = make_services()
    with TestClient(create_app(services)) as client:
        r = client.post("/api/whatsapp", json={"Body": "hello", "From": SENDER})
        assert r.status_code == 200
        assert services.ledger.done.wait(5)

    assert services.extractor.calls == ["hello"]


def test_pipeline_failure_lands_in_failures_feed():
    services = make_services(drafter=StubDrafter(error=UpstreamError("Failed to generate reply")))
    with TestClient(create_app(services)) as client:
        r = client.post("/api/whatsapp", data={"Body": "hello", "From": SENDER})
        assert r.status_code == 200
        assert _wait_for(lambda: services.dispatcher.failed == 1)

        failures = client.get("/ops/failures").json()["failures"]

    assert services.notifier.calls == []
    assert services.ledger.rows == []
    (entry,) = failures
    assert entry["context"] == f"whatsapp:{SENDER}"
    assert entry["type"] == "PipelineError"
    assert entry["failed_stage"] == "drafting"
    assert "Failed to generate reply" in entry["error"]
    assert "trace" not in entry


def test_unexpected_error_returns_500(monkeypatch):
    services = make_services()

    def _broken(*args, **kwargs):
        raise RuntimeError("scheduler unavailable")

    monkeypatch.setattr(services.dispatcher, "spawn", _broken)
    with TestClient(create_app(services)) as client:
        r = client.post("/api/whatsapp", data={"Body": "hello", "From": SENDER})

    assert r.status_code == 500
    assert r.json() == {"error": "Internal Server Error", "details": "scheduler unavailable"}


def test_get_returns_setup_instructions():
    with TestClient(create_app(make_services())) as client:
        r = client.get("/api/whatsapp")

    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/plain")
    assert "POST https://<your-host>/api/whatsapp" in r.text


def test_webhook_token_is_enforced_when_set(monkeypatch):
    monkeypatch.setenv("WEBHOOK_TOKEN", "s3cret")
    settings.cache_clear()
    services = make_services(notifier=StubNotifier(), ledger=StubLedger())
    with TestClient(create_app(services)) as client:
        denied = client.post("/api/whatsapp", data={"Body": "hello", "From": SENDER})
        allowed = client.post(
            "/api/whatsapp?token=s3cret", data={"Body": "hello", "From": SENDER}
        )
        assert services.ledger.done.wait(5)

    assert denied.status_code == 401
    assert allowed.status_code == 200
    assert services.extractor.calls == ["hello"]


def test_malformed_multipart_body_is_a_400():
    services = make_services()
    with TestClient(create_app(services)) as client:
        r = client.post(
            "/api/whatsapp",
            content=b"Body=hello",
            headers={"content-type": "multipart/form-data"},
        )

    assert r.status_code == 400
    assert r.json() == {"error": "Invalid webhook payload."}
    assert services.extractor.calls == []
