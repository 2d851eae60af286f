# tests/test_health_endpoints.py
from fastapi.testclient import TestClient

from conftest import make_services
from triage import error_sink
from triage.config import settings
from triage.main import create_app
from triage.services import build_services


def test_healthz_endpoint():
    """Test that /healthz endpoint exists and returns expected response."""
    with TestClient(create_app(make_services())) as client:
        response = client.get("/healthz")
    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is True
    assert "timestamp" in data
    assert data["version"] == "1.0.0"
    assert data["background"] == {"pending": 0, "completed": 0, "failed": 0}


def test_health_reports_unconfigured_integrations():
    """Built from an empty environment every integration reports what it is missing."""
    services = build_services()
    with TestClient(create_app(services)) as client:
        data = client.get("/health").json()

    integrations = data["integrations"]
    assert integrations["ai"] is False
    assert integrations["whatsapp"]["configured"] is False
    assert integrations["whatsapp"]["missing"] == [
        "TWILIO_ACCOUNT_SID",
        "TWILIO_AUTH_TOKEN",
        "TWILIO_WHATSAPP_NUMBER",
    ]
    assert integrations["sheets"]["missing"][0] == "GOOGLE_SHEETS_CLIENT_EMAIL"


def test_ping_endpoint():
    """Test that /ping endpoint works."""
    with TestClient(create_app(make_services())) as client:
        response = client.get("/ping")
    assert response.status_code == 200
    data = response.json()
    assert data["ok"] is True
    assert data["pong"] is True
    assert "time" in data


def test_failures_feed_is_newest_first():
    error_sink.report("whatsapp:+1", RuntimeError("first"))
    error_sink.report("whatsapp:+2", RuntimeError("second"))

    with TestClient(create_app(make_services())) as client:
        data = client.get("/ops/failures", params={"limit": 1}).json()

    assert data["ok"] is True
    assert [f["error"] for f in data["failures"]] == ["second"]


def test_negative_sink_size_keeps_nothing_instead_of_crashing(monkeypatch):
    monkeypatch.setenv("ERROR_SINK_SIZE", "-5")
    settings.cache_clear()
    error_sink.clear()

    error_sink.report("whatsapp:+1", RuntimeError("dropped"))

    assert error_sink.recent() == []
