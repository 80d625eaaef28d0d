from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine

import caption_ingest.db as db_module
from caption_ingest.config import settings
from caption_ingest.main import app

SESSION_ID = "3f2b8c1e-5d4a-4b6c-9e7f-1a2b3c4d5e6f"


def test_startup_fails_without_api_key(
    monkeypatch: pytest.MonkeyPatch, store_engine, ingest_settings
) -> None:
    monkeypatch.setattr(settings, "assemblyai_api_key", "")

    with pytest.raises(RuntimeError, match="ASSEMBLYAI_API_KEY"):
        with TestClient(app):
            pass


def test_startup_fails_when_schema_is_missing(
    monkeypatch: pytest.MonkeyPatch, ingest_settings
) -> None:
    monkeypatch.setattr(db_module, "engine", create_engine("sqlite://"))
    monkeypatch.setattr(settings, "skip_schema_check", False)

    with pytest.raises(RuntimeError, match="alembic upgrade head"):
        with TestClient(app):
            pass


def test_startup_and_health_with_schema(
    monkeypatch: pytest.MonkeyPatch, store_engine, ingest_settings
) -> None:
    monkeypatch.setattr(settings, "skip_schema_check", False)

    with TestClient(app) as client:
        resp = client.get("/health")

    assert resp.status_code == 200
    payload = resp.json()
    assert payload["status"] == "ok"
    assert payload["db"]["dialect"] == "sqlite"
    assert payload["db"]["tables"] == {
        "sessions": True,
        "transcriptions": True,
        "transcription_failures": True,
    }


def test_diagnostics_reports_upstream_config(client: TestClient) -> None:
    payload = client.get("/diagnostics").json()

    assert payload["status"] == "ok"
    assert payload["upstream"]["api_key_configured"] is True
    assert "test-api-key" not in str(payload)


def test_request_id_is_echoed(client: TestClient) -> None:
    resp = client.get("/health", headers={"X-Request-Id": "delivery-42"})
    assert resp.headers["X-Request-Id"] == "delivery-42"

    generated = client.get("/health").headers["X-Request-Id"]
    assert len(generated) == 32

    truncated = client.get("/health", headers={"X-Request-Id": "d" * 100})
    assert truncated.headers["X-Request-Id"] == "d" * 64


def test_browse_endpoints_after_ingest(client: TestClient, upstream, make_transcript) -> None:
    upstream.respond(200, make_transcript("job-1", confidence=0.4))
    client.post(
        "/api/transcription/callback",
        params={"sessionId": SESSION_ID},
        json={"transcript_id": "job-1", "status": "completed"},
    )
    client.post(
        "/api/transcription/callback",
        params={"sessionId": SESSION_ID},
        json={"transcript_id": "job-2", "status": "error", "error": "Audio file is too short"},
    )

    listing = client.get(f"/api/sessions/{SESSION_ID.upper()}/transcriptions")
    assert listing.status_code == 200
    items = listing.json()["items"]
    assert {item["job_id"] for item in items} == {"job-1", "job-2"}

    detail = client.get("/api/transcriptions/job-1").json()
    assert detail["session_id"] == SESSION_ID
    assert [word["text"] for word in detail["words"]] == ["hello", "world"]

    analytics = client.get(f"/api/sessions/{SESSION_ID}/analytics").json()
    assert analytics["total_transcriptions"] == 2
    assert analytics["success_rate"] == 0.5
    assert "High percentage of low-confidence transcriptions" in analytics["quality_issues"]
    assert "1 transcription(s) failed" in analytics["quality_issues"]


def test_browse_rejects_bad_ids(client: TestClient) -> None:
    assert client.get("/api/sessions/not-a-uuid/transcriptions").status_code == 400
    assert client.get("/api/sessions/not-a-uuid/analytics").status_code == 400
    assert client.get("/api/transcriptions/missing-job").status_code == 404
