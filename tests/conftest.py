from __future__ import annotations

from typing import Any, Dict, Iterator, List, Optional, Union

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

import caption_ingest.browse as browse_module
import caption_ingest.db as db_module
import caption_ingest.failures as failures_module
import caption_ingest.persistence as persistence_module
import caption_ingest.sessions as sessions_module
from caption_ingest.config import settings

# Mirrors alembic/versions in the subset SQLite understands.
SQLITE_SCHEMA = (
    """
    CREATE TABLE sessions (
      id          TEXT PRIMARY KEY,
      status      TEXT NOT NULL DEFAULT 'active',
      created_at  TIMESTAMP,
      updated_at  TIMESTAMP
    )
    """,
    """
    CREATE TABLE transcriptions (
      transcription_id     INTEGER PRIMARY KEY AUTOINCREMENT,
      session_id           TEXT NOT NULL REFERENCES sessions(id),
      job_id               TEXT NOT NULL UNIQUE,
      text                 TEXT,
      status               TEXT NOT NULL,
      confidence           REAL,
      language_code        TEXT NOT NULL DEFAULT 'en',
      word_count           INTEGER NOT NULL DEFAULT 0,
      character_count      INTEGER NOT NULL DEFAULT 0,
      audio_duration_ms    INTEGER,
      error_message        TEXT,
      raw_words            TEXT,
      audio_url            TEXT,
      webhook_status_code  INTEGER,
      created_at           TIMESTAMP,
      updated_at           TIMESTAMP
    )
    """,
    """
    CREATE TABLE transcription_failures (
      failure_id    INTEGER PRIMARY KEY AUTOINCREMENT,
      session_id    TEXT NOT NULL,
      job_id        TEXT NOT NULL,
      kind          TEXT NOT NULL,
      error         TEXT,
      payload_json  TEXT NOT NULL,
      created_at    TIMESTAMP,
      replayed_at   TIMESTAMP
    )
    """,
)

STORE_MODULES = (
    db_module,
    sessions_module,
    persistence_module,
    failures_module,
    browse_module,
)


def make_sqlite_engine() -> Engine:
    return create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )


@pytest.fixture()
def store_engine(monkeypatch: pytest.MonkeyPatch) -> Iterator[Engine]:
    engine = make_sqlite_engine()
    with engine.begin() as conn:
        for ddl in SQLITE_SCHEMA:
            conn.execute(text(ddl))
    for module in STORE_MODULES:
        monkeypatch.setattr(module, "engine", engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def ingest_settings(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(settings, "assemblyai_api_key", "test-api-key")
    monkeypatch.setattr(settings, "assemblyai_base_url", "https://upstream.test/v2/")
    monkeypatch.setattr(settings, "fetch_max_attempts", 3)
    monkeypatch.setattr(settings, "fetch_retry_delay_s", 0.0)
    monkeypatch.setattr(settings, "fetch_timeout_s", 2.5)
    monkeypatch.setattr(settings, "request_budget_s", 10.0)
    monkeypatch.setattr(settings, "ack_persistence_failures", True)
    monkeypatch.setattr(settings, "skip_schema_check", True)
    return settings


class FakeResponse:
    def __init__(self, status_code: int, body: Union[Dict[str, Any], str]) -> None:
        self.status_code = status_code
        self._body = body
        self.text = body if isinstance(body, str) else str(body)

    def json(self) -> Any:
        if isinstance(self._body, str):
            raise ValueError("not json")
        return self._body


class FakeUpstream:
    def __init__(self) -> None:
        self.responses: List[Union[FakeResponse, Exception]] = []
        self.calls: List[Dict[str, Any]] = []
        self.timeouts: List[Optional[httpx.Timeout]] = []

    def respond(self, status_code: int, body: Union[Dict[str, Any], str]) -> "FakeUpstream":
        self.responses.append(FakeResponse(status_code, body))
        return self

    def fail(self, error: Exception) -> "FakeUpstream":
        self.responses.append(error)
        return self

    def client(self, *args, **kwargs) -> "_FakeClient":
        self.timeouts.append(kwargs.get("timeout"))
        return _FakeClient(self)


class _FakeClient:
    def __init__(self, upstream: FakeUpstream) -> None:
        self._upstream = upstream

    def __enter__(self) -> "_FakeClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        return None

    def get(self, url: str, headers: Optional[Dict[str, str]] = None) -> FakeResponse:
        self._upstream.calls.append({"url": url, "headers": headers})
        item = self._upstream.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture()
def upstream(monkeypatch: pytest.MonkeyPatch) -> FakeUpstream:
    fake = FakeUpstream()
    monkeypatch.setattr("caption_ingest.fetcher.httpx.Client", fake.client)
    return fake


@pytest.fixture()
def client(store_engine: Engine, ingest_settings, upstream: FakeUpstream) -> TestClient:
    from caption_ingest.main import app

    return TestClient(app)


def transcript_body(job_id: str = "job-1", **overrides: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "id": job_id,
        "status": "completed",
        "text": "hello world",
        "confidence": 0.93,
        "language_code": "en_us",
        "audio_duration": 12.5,
        "audio_url": "https://cdn.test/audio/lecture-1.mp3",
        "words": [
            {"text": "hello", "start": 0, "end": 480, "confidence": 0.97, "speaker": None},
            {"text": "world", "start": 500, "end": 950, "confidence": 0.91, "speaker": None},
        ],
        "webhook_status_code": 200,
        "acoustic_model": "assemblyai_default",
    }
    body.update(overrides)
    return body


@pytest.fixture()
def make_transcript():
    return transcript_body
