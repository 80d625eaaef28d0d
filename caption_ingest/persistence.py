from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .config import settings
from .db import engine
from .errors import PersistenceError
from .logging_utils import get_logger, preview
from .schemas import TranscriptRecord

logger = get_logger(__name__)

MUTABLE_COLUMNS = (
    "session_id",
    "text",
    "status",
    "confidence",
    "language_code",
    "word_count",
    "character_count",
    "audio_duration_ms",
    "error_message",
    "raw_words",
    "audio_url",
    "webhook_status_code",
    "updated_at",
)


@dataclass
class TranscriptionRow:
    session_id: str
    job_id: str
    text: Optional[str]
    status: str
    confidence: Optional[float]
    language_code: str
    word_count: int
    character_count: int
    audio_duration_ms: Optional[int]
    error_message: Optional[str]
    raw_words: Optional[str]
    audio_url: Optional[str]
    webhook_status_code: Optional[int]


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def text_metrics(value: Optional[str]) -> Tuple[int, int]:
    if not value:
        return 0, 0
    return len(value.split()), len(value)


def seconds_to_ms(seconds: Optional[float]) -> Optional[int]:
    if seconds is None:
        return None
    # round half up
    return int(math.floor(seconds * 1000 + 0.5))


def resolve_text(record: TranscriptRecord) -> Optional[str]:
    if record.text:
        return record.text
    if record.words:
        return " ".join(word.text for word in record.words)
    return record.text


def build_transcription_row(session_id: str, record: TranscriptRecord) -> TranscriptionRow:
    text_val = resolve_text(record)
    word_count, character_count = text_metrics(text_val)
    raw_words = (
        json.dumps([word.model_dump() for word in record.words])
        if record.words is not None
        else None
    )
    return TranscriptionRow(
        session_id=session_id,
        job_id=record.job_id,
        text=text_val,
        status=record.status,
        confidence=record.confidence,
        language_code=record.language_code or settings.default_language_code,
        word_count=word_count,
        character_count=character_count,
        audio_duration_ms=seconds_to_ms(record.audio_duration),
        error_message=record.error or None,
        raw_words=raw_words,
        audio_url=record.audio_url,
        webhook_status_code=record.webhook_status_code,
    )


def _upsert_sql() -> str:
    assignments = ",\n                  ".join(
        f"{column} = excluded.{column}" for column in MUTABLE_COLUMNS
    )
    return f"""
                INSERT INTO transcriptions
                  (session_id, job_id, text, status, confidence, language_code,
                   word_count, character_count, audio_duration_ms, error_message,
                   raw_words, audio_url, webhook_status_code, created_at, updated_at)
                VALUES
                  (:session_id, :job_id, :text, :status, :confidence, :language_code,
                   :word_count, :character_count, :audio_duration_ms, :error_message,
                   :raw_words, :audio_url, :webhook_status_code, :created_at, :updated_at)
                ON CONFLICT (job_id) DO UPDATE SET
                  {assignments}
                """


def upsert_transcription(row: TranscriptionRow) -> None:
    timestamp = _now_utc()
    params: Dict[str, Any] = asdict(row)
    params["created_at"] = timestamp
    params["updated_at"] = timestamp

    try:
        with engine.begin() as conn:
            conn.execute(text(_upsert_sql()), params)
    except SQLAlchemyError as exc:
        logger.error(
            "transcription.upsert_failed session_id=%s job_id=%s status=%s "
            "word_count=%s character_count=%s text_preview=%r error=%s",
            row.session_id,
            row.job_id,
            row.status,
            row.word_count,
            row.character_count,
            preview(row.text),
            exc,
        )
        raise PersistenceError(f"failed to upsert transcription {row.job_id}: {exc}") from exc

    logger.info(
        "transcription.upserted session_id=%s job_id=%s status=%s word_count=%s character_count=%s",
        row.session_id,
        row.job_id,
        row.status,
        row.word_count,
        row.character_count,
    )
