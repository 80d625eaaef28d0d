from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, List

from fastapi import HTTPException
from sqlalchemy import text

from .db import engine

TRANSCRIPTION_COLUMNS = """
    session_id, job_id, text, status, confidence, language_code, word_count,
    character_count, audio_duration_ms, error_message, raw_words, audio_url,
    webhook_status_code, created_at, updated_at
"""


def _iso(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _serialize_transcription(row) -> Dict[str, Any]:
    raw_words = row["raw_words"]
    return {
        "session_id": str(row["session_id"]),
        "job_id": row["job_id"],
        "text": row["text"],
        "status": row["status"],
        "confidence": row["confidence"],
        "language_code": row["language_code"],
        "word_count": row["word_count"],
        "character_count": row["character_count"],
        "audio_duration_ms": row["audio_duration_ms"],
        "error_message": row["error_message"],
        "words": json.loads(raw_words) if raw_words else None,
        "audio_url": row["audio_url"],
        "webhook_status_code": row["webhook_status_code"],
        "created_at": _iso(row["created_at"]),
        "updated_at": _iso(row["updated_at"]),
    }


def list_session_transcriptions(session_id: str, *, limit: int = 100) -> Dict[str, Any]:
    limit = max(1, min(limit, 1000))
    with engine.connect() as conn:
        rows = conn.execute(
            text(
                f"""
                SELECT {TRANSCRIPTION_COLUMNS}
                FROM transcriptions
                WHERE session_id = :session_id
                ORDER BY updated_at DESC, job_id DESC
                LIMIT :limit
                """
            ),
            {"session_id": session_id, "limit": limit},
        ).mappings().all()
    items: List[Dict[str, Any]] = [_serialize_transcription(row) for row in rows]
    return {"session_id": session_id, "items": items}


def get_transcription(job_id: str) -> Dict[str, Any]:
    with engine.connect() as conn:
        row = conn.execute(
            text(
                f"""
                SELECT {TRANSCRIPTION_COLUMNS}
                FROM transcriptions
                WHERE job_id = :job_id
                """
            ),
            {"job_id": job_id},
        ).mappings().fetchone()
    if not row:
        raise HTTPException(status_code=404, detail="transcription not found")
    return _serialize_transcription(row)

