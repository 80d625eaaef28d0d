from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import text

from .db import engine
from .logging_utils import get_logger

logger = get_logger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def record_failed_delivery(
    *,
    session_id: str,
    job_id: str,
    kind: str,
    error: str,
    payload: Dict[str, Any],
) -> int:
    with engine.begin() as conn:
        failure_id = conn.execute(
            text(
                """
                INSERT INTO transcription_failures
                  (session_id, job_id, kind, error, payload_json, created_at)
                VALUES
                  (:session_id, :job_id, :kind, :error, :payload_json, :created_at)
                RETURNING failure_id
                """
            ),
            {
                "session_id": session_id,
                "job_id": job_id,
                "kind": kind,
                "error": error,
                "payload_json": json.dumps(payload),
                "created_at": _now_utc(),
            },
        ).scalar_one()
    logger.warning(
        "failure.recorded failure_id=%s session_id=%s job_id=%s kind=%s",
        failure_id,
        session_id,
        job_id,
        kind,
    )
    return int(failure_id)


def _serialize_failure(row) -> Dict[str, Any]:
    return {
        "failure_id": int(row["failure_id"]),
        "session_id": row["session_id"],
        "job_id": row["job_id"],
        "kind": row["kind"],
        "error": row["error"],
        "payload": json.loads(row["payload_json"]) if row["payload_json"] else None,
        "created_at": _iso(row["created_at"]),
        "replayed_at": _iso(row["replayed_at"]),
    }


def list_failed_deliveries(*, pending_only: bool = True, limit: int = 50) -> List[Dict[str, Any]]:
    limit = max(1, min(limit, 500))
    where_sql = "replayed_at IS NULL" if pending_only else "1 = 1"
    with engine.connect() as conn:
        rows = conn.execute(
            text(
                f"""
                SELECT failure_id, session_id, job_id, kind, error, payload_json,
                       created_at, replayed_at
                FROM transcription_failures
                WHERE {where_sql}
                ORDER BY failure_id ASC
                LIMIT :limit
                """
            ),
            {"limit": limit},
        ).mappings().all()
    return [_serialize_failure(row) for row in rows]


def mark_replayed(failure_id: int) -> None:
    with engine.begin() as conn:
        conn.execute(
            text(
                """
                UPDATE transcription_failures
                SET replayed_at = :replayed_at
                WHERE failure_id = :failure_id
                """
            ),
            {"failure_id": failure_id, "replayed_at": _now_utc()},
        )
