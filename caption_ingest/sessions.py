from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from .config import settings
from .db import engine
from .logging_utils import get_logger

logger = get_logger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def session_exists(conn, session_id: str) -> bool:
    row = conn.execute(
        text("SELECT id FROM sessions WHERE id = :session_id"),
        {"session_id": session_id},
    ).fetchone()
    return row is not None


def create_session(conn, session_id: str) -> None:
    timestamp = _now_utc()
    conn.execute(
        text(
            """
            INSERT INTO sessions (id, status, created_at, updated_at)
            VALUES (:session_id, :status, :created_at, :updated_at)
            """
        ),
        {
            "session_id": session_id,
            "status": settings.placeholder_session_status,
            "created_at": timestamp,
            "updated_at": timestamp,
        },
    )


def ensure_session(session_id: str) -> bool:
    """Create a placeholder session row unless one already exists.

    Returns True when this call inserted the row. Check and insert are not
    serialized by the store, so a concurrent delivery for the same unseen
    session may insert first; the resulting unique violation is resolved by
    re-reading the row in a fresh transaction.
    """
    with engine.connect() as conn:
        if session_exists(conn, session_id):
            logger.info("session.found session_id=%s", session_id)
            return False

    try:
        with engine.begin() as conn:
            create_session(conn, session_id)
    except IntegrityError:
        with engine.connect() as conn:
            if session_exists(conn, session_id):
                logger.info("session.create_raced session_id=%s", session_id)
                return False
        raise

    logger.warning("session.auto_created session_id=%s", session_id)
    return True
