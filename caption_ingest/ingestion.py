"""Webhook ingestion: validate, fetch, reconcile, persist, acknowledge.

A delivery moves through ``IngestionState`` in order. Any step may fail, in
which case the delivery ends in ``FAILED`` and the response carries the
failure's kind. The one exception is a storage failure during the final
upsert: once the delivery is written to the failure ledger it is
acknowledged with 200 so the provider stops redelivering, and an operator
replays it with ``replay_failed_deliveries``.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from .config import settings
from .errors import (
    BadRequestError,
    IngestionError,
    InvalidTranscriptDataError,
    PayloadValidationError,
    PersistenceError,
    PersistenceFailedError,
    StorageUnavailableError,
    TranscriptFetchError,
    UpstreamFetchFailedError,
)
from .failures import list_failed_deliveries, mark_replayed, record_failed_delivery
from .fetcher import fetch_transcript
from .logging_utils import delivery_scope, get_logger
from .persistence import TranscriptionRow, build_transcription_row, upsert_transcription
from .schemas import TranscriptRecord
from .sessions import ensure_session
from .validation import validate_transcript, validate_webhook

logger = get_logger(__name__)

SESSION_ID_RE = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}",
    re.IGNORECASE,
)


class IngestionState(str, Enum):
    RECEIVED = "received"
    MINIMAL_VALIDATED = "minimal_validated"
    FETCHED = "fetched"
    FULLY_VALIDATED = "fully_validated"
    SESSION_ENSURED = "session_ensured"
    PERSISTED = "persisted"
    ACKNOWLEDGED = "acknowledged"
    FAILED = "failed"


@dataclass
class IngestionOutcome:
    status_code: int
    body: Dict[str, Any]
    state: IngestionState
    failed_at: Optional[IngestionState] = None


@dataclass
class _Delivery:
    session_id: Optional[str] = None
    job_id: Optional[str] = None
    state: IngestionState = IngestionState.RECEIVED
    warnings: List[str] = field(default_factory=list)

    def advance(self, state: IngestionState) -> None:
        logger.debug(
            "webhook.state session_id=%s job_id=%s from=%s to=%s",
            self.session_id,
            self.job_id,
            self.state.value,
            state.value,
        )
        self.state = state


def is_valid_session_id(value: Optional[str]) -> bool:
    return bool(value) and SESSION_ID_RE.fullmatch(value) is not None


def _full_pass_input(webhook_job_id: str, fetched: Optional[Dict[str, Any]], body: Dict[str, Any]) -> Dict[str, Any]:
    if fetched is None:
        return body
    data = dict(fetched)
    if not data.get("transcript_id"):
        data["transcript_id"] = webhook_job_id
    return data


def _ledger_payload(session_id: str, record: TranscriptRecord) -> Dict[str, Any]:
    return {"session_id": session_id, "record": record.model_dump(mode="json")}


def _handle_persistence_failure(
    delivery: _Delivery,
    record: TranscriptRecord,
    row: TranscriptionRow,
    exc: PersistenceError,
) -> IngestionOutcome:
    try:
        failure_id = record_failed_delivery(
            session_id=row.session_id,
            job_id=row.job_id,
            kind=PersistenceFailedError.kind,
            error=str(exc),
            payload=_ledger_payload(row.session_id, record),
        )
    except SQLAlchemyError as ledger_exc:
        logger.exception(
            "webhook.ledger_write_failed session_id=%s job_id=%s error=%s",
            row.session_id,
            row.job_id,
            ledger_exc,
        )
        raise PersistenceFailedError("Failed to store transcription") from exc

    if not settings.ack_persistence_failures:
        raise PersistenceFailedError("Failed to store transcription") from exc

    logger.error(
        "webhook.acknowledged_unstored state=%s session_id=%s job_id=%s failure_id=%s",
        delivery.state.value,
        row.session_id,
        row.job_id,
        failure_id,
    )
    failed_at = delivery.state
    delivery.advance(IngestionState.ACKNOWLEDGED)
    return IngestionOutcome(
        status_code=200,
        body={
            "success": True,
            "message": (
                "Webhook acknowledged but transcription could not be stored; "
                "recorded for manual replay"
            ),
            "sessionId": row.session_id,
            "jobId": row.job_id,
            "status": row.status,
            "failureId": failure_id,
            "warnings": delivery.warnings,
        },
        state=delivery.state,
        failed_at=failed_at,
    )


def _process(
    delivery: _Delivery,
    session_id_raw: Optional[str],
    body: Any,
    body_error: Optional[str],
    deadline: float,
) -> IngestionOutcome:
    if not is_valid_session_id(session_id_raw):
        raise BadRequestError("Invalid sessionId format")
    delivery.session_id = session_id_raw.lower()  # type: ignore[union-attr]

    if body_error is not None:
        raise BadRequestError("Invalid webhook payload", details=body_error)
    try:
        webhook = validate_webhook(body)
    except PayloadValidationError as exc:
        raise BadRequestError("Invalid webhook payload", details=exc.errors) from exc
    delivery.job_id = webhook.transcript_id
    delivery.advance(IngestionState.MINIMAL_VALIDATED)
    logger.info(
        "webhook.received session_id=%s job_id=%s status=%s",
        delivery.session_id,
        webhook.transcript_id,
        webhook.status,
    )

    fetched: Optional[Dict[str, Any]] = None
    if webhook.status == "completed":
        try:
            fetched = fetch_transcript(
                webhook.transcript_id,
                budget_s=max(0.0, deadline - time.monotonic()),
            )
        except TranscriptFetchError as exc:
            raise UpstreamFetchFailedError("Failed to fetch transcript data") from exc
        delivery.advance(IngestionState.FETCHED)

    try:
        validated = validate_transcript(
            _full_pass_input(webhook.transcript_id, fetched, body)
        )
    except PayloadValidationError as exc:
        raise InvalidTranscriptDataError("Invalid transcript data", details=exc.errors) from exc
    record = validated.record
    delivery.job_id = record.job_id
    delivery.warnings = validated.warnings
    delivery.advance(IngestionState.FULLY_VALIDATED)
    for warning in validated.warnings:
        logger.warning(
            "webhook.transcript_warning session_id=%s job_id=%s warning=%s",
            delivery.session_id,
            record.job_id,
            warning,
        )

    try:
        ensure_session(delivery.session_id)
    except SQLAlchemyError as exc:
        raise StorageUnavailableError("Failed to ensure session") from exc
    delivery.advance(IngestionState.SESSION_ENSURED)

    row = build_transcription_row(delivery.session_id, record)
    try:
        upsert_transcription(row)
    except PersistenceError as exc:
        return _handle_persistence_failure(delivery, record, row, exc)
    delivery.advance(IngestionState.PERSISTED)

    delivery.advance(IngestionState.ACKNOWLEDGED)
    return IngestionOutcome(
        status_code=200,
        body={
            "success": True,
            "message": "Transcription saved",
            "sessionId": row.session_id,
            "jobId": row.job_id,
            "status": row.status,
            "warnings": delivery.warnings,
        },
        state=delivery.state,
    )


def ingest_webhook(
    session_id_raw: Optional[str],
    body: Any,
    *,
    body_error: Optional[str] = None,
) -> IngestionOutcome:
    deadline = time.monotonic() + settings.request_budget_s
    delivery = _Delivery()
    try:
        return _process(delivery, session_id_raw, body, body_error, deadline)
    except IngestionError as exc:
        failed_at = delivery.state
        delivery.advance(IngestionState.FAILED)
        log = logger.warning if exc.status_code < 500 else logger.error
        log(
            "webhook.failed state=%s kind=%s session_id=%s job_id=%s error=%s cause=%s",
            failed_at.value,
            exc.kind,
            delivery.session_id or session_id_raw,
            delivery.job_id,
            exc,
            exc.__cause__,
        )
        return IngestionOutcome(
            status_code=exc.status_code,
            body=exc.to_body(),
            state=delivery.state,
            failed_at=failed_at,
        )
    except Exception as exc:
        failed_at = delivery.state
        delivery.advance(IngestionState.FAILED)
        logger.exception(
            "webhook.failed state=%s kind=%s session_id=%s job_id=%s error=%s",
            failed_at.value,
            IngestionError.kind,
            delivery.session_id or session_id_raw,
            delivery.job_id,
            exc,
        )
        return IngestionOutcome(
            status_code=500,
            body={"error": "Webhook processing failed", "kind": IngestionError.kind},
            state=delivery.state,
            failed_at=failed_at,
        )


def _replay_one(failure: Dict[str, Any]) -> bool:
    failure_id = failure["failure_id"]
    payload = failure["payload"] or {}
    try:
        session_id = payload["session_id"]
        validated = validate_transcript(payload["record"])
        ensure_session(session_id)
        upsert_transcription(build_transcription_row(session_id, validated.record))
        mark_replayed(failure_id)
    except Exception as exc:
        logger.warning(
            "replay.failed failure_id=%s job_id=%s error=%s",
            failure_id,
            failure["job_id"],
            exc,
        )
        return False
    logger.info(
        "replay.complete failure_id=%s session_id=%s job_id=%s",
        failure_id,
        session_id,
        failure["job_id"],
    )
    return True


def replay_failed_deliveries(limit: int = 50) -> Dict[str, int]:
    summary = {"scanned": 0, "replayed": 0, "failed": 0}
    for failure in list_failed_deliveries(pending_only=True, limit=limit):
        summary["scanned"] += 1
        with delivery_scope(f"replay-{failure['failure_id']}"):
            replayed = _replay_one(failure)
        summary["replayed" if replayed else "failed"] += 1
    return summary
