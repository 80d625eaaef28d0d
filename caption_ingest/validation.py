from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .config import settings
from .errors import PayloadValidationError
from .schemas import TranscriptRecord, WebhookPayload

KIND_MALFORMED_PAYLOAD = "malformed-payload"
KIND_INVALID_TRANSCRIPT = "invalid-transcript-data"

SHORT_TEXT_CHARS = 10
LONG_TEXT_CHARS = 50000
REPEATED_CHAR_RE = re.compile(r"(.)\1{10,}")


@dataclass
class ValidatedTranscript:
    record: TranscriptRecord
    warnings: List[str] = field(default_factory=list)


def _field_errors(exc: ValidationError) -> List[Dict[str, Any]]:
    return [
        {
            "loc": [str(part) for part in err.get("loc", ())],
            "msg": err.get("msg", ""),
            "type": err.get("type", ""),
        }
        for err in exc.errors()
    ]


def validate_webhook(body: Any) -> WebhookPayload:
    if not isinstance(body, dict):
        raise PayloadValidationError(
            KIND_MALFORMED_PAYLOAD,
            "Invalid webhook payload",
            [{"loc": [], "msg": "payload must be a JSON object", "type": "dict_type"}],
        )
    try:
        return WebhookPayload.model_validate(body)
    except ValidationError as exc:
        raise PayloadValidationError(
            KIND_MALFORMED_PAYLOAD, "Invalid webhook payload", _field_errors(exc)
        ) from exc


def text_quality_warnings(text: Optional[str]) -> List[str]:
    if not text or not text.strip():
        return []
    warnings: List[str] = []
    if len(text) < SHORT_TEXT_CHARS:
        warnings.append("Text is very short")
    if len(text) > LONG_TEXT_CHARS:
        warnings.append("Text is very long")
    if REPEATED_CHAR_RE.search(text):
        warnings.append("Text contains repeated characters")
    return warnings


def transcript_warnings(record: TranscriptRecord) -> List[str]:
    warnings: List[str] = []
    if (
        record.confidence is not None
        and record.confidence < settings.low_confidence_threshold
    ):
        warnings.append("Low confidence score detected")
    if record.status == "completed" and not record.text and not record.words:
        warnings.append("Completed transcription has no text")
    warnings.extend(text_quality_warnings(record.text))
    return warnings


def validate_transcript(data: Any) -> ValidatedTranscript:
    if not isinstance(data, dict):
        raise PayloadValidationError(
            KIND_INVALID_TRANSCRIPT,
            "Invalid transcript data",
            [{"loc": [], "msg": "transcript must be a JSON object", "type": "dict_type"}],
        )
    try:
        record = TranscriptRecord.model_validate(data)
    except ValidationError as exc:
        raise PayloadValidationError(
            KIND_INVALID_TRANSCRIPT, "Invalid transcript data", _field_errors(exc)
        ) from exc
    return ValidatedTranscript(record=record, warnings=transcript_warnings(record))
