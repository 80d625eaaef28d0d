"""Error taxonomy for webhook ingestion.

Component errors (validation, fetch, persistence) are raised close to the
failure and carry a ``kind`` describing what went wrong there. The
orchestrator translates them into ``IngestionError`` subclasses, which carry
the HTTP-facing ``kind`` and ``status_code`` for the response.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class PayloadValidationError(ValueError):
    def __init__(
        self,
        kind: str,
        message: str,
        errors: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.errors = errors or []


class TranscriptFetchError(RuntimeError):
    kind = "upstream-unavailable"

    def __init__(self, message: str, last_error: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.last_error = last_error


class PersistenceError(RuntimeError):
    kind = "storage-failure"


class IngestionError(RuntimeError):
    kind = "internal-error"
    status_code = 500

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message, "kind": self.kind}
        if self.details is not None:
            body["details"] = self.details
        return body


class BadRequestError(IngestionError):
    kind = "bad-request"
    status_code = 400


class InvalidTranscriptDataError(IngestionError):
    kind = "invalid-transcript-data"
    status_code = 400


class UpstreamFetchFailedError(IngestionError):
    kind = "upstream-fetch-failed"
    status_code = 500


class PersistenceFailedError(IngestionError):
    kind = "persistence-failed"
    status_code = 500


class StorageUnavailableError(IngestionError):
    kind = "storage-unavailable"
    status_code = 500
