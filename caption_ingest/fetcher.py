from __future__ import annotations

import time
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from .config import settings
from .errors import TranscriptFetchError
from .logging_utils import get_logger
from .retry import fixed_retry

logger = get_logger(__name__)


class UpstreamRequestError(RuntimeError):
    pass


def fetch_enabled() -> bool:
    return bool(settings.assemblyai_api_key.strip())


def _normalize_base_url(raw: str) -> str:
    return raw.rstrip("/")


def transcript_url(job_id: str) -> str:
    base = _normalize_base_url(settings.assemblyai_base_url)
    return f"{base}/transcript/{quote(job_id, safe='')}"


def _request_transcript(job_id: str, timeout_s: float) -> Dict[str, Any]:
    url = transcript_url(job_id)
    headers = {
        "Authorization": settings.assemblyai_api_key,
        "Content-Type": "application/json",
    }

    try:
        with httpx.Client(timeout=httpx.Timeout(timeout_s)) as client:
            response = client.get(url, headers=headers)
    except httpx.HTTPError as exc:
        raise UpstreamRequestError(f"transcript HTTP request failed: {exc}") from exc

    if response.status_code != 200:
        detail = response.text.strip()
        if len(detail) > 400:
            detail = detail[:400]
        raise UpstreamRequestError(
            f"transcript service returned {response.status_code}: {detail}"
        )

    try:
        body = response.json()
    except ValueError as exc:
        raise UpstreamRequestError("transcript response is not valid JSON") from exc
    if not isinstance(body, dict):
        raise UpstreamRequestError("transcript response is not a JSON object")

    # A job that errored upstream is retried like a transport failure.
    if body.get("status") == "error":
        raise UpstreamRequestError(
            f"transcript {job_id} errored upstream: {body.get('error') or 'unknown error'}"
        )
    return body


def fetch_transcript(job_id: str, *, budget_s: Optional[float] = None) -> Dict[str, Any]:
    if not fetch_enabled():
        raise TranscriptFetchError("ASSEMBLYAI_API_KEY is not configured")

    deadline = time.monotonic() + budget_s if budget_s is not None else None
    attempts = max(1, int(settings.fetch_max_attempts))
    attempt_counter = {"n": 0}

    def _attempt() -> Dict[str, Any]:
        attempt_counter["n"] += 1
        timeout_s = settings.fetch_timeout_s
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise UpstreamRequestError("request budget exhausted before fetch attempt")
            timeout_s = min(timeout_s, remaining)
        logger.info(
            "transcript_fetch.attempt job_id=%s attempt=%s max_attempts=%s timeout_s=%.2f",
            job_id,
            attempt_counter["n"],
            attempts,
            timeout_s,
        )
        return _request_transcript(job_id, timeout_s)

    def _log_retry(attempt_no: int, error: Optional[BaseException]) -> None:
        logger.warning(
            "transcript_fetch.retry_scheduled job_id=%s attempt=%s delay_s=%s error=%s",
            job_id,
            attempt_no,
            settings.fetch_retry_delay_s,
            error,
        )

    fetch_with_retry = fixed_retry(
        attempts,
        settings.fetch_retry_delay_s,
        retry_on=(UpstreamRequestError,),
        budget_s=budget_s,
        on_retry=_log_retry,
    )(_attempt)

    try:
        return fetch_with_retry()
    except UpstreamRequestError as exc:
        logger.error(
            "transcript_fetch.failed job_id=%s attempts=%s error=%s",
            job_id,
            attempt_counter["n"],
            exc,
        )
        raise TranscriptFetchError(
            f"failed to fetch transcript {job_id}: {exc}", last_error=exc
        ) from exc
