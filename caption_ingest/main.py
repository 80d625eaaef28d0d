from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from .analytics import session_analytics
from .browse import get_transcription, list_session_transcriptions
from .config import settings
from .db import fetch_db_info, validate_schema
from .failures import list_failed_deliveries
from .fetcher import fetch_enabled
from .ingestion import ingest_webhook, is_valid_session_id
from .logging_utils import configure_logging, delivery_scope, get_logger, resolve_delivery_id

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level)
    if not fetch_enabled():
        raise RuntimeError("ASSEMBLYAI_API_KEY environment variable is not set")
    if not settings.skip_schema_check:
        ok, message = validate_schema()
        if not ok:
            raise RuntimeError(message)
    logger.info("service.start base_url=%s", settings.assemblyai_base_url)
    yield


app = FastAPI(title="Caption Ingest API", lifespan=lifespan)


@app.middleware("http")
async def delivery_id_middleware(request: Request, call_next):
    delivery_id = resolve_delivery_id(request.headers.get("X-Request-Id"))
    with delivery_scope(delivery_id):
        response = await call_next(request)
    response.headers["X-Request-Id"] = delivery_id
    return response


@app.get("/health")
def health() -> dict:
    try:
        info = fetch_db_info()
    except Exception as exc:  # pragma: no cover - safety
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return {"status": "ok", "db": info}


@app.get("/diagnostics")
def diagnostics() -> dict:
    try:
        info = fetch_db_info()
        ok, message = validate_schema()
    except Exception as exc:
        return {"status": "error", "detail": str(exc)}
    return {
        "status": "ok" if ok else "mismatch",
        "detail": message,
        "db": info,
        "upstream": {
            "base_url": settings.assemblyai_base_url,
            "api_key_configured": fetch_enabled(),
        },
    }


@app.post("/api/transcription/callback")
async def transcription_callback(
    request: Request,
    session_id: Optional[str] = Query(None, alias="sessionId"),
) -> JSONResponse:
    body: Any = None
    body_error: Optional[str] = None
    try:
        body = await request.json()
    except ValueError as exc:
        body_error = f"body is not valid JSON: {exc}"

    outcome = await run_in_threadpool(
        ingest_webhook, session_id, body, body_error=body_error
    )
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)


def _require_session_id(session_id: str) -> str:
    if not is_valid_session_id(session_id):
        raise HTTPException(status_code=400, detail="invalid session id")
    return session_id.lower()


@app.get("/api/sessions/{session_id}/transcriptions")
def list_session_transcriptions_endpoint(
    session_id: str,
    limit: int = Query(100, ge=1, le=1000),
) -> dict:
    return list_session_transcriptions(_require_session_id(session_id), limit=limit)


@app.get("/api/sessions/{session_id}/analytics")
def session_analytics_endpoint(session_id: str) -> dict:
    normalized = _require_session_id(session_id)
    items = list_session_transcriptions(normalized, limit=1000)["items"]
    return session_analytics(normalized, items)


@app.get("/api/transcriptions/{job_id}")
def get_transcription_endpoint(job_id: str) -> dict:
    return get_transcription(job_id)


@app.get("/api/transcription/failures")
def list_failures_endpoint(
    pending: bool = Query(True),
    limit: int = Query(50, ge=1, le=500),
) -> dict:
    return {"items": list_failed_deliveries(pending_only=pending, limit=limit)}
