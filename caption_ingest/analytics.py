"""Per-session summaries over stored transcription records.

Both helpers take the serialized rows produced by ``browse`` so they stay
free of database access.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

LOW_CONFIDENCE = 0.6
LOW_CONFIDENCE_SHARE = 0.3


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _stats(values: Sequence[float]) -> Dict[str, float]:
    if not values:
        return {"min": 0, "max": 0, "average": 0.0}
    return {"min": min(values), "max": max(values), "average": _mean(values)}


def session_analytics(session_id: str, items: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    confidences = [item["confidence"] for item in items if item.get("confidence") is not None]
    durations = [
        item["audio_duration_ms"] for item in items if item.get("audio_duration_ms") is not None
    ]
    completed = [item for item in items if item.get("status") == "completed"]

    languages: Dict[str, int] = {}
    for item in items:
        lang = item.get("language_code") or "unknown"
        languages[lang] = languages.get(lang, 0) + 1

    return {
        "session_id": session_id,
        "total_transcriptions": len(items),
        "total_words": sum(item.get("word_count") or 0 for item in items),
        "total_characters": sum(item.get("character_count") or 0 for item in items),
        "average_confidence": _mean(confidences),
        "success_rate": len(completed) / len(items) if items else 0.0,
        "language_distribution": languages,
        "audio_duration_ms": _stats(durations),
        "quality_issues": quality_issues(items),
    }


def quality_issues(items: Sequence[Dict[str, Any]]) -> List[str]:
    issues: List[str] = []
    if not items:
        return issues

    low_confidence = [
        item for item in items
        if item.get("confidence") is not None and item["confidence"] < LOW_CONFIDENCE
    ]
    if len(low_confidence) > len(items) * LOW_CONFIDENCE_SHARE:
        issues.append("High percentage of low-confidence transcriptions")

    errored = sum(1 for item in items if item.get("status") == "error")
    if errored:
        issues.append(f"{errored} transcription(s) failed")

    empty = sum(
        1
        for item in items
        if item.get("status") == "completed" and not _has_text(item.get("text"))
    )
    if empty:
        issues.append(f"{empty} completed transcription(s) have no text")
    return issues


def _has_text(value: Optional[str]) -> bool:
    return bool(value and value.strip())
