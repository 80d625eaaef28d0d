from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

TranscriptStatus = Literal["queued", "processing", "completed", "error"]

# Bounds of the BIGINT milliseconds and INT columns these fields are stored in.
MAX_AUDIO_DURATION_S = (2**63 - 1) // 1000
INT_COLUMN_MIN = -(2**31)
INT_COLUMN_MAX = 2**31 - 1


class WebhookPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    transcript_id: str = Field(min_length=1)
    status: TranscriptStatus
    error: Optional[str] = None


class WordTiming(BaseModel):
    model_config = ConfigDict(extra="allow")

    text: str
    start: float
    end: float
    confidence: float
    speaker: Optional[str] = None


class TranscriptRecord(BaseModel):
    # Unknown provider fields are kept in model_extra rather than rejected.
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    transcript_id: Optional[str] = None
    status: TranscriptStatus
    text: Optional[str] = None
    confidence: Optional[float] = Field(default=None, ge=0, le=1)
    language_code: Optional[str] = Field(default=None, max_length=10)
    audio_duration: Optional[float] = Field(
        default=None, ge=0, le=MAX_AUDIO_DURATION_S, allow_inf_nan=False
    )
    audio_url: Optional[str] = None
    words: Optional[List[WordTiming]] = None
    webhook_url: Optional[str] = None
    webhook_status_code: Optional[int] = Field(
        default=None, ge=INT_COLUMN_MIN, le=INT_COLUMN_MAX
    )
    error: Optional[str] = None

    @model_validator(mode="after")
    def validate_job_reference(self) -> "TranscriptRecord":
        if not (self.transcript_id or self.id):
            raise ValueError("transcript_id or id is required")
        return self

    @property
    def job_id(self) -> str:
        return self.transcript_id or self.id  # type: ignore[return-value]
