"""Job API schemas."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SUBMITTED = "SUBMITTED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class JobKind(str, Enum):
    TRANSCRIPTION = "TRANSCRIPTION"
    VIDEO_SYNTHESIS = "VIDEO_SYNTHESIS"


class SubmitTranscriptionRequest(BaseModel):
    audio_url: str
    duration_seconds: float
    audio_name: str | None = None
    language: str | None = None


class SubmitVideoRequest(BaseModel):
    prompt_text: str
    size: str | None = None


class RenameJobRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)


class AttachGraphRequest(BaseModel):
    xml_data: str = Field(min_length=1)


class SubmitJobResponse(BaseModel):
    job_id: str
    kind: JobKind
    status: JobStatus
    required_coins: int
    message: str


class Job(BaseModel):
    id: str
    kind: JobKind
    name: str
    status: JobStatus
    input_ref: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    cost_reserved: int
    external_task_handle: str | None = None
    task_status: str | None = None
    result_ref: str | None = None
    result_metadata: dict[str, Any] | None = None
    error_message: str | None = None
    warning_message: str | None = None
    xml_data: str | None = None
    created_at: datetime
    updated_at: datetime | None = None


class JobStatusView(Job):
    """Job snapshot plus a human-readable status summary for polling clients."""

    message: str
    transcript_preview: str | None = None
    word_count: int | None = None


class JobList(BaseModel):
    items: list[Job]
