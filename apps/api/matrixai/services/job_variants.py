"""Per-kind job capabilities plugged into the lifecycle controller."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
import math
import re
from typing import Any
from urllib.parse import urlsplit

from matrixai.adapters.storage import SupabaseAssetStorage
from matrixai.adapters.workers import WorkerInvoker, WorkerPollResult, WorkerSubmission
from matrixai.errors import JobValidationError
from matrixai.repositories.base import JobRecord
from matrixai.schemas.job import JobKind, JobStatus

_VIDEO_SIZE_PATTERN = re.compile(r"^\d{2,5}\*\d{2,5}$")
_DEFAULT_AUDIO_NAME = "Untitled Audio"
_VIDEO_NAME_LENGTH = 60


@dataclass(frozen=True, slots=True)
class JobInput:
    input_ref: str
    name: str
    parameters: dict[str, Any] = field(default_factory=dict)


class JobVariant(ABC):
    """Everything the controller needs to know about one job kind."""

    kind: JobKind
    reason: str
    id_prefix: str
    _status_messages: dict[JobStatus, str]

    def __init__(self, invoker: WorkerInvoker) -> None:
        self._invoker = invoker

    @abstractmethod
    def validate_input(self, payload: Mapping[str, Any]) -> JobInput:
        """Normalize the submission payload or raise ``JobValidationError``."""

    @abstractmethod
    def compute_cost(self, job_input: JobInput) -> int:
        """Coins to reserve; deterministic in the input."""

    async def submit(self, job: JobRecord) -> WorkerSubmission:
        return await self._invoker.submit(job.input_ref, job.parameters)

    async def poll(self, task_handle: str) -> WorkerPollResult:
        return await self._invoker.poll(task_handle)

    def discard(self, task_handle: str) -> None:
        self._invoker.discard(task_handle)

    @property
    def has_post_processing(self) -> bool:
        return False

    async def post_process(self, job: JobRecord, result_ref: str) -> str:
        """Return the reference to keep for a finished result."""
        return result_ref

    def status_message(self, status: JobStatus) -> str:
        return self._status_messages[status]


class TranscriptionVariant(JobVariant):
    kind = JobKind.TRANSCRIPTION
    reason = "Audio Transcription"
    id_prefix = "audio"
    _status_messages = {
        JobStatus.PENDING: "Audio transcription is queued for processing",
        JobStatus.PROCESSING: "Audio transcription is currently being processed",
        JobStatus.SUBMITTED: "Audio transcription is currently being processed",
        JobStatus.COMPLETED: "Audio transcription completed successfully",
        JobStatus.FAILED: "Audio transcription failed",
    }

    def __init__(
        self,
        invoker: WorkerInvoker,
        *,
        max_url_length: int,
        min_cost: int,
        default_language: str,
    ) -> None:
        super().__init__(invoker)
        self._max_url_length = max_url_length
        self._min_cost = min_cost
        self._default_language = default_language

    def validate_input(self, payload: Mapping[str, Any]) -> JobInput:
        audio_url = str(payload.get("audio_url") or "").strip()
        if not audio_url:
            raise JobValidationError("audio_url is required", details={"field": "audio_url"})
        if len(audio_url) > self._max_url_length:
            raise JobValidationError(
                f"Audio URL is too long (maximum {self._max_url_length} characters)",
                details={"field": "audio_url", "max_length": self._max_url_length},
            )
        parts = urlsplit(audio_url)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise JobValidationError("Invalid audio URL format", details={"field": "audio_url"})

        duration = payload.get("duration_seconds")
        if isinstance(duration, bool) or not isinstance(duration, (int, float)) or not math.isfinite(duration):
            raise JobValidationError("duration_seconds is required", details={"field": "duration_seconds"})
        if duration <= 0:
            raise JobValidationError(
                "Duration is required and must be greater than 0",
                details={"field": "duration_seconds"},
            )

        name = str(payload.get("audio_name") or "").strip() or _DEFAULT_AUDIO_NAME
        language = str(payload.get("language") or "").strip() or self._default_language
        return JobInput(
            input_ref=audio_url,
            name=name,
            parameters={"language": language, "duration_seconds": duration},
        )

    def compute_cost(self, job_input: JobInput) -> int:
        # Two coins per minute rounded up to a whole coin, never below the minimum charge.
        minutes = job_input.parameters["duration_seconds"] / 60
        return max(self._min_cost, math.ceil(minutes * 2))


class VideoSynthesisVariant(JobVariant):
    kind = JobKind.VIDEO_SYNTHESIS
    reason = "Video Generation"
    id_prefix = "video"
    _status_messages = {
        JobStatus.PENDING: "Video generation pending",
        JobStatus.PROCESSING: "Video generation task being processed",
        JobStatus.SUBMITTED: "Video generation in progress",
        JobStatus.COMPLETED: "Video generation completed successfully",
        JobStatus.FAILED: "Video generation failed",
    }

    def __init__(
        self,
        invoker: WorkerInvoker,
        *,
        cost: int,
        max_prompt_length: int,
        default_size: str,
        storage: SupabaseAssetStorage | None = None,
    ) -> None:
        super().__init__(invoker)
        self._cost = cost
        self._max_prompt_length = max_prompt_length
        self._default_size = default_size
        self._storage = storage

    def validate_input(self, payload: Mapping[str, Any]) -> JobInput:
        prompt = str(payload.get("prompt_text") or "").strip()
        if not prompt:
            raise JobValidationError("prompt_text is required", details={"field": "prompt_text"})
        if len(prompt) > self._max_prompt_length:
            raise JobValidationError(
                f"Prompt text is too long (maximum {self._max_prompt_length} characters)",
                details={"field": "prompt_text", "max_length": self._max_prompt_length},
            )

        size = str(payload.get("size") or "").strip() or self._default_size
        if not _VIDEO_SIZE_PATTERN.match(size):
            raise JobValidationError("size must look like <width>*<height>", details={"field": "size"})

        return JobInput(input_ref=prompt, name=prompt[:_VIDEO_NAME_LENGTH], parameters={"size": size})

    def compute_cost(self, job_input: JobInput) -> int:
        return self._cost

    @property
    def has_post_processing(self) -> bool:
        return self._storage is not None

    async def post_process(self, job: JobRecord, result_ref: str) -> str:
        if self._storage is None:
            return result_ref
        path = f"users/{job.owner_id}/videos/{job.id}.mp4"
        return await self._storage.relocate(result_ref, path, content_type="video/mp4")
