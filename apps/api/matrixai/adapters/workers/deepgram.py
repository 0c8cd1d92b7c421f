"""Deepgram pre-recorded transcription adapter."""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import Any
from uuid import uuid4

import httpx

from matrixai.adapters.workers.base import TaskState, WorkerInvoker, WorkerPollResult, WorkerSubmission
from matrixai.core.logging_safety import safe_log_identifier, safe_log_url
from matrixai.errors import ExternalWorkerError

logger = logging.getLogger(__name__)


class DeepgramTranscriptionInvoker(WorkerInvoker):
    """Transcribes a remote audio URL with Deepgram's whisper model.

    The pre-recorded endpoint answers synchronously, so ``submit`` already
    holds the transcript. It is parked under the request id and handed out by
    the first ``poll`` for that handle.
    """

    def __init__(self, api_url: str, api_key: str | None, *, client: httpx.AsyncClient) -> None:
        self._api_url = api_url
        self._api_key = api_key
        self._client = client
        self._finished: dict[str, WorkerPollResult] = {}

    async def submit(self, input_ref: str, parameters: Mapping[str, Any]) -> WorkerSubmission:
        if not self._api_key:
            raise ExternalWorkerError("Transcription service is not configured")

        language = str(parameters.get("language") or "en-GB")
        try:
            response = await self._client.post(
                self._api_url,
                params={"smart_format": "true", "language": language, "model": "whisper"},
                headers={"Authorization": f"Token {self._api_key}", "Content-Type": "application/json"},
                json={"url": input_ref},
            )
        except httpx.HTTPError as exc:
            raise ExternalWorkerError(f"Deepgram request failed: {type(exc).__name__}") from exc

        if response.status_code >= 400:
            logger.warning(
                "deepgram.rejected status_code=%s audio=%s",
                response.status_code,
                safe_log_url(input_ref),
            )
            raise ExternalWorkerError(f"Deepgram API error: {response.status_code} {response.reason_phrase}")

        try:
            data = response.json()
        except ValueError as exc:
            raise ExternalWorkerError("Deepgram returned a malformed response") from exc

        transcript, words = self._extract_transcript(data)
        if not transcript:
            raise ExternalWorkerError("Failed to transcribe audio - empty transcription returned")

        metadata = data.get("metadata") if isinstance(data, dict) else None
        request_id = (metadata or {}).get("request_id") or f"dg-{uuid4().hex}"
        self._finished[request_id] = WorkerPollResult(
            state=TaskState.SUCCEEDED,
            task_status="COMPLETED",
            result_ref=transcript,
            metadata={"words": words, "language": language},
        )
        logger.info(
            "deepgram.transcribed request_id=%s characters=%s",
            safe_log_identifier(request_id, prefix="rid"),
            len(transcript),
        )
        return WorkerSubmission(task_handle=request_id, task_status="COMPLETED", request_id=request_id)

    async def poll(self, task_handle: str) -> WorkerPollResult:
        result = self._finished.pop(task_handle, None)
        if result is None:
            return WorkerPollResult(
                state=TaskState.FAILED,
                task_status="UNKNOWN",
                error="Transcription result is no longer available",
            )
        return result

    def discard(self, task_handle: str) -> None:
        self._finished.pop(task_handle, None)

    @staticmethod
    def _extract_transcript(data: Any) -> tuple[str, list[dict[str, Any]]]:
        try:
            alternative = data["results"]["channels"][0]["alternatives"][0]
        except (KeyError, IndexError, TypeError):
            return "", []
        transcript = str(alternative.get("transcript") or "").strip()
        words = alternative.get("words") or []
        return transcript, words if isinstance(words, list) else []


__all__ = ["DeepgramTranscriptionInvoker"]
