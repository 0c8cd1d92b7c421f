"""DashScope text-to-video adapter."""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import Any

import httpx

from matrixai.adapters.workers.base import TaskState, WorkerInvoker, WorkerPollResult, WorkerSubmission
from matrixai.core.logging_safety import safe_log_identifier
from matrixai.errors import ExternalWorkerError

logger = logging.getLogger(__name__)

_FAILED_TASK_STATUSES = frozenset({"FAILED", "CANCELED", "UNKNOWN"})
_RESULT_METADATA_KEYS = ("submit_time", "scheduled_time", "end_time", "orig_prompt", "actual_prompt")


class DashScopeVideoInvoker(WorkerInvoker):
    def __init__(
        self,
        base_url: str,
        api_key: str | None,
        *,
        model: str,
        client: httpx.AsyncClient,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._model = model
        self._client = client

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            raise ExternalWorkerError("Video generation service is not properly configured")
        return {"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"}

    async def submit(self, input_ref: str, parameters: Mapping[str, Any]) -> WorkerSubmission:
        headers = self._headers()
        headers["X-DashScope-Async"] = "enable"
        payload = {
            "model": self._model,
            "input": {"prompt": input_ref},
            "parameters": {"size": parameters.get("size")},
        }
        try:
            response = await self._client.post(
                f"{self._base_url}/services/aigc/video-generation/video-synthesis",
                headers=headers,
                json=payload,
            )
        except httpx.TimeoutException as exc:
            raise ExternalWorkerError("Video generation timeout - DashScope service is slow") from exc
        except httpx.HTTPError as exc:
            raise ExternalWorkerError(f"DashScope request failed: {type(exc).__name__}") from exc

        if response.status_code >= 400:
            raise ExternalWorkerError(
                f"DashScope API error: {response.status_code} {response.reason_phrase} - {response.text}"
            )

        output, request_id = self._parse_output(response)
        task_id = output.get("task_id")
        if not task_id:
            raise ExternalWorkerError("Failed to initiate video generation - no task ID returned")

        logger.info(
            "dashscope.submitted task_id=%s task_status=%s",
            safe_log_identifier(task_id, prefix="tid"),
            output.get("task_status"),
        )
        return WorkerSubmission(task_handle=task_id, task_status=output.get("task_status"), request_id=request_id)

    async def poll(self, task_handle: str) -> WorkerPollResult:
        try:
            response = await self._client.get(f"{self._base_url}/tasks/{task_handle}", headers=self._headers())
        except httpx.HTTPError as exc:
            raise ExternalWorkerError(f"DashScope status check failed: {type(exc).__name__}") from exc

        if response.status_code >= 400:
            raise ExternalWorkerError(
                f"DashScope status check error: {response.status_code} {response.reason_phrase}"
            )

        output, _ = self._parse_output(response)
        task_status = output.get("task_status")
        metadata = {key: output[key] for key in _RESULT_METADATA_KEYS if output.get(key) is not None}

        if task_status == "SUCCEEDED":
            return WorkerPollResult(
                state=TaskState.SUCCEEDED,
                task_status=task_status,
                result_ref=output.get("video_url"),
                metadata=metadata,
            )
        if task_status in _FAILED_TASK_STATUSES:
            return WorkerPollResult(
                state=TaskState.FAILED,
                task_status=task_status,
                error=output.get("message") or "Video generation failed on DashScope",
                metadata=metadata,
            )
        return WorkerPollResult(state=TaskState.IN_PROGRESS, task_status=task_status, metadata=metadata)

    @staticmethod
    def _parse_output(response: httpx.Response) -> tuple[dict[str, Any], str | None]:
        try:
            data = response.json()
        except ValueError as exc:
            raise ExternalWorkerError("DashScope returned a malformed response") from exc
        if not isinstance(data, dict):
            raise ExternalWorkerError("DashScope returned a malformed response")
        output = data.get("output")
        return (output if isinstance(output, dict) else {}), data.get("request_id")


__all__ = ["DashScopeVideoInvoker"]
