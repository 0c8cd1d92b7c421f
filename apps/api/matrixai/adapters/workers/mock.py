"""Mock worker invoker for local development and tests."""

from collections.abc import Mapping
from typing import Any
from uuid import uuid4

from matrixai.adapters.workers.base import TaskState, WorkerInvoker, WorkerPollResult, WorkerSubmission
from matrixai.schemas.job import JobKind


class MockWorkerInvoker(WorkerInvoker):
    """Accepts every task and reports it finished on the first poll.

    Transcriptions resolve to ``"mock transcript for <audio url>"`` and videos
    to ``https://mock.invalid/videos/<handle>.mp4``.
    """

    def __init__(self, kind: JobKind) -> None:
        self._kind = kind
        self._inputs: dict[str, str] = {}

    async def submit(self, input_ref: str, parameters: Mapping[str, Any]) -> WorkerSubmission:
        handle = f"mock-{uuid4().hex}"
        self._inputs[handle] = input_ref
        return WorkerSubmission(task_handle=handle, task_status="PENDING", request_id=handle)

    async def poll(self, task_handle: str) -> WorkerPollResult:
        input_ref = self._inputs.pop(task_handle, None)
        if input_ref is None:
            return WorkerPollResult(state=TaskState.FAILED, task_status="UNKNOWN", error="Unknown mock task")
        if self._kind is JobKind.TRANSCRIPTION:
            return WorkerPollResult(
                state=TaskState.SUCCEEDED,
                task_status="SUCCEEDED",
                result_ref=f"mock transcript for {input_ref}",
                metadata={"words": []},
            )
        return WorkerPollResult(
            state=TaskState.SUCCEEDED,
            task_status="SUCCEEDED",
            result_ref=f"https://mock.invalid/videos/{task_handle}.mp4",
            metadata={},
        )

    def discard(self, task_handle: str) -> None:
        self._inputs.pop(task_handle, None)


__all__ = ["MockWorkerInvoker"]
