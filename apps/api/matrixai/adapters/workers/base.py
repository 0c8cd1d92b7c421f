"""External worker invoker interfaces."""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any


class TaskState(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


@dataclass(frozen=True, slots=True)
class WorkerSubmission:
    task_handle: str
    task_status: str | None = None
    request_id: str | None = None


@dataclass(frozen=True, slots=True)
class WorkerPollResult:
    state: TaskState
    task_status: str | None = None
    result_ref: str | None = None
    error: str | None = None
    metadata: dict[str, Any] | None = None


class WorkerInvoker(ABC):
    """Provider-neutral contract for a remote long-running task."""

    @abstractmethod
    async def submit(self, input_ref: str, parameters: Mapping[str, Any]) -> WorkerSubmission:
        """Start the task. Raises ``ExternalWorkerError`` when no usable handle comes back."""

    @abstractmethod
    async def poll(self, task_handle: str) -> WorkerPollResult:
        """Report the task's current state. Raises ``ExternalWorkerError`` on transport failure."""

    def discard(self, task_handle: str) -> None:
        """Drop anything held locally for ``task_handle``; the job no longer needs it."""


__all__ = ["TaskState", "WorkerInvoker", "WorkerPollResult", "WorkerSubmission"]
