"""External worker invoker adapters."""

from .base import TaskState, WorkerInvoker, WorkerPollResult, WorkerSubmission
from .dashscope import DashScopeVideoInvoker
from .deepgram import DeepgramTranscriptionInvoker
from .mock import MockWorkerInvoker

__all__ = [
    "DashScopeVideoInvoker",
    "DeepgramTranscriptionInvoker",
    "MockWorkerInvoker",
    "TaskState",
    "WorkerInvoker",
    "WorkerPollResult",
    "WorkerSubmission",
]
