"""API error response schemas."""

from typing import Any
from typing import Literal

from pydantic import BaseModel

from matrixai.schemas.job import JobStatus


class ErrorResponse(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class TransitionErrorDetails(BaseModel):
    current_status: JobStatus
    attempted_status: JobStatus | None = None
    allowed_next_statuses: list[JobStatus] | None = None


class FsmTransitionError(BaseModel):
    code: Literal["FSM_TRANSITION_INVALID", "FSM_TERMINAL_IMMUTABLE", "JOB_NOT_TERMINAL"]
    message: str
    details: TransitionErrorDetails


class ValidationErrorResponse(BaseModel):
    code: Literal["VALIDATION_ERROR"]
    message: str
    details: dict[str, Any] | None = None


class InsufficientBalanceDetails(BaseModel):
    required_coins: int
    balance: int


class InsufficientBalanceResponse(BaseModel):
    code: Literal["INSUFFICIENT_BALANCE"]
    message: str
    details: InsufficientBalanceDetails


class NoLeakNotFoundError(BaseModel):
    code: Literal["RESOURCE_NOT_FOUND"]
    message: str


class StoreWriteErrorResponse(BaseModel):
    code: Literal["STORE_WRITE_FAILED"]
    message: str
