"""Application exception types."""

from matrixai.schemas.error import ErrorResponse


class ApiError(Exception):
    """Structured API error that maps directly to contract error payloads."""

    def __init__(self, status_code: int, code: str, message: str, details: dict | None = None) -> None:
        self.status_code = status_code
        self.payload = ErrorResponse(code=code, message=message, details=details)
        super().__init__(message)


class JobValidationError(ApiError):
    """Job input failed kind-specific validation; nothing was created."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(status_code=400, code="VALIDATION_ERROR", message=message, details=details)


class InsufficientBalanceError(ApiError):
    """Reservation rejected because the owner's balance is too low."""

    def __init__(self, *, required: int, balance: int) -> None:
        self.required = required
        self.balance = balance
        super().__init__(
            status_code=402,
            code="INSUFFICIENT_BALANCE",
            message="Insufficient coins. Please buy more coins.",
            details={"required_coins": required, "balance": balance},
        )


class BalanceContentionError(ApiError):
    """Reservation abandoned because the balance kept changing underneath it."""

    def __init__(self, *, required: int, balance: int) -> None:
        self.required = required
        self.balance = balance
        super().__init__(
            status_code=409,
            code="BALANCE_CONTENDED",
            message="Balance changed while reserving coins. Please retry.",
            details={"required_coins": required, "balance": balance},
        )


class StoreWriteError(Exception):
    """The job or ledger store rejected a write."""


class ExternalWorkerError(Exception):
    """A remote transcription or synthesis call failed or returned an unusable response."""


class PollingTimeoutError(Exception):
    """An external task did not reach a terminal state within the polling budget."""


class AssetRelocationError(Exception):
    """A generated asset could not be copied into owned storage."""


__all__ = [
    "ApiError",
    "AssetRelocationError",
    "BalanceContentionError",
    "ExternalWorkerError",
    "InsufficientBalanceError",
    "JobValidationError",
    "PollingTimeoutError",
    "StoreWriteError",
]
