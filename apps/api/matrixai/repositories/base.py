"""Persistence contracts shared by the in-memory and Supabase backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from matrixai.errors import StoreWriteError
from matrixai.schemas.job import JobKind, JobStatus
from matrixai.schemas.ledger import LedgerOutcome

UPDATABLE_JOB_FIELDS = frozenset(
    {
        "status",
        "name",
        "external_task_handle",
        "task_status",
        "result_ref",
        "result_metadata",
        "error_message",
        "warning_message",
        "xml_data",
    }
)
# Display and annotation fields; terminal jobs still accept these.
LABEL_JOB_FIELDS = frozenset({"name", "xml_data"})


@dataclass(slots=True)
class JobRecord:
    id: str
    owner_id: str
    kind: JobKind
    name: str
    status: JobStatus
    input_ref: str
    cost_reserved: int
    created_at: datetime
    updated_at: datetime | None = None
    parameters: dict[str, Any] = field(default_factory=dict)
    external_task_handle: str | None = None
    task_status: str | None = None
    result_ref: str | None = None
    result_metadata: dict[str, Any] | None = None
    error_message: str | None = None
    warning_message: str | None = None
    xml_data: str | None = None

@dataclass(slots=True)
class LedgerEntryRecord:
    entry_id: str
    owner_id: str
    amount: int
    reason: str
    outcome: LedgerOutcome
    balance_after: int
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class DebitResult:
    applied: bool
    balance: int
    contended: bool = False


class JobRecordStore(ABC):
    """Job persistence keyed by ``(owner_id, job_id)``.

    Implementations return detached snapshots; mutating a returned record never
    changes stored state. ``update`` applies only the given fields and validates
    status changes against the job FSM, so terminal jobs reject every write.
    """

    @abstractmethod
    async def create(self, job: JobRecord) -> JobRecord:
        """Insert a new job. Raises ``StoreWriteError`` on id conflict or backend failure."""

    @abstractmethod
    async def get(self, owner_id: str, job_id: str) -> JobRecord | None:
        """Return the job, or ``None`` when it does not exist for this owner."""

    @abstractmethod
    async def update(self, owner_id: str, job_id: str, fields: dict[str, Any]) -> JobRecord:
        """Apply a partial update and return the stored result."""

    @abstractmethod
    async def list_for_owner(self, owner_id: str, kind: JobKind | None = None) -> list[JobRecord]:
        """Return the owner's jobs, newest first."""

    @abstractmethod
    async def delete(self, owner_id: str, job_id: str) -> bool:
        """Remove a job; ``False`` when nothing matched."""

    @abstractmethod
    async def list_stale(self, updated_before: datetime) -> list[JobRecord]:
        """Return non-terminal jobs whose last write is older than ``updated_before``."""


class LedgerStore(ABC):
    """Account balances and the append-only reservation log."""

    @abstractmethod
    async def get_balance(self, owner_id: str) -> int:
        """Return the spendable balance; unknown owners have zero."""

    @abstractmethod
    async def try_debit(self, owner_id: str, amount: int) -> DebitResult:
        """Atomically debit ``amount`` if the balance covers it.

        The check and the decrement must be indivisible with respect to other
        debits for the same owner. A backend that gives up under contention
        returns ``applied=False, contended=True`` with the last balance it read.
        """

    @abstractmethod
    async def append_entry(self, entry: LedgerEntryRecord) -> None:
        """Persist one ledger entry."""

    @abstractmethod
    async def list_entries(self, owner_id: str) -> list[LedgerEntryRecord]:
        """Return the owner's entries, newest first."""


def validate_update_fields(fields: dict[str, Any]) -> None:
    unknown = set(fields) - UPDATABLE_JOB_FIELDS
    if unknown:
        raise StoreWriteError(f"Unknown job fields: {', '.join(sorted(unknown))}")


def touches_lifecycle(fields: dict[str, Any]) -> bool:
    """``False`` when the update only relabels the job, which terminal jobs still allow."""
    return not set(fields) <= LABEL_JOB_FIELDS
