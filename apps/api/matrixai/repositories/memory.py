"""In-memory repositories used for local development and tests."""

from __future__ import annotations

import asyncio
import copy
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from matrixai.domain.job_fsm import TERMINAL_STATES, ensure_mutable, ensure_transition
from matrixai.errors import StoreWriteError
from matrixai.repositories.base import (
    DebitResult,
    JobRecord,
    JobRecordStore,
    LedgerEntryRecord,
    LedgerStore,
    touches_lifecycle,
    validate_update_fields,
)
from matrixai.schemas.job import JobKind


@dataclass
class InMemoryStore(JobRecordStore, LedgerStore):
    """Simple, deterministic persistence layer for scaffolding and tests.

    The ``*_failure_message`` fields are one-shot failpoints: the next matching
    write raises ``StoreWriteError`` with that message and the failpoint clears.
    """

    jobs: dict[tuple[str, str], JobRecord] = field(default_factory=dict)
    balances: dict[str, int] = field(default_factory=dict)
    ledger_entries: list[LedgerEntryRecord] = field(default_factory=list)
    job_write_count: int = 0
    ledger_write_count: int = 0
    job_create_failure_message: str | None = None
    job_update_failure_message: str | None = None
    _owner_locks: dict[str, asyncio.Lock] = field(default_factory=dict)

    def set_balance(self, owner_id: str, balance: int) -> None:
        if balance < 0:
            raise ValueError("balance must be non-negative")
        self.balances[owner_id] = balance

    async def create(self, job: JobRecord) -> JobRecord:
        if self.job_create_failure_message is not None:
            message = self.job_create_failure_message
            self.job_create_failure_message = None
            raise StoreWriteError(message)

        key = (job.owner_id, job.id)
        if key in self.jobs:
            raise StoreWriteError(f"Job {job.id} already exists")

        stored = copy.deepcopy(job)
        stored.updated_at = stored.updated_at or stored.created_at
        self.jobs[key] = stored
        self.job_write_count += 1
        return copy.deepcopy(stored)

    async def get(self, owner_id: str, job_id: str) -> JobRecord | None:
        job = self.jobs.get((owner_id, job_id))
        return copy.deepcopy(job) if job is not None else None

    async def update(self, owner_id: str, job_id: str, fields: dict[str, Any]) -> JobRecord:
        validate_update_fields(fields)
        job = self.jobs.get((owner_id, job_id))
        if job is None:
            raise StoreWriteError(f"Job {job_id} not found")

        if "status" in fields:
            ensure_transition(job.status, fields["status"])
        elif touches_lifecycle(fields):
            ensure_mutable(job.status)

        if self.job_update_failure_message is not None:
            message = self.job_update_failure_message
            self.job_update_failure_message = None
            raise StoreWriteError(message)

        for name, value in fields.items():
            setattr(job, name, copy.deepcopy(value))
        job.updated_at = datetime.now(UTC)
        self.job_write_count += 1
        return copy.deepcopy(job)

    async def list_for_owner(self, owner_id: str, kind: JobKind | None = None) -> list[JobRecord]:
        jobs = [
            copy.deepcopy(record)
            for (record_owner, _), record in self.jobs.items()
            if record_owner == owner_id and (kind is None or record.kind is kind)
        ]
        jobs.sort(key=lambda record: record.created_at, reverse=True)
        return jobs

    async def delete(self, owner_id: str, job_id: str) -> bool:
        removed = self.jobs.pop((owner_id, job_id), None)
        if removed is None:
            return False
        self.job_write_count += 1
        return True

    async def list_stale(self, updated_before: datetime) -> list[JobRecord]:
        return [
            copy.deepcopy(record)
            for record in self.jobs.values()
            if record.status not in TERMINAL_STATES and (record.updated_at or record.created_at) < updated_before
        ]

    async def get_balance(self, owner_id: str) -> int:
        return self.balances.get(owner_id, 0)

    async def try_debit(self, owner_id: str, amount: int) -> DebitResult:
        lock = self._owner_locks.setdefault(owner_id, asyncio.Lock())
        async with lock:
            balance = self.balances.get(owner_id, 0)
            # Suspension point inside the read-decide-write; the per-owner lock serializes it.
            await asyncio.sleep(0)
            if amount > balance:
                return DebitResult(applied=False, balance=balance)
            self.balances[owner_id] = balance - amount
            return DebitResult(applied=True, balance=balance - amount)

    async def append_entry(self, entry: LedgerEntryRecord) -> None:
        self.ledger_entries.append(copy.deepcopy(entry))
        self.ledger_write_count += 1

    async def list_entries(self, owner_id: str) -> list[LedgerEntryRecord]:
        entries = [copy.deepcopy(entry) for entry in self.ledger_entries if entry.owner_id == owner_id]
        entries.reverse()
        return entries
