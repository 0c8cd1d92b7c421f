"""Supabase (PostgREST) repositories.

Jobs live in ``jobs``, balances in ``users.user_coins`` and reservation
attempts in ``user_transaction``. Writes that must not race are expressed as
filtered PATCH requests: a status change only matches rows whose current
status may legally precede it, and a debit only matches the row whose balance
still equals the value it was computed from.
"""

from __future__ import annotations

from datetime import UTC, datetime
import json
import logging
from typing import Any

import httpx

from matrixai.core.logging_safety import safe_log_identifier
from matrixai.domain.job_fsm import TERMINAL_STATES, allowed_previous_statuses, ensure_mutable, ensure_transition
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
from matrixai.schemas.job import JobKind, JobStatus
from matrixai.schemas.ledger import LedgerOutcome

logger = logging.getLogger(__name__)

_JOBS_TABLE = "jobs"
_USERS_TABLE = "users"
_LEDGER_TABLE = "user_transaction"
_DEBIT_CAS_ATTEMPTS = 5
_LIVE_STATUS_FILTER = "in.({})".format(
    ",".join(status.value for status in JobStatus if status not in TERMINAL_STATES)
)


def _in_filter(statuses: list[JobStatus]) -> str:
    return "in.({})".format(",".join(status.value for status in statuses))


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _job_to_row(job: JobRecord) -> dict[str, Any]:
    return {
        "job_id": job.id,
        "owner_id": job.owner_id,
        "kind": job.kind.value,
        "name": job.name,
        "status": job.status.value,
        "input_ref": job.input_ref,
        "parameters": job.parameters,
        "cost_reserved": job.cost_reserved,
        "external_task_handle": job.external_task_handle,
        "task_status": job.task_status,
        "result_ref": job.result_ref,
        "result_metadata": job.result_metadata,
        "error_message": job.error_message,
        "warning_message": job.warning_message,
        "xml_data": job.xml_data,
        "created_at": job.created_at.isoformat(),
        "updated_at": (job.updated_at or job.created_at).isoformat(),
    }


def _row_to_job(row: dict[str, Any]) -> JobRecord:
    return JobRecord(
        id=row["job_id"],
        owner_id=row["owner_id"],
        kind=JobKind(row["kind"]),
        name=row.get("name") or "",
        status=JobStatus(row["status"]),
        input_ref=row["input_ref"],
        cost_reserved=int(row.get("cost_reserved") or 0),
        created_at=_parse_timestamp(row["created_at"]),
        updated_at=_parse_timestamp(row.get("updated_at")),
        parameters=row.get("parameters") or {},
        external_task_handle=row.get("external_task_handle"),
        task_status=row.get("task_status"),
        result_ref=row.get("result_ref"),
        result_metadata=row.get("result_metadata"),
        error_message=row.get("error_message"),
        warning_message=row.get("warning_message"),
        xml_data=row.get("xml_data"),
    )


def _fields_to_row(fields: dict[str, Any]) -> dict[str, Any]:
    row: dict[str, Any] = {}
    for name, value in fields.items():
        row[name] = value.value if isinstance(value, JobStatus) else value
    return row


class SupabaseStore(JobRecordStore, LedgerStore):
    def __init__(self, base_url: str, service_key: str, *, client: httpx.AsyncClient) -> None:
        self.rest_url = f"{base_url.rstrip('/')}/rest/v1"
        self._service_key = service_key
        self._client = client

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {
            "apikey": self._service_key,
            "Authorization": f"Bearer {self._service_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    @staticmethod
    def _extract_error(response: httpx.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            return response.text
        if isinstance(payload, dict):
            return payload.get("message") or payload.get("details") or json.dumps(payload)
        return json.dumps(payload)

    async def _request(self, method: str, table: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, f"{self.rest_url}/{table}", **kwargs)
        except httpx.HTTPError as exc:
            raise StoreWriteError(f"Supabase request failed: {type(exc).__name__}") from exc

    async def _select(self, table: str, params: dict[str, str]) -> list[dict[str, Any]]:
        response = await self._request("GET", table, headers=self._headers(), params=params)
        if response.status_code >= 400:
            raise StoreWriteError(f"Supabase read failed: {self._extract_error(response)}")
        data = response.json()
        return data if isinstance(data, list) else []

    async def _patch(self, table: str, params: dict[str, str], payload: dict[str, Any]) -> list[dict[str, Any]]:
        response = await self._request(
            "PATCH",
            table,
            headers=self._headers({"Prefer": "return=representation"}),
            params=params,
            json=payload,
        )
        if response.status_code >= 400:
            raise StoreWriteError(f"Supabase update failed: {self._extract_error(response)}")
        data = response.json() if response.content else []
        return data if isinstance(data, list) else []

    async def create(self, job: JobRecord) -> JobRecord:
        response = await self._request(
            "POST",
            _JOBS_TABLE,
            headers=self._headers({"Prefer": "return=representation"}),
            json=_job_to_row(job),
        )
        if response.status_code == 409:
            raise StoreWriteError(f"Job {job.id} already exists")
        if response.status_code >= 400:
            raise StoreWriteError(f"Failed to create job record: {self._extract_error(response)}")
        rows = response.json()
        if isinstance(rows, list) and rows:
            return _row_to_job(rows[0])
        return job

    async def get(self, owner_id: str, job_id: str) -> JobRecord | None:
        rows = await self._select(
            _JOBS_TABLE,
            {"owner_id": f"eq.{owner_id}", "job_id": f"eq.{job_id}", "limit": "1"},
        )
        return _row_to_job(rows[0]) if rows else None

    async def update(self, owner_id: str, job_id: str, fields: dict[str, Any]) -> JobRecord:
        validate_update_fields(fields)
        params = {"owner_id": f"eq.{owner_id}", "job_id": f"eq.{job_id}"}
        new_status: JobStatus | None = fields.get("status")
        if new_status is not None:
            params["status"] = _in_filter(allowed_previous_statuses(new_status))
        elif touches_lifecycle(fields):
            params["status"] = _LIVE_STATUS_FILTER

        payload = _fields_to_row(fields)
        payload["updated_at"] = datetime.now(UTC).isoformat()
        rows = await self._patch(_JOBS_TABLE, params, payload)
        if rows:
            return _row_to_job(rows[0])

        # Nothing matched: report why.
        current = await self.get(owner_id, job_id)
        if current is None:
            raise StoreWriteError(f"Job {job_id} not found")
        if new_status is not None:
            ensure_transition(current.status, new_status)
        elif touches_lifecycle(fields):
            ensure_mutable(current.status)
        raise StoreWriteError(f"Job {job_id} changed concurrently")

    async def list_for_owner(self, owner_id: str, kind: JobKind | None = None) -> list[JobRecord]:
        params = {"owner_id": f"eq.{owner_id}", "order": "created_at.desc"}
        if kind is not None:
            params["kind"] = f"eq.{kind.value}"
        return [_row_to_job(row) for row in await self._select(_JOBS_TABLE, params)]

    async def delete(self, owner_id: str, job_id: str) -> bool:
        response = await self._request(
            "DELETE",
            _JOBS_TABLE,
            headers=self._headers({"Prefer": "return=representation"}),
            params={"owner_id": f"eq.{owner_id}", "job_id": f"eq.{job_id}"},
        )
        if response.status_code >= 400:
            raise StoreWriteError(f"Failed to delete job record: {self._extract_error(response)}")
        rows = response.json() if response.content else []
        return bool(rows)

    async def list_stale(self, updated_before: datetime) -> list[JobRecord]:
        params = {"status": _LIVE_STATUS_FILTER, "updated_at": f"lt.{updated_before.isoformat()}"}
        return [_row_to_job(row) for row in await self._select(_JOBS_TABLE, params)]

    async def get_balance(self, owner_id: str) -> int:
        rows = await self._select(
            _USERS_TABLE,
            {"uid": f"eq.{owner_id}", "select": "user_coins", "limit": "1"},
        )
        if not rows:
            return 0
        return int(rows[0].get("user_coins") or 0)

    async def try_debit(self, owner_id: str, amount: int) -> DebitResult:
        balance = 0
        for attempt in range(1, _DEBIT_CAS_ATTEMPTS + 1):
            balance = await self.get_balance(owner_id)
            if amount > balance:
                return DebitResult(applied=False, balance=balance)

            rows = await self._patch(
                _USERS_TABLE,
                {"uid": f"eq.{owner_id}", "user_coins": f"eq.{balance}"},
                {"user_coins": balance - amount},
            )
            if rows:
                return DebitResult(applied=True, balance=int(rows[0].get("user_coins", balance - amount)))

            logger.info(
                "ledger.debit_contended owner_id=%s attempt=%s",
                safe_log_identifier(owner_id, prefix="oid"),
                attempt,
            )

        return DebitResult(applied=False, balance=balance, contended=True)

    async def append_entry(self, entry: LedgerEntryRecord) -> None:
        response = await self._request(
            "POST",
            _LEDGER_TABLE,
            headers=self._headers(),
            json={
                "entry_id": entry.entry_id,
                "uid": entry.owner_id,
                "coin_amount": entry.amount,
                "transaction_name": entry.reason,
                "status": entry.outcome.value,
                "remaining_coins": entry.balance_after,
                "time": entry.timestamp.isoformat(),
            },
        )
        if response.status_code >= 400:
            raise StoreWriteError(f"Failed to record transaction: {self._extract_error(response)}")

    async def list_entries(self, owner_id: str) -> list[LedgerEntryRecord]:
        rows = await self._select(_LEDGER_TABLE, {"uid": f"eq.{owner_id}", "order": "time.desc"})
        return [
            LedgerEntryRecord(
                entry_id=row["entry_id"],
                owner_id=row["uid"],
                amount=int(row["coin_amount"]),
                reason=row.get("transaction_name") or "",
                outcome=LedgerOutcome(row["status"]),
                balance_after=int(row.get("remaining_coins") or 0),
                timestamp=_parse_timestamp(row["time"]),
            )
            for row in rows
        ]
