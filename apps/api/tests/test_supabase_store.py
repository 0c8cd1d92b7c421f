"""Supabase PostgREST store tests against a mocked HTTP transport."""

from __future__ import annotations

from datetime import UTC, datetime
import json
import unittest

import httpx

from matrixai.errors import ApiError, BalanceContentionError, StoreWriteError
from matrixai.repositories.base import JobRecord, LedgerEntryRecord
from matrixai.repositories.supabase import SupabaseStore
from matrixai.schemas.job import JobKind, JobStatus
from matrixai.schemas.ledger import LedgerOutcome
from matrixai.services.ledger import BalanceLedger

_BASE_URL = "https://proj.supabase.test"
_CREATED_AT = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)


def _job_row(status: str = "PENDING", **overrides) -> dict:
    row = {
        "job_id": "video_1",
        "owner_id": "user-a",
        "kind": "VIDEO_SYNTHESIS",
        "name": "A fox",
        "status": status,
        "input_ref": "a fox in the snow",
        "parameters": {"size": "1280*720"},
        "cost_reserved": 25,
        "external_task_handle": None,
        "task_status": None,
        "result_ref": None,
        "result_metadata": None,
        "error_message": None,
        "warning_message": None,
        "created_at": _CREATED_AT.isoformat(),
        "updated_at": _CREATED_AT.isoformat(),
    }
    row.update(overrides)
    return row


class SupabaseStoreTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.requests: list[httpx.Request] = []
        self.responses: list[httpx.Response | Exception] = []

        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            outcome = self.responses.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        self.client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        self.store = SupabaseStore(_BASE_URL, "service-key", client=self.client)

    async def asyncTearDown(self) -> None:
        await self.client.aclose()

    async def test_create_inserts_row_and_parses_representation(self) -> None:
        self.responses.append(httpx.Response(201, json=[_job_row()]))
        job = JobRecord(
            id="video_1",
            owner_id="user-a",
            kind=JobKind.VIDEO_SYNTHESIS,
            name="A fox",
            status=JobStatus.PENDING,
            input_ref="a fox in the snow",
            cost_reserved=25,
            created_at=_CREATED_AT,
            parameters={"size": "1280*720"},
        )

        created = await self.store.create(job)

        self.assertEqual(created.status, JobStatus.PENDING)
        self.assertEqual(created.created_at, _CREATED_AT)
        request = self.requests[0]
        self.assertEqual(str(request.url), f"{_BASE_URL}/rest/v1/jobs")
        self.assertEqual(request.headers["apikey"], "service-key")
        self.assertEqual(request.headers["Prefer"], "return=representation")
        body = json.loads(request.content)
        self.assertEqual(body["status"], "PENDING")
        self.assertEqual(body["kind"], "VIDEO_SYNTHESIS")
        self.assertEqual(body["updated_at"], _CREATED_AT.isoformat())

    async def test_create_conflict_is_store_write_error(self) -> None:
        self.responses.append(httpx.Response(409, json={"message": "duplicate key value"}))
        job = JobRecord(
            id="video_1",
            owner_id="user-a",
            kind=JobKind.VIDEO_SYNTHESIS,
            name="A fox",
            status=JobStatus.PENDING,
            input_ref="a fox",
            cost_reserved=25,
            created_at=_CREATED_AT,
        )

        with self.assertRaises(StoreWriteError):
            await self.store.create(job)

    async def test_status_update_filters_on_legal_previous_statuses(self) -> None:
        self.responses.append(
            httpx.Response(200, json=[_job_row("COMPLETED", result_ref="https://v.example.com/1.mp4")])
        )

        updated = await self.store.update(
            "user-a",
            "video_1",
            {"status": JobStatus.COMPLETED, "result_ref": "https://v.example.com/1.mp4"},
        )

        self.assertEqual(updated.status, JobStatus.COMPLETED)
        request = self.requests[0]
        self.assertEqual(request.method, "PATCH")
        self.assertEqual(request.url.params["status"], "in.(SUBMITTED)")
        self.assertEqual(request.url.params["job_id"], "eq.video_1")
        body = json.loads(request.content)
        self.assertEqual(body["status"], "COMPLETED")
        self.assertIn("updated_at", body)

    async def test_unmatched_update_on_terminal_job_reports_fsm_error(self) -> None:
        self.responses.extend([httpx.Response(200, json=[]), httpx.Response(200, json=[_job_row("FAILED")])])

        with self.assertRaises(ApiError) as context:
            await self.store.update("user-a", "video_1", {"status": JobStatus.COMPLETED})

        self.assertEqual(context.exception.payload.code, "FSM_TERMINAL_IMMUTABLE")

    async def test_unmatched_update_on_missing_job_is_store_write_error(self) -> None:
        self.responses.extend([httpx.Response(200, json=[]), httpx.Response(200, json=[])])

        with self.assertRaises(StoreWriteError):
            await self.store.update("user-a", "video_missing", {"task_status": "RUNNING"})

        self.assertEqual(self.requests[0].url.params["status"], "in.(PENDING,PROCESSING,SUBMITTED)")

    async def test_rename_is_not_restricted_to_live_jobs(self) -> None:
        self.responses.append(httpx.Response(200, json=[_job_row("COMPLETED", name="Renamed")]))

        renamed = await self.store.update("user-a", "video_1", {"name": "Renamed"})

        self.assertEqual(renamed.name, "Renamed")
        self.assertNotIn("status", self.requests[0].url.params)

    async def test_try_debit_retries_when_balance_changed_underneath(self) -> None:
        self.responses.extend(
            [
                httpx.Response(200, json=[{"user_coins": 10}]),
                httpx.Response(200, json=[]),
                httpx.Response(200, json=[{"user_coins": 7}]),
                httpx.Response(200, json=[{"uid": "user-a", "user_coins": 3}]),
            ]
        )

        result = await self.store.try_debit("user-a", 4)

        self.assertTrue(result.applied)
        self.assertEqual(result.balance, 3)
        first_patch, second_patch = self.requests[1], self.requests[3]
        self.assertEqual(first_patch.url.params["user_coins"], "eq.10")
        self.assertEqual(json.loads(first_patch.content), {"user_coins": 6})
        self.assertEqual(second_patch.url.params["user_coins"], "eq.7")

    async def test_try_debit_reports_contention_after_exhausting_retries(self) -> None:
        for _ in range(5):
            self.responses.extend([httpx.Response(200, json=[{"user_coins": 10}]), httpx.Response(200, json=[])])

        result = await self.store.try_debit("user-a", 4)

        self.assertFalse(result.applied)
        self.assertTrue(result.contended)
        self.assertEqual(result.balance, 10)
        self.assertEqual(len(self.requests), 10)

    async def test_contended_reservation_still_records_failed_entry(self) -> None:
        for _ in range(5):
            self.responses.extend([httpx.Response(200, json=[{"user_coins": 10}]), httpx.Response(200, json=[])])
        self.responses.append(httpx.Response(201))
        ledger = BalanceLedger(self.store)

        with self.assertRaises(BalanceContentionError) as context:
            await ledger.reserve(owner_id="user-a", amount=4, reason="Audio Transcription")

        self.assertEqual(context.exception.status_code, 409)
        self.assertEqual(context.exception.payload.code, "BALANCE_CONTENDED")
        ledger_posts = [
            request
            for request in self.requests
            if request.method == "POST" and request.url.path.endswith("/user_transaction")
        ]
        self.assertEqual(len(ledger_posts), 1)
        body = json.loads(ledger_posts[0].content)
        self.assertEqual(body["status"], "FAILED")
        self.assertEqual(body["coin_amount"], 4)
        self.assertEqual(body["remaining_coins"], 10)

    async def test_try_debit_rejects_without_writing_when_balance_is_short(self) -> None:
        self.responses.append(httpx.Response(200, json=[{"user_coins": 3}]))

        result = await self.store.try_debit("user-a", 25)

        self.assertFalse(result.applied)
        self.assertEqual(result.balance, 3)
        self.assertEqual([request.method for request in self.requests], ["GET"])

    async def test_unknown_owner_has_zero_balance(self) -> None:
        self.responses.append(httpx.Response(200, json=[]))

        self.assertEqual(await self.store.get_balance("nobody"), 0)

    async def test_append_entry_maps_to_transaction_table(self) -> None:
        self.responses.append(httpx.Response(201))

        await self.store.append_entry(
            LedgerEntryRecord(
                entry_id="e-1",
                owner_id="user-a",
                amount=25,
                reason="Video Generation",
                outcome=LedgerOutcome.SUCCESS,
                balance_after=5,
                timestamp=_CREATED_AT,
            )
        )

        request = self.requests[0]
        self.assertEqual(str(request.url), f"{_BASE_URL}/rest/v1/user_transaction")
        self.assertEqual(
            json.loads(request.content),
            {
                "entry_id": "e-1",
                "uid": "user-a",
                "coin_amount": 25,
                "transaction_name": "Video Generation",
                "status": "SUCCESS",
                "remaining_coins": 5,
                "time": _CREATED_AT.isoformat(),
            },
        )

    async def test_transport_errors_become_store_write_errors(self) -> None:
        self.responses.append(httpx.ConnectError("refused"))

        with self.assertRaises(StoreWriteError):
            await self.store.get("user-a", "video_1")


if __name__ == "__main__":
    unittest.main()
