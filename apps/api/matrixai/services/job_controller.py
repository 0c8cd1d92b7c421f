"""Job lifecycle controller: reservation, submission, polling and finalization."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
import logging
from typing import Any
from uuid import uuid4

from matrixai.adapters.workers import TaskState, WorkerPollResult
from matrixai.core.logging_safety import safe_log_identifier
from matrixai.errors import ApiError, ExternalWorkerError, PollingTimeoutError, StoreWriteError
from matrixai.repositories.base import JobRecord, JobRecordStore
from matrixai.schemas.job import JobKind, JobStatus
from matrixai.services.job_runner import BackgroundJobRunner
from matrixai.services.job_variants import JobVariant
from matrixai.services.ledger import BalanceLedger

logger = logging.getLogger(__name__)

_INTERRUPTED_MESSAGE = "Job processing was interrupted before completion"


class JobLifecycleController:
    """Drives every job from PENDING to COMPLETED or FAILED.

    ``submit`` reserves the cost, persists a PENDING record and hands the
    record to the background runner; it never waits for the external work.
    The background routine owns the job exclusively, persists each status
    before advancing, and converts every failure into a FAILED record.
    """

    def __init__(
        self,
        *,
        store: JobRecordStore,
        ledger: BalanceLedger,
        runner: BackgroundJobRunner,
        variants: Mapping[JobKind, JobVariant],
        poll_interval_seconds: float,
        poll_timeout_seconds: float,
        stale_job_grace_seconds: float = 60.0,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._runner = runner
        self._variants = dict(variants)
        self._poll_interval = poll_interval_seconds
        self._poll_timeout = poll_timeout_seconds
        self._stale_grace = stale_job_grace_seconds

    def variant_for(self, kind: JobKind) -> JobVariant:
        try:
            return self._variants[kind]
        except KeyError:
            raise ApiError(
                status_code=503,
                code="JOB_KIND_UNAVAILABLE",
                message=f"{kind.value} jobs are not configured",
            ) from None

    async def submit(self, *, owner_id: str, kind: JobKind, payload: Mapping[str, Any]) -> JobRecord:
        variant = self.variant_for(kind)
        job_input = variant.validate_input(payload)
        cost = variant.compute_cost(job_input)

        await self._ledger.reserve(owner_id=owner_id, amount=cost, reason=variant.reason)

        now = datetime.now(UTC)
        record = JobRecord(
            id=f"{variant.id_prefix}_{uuid4().hex}",
            owner_id=owner_id,
            kind=kind,
            name=job_input.name,
            status=JobStatus.PENDING,
            input_ref=job_input.input_ref,
            cost_reserved=cost,
            created_at=now,
            updated_at=now,
            parameters=dict(job_input.parameters),
        )
        safe_job_id = safe_log_identifier(record.id, prefix="jid")
        try:
            stored = await self._store.create(record)
        except StoreWriteError:
            # The reservation stays debited; an id clash here is a programming error.
            logger.error(
                "job.create_failed job_id=%s owner_id=%s kind=%s cost=%s",
                safe_job_id,
                safe_log_identifier(owner_id, prefix="oid"),
                kind.value,
                cost,
            )
            raise

        self._runner.schedule(self._process(stored), name=f"job-{stored.id}")
        logger.info(
            "job.submitted job_id=%s owner_id=%s kind=%s cost=%s",
            safe_job_id,
            safe_log_identifier(owner_id, prefix="oid"),
            kind.value,
            cost,
        )
        return stored

    async def sweep_stale_jobs(self) -> int:
        """Fail jobs left non-terminal past their polling budget by a process that is gone."""
        cutoff = datetime.now(UTC) - timedelta(seconds=self._poll_timeout + self._stale_grace)
        swept = 0
        for job in await self._store.list_stale(cutoff):
            try:
                await self._store.update(
                    job.owner_id,
                    job.id,
                    {"status": JobStatus.FAILED, "error_message": _INTERRUPTED_MESSAGE},
                )
            except (ApiError, StoreWriteError) as exc:
                # Another instance finished it between the scan and this write.
                logger.info(
                    "job.sweep_skipped job_id=%s reason=%s",
                    safe_log_identifier(job.id, prefix="jid"),
                    type(exc).__name__,
                )
                continue
            swept += 1
            logger.warning(
                "job.swept job_id=%s prev_status=%s",
                safe_log_identifier(job.id, prefix="jid"),
                job.status.value,
            )
        return swept

    async def _process(self, job: JobRecord) -> None:
        variant = self._variants[job.kind]
        try:
            await self._run(job, variant)
        except Exception as exc:
            await self._fail(job, str(exc) or type(exc).__name__)

    async def _run(self, job: JobRecord, variant: JobVariant) -> None:
        try:
            await self._transition(job, JobStatus.PROCESSING)
        except (ApiError, StoreWriteError) as exc:
            raise StoreWriteError(f"Failed to update processing status: {exc}") from exc

        submission = await variant.submit(job)
        if not submission.task_handle:
            raise ExternalWorkerError("External worker returned no task handle")

        # Release what the invoker holds for the task however this routine ends.
        try:
            await self._transition(
                job,
                JobStatus.SUBMITTED,
                external_task_handle=submission.task_handle,
                task_status=submission.task_status,
            )
            logger.info(
                "job.worker_accepted job_id=%s task_handle=%s request_id=%s",
                safe_log_identifier(job.id, prefix="jid"),
                safe_log_identifier(submission.task_handle, prefix="tid"),
                safe_log_identifier(submission.request_id, prefix="rid"),
            )

            result = await self._await_result(job, variant, submission.task_handle, submission.task_status)
        finally:
            variant.discard(submission.task_handle)
        await self._complete(job, variant, result)

    async def _await_result(
        self,
        job: JobRecord,
        variant: JobVariant,
        task_handle: str,
        task_status: str | None,
    ) -> WorkerPollResult:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._poll_timeout
        safe_job_id = safe_log_identifier(job.id, prefix="jid")
        attempt = 0

        while True:
            attempt += 1
            try:
                result = await variant.poll(task_handle)
            except ExternalWorkerError as exc:
                logger.warning("job.poll_error job_id=%s attempt=%s error=%s", safe_job_id, attempt, exc)
            else:
                if result.task_status and result.task_status != task_status:
                    task_status = result.task_status
                    await self._store.update(job.owner_id, job.id, {"task_status": task_status})
                if result.state is TaskState.SUCCEEDED and result.result_ref:
                    return result
                if result.state is TaskState.FAILED:
                    raise ExternalWorkerError(result.error or f"{variant.reason} failed")

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise PollingTimeoutError(
                    f"{variant.reason} timed out - no result after {self._poll_timeout:g} seconds"
                )
            await asyncio.sleep(min(self._poll_interval, remaining))

    async def _complete(self, job: JobRecord, variant: JobVariant, result: WorkerPollResult) -> None:
        fields: dict[str, Any] = {
            "result_ref": result.result_ref,
            "result_metadata": result.metadata,
        }
        if result.task_status:
            fields["task_status"] = result.task_status

        if variant.has_post_processing:
            try:
                fields["result_ref"] = await variant.post_process(job, result.result_ref)
            except Exception as exc:
                logger.warning(
                    "job.post_process_failed job_id=%s error=%s",
                    safe_log_identifier(job.id, prefix="jid"),
                    exc,
                    exc_info=True,
                )
                fields["warning_message"] = f"Result generated but not archived to storage: {exc}"

        await self._transition(job, JobStatus.COMPLETED, **fields)

    async def _transition(self, job: JobRecord, new_status: JobStatus, **fields: Any) -> None:
        previous_status = job.status
        updated = await self._store.update(job.owner_id, job.id, {"status": new_status, **fields})
        job.status = updated.status
        logger.info(
            "job.transition job_id=%s prev_status=%s new_status=%s",
            safe_log_identifier(job.id, prefix="jid"),
            previous_status.value,
            updated.status.value,
        )

    async def _fail(self, job: JobRecord, message: str) -> None:
        safe_job_id = safe_log_identifier(job.id, prefix="jid")
        try:
            await self._store.update(
                job.owner_id,
                job.id,
                {"status": JobStatus.FAILED, "error_message": message},
            )
        except Exception:
            logger.exception("job.fail_write_failed job_id=%s error=%s", safe_job_id, message)
            return
        logger.warning("job.failed job_id=%s error=%s", safe_job_id, message)
