"""Job read and housekeeping service layer."""

import logging
from collections.abc import Mapping

from matrixai.core.logging_safety import safe_log_identifier
from matrixai.domain.job_fsm import allowed_next_statuses, is_terminal
from matrixai.errors import ApiError
from matrixai.repositories.base import JobRecord, JobRecordStore
from matrixai.schemas.job import Job, JobKind, JobList, JobStatus, JobStatusView
from matrixai.services.job_variants import JobVariant

logger = logging.getLogger(__name__)

_TRANSCRIPT_PREVIEW_WORDS = 15


class JobService:
    def __init__(self, store: JobRecordStore, variants: Mapping[JobKind, JobVariant]) -> None:
        self._store = store
        self._variants = variants

    async def get_job(self, *, owner_id: str, job_id: str, kind: JobKind) -> JobStatusView:
        record = await self._get_owned(owner_id=owner_id, job_id=job_id, kind=kind)

        view = JobStatusView(
            **self._to_job(record).model_dump(),
            message=self._status_message(record),
        )
        if record.kind is JobKind.TRANSCRIPTION and record.status is JobStatus.COMPLETED and record.result_ref:
            words = record.result_ref.split()
            preview = " ".join(words[:_TRANSCRIPT_PREVIEW_WORDS])
            if len(words) > _TRANSCRIPT_PREVIEW_WORDS:
                preview += "..."
            view.transcript_preview = preview
            view.word_count = len(words)
        return view

    async def list_jobs(self, *, owner_id: str, kind: JobKind) -> JobList:
        records = await self._store.list_for_owner(owner_id, kind)
        return JobList(items=[self._to_job(record) for record in records])

    async def rename_job(self, *, owner_id: str, job_id: str, kind: JobKind, name: str) -> Job:
        await self._get_owned(owner_id=owner_id, job_id=job_id, kind=kind)
        normalized = name.strip()
        if not normalized:
            raise ApiError(
                status_code=400,
                code="VALIDATION_ERROR",
                message="name must not be blank",
                details={"field": "name"},
            )

        updated = await self._store.update(owner_id, job_id, {"name": normalized})
        logger.info("job.renamed job_id=%s", safe_log_identifier(job_id, prefix="jid"))
        return self._to_job(updated)

    async def attach_graph(self, *, owner_id: str, job_id: str, xml_data: str) -> Job:
        """Store the mind-map graph derived from a finished transcript."""
        record = await self._get_owned(owner_id=owner_id, job_id=job_id, kind=JobKind.TRANSCRIPTION)
        if not xml_data.strip():
            raise ApiError(
                status_code=400,
                code="VALIDATION_ERROR",
                message="xml_data must not be blank",
                details={"field": "xml_data"},
            )
        if record.status is not JobStatus.COMPLETED:
            raise ApiError(
                status_code=409,
                code="JOB_NOT_COMPLETED",
                message="A graph can only be attached to a completed transcription",
                details={"current_status": record.status},
            )

        updated = await self._store.update(owner_id, job_id, {"xml_data": xml_data})
        logger.info(
            "job.graph_attached job_id=%s characters=%s",
            safe_log_identifier(job_id, prefix="jid"),
            len(xml_data),
        )
        return self._to_job(updated)

    async def delete_job(self, *, owner_id: str, job_id: str, kind: JobKind) -> None:
        record = await self._get_owned(owner_id=owner_id, job_id=job_id, kind=kind)
        safe_job_id = safe_log_identifier(job_id, prefix="jid")

        # A live job still has a background routine writing to it.
        if not is_terminal(record.status):
            logger.warning(
                "job.delete_rejected job_id=%s code=JOB_NOT_TERMINAL current_status=%s",
                safe_job_id,
                record.status.value,
            )
            raise ApiError(
                status_code=409,
                code="JOB_NOT_TERMINAL",
                message="Only completed or failed jobs can be deleted",
                details={
                    "current_status": record.status,
                    "allowed_next_statuses": allowed_next_statuses(record.status),
                },
            )

        if not await self._store.delete(owner_id, job_id):
            raise ApiError(status_code=404, code="RESOURCE_NOT_FOUND", message="Resource not found")
        logger.info("job.deleted job_id=%s status=%s", safe_job_id, record.status.value)

    async def _get_owned(self, *, owner_id: str, job_id: str, kind: JobKind) -> JobRecord:
        record = await self._store.get(owner_id, job_id)
        # A job of another kind is as invisible as another owner's job.
        if record is None or record.kind is not kind:
            raise ApiError(status_code=404, code="RESOURCE_NOT_FOUND", message="Resource not found")
        return record

    def _status_message(self, record: JobRecord) -> str:
        variant = self._variants.get(record.kind)
        if variant is None:
            return record.status.value
        message = variant.status_message(record.status)
        if record.status is JobStatus.FAILED and record.error_message:
            return f"{message}: {record.error_message}"
        return message

    @staticmethod
    def _to_job(record: JobRecord) -> Job:
        return Job(
            id=record.id,
            kind=record.kind,
            name=record.name,
            status=record.status,
            input_ref=record.input_ref,
            parameters=record.parameters,
            cost_reserved=record.cost_reserved,
            external_task_handle=record.external_task_handle,
            task_status=record.task_status,
            result_ref=record.result_ref,
            result_metadata=record.result_metadata,
            error_message=record.error_message,
            warning_message=record.warning_message,
            xml_data=record.xml_data,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
