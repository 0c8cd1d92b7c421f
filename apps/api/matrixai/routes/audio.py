"""Audio transcription job routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Response, status

from matrixai.routes.dependencies import get_controller, get_job_service, get_owner_id
from matrixai.schemas.error import (
    ErrorResponse,
    FsmTransitionError,
    InsufficientBalanceResponse,
    NoLeakNotFoundError,
    StoreWriteErrorResponse,
    ValidationErrorResponse,
)
from matrixai.schemas.job import (
    AttachGraphRequest,
    Job,
    JobKind,
    JobList,
    JobStatusView,
    RenameJobRequest,
    SubmitJobResponse,
    SubmitTranscriptionRequest,
)
from matrixai.services.job_controller import JobLifecycleController
from matrixai.services.jobs import JobService

router = APIRouter(prefix="/audio/jobs", tags=["Audio"])


@router.post(
    "",
    response_model=SubmitJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={
        400: {"model": ValidationErrorResponse},
        401: {"model": ErrorResponse},
        402: {"model": InsufficientBalanceResponse},
        409: {"model": ErrorResponse},
        500: {"model": StoreWriteErrorResponse},
    },
)
async def submit_transcription(
    payload: SubmitTranscriptionRequest,
    owner_id: Annotated[str, Depends(get_owner_id)],
    controller: Annotated[JobLifecycleController, Depends(get_controller)],
) -> SubmitJobResponse:
    job = await controller.submit(
        owner_id=owner_id,
        kind=JobKind.TRANSCRIPTION,
        payload=payload.model_dump(),
    )
    return SubmitJobResponse(
        job_id=job.id,
        kind=job.kind,
        status=job.status,
        required_coins=job.cost_reserved,
        message="Audio transcription started. Poll the job for its result.",
    )


@router.get("", response_model=JobList, responses={401: {"model": ErrorResponse}})
async def list_transcriptions(
    owner_id: Annotated[str, Depends(get_owner_id)],
    service: Annotated[JobService, Depends(get_job_service)],
) -> JobList:
    return await service.list_jobs(owner_id=owner_id, kind=JobKind.TRANSCRIPTION)


@router.get(
    "/{jobId}",
    response_model=JobStatusView,
    responses={401: {"model": ErrorResponse}, 404: {"model": NoLeakNotFoundError}},
)
async def get_transcription(
    job_id: Annotated[str, Path(alias="jobId")],
    owner_id: Annotated[str, Depends(get_owner_id)],
    service: Annotated[JobService, Depends(get_job_service)],
) -> JobStatusView:
    return await service.get_job(owner_id=owner_id, job_id=job_id, kind=JobKind.TRANSCRIPTION)


@router.patch(
    "/{jobId}",
    response_model=Job,
    responses={
        400: {"model": ValidationErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": NoLeakNotFoundError},
    },
)
async def rename_transcription(
    job_id: Annotated[str, Path(alias="jobId")],
    payload: RenameJobRequest,
    owner_id: Annotated[str, Depends(get_owner_id)],
    service: Annotated[JobService, Depends(get_job_service)],
) -> Job:
    return await service.rename_job(
        owner_id=owner_id,
        job_id=job_id,
        kind=JobKind.TRANSCRIPTION,
        name=payload.name,
    )


@router.put(
    "/{jobId}/graph",
    response_model=Job,
    responses={
        400: {"model": ValidationErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": NoLeakNotFoundError},
        409: {"model": ErrorResponse},
    },
)
async def attach_transcription_graph(
    job_id: Annotated[str, Path(alias="jobId")],
    payload: AttachGraphRequest,
    owner_id: Annotated[str, Depends(get_owner_id)],
    service: Annotated[JobService, Depends(get_job_service)],
) -> Job:
    return await service.attach_graph(owner_id=owner_id, job_id=job_id, xml_data=payload.xml_data)


@router.delete(
    "/{jobId}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": NoLeakNotFoundError},
        409: {"model": FsmTransitionError},
    },
)
async def remove_transcription(
    job_id: Annotated[str, Path(alias="jobId")],
    owner_id: Annotated[str, Depends(get_owner_id)],
    service: Annotated[JobService, Depends(get_job_service)],
) -> Response:
    await service.delete_job(owner_id=owner_id, job_id=job_id, kind=JobKind.TRANSCRIPTION)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
