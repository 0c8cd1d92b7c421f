"""Video synthesis job routes."""

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
    Job,
    JobKind,
    JobList,
    JobStatusView,
    RenameJobRequest,
    SubmitJobResponse,
    SubmitVideoRequest,
)
from matrixai.services.job_controller import JobLifecycleController
from matrixai.services.jobs import JobService

router = APIRouter(prefix="/videos/jobs", tags=["Videos"])


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
async def submit_video(
    payload: SubmitVideoRequest,
    owner_id: Annotated[str, Depends(get_owner_id)],
    controller: Annotated[JobLifecycleController, Depends(get_controller)],
) -> SubmitJobResponse:
    job = await controller.submit(
        owner_id=owner_id,
        kind=JobKind.VIDEO_SYNTHESIS,
        payload=payload.model_dump(),
    )
    return SubmitJobResponse(
        job_id=job.id,
        kind=job.kind,
        status=job.status,
        required_coins=job.cost_reserved,
        message="Video generation started. Poll the job for its result.",
    )


@router.get("", response_model=JobList, responses={401: {"model": ErrorResponse}})
async def list_videos(
    owner_id: Annotated[str, Depends(get_owner_id)],
    service: Annotated[JobService, Depends(get_job_service)],
) -> JobList:
    return await service.list_jobs(owner_id=owner_id, kind=JobKind.VIDEO_SYNTHESIS)


@router.get(
    "/{jobId}",
    response_model=JobStatusView,
    responses={401: {"model": ErrorResponse}, 404: {"model": NoLeakNotFoundError}},
)
async def get_video(
    job_id: Annotated[str, Path(alias="jobId")],
    owner_id: Annotated[str, Depends(get_owner_id)],
    service: Annotated[JobService, Depends(get_job_service)],
) -> JobStatusView:
    return await service.get_job(owner_id=owner_id, job_id=job_id, kind=JobKind.VIDEO_SYNTHESIS)


@router.patch(
    "/{jobId}",
    response_model=Job,
    responses={
        400: {"model": ValidationErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": NoLeakNotFoundError},
    },
)
async def rename_video(
    job_id: Annotated[str, Path(alias="jobId")],
    payload: RenameJobRequest,
    owner_id: Annotated[str, Depends(get_owner_id)],
    service: Annotated[JobService, Depends(get_job_service)],
) -> Job:
    return await service.rename_job(
        owner_id=owner_id,
        job_id=job_id,
        kind=JobKind.VIDEO_SYNTHESIS,
        name=payload.name,
    )


@router.delete(
    "/{jobId}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": NoLeakNotFoundError},
        409: {"model": FsmTransitionError},
    },
)
async def remove_video(
    job_id: Annotated[str, Path(alias="jobId")],
    owner_id: Annotated[str, Depends(get_owner_id)],
    service: Annotated[JobService, Depends(get_job_service)],
) -> Response:
    await service.delete_job(owner_id=owner_id, job_id=job_id, kind=JobKind.VIDEO_SYNTHESIS)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
