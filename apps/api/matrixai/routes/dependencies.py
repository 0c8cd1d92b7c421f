"""Dependency wiring for routes."""

from __future__ import annotations

import logging
from typing import Annotated
from uuid import uuid4

from fastapi import Depends, Request, Security
from fastapi.security import APIKeyHeader

from matrixai.core.logging_safety import safe_log_identifier
from matrixai.errors import ApiError
from matrixai.repositories.base import JobRecordStore
from matrixai.services.job_controller import JobLifecycleController
from matrixai.services.jobs import JobService
from matrixai.services.ledger import BalanceLedger

owner_scheme = APIKeyHeader(name="X-Owner-Id", auto_error=False, scheme_name="ownerId")
logger = logging.getLogger(__name__)


def _request_correlation_id(request: Request) -> str:
    existing = getattr(request.state, "correlation_id", None)
    if isinstance(existing, str) and existing:
        return existing

    correlation_id = request.headers.get("X-Correlation-Id")
    if correlation_id:
        request.state.correlation_id = correlation_id
        return correlation_id

    generated = f"req-{uuid4()}"
    request.state.correlation_id = generated
    return generated


async def get_owner_id(
    request: Request,
    owner_id: Annotated[str | None, Security(owner_scheme)],
) -> str:
    """Resolve the caller identity forwarded by the upstream gateway."""
    normalized = (owner_id or "").strip()
    if not normalized:
        logger.warning(
            "owner.rejected correlation_id=%s method=%s path=%s reason=missing_owner_header",
            safe_log_identifier(_request_correlation_id(request), prefix="cid"),
            request.method,
            request.url.path,
        )
        raise ApiError(status_code=401, code="UNAUTHORIZED", message="Missing owner identity")
    return normalized


def get_store(request: Request) -> JobRecordStore:
    return request.app.state.store


def get_controller(request: Request) -> JobLifecycleController:
    return request.app.state.controller


def get_ledger(request: Request) -> BalanceLedger:
    return request.app.state.ledger


def get_job_service(
    request: Request,
    store: Annotated[JobRecordStore, Depends(get_store)],
) -> JobService:
    return JobService(store, request.app.state.variants)
