"""FastAPI application entrypoint."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
import logging

from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.utils import get_openapi
from fastapi.responses import JSONResponse
import httpx

from matrixai.adapters.storage import SupabaseAssetStorage
from matrixai.adapters.workers import DashScopeVideoInvoker, DeepgramTranscriptionInvoker, MockWorkerInvoker
from matrixai.core.config import Settings, get_settings
from matrixai.errors import ApiError, StoreWriteError
from matrixai.repositories.memory import InMemoryStore
from matrixai.repositories.supabase import SupabaseStore
from matrixai.routes import audio_router, balance_router, videos_router
from matrixai.schemas.error import ErrorResponse, StoreWriteErrorResponse
from matrixai.schemas.job import JobKind
from matrixai.services.job_controller import JobLifecycleController
from matrixai.services.job_runner import BackgroundJobRunner
from matrixai.services.job_variants import JobVariant, TranscriptionVariant, VideoSynthesisVariant
from matrixai.services.ledger import BalanceLedger

logger = logging.getLogger(__name__)

_SERVICE_NAME = "matrixai-api"
_SERVICE_VERSION = "1.0.0"

_OPENAPI_RESPONSE_CODES: dict[str, dict[str, set[str]]] = {
    "/api/v1/audio/jobs": {"post": {"202", "400", "401", "402", "409", "500"}, "get": {"200", "401"}},
    "/api/v1/audio/jobs/{jobId}": {
        "get": {"200", "401", "404"},
        "patch": {"200", "400", "401", "404"},
        "delete": {"204", "401", "404", "409"},
    },
    "/api/v1/audio/jobs/{jobId}/graph": {"put": {"200", "400", "401", "404", "409"}},
    "/api/v1/videos/jobs": {"post": {"202", "400", "401", "402", "409", "500"}, "get": {"200", "401"}},
    "/api/v1/videos/jobs/{jobId}": {
        "get": {"200", "401", "404"},
        "patch": {"200", "400", "401", "404"},
        "delete": {"204", "401", "404", "409"},
    },
    "/api/v1/balance": {"get": {"200", "401", "500"}},
}

_JOB_PAYLOAD_VALIDATION_PATHS: set[tuple[str, str]] = {
    ("POST", "/api/v1/audio/jobs"),
    ("POST", "/api/v1/videos/jobs"),
    ("PATCH", "/api/v1/audio/jobs/{jobId}"),
    ("PUT", "/api/v1/audio/jobs/{jobId}/graph"),
    ("PATCH", "/api/v1/videos/jobs/{jobId}"),
}


def _apply_contract_response_codes(schema: dict) -> None:
    """Limit documented response codes to the ones each operation can return."""
    for path, methods in _OPENAPI_RESPONSE_CODES.items():
        path_item = schema.get("paths", {}).get(path)
        if not path_item:
            continue

        for method, allowed_codes in methods.items():
            operation = path_item.get(method)
            if not operation:
                continue

            responses = operation.setdefault("responses", {})
            for status_code in list(responses.keys()):
                if status_code not in allowed_codes:
                    responses.pop(status_code, None)

            for status_code in sorted(allowed_codes):
                responses.setdefault(status_code, {"description": "See API contract"})


def _build_store(settings: Settings, client: httpx.AsyncClient) -> InMemoryStore | SupabaseStore:
    if settings.store_backend == "supabase":
        if not settings.supabase_url or not settings.supabase_service_key:
            raise RuntimeError("MATRIXAI_SUPABASE_URL and MATRIXAI_SUPABASE_SERVICE_KEY are required for the supabase store")
        return SupabaseStore(settings.supabase_url, settings.supabase_service_key, client=client)

    store = InMemoryStore()
    for owner_id, balance in settings.initial_balances.items():
        store.set_balance(owner_id, balance)
    return store


def _build_variants(settings: Settings, client: httpx.AsyncClient) -> dict[JobKind, JobVariant]:
    storage: SupabaseAssetStorage | None = None
    if settings.worker_provider == "live":
        transcriber = DeepgramTranscriptionInvoker(
            settings.deepgram_api_url,
            settings.deepgram_api_key,
            client=client,
        )
        synthesizer = DashScopeVideoInvoker(
            settings.dashscope_base_url,
            settings.dashscope_api_key,
            model=settings.dashscope_video_model,
            client=client,
        )
        if settings.supabase_url and settings.supabase_service_key:
            storage = SupabaseAssetStorage(
                settings.supabase_url,
                settings.supabase_service_key,
                settings.storage_bucket,
                client=client,
            )
    else:
        transcriber = MockWorkerInvoker(JobKind.TRANSCRIPTION)
        synthesizer = MockWorkerInvoker(JobKind.VIDEO_SYNTHESIS)

    variants: tuple[JobVariant, ...] = (
        TranscriptionVariant(
            transcriber,
            max_url_length=settings.max_input_url_length,
            min_cost=settings.min_transcription_coins,
            default_language=settings.default_language,
        ),
        VideoSynthesisVariant(
            synthesizer,
            cost=settings.video_cost_coins,
            max_prompt_length=settings.max_prompt_length,
            default_size=settings.default_video_size,
            storage=storage,
        ),
    )
    return {variant.kind: variant for variant in variants}


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
    store = _build_store(settings, client)
    variants = _build_variants(settings, client)
    runner = BackgroundJobRunner()
    ledger = BalanceLedger(store)
    controller = JobLifecycleController(
        store=store,
        ledger=ledger,
        runner=runner,
        variants=variants,
        poll_interval_seconds=settings.poll_interval_seconds,
        poll_timeout_seconds=settings.poll_timeout_seconds,
        stale_job_grace_seconds=settings.stale_job_grace_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        swept = await controller.sweep_stale_jobs()
        logger.info(
            "app.started store_backend=%s worker_provider=%s swept_jobs=%s",
            settings.store_backend,
            settings.worker_provider,
            swept,
        )
        try:
            yield
        finally:
            await runner.shutdown()
            await client.aclose()
            logger.info("app.stopped")

    app = FastAPI(title="MatrixAI API", version=_SERVICE_VERSION, lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.ledger = ledger
    app.state.variants = variants
    app.state.job_runner = runner
    app.state.controller = controller

    @app.exception_handler(ApiError)
    async def handle_api_error(_, exc: ApiError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.payload.model_dump(mode="json", exclude_none=True),
        )

    @app.exception_handler(StoreWriteError)
    async def handle_store_write_error(request: Request, exc: StoreWriteError) -> JSONResponse:
        logger.error("store.write_failed method=%s path=%s error=%s", request.method, request.url.path, exc)
        payload = StoreWriteErrorResponse(code="STORE_WRITE_FAILED", message="Failed to read or write stored data")
        return JSONResponse(status_code=500, content=payload.model_dump())

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        # Job payloads share the 400 VALIDATION_ERROR shape with kind-specific checks.
        route = request.scope.get("route")
        route_path = getattr(route, "path", request.url.path)
        route_key = (request.method.upper(), route_path)
        if route_key in _JOB_PAYLOAD_VALIDATION_PATHS:
            fields = sorted(
                {".".join(str(part) for part in error.get("loc", ()) if part != "body") for error in exc.errors()}
            )
            payload = ErrorResponse(
                code="VALIDATION_ERROR",
                message="Invalid job payload",
                details={"fields": fields},
            )
            return JSONResponse(status_code=400, content=payload.model_dump())

        return await request_validation_exception_handler(request, exc)

    api_prefix = "/api/v1"
    app.include_router(audio_router, prefix=api_prefix)
    app.include_router(videos_router, prefix=api_prefix)
    app.include_router(balance_router, prefix=api_prefix)

    @app.get("/health", tags=["Health"])
    async def health() -> dict[str, str]:
        return {
            "status": "ok",
            "service": _SERVICE_NAME,
            "version": _SERVICE_VERSION,
            "timestamp": datetime.now(UTC).isoformat(),
        }

    def custom_openapi() -> dict:
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(
            title=app.title,
            version=app.version,
            description=app.description,
            routes=app.routes,
        )
        _apply_contract_response_codes(schema)
        app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = custom_openapi

    return app


app = create_app()
