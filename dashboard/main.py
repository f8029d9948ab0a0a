"""FastAPI application entrypoint for the signal dashboard."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from dashboard.config import Settings, get_settings
from dashboard.counters import (
    CounterService,
    CounterStore,
    JsonDocumentStore,
    PersistenceAdapter,
    SignalRejected,
    SubscriberHub,
    router as counters_router,
)
from dashboard.counters.constants import ERROR_INVALID_TYPE, ERROR_TYPE_REQUIRED
from dashboard.counters.schemas import ErrorResponse
from dashboard.lib.logger import configure_logging, get_logger
from dashboard.lib.metrics import OPS_METRICS

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Load persisted counters before serving and flush them on the way out."""

    service: CounterService = app.state.counter_service
    await service.startup()
    logger.info("dashboard_started", extra={"env": app.state.settings.env})
    try:
        yield
    finally:
        logger.info("dashboard_stopping")
        await service.shutdown()


async def signal_rejected_handler(request: Request, exc: SignalRejected) -> JSONResponse:
    return JSONResponse(ErrorResponse(error=exc.error).model_dump(), status_code=exc.status_code)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> Response:
    """Report malformed ``/signal`` bodies in the dashboard's error shape."""

    if request.url.path != "/signal":
        return await request_validation_exception_handler(request, exc)
    missing = any(error.get("type") == "missing" for error in exc.errors())
    error = ERROR_TYPE_REQUIRED if missing else ERROR_INVALID_TYPE
    return JSONResponse(ErrorResponse(error=error).model_dump(), status_code=400)


def create_app(settings: Settings | None = None, document_store: JsonDocumentStore | None = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="Signal Dashboard", version="0.1.0", lifespan=lifespan)

    store = CounterStore()
    hub = SubscriberHub(store.snapshot, queue_size=settings.subscriber_queue_size)
    persistence = PersistenceAdapter(
        document_store or JsonDocumentStore(settings.metrics_document_path),
        timeout_seconds=settings.persist_timeout_seconds,
    )
    app.state.settings = settings
    app.state.counter_store = store
    app.state.subscriber_hub = hub
    app.state.counter_service = CounterService(store, hub, persistence)
    app.state.ops_metrics = OPS_METRICS

    app.add_exception_handler(SignalRejected, signal_rejected_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]
    app.include_router(counters_router, tags=["counters"])

    @app.get("/health", tags=["system"], summary="Health check")
    async def health_check() -> JSONResponse:
        """Return liveness plus subscriber and persistence status."""

        service: CounterService = app.state.counter_service
        payload = {
            "ok": True,
            "data": {
                "status": "healthy",
                "subscribers": hub.open_count,
                "persistence": "ok" if service.persistence_healthy else "degraded",
                "counters": OPS_METRICS.snapshot(),
            },
        }
        return JSONResponse(content=payload)

    return app


app = create_app()
