"""
FastAPI Application — Entry Point

Document analysis API.

Architecture:
  - All routes are versioned under /api/v1/
  - Owner scope comes from the X-Owner-ID header (no authentication layer)
  - Storage backend (memory | postgres) and task backend (inprocess | celery)
    are selected from settings via dependency injection
  - Structured JSON error responses on all 4xx/5xx

Middleware stack (innermost → outermost):
  1. CORS — open in development, closed otherwise
  2. Request ID injection + request logging
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from docinsight.api.dependencies import Store, get_task_publisher
from docinsight.api.v1.analysis import router as analysis_router
from docinsight.api.v1.documents import router as documents_router
from docinsight.core.config import settings
from docinsight.core.errors import DimensionError, DocInsightError, DocumentNotFoundError, TopicConflictError
from docinsight.schemas.documents import ErrorDetail, ErrorResponse
from docinsight.services.ingestion import InProcessTaskPublisher

logger = logging.getLogger(__name__)

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

_ERROR_STATUS: dict[type[DocInsightError], int] = {
    DocumentNotFoundError: status.HTTP_404_NOT_FOUND,
    TopicConflictError:    status.HTTP_409_CONFLICT,
    DimensionError:        status.HTTP_422_UNPROCESSABLE_ENTITY,
}


# ---------------------------------------------------------------------------
# Application lifespan: startup / shutdown hooks
# ---------------------------------------------------------------------------

async def _drain_in_process_tasks(app: FastAPI) -> None:
    if settings.task_backend.lower() != "inprocess":
        return
    publisher = app.dependency_overrides.get(get_task_publisher, get_task_publisher)()
    if isinstance(publisher, InProcessTaskPublisher):
        await publisher.drain(timeout=settings.shutdown_drain_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Starting DocInsight | env=%s storage=%s tasks=%s openai=%s",
        settings.app_env, settings.storage_backend, settings.task_backend,
        "configured" if settings.openai_configured else "simulated",
    )

    if settings.storage_backend.lower() == "postgres":
        from docinsight.db.session import create_tables
        await create_tables()

    yield

    logger.info("Shutting down DocInsight")
    await _drain_in_process_tasks(app)
    if settings.storage_backend.lower() == "postgres":
        from docinsight.db.session import get_engine
        await get_engine().dispose()


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app() -> FastAPI:
    app = FastAPI(
        title="DocInsight",
        description=(
            "Document upload and AI analysis API: summaries, sentiment, keywords, "
            "entities, semantic similarity and topic trends."
        ),
        version="1.0.0",
        docs_url="/api/docs" if not settings.is_production else None,
        redoc_url="/api/redoc" if not settings.is_production else None,
        openapi_url="/api/openapi.json" if not settings.is_production else None,
        lifespan=lifespan,
    )

    # ----------------------------------------------------------------
    # Middleware (applied in reverse order: last added = outermost)
    # ----------------------------------------------------------------

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.app_env == "development" else [],
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "X-Request-ID", "X-Owner-ID"],
        expose_headers=["X-Request-ID", "X-Document-ID", "Location"],
    )

    @app.middleware("http")
    async def request_id_and_logging(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        start = time.perf_counter()

        response = await call_next(request)

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = request_id

        logger.info(
            "HTTP %s %s %d %.1fms | owner=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            request.headers.get("X-Owner-ID", "-"),
        )
        return response

    # ----------------------------------------------------------------
    # Exception handlers: uniform structured error responses
    # ----------------------------------------------------------------

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        details = [
            ErrorDetail(
                field=" → ".join(str(loc) for loc in err["loc"]),
                message=err["msg"],
                code="VALIDATION_ERROR",
            )
            for err in exc.errors()
        ]
        body = ErrorResponse(
            error_code="VALIDATION_ERROR",
            message="Request validation failed.",
            details=details,
            request_id=request.headers.get("X-Request-ID"),
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=body.model_dump(mode="json"),
        )

    @app.exception_handler(DocInsightError)
    async def docinsight_exception_handler(request: Request, exc: DocInsightError):
        code = _ERROR_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
        if code >= 500:
            logger.error("Unhandled domain error | path=%s error=%s", request.url.path, exc.to_dict())
        body = ErrorResponse(
            error_code=exc.error_code,
            message=exc.message,
            request_id=request.headers.get("X-Request-ID"),
        )
        return JSONResponse(status_code=code, content=body.model_dump(mode="json"))

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Catch-all for unhandled exceptions — never expose stack traces."""
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        logger.exception(
            "Unhandled exception | path=%s request_id=%s",
            request.url.path, request_id,
        )
        body = ErrorResponse(
            error_code="INTERNAL_ERROR",
            message="An unexpected error occurred.",
            request_id=request_id,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=body.model_dump(mode="json"),
            headers={"X-Request-ID": request_id},
        )

    # ----------------------------------------------------------------
    # Routers
    # ----------------------------------------------------------------

    app.include_router(documents_router, prefix="/api/v1")
    app.include_router(analysis_router,  prefix="/api/v1")

    # ----------------------------------------------------------------
    # Health endpoint (used by load balancer)
    # ----------------------------------------------------------------

    @app.get(
        "/health",
        tags=["Operations"],
        summary="Liveness and storage check",
    )
    async def health(store: Store) -> JSONResponse:
        storage = await store.check_health()
        code = status.HTTP_200_OK if storage["status"] == "ok" else status.HTTP_503_SERVICE_UNAVAILABLE
        return JSONResponse(
            status_code=code,
            content={
                "status":   "ok" if code == status.HTTP_200_OK else "degraded",
                "service":  "docinsight-api",
                "storage":  storage,
                "analysis": "openai" if settings.openai_configured else "simulated",
            },
        )

    return app


# ---------------------------------------------------------------------------
# Application instance (imported by uvicorn)
# ---------------------------------------------------------------------------

app = create_app()


# ---------------------------------------------------------------------------
# Local development entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "docinsight.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.app_env == "development",
        log_level="debug" if settings.debug else "info",
        access_log=True,
    )
