from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from exam_service.api.attempts import router as attempts_router
from exam_service.api.certificates import router as certificates_router
from exam_service.api.evaluations import router as evaluations_router
from exam_service.api.health import router as health_router
from exam_service.api.metrics_endpoint import router as metrics_router
from exam_service.core.config import SETTINGS
from exam_service.core.errors import ExamError
from exam_service.core.logging import setup_logging
from exam_service.db.engine import lifespan_db
from exam_service.db.redis import lifespan_redis
from exam_service.middleware.metrics import MetricsMiddleware
from exam_service.middleware.request_context import RequestContextMiddleware

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Nested so teardown runs in reverse order even if one fails
    async with lifespan_db():
        async with lifespan_redis():
            yield


app = FastAPI(
    title="exam-service",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)


@app.exception_handler(ExamError)
async def exam_error_handler(request: Request, exc: ExamError) -> JSONResponse:
    """One typed JSON body for every domain failure."""
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "%s %s rejected: %s (%s)",
        request.method,
        request.url.path,
        exc.code,
        exc.message,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": exc.message},
    )


# Middleware execution order: last-added runs first (outermost layer).
# RequestContext (outermost) → Metrics → route handler
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(evaluations_router)
app.include_router(attempts_router)
app.include_router(certificates_router)

logger.info(
    "exam-service started  env=%s log_level=%s port=%d docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "on" if SETTINGS.is_dev else "off",
)
