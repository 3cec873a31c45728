"""
FastAPI Application — Entry Point

ReadMate document analysis & reading-assistant API

Architecture:
  - All routes are versioned under /api/v1/
  - Authentication is HS256 JWT bearer tokens carrying the user id
  - Uploads are stored (local disk or S3) and analysed by background
    asyncio tasks (PipelineRunner); clients poll /documents/{id}/status
  - Structured JSON error responses on all 4xx/5xx

Middleware stack (innermost → outermost):
  1. CORS — restrict to configured origins
  2. Gzip — compress responses > 1 KB
  3. Request ID + logging — X-Request-ID header and one log line per request

Domain errors → HTTP:
  NotFoundError                         404
  InvalidStateError, DocumentBusyError  409
  UnsupportedFileTypeError              400
  ProviderError, StorageError           502
  anything else                         500 (no stack trace in the body)
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from readmate.api.v1.conversations import router as conversations_router
from readmate.api.v1.documents import router as documents_router
from readmate.auth.dependencies import get_runner
from readmate.core.config import settings
from readmate.core.errors import (
    DocumentBusyError,
    InvalidStateError,
    NotFoundError,
    ProviderError,
    ReadMateError,
    StorageError,
    UnsupportedFileTypeError,
)
from readmate.db.session import check_db_health, engine, init_models
from readmate.schemas.documents import ErrorDetail, ErrorResponse

logger = logging.getLogger(__name__)

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

_ERROR_STATUS: dict[type[ReadMateError], int] = {
    NotFoundError:            status.HTTP_404_NOT_FOUND,
    InvalidStateError:        status.HTTP_409_CONFLICT,
    DocumentBusyError:        status.HTTP_409_CONFLICT,
    UnsupportedFileTypeError: status.HTTP_400_BAD_REQUEST,
    ProviderError:            status.HTTP_502_BAD_GATEWAY,
    StorageError:             status.HTTP_502_BAD_GATEWAY,
}


def _status_for(exc: ReadMateError) -> int:
    for cls in type(exc).__mro__:
        if cls in _ERROR_STATUS:
            return _ERROR_STATUS[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or request.headers.get("X-Request-ID") or str(uuid.uuid4())


def _error_response(
    request:    Request,
    code:       int,
    error_code: str,
    message:    str,
    details:    list[ErrorDetail] | None = None,
    headers:    dict[str, str] | None    = None,
) -> JSONResponse:
    body = ErrorResponse(
        error_code=error_code,
        message=message,
        details=details or [],
        request_id=_request_id(request),
    )
    return JSONResponse(status_code=code, content=body.model_dump(mode="json"), headers=headers)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: create missing tables, refuse to start without a database.
    Shutdown: cancel in-flight document runs, dispose the connection pool.
    """
    logger.info(
        "ReadMate starting | env=%s storage=%s provider=%s model=%s",
        settings.app_env, settings.storage_backend,
        settings.provider_base_url, settings.chat_model or "-",
    )

    await init_models()
    database = await check_db_health()
    if database["status"] != "ok":
        logger.critical("ReadMate startup aborted | database=%s", database)
        raise RuntimeError(f"Database unavailable: {database.get('detail')}")

    yield

    logger.info("ReadMate stopping")
    if get_runner.cache_info().currsize:
        await get_runner().shutdown()
    await engine.dispose()


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app() -> FastAPI:
    app = FastAPI(
        title="ReadMate",
        description=(
            "Document analysis and reading-assistant API: upload books and reports, "
            "get a structured analysis report, and ask questions about them."
        ),
        version="1.0.0",
        docs_url="/api/docs" if not settings.is_production else None,
        redoc_url="/api/redoc" if not settings.is_production else None,
        openapi_url="/api/openapi.json" if not settings.is_production else None,
        lifespan=lifespan,
    )

    # ----------------------------------------------------------------
    # Middleware (applied in reverse order — last added = outermost)
    # ----------------------------------------------------------------

    app.add_middleware(GZipMiddleware, minimum_size=1024)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if not settings.is_production else [],
        allow_credentials=True,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )

    # ----------------------------------------------------------------
    # Request id + one log line per request
    # ----------------------------------------------------------------

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request.state.request_id = _request_id(request)
        t0 = time.perf_counter()

        response = await call_next(request)

        response.headers["X-Request-ID"] = request.state.request_id
        logger.info(
            "HTTP | %s %s status=%d latency_ms=%.1f request_id=%s",
            request.method, request.url.path, response.status_code,
            (time.perf_counter() - t0) * 1000, request.state.request_id,
        )
        return response

    # ----------------------------------------------------------------
    # Domain and HTTP errors → ErrorResponse envelope
    # ----------------------------------------------------------------

    @app.exception_handler(ReadMateError)
    async def domain_exception_handler(request: Request, exc: ReadMateError):
        code = _status_for(exc)
        if code >= 500:
            logger.error("Domain error | path=%s error=%s", request.url.path, exc)
        return _error_response(request, code, exc.error_code, str(exc))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Structured details pass through; plain string details are wrapped."""
        if isinstance(exc.detail, dict) and "error_code" in exc.detail:
            body = ErrorResponse(**{**exc.detail, "request_id": _request_id(request)})
            return JSONResponse(
                status_code=exc.status_code,
                content=body.model_dump(mode="json"),
                headers=exc.headers,
            )
        error_code = "UNAUTHORIZED" if exc.status_code == 401 else f"HTTP_{exc.status_code}"
        return _error_response(
            request, exc.status_code, error_code, str(exc.detail), headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        details = [
            ErrorDetail(
                field=".".join(str(part) for part in err["loc"]),
                message=err["msg"],
                code="VALIDATION_ERROR",
            )
            for err in exc.errors()
        ]
        return _error_response(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "VALIDATION_ERROR",
            "Request body or parameters are invalid.",
            details=details,
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        request_id = _request_id(request)
        logger.exception("Unhandled | path=%s request_id=%s", request.url.path, request_id)
        return _error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "INTERNAL_ERROR",
            "Internal server error.",
            headers={"X-Request-ID": request_id},
        )

    # ----------------------------------------------------------------
    # Routers
    # ----------------------------------------------------------------

    app.include_router(documents_router,     prefix="/api/v1")
    app.include_router(conversations_router, prefix="/api/v1")

    # ----------------------------------------------------------------
    # Probes (unauthenticated)
    # ----------------------------------------------------------------

    @app.get("/health", tags=["Operations"], summary="Process is up")
    async def health() -> dict:
        return {"status": "ok", "service": "readmate-api"}

    @app.get("/ready", tags=["Operations"], summary="Database reachable")
    async def readiness() -> JSONResponse:
        database = await check_db_health()
        ready = database["status"] == "ok"
        return JSONResponse(
            status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status":   "ready" if ready else "not_ready",
                "database": database,
                "storage":  settings.storage_backend,
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
        "readmate.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.app_env == "development",
        log_level="debug" if settings.debug else "info",
        access_log=True,
    )
