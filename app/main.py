"""
FastAPI application for the conference submission and payment backend.
"""
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.deps import get_gateway_client, get_storage
from app.api.routes import health, papers, payments, receipts, submissions, verification
from app.core.config import settings
from app.core.exceptions import ConferenceError
from app.core.logging_config import setup_logging
from app.db.session import dispose_engine, import_models

setup_logging()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
    logger.info("application_startup", app_name=settings.app_name, env=settings.app_env)
    import_models()
    if settings.s3_ensure_bucket_on_startup:
        get_storage().ensure_bucket_exists()

    yield

    logger.info("application_shutdown")
    get_gateway_client().close()
    dispose_engine()


app = FastAPI(
    title="Conference Submission Backend",
    description="Paper submission lifecycle, review and registration payments.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_request_id_middleware(request: Request, call_next: Any) -> Response:
    request_id = str(uuid.uuid4())
    start_time = time.time()

    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        method=request.method,
        path=request.url.path,
    )
    try:
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        logger.info(
            "request_completed",
            status_code=response.status_code,
            duration_seconds=time.time() - start_time,
        )
        return response
    finally:
        structlog.contextvars.clear_contextvars()


@app.exception_handler(ConferenceError)
async def conference_error_handler(request: Request, exc: ConferenceError) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error
    log("request_rejected", code=exc.code, error=exc.message, status_code=exc.status_code)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message, "code": exc.code, **exc.details},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
    message = f"{field}: {first.get('msg')}" if field else "Invalid request."
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "error": message, "code": "VALIDATION_ERROR"},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": "Internal server error"},
    )


for module in (payments, receipts, verification, papers, submissions, health):
    app.include_router(module.router, prefix=settings.api_prefix)
