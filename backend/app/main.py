"""
Inceptra Backend — FastAPI Application Factory
================================================

What:  Creates and configures the FastAPI application instance.
Why:   Centralizes middleware registration, route mounting, exception
       handling and lifecycle management in one place.
How:   create_app() returns a configured FastAPI instance; uvicorn serves
       the module-level `app` (uvicorn app.main:app).

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware (outermost first):                           │
    │  Request ID → Rate Limit → Access Log → GZip → CORS      │
    │                                                          │
    │  Routes:                                                 │
    │  POST /api/article  POST /api/image  POST /api/bg-remove │
    │  POST /api/resume   GET /api/history GET /api/history/usage
    │  GET /  GET /api/health  GET /health                     │
    │                                                          │
    │  Exception Handlers:                                     │
    │  InceptraError → its own status/code │ Exception → 500   │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging, configuration check (logged, not fatal)
    Shutdown: close provider clients, dispose the database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from app import __version__
from app.config import settings
from app.database import dispose_engine
from app.exceptions import (
    GenerationFailedError,
    InceptraError,
    QuotaExceededError,
    RateLimitExceededError,
    StorageUnavailableError,
)
from app.middleware.logging import RequestLoggingMiddleware
from app.middleware.rate_limit import RateLimitMiddleware
from app.middleware.request_id import RequestIDMiddleware, request_id_var
from app.routes import article, bg_remove, health, history, image, resume
from app.services.generation_service import generation_service

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the whole application.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s on stdout
    (the container runtime collects stdout).
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party libraries that log every call at INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("huggingface_hub").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("=" * 60)
    logger.info("Inceptra Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving: health checks report the degraded providers
        logger.error("Configuration error: %s", str(e))

    for feature, policy in generation_service.policies.items():
        logger.info(
            "%s: %d candidate(s), daily limit %d, worst-case latency %.0fs",
            feature.value,
            len(policy.candidates),
            policy.daily_limit,
            policy.worst_case_latency,
        )
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("Inceptra Backend shutting down...")
    await generation_service.close()
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def error_body(exc: InceptraError, include_details: bool = True) -> dict:
    """Standard error body: {error, message, status_code, details?, request_id}."""
    body = {
        "error": exc.code,
        "message": exc.message,
        "status_code": exc.status_code,
        "request_id": request_id_var.get(""),
    }
    if include_details and exc.context:
        body["details"] = exc.context
    return body


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map the exception hierarchy onto HTTP responses.

        ValidationError / AuthenticationError / UserNotFoundError → 4xx with details
        QuotaExceededError, RateLimitExceededError → 429 + Retry-After
        GenerationFailedError → 502/503/504, attempt trail logged only
        StorageUnavailableError → 500, SQL details logged only
        Exception → 500 catch-all

    Provider names and upstream errors never appear in a response body.
    """

    @app.exception_handler(QuotaExceededError)
    async def handle_quota_exceeded(request: Request, exc: QuotaExceededError):
        # Expected condition, not an error
        logger.info("[%s] Quota exceeded: %s", request_id_var.get(""), exc.context)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc),
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc),
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(GenerationFailedError)
    async def handle_generation_failed(request: Request, exc: GenerationFailedError):
        logger.error(
            "[%s] Generation failed (%s): %s",
            request_id_var.get(""),
            exc.code,
            exc.context,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc, include_details=False),
        )

    @app.exception_handler(StorageUnavailableError)
    async def handle_storage_error(request: Request, exc: StorageUnavailableError):
        logger.error("[%s] Storage error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc, include_details=False),
        )

    @app.exception_handler(InceptraError)
    async def handle_inceptra_error(request: Request, exc: InceptraError):
        """Client-side errors (400/401): message and details are safe to return."""
        logger.warning("[%s] %s: %s", request_id_var.get(""), exc.code, exc.message)
        return JSONResponse(status_code=exc.status_code, content=error_body(exc))

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        """Malformed JSON or form bodies, reported in the standard error shape."""
        rid = request_id_var.get("")
        logger.warning("[%s] Request validation failed: %s", rid, exc.errors())
        return JSONResponse(
            status_code=400,
            content={
                "error": "validation_error",
                "message": "Request body or parameters are invalid.",
                "status_code": 400,
                "details": {
                    "errors": [
                        {"loc": list(e.get("loc", [])), "msg": e.get("msg", "")}
                        for e in exc.errors()
                    ]
                },
                "request_id": rid,
            },
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        """Catch-all: generic 500, stack trace logged server-side only."""
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "server_error",
                "message": "An unexpected error occurred. Please try again later.",
                "status_code": 500,
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="Inceptra API",
        description=(
            "AI content generation: articles, images, background removal and "
            "resume analysis with per-user daily quotas and provider fallback."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # Middleware executes in reverse order of addition (last added = outermost)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Total-Count", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(article.router)
    app.include_router(image.router)
    app.include_router(bg_remove.router)
    app.include_router(resume.router)
    app.include_router(history.router)

    return app


app = create_app()
