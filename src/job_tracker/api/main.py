"""Main FastAPI application for the job application tracker."""

import asyncio
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse

from job_tracker import __version__
from job_tracker.api.models import ErrorResponse
from job_tracker.api.routes import all_routers
from job_tracker.config import settings
from job_tracker.core.errors import TrackerError
from job_tracker.services import TrackerServices
from job_tracker.utils.logging import bind_request_context, configure_logging, get_logger

# Configure logging
configure_logging()
logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def _error_body(error: str, message: str, details=None) -> dict:
    return jsonable_encoder(ErrorResponse(
        error=error,
        message=message,
        details=details,
        timestamp=datetime.now(timezone.utc),
    ))


def create_app(services: Optional[TrackerServices] = None) -> FastAPI:
    """Create and configure the FastAPI application."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting job tracker API")
        app.state.services = services or TrackerServices.build()
        logger.info("Application startup completed successfully")

        yield

        logger.info("Shutting down job tracker API")
        await app.state.services.orchestrator.shutdown()
        if services is None:
            app.state.services.database.dispose()

    app = FastAPI(
        title="Job Tracker API",
        description="Job review, application lifecycle and scraping session tracking",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    # Add middleware
    setup_middleware(app)

    # Add exception handlers
    setup_exception_handlers(app)

    # Include routers
    for router in all_routers:
        app.include_router(router, prefix="/api/v1")

    @app.get("/")
    async def root():
        return {
            "name": "Job Tracker API",
            "version": __version__,
            "status": "running",
            "docs": "/docs" if settings.debug else "disabled",
        }

    return app


def setup_middleware(app: FastAPI) -> None:
    """Setup application middleware."""

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    if settings.allowed_hosts:
        app.add_middleware(
            TrustedHostMiddleware,
            allowed_hosts=settings.allowed_hosts,
        )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = asyncio.get_running_loop().time()
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        bind_request_context(
            request_id,
            request.method,
            request.url.path,
            actor_id=request.headers.get(settings.actor_id_header),
        )

        logger.info("Request started")

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                error=str(e),
                duration_seconds=asyncio.get_running_loop().time() - start_time,
            )
            raise

        logger.info(
            "Request completed",
            status_code=response.status_code,
            duration_seconds=asyncio.get_running_loop().time() - start_time,
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def setup_exception_handlers(app: FastAPI) -> None:
    """Setup global exception handlers."""

    @app.exception_handler(TrackerError)
    async def tracker_error_handler(request: Request, exc: TrackerError):
        logger.warning(
            "Domain error",
            error=exc.error,
            message=exc.message,
            status_code=exc.status_code,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.error, exc.message, exc.details or None),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body("HTTPException", str(exc.detail)),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning("Validation error", errors=exc.errors(), path=request.url.path)
        return JSONResponse(
            status_code=422,
            content=_error_body(
                "ValidationError",
                "Request validation failed",
                {"validation_errors": exc.errors()},
            ),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "InternalServerError",
                "An unexpected error occurred",
                {"error_type": type(exc).__name__} if settings.debug else None,
            ),
        )


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "job_tracker.api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_config=None,
    )
