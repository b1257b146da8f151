"""PACSView - Lightweight DICOM archive browser and image server

Main FastAPI application entry point.
"""

import asyncio
import time
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import Counter, Histogram, make_asgi_app

from pacsview.api.responses import error_response
from pacsview.api.router import api_router
from pacsview.core.config import Settings, settings
from pacsview.core.logging import (
    bind_request_context,
    clear_request_context,
    get_logger,
    setup_logging,
)
from pacsview.services.dicom import (
    DicomImageService,
    DicomIndex,
    DicomIndexService,
    DicomParser,
    QueryEngine,
    ThumbnailCache,
)

logger = get_logger(__name__)

# Prometheus metrics
REQUEST_COUNT = Counter(
    "pacsview_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)
REQUEST_LATENCY = Histogram(
    "pacsview_request_latency_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
)


def _safe_request_path(request: Request) -> str:
    """Return a route template path to avoid logging UIDs in URLs."""
    route = request.scope.get("route")
    if route and hasattr(route, "path"):
        return route.path
    return request.url.path


def init_services(app: FastAPI, app_settings: Settings) -> None:
    """Build the index and the services around it and attach them to ``app.state``."""
    storage = app_settings.dicom
    parser = DicomParser()
    index = DicomIndex()
    image_service = DicomImageService(index, parser, default_quality=storage.default_jpeg_quality)

    app.state.dicom_index = index
    app.state.index_service = DicomIndexService(
        index,
        storage.root_path,
        parser=parser,
        excluded_extensions=storage.excluded_extensions,
        progress_log_interval=storage.progress_log_interval,
    )
    app.state.query_engine = QueryEngine(index)
    app.state.image_service = image_service
    app.state.thumbnail_cache = ThumbnailCache(
        index,
        image_service,
        storage.thumbnail_cache_path,
        default_size=storage.thumbnail_size,
        max_size=storage.max_thumbnail_size,
        quality=storage.thumbnail_quality,
    )
    app.state.startup_rebuild = None


async def shutdown_services(app: FastAPI) -> None:
    """Stop any running rebuild, flush thumbnail writes and drop the index."""
    if hasattr(app.state, "index_service"):
        app.state.index_service.cancel()

    task: asyncio.Task | None = getattr(app.state, "startup_rebuild", None)
    if task is not None and not task.done():
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    if hasattr(app.state, "thumbnail_cache"):
        await app.state.thumbnail_cache.drain()

    if hasattr(app.state, "dicom_index"):
        app.state.dicom_index.clear_all()


def _log_rebuild_result(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Startup index rebuild failed", error=str(exc), exc_info=exc)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    app_settings: Settings = app.state.settings

    # Startup
    logger.info(
        "Starting PACSView",
        version=app_settings.app_version,
        environment=app_settings.environment,
        storage_path=str(app_settings.dicom.root_path),
    )

    init_services(app, app_settings)

    if app_settings.dicom.index_on_startup:
        task = asyncio.create_task(
            app.state.index_service.rebuild_after(app_settings.dicom.startup_delay_seconds)
        )
        task.add_done_callback(_log_rebuild_result)
        app.state.startup_rebuild = task
        logger.info(
            "Index rebuild scheduled",
            delay_seconds=app_settings.dicom.startup_delay_seconds,
        )

    logger.info("PACSView started successfully")

    yield

    # Shutdown
    logger.info("Shutting down PACSView")
    await shutdown_services(app)
    logger.info("PACSView shutdown complete")


def create_application(app_settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app_settings = app_settings or settings

    app = FastAPI(
        title=app_settings.app_name,
        description="""
        PACSView indexes a directory tree of DICOM files and serves it over HTTP.

        ## Features

        - **Browse**: Patient / Study / Series / Instance hierarchy with search and paging
        - **Render**: JPEG and PNG frames with window/level
        - **Thumbnails**: Disk-cached series and instance previews
        - **WADO**: Raw DICOM objects and tag dumps by UID

        ## API Documentation

        - **Interactive docs**: `/docs` (Swagger UI)
        - **ReDoc**: `/redoc`
        - **OpenAPI spec**: `/openapi.json`
        """,
        version=app_settings.app_version,
        docs_url="/docs" if app_settings.debug else None,
        redoc_url="/redoc" if app_settings.debug else None,
        openapi_url="/openapi.json" if app_settings.debug else None,
        lifespan=lifespan,
    )
    app.state.settings = app_settings

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=app_settings.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Process-Time", "Content-Disposition"],
    )

    # Add GZip compression
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    # Add request logging middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all incoming requests with timing."""
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())[:8]
        bind_request_context(request_id, request.method)
        start_time = time.time()

        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        process_time = time.time() - start_time
        safe_path = _safe_request_path(request)

        # Update metrics
        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=safe_path,
            status=response.status_code,
        ).inc()
        REQUEST_LATENCY.labels(
            method=request.method,
            endpoint=safe_path,
        ).observe(process_time)

        # Add custom headers
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{process_time:.4f}"

        logger.info(
            "request_completed",
            request_id=request_id,
            method=request.method,
            path=safe_path,
            status_code=response.status_code,
            process_time=f"{process_time:.4f}s",
        )

        return response

    # Mount Prometheus metrics endpoint
    metrics_app = make_asgi_app()
    app.mount("/metrics", metrics_app)

    # Include API router
    app.include_router(api_router, prefix="/api")

    # Health check endpoint
    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint for load balancers and monitoring."""
        return {
            "status": "healthy",
            "version": app_settings.app_version,
            "environment": app_settings.environment,
        }

    # Readiness check endpoint
    @app.get("/ready", tags=["Health"])
    async def readiness_check(request: Request):
        """Ready once the storage root exists and one rebuild has completed."""
        checks = {
            "storage": app_settings.dicom.root_path.is_dir(),
            "index": False,
        }

        if hasattr(request.app.state, "dicom_index"):
            checks["index"] = request.app.state.dicom_index.last_index_time is not None

        all_ready = all(checks.values())
        return JSONResponse(
            status_code=200 if all_ready else 503,
            content={
                "ready": all_ready,
                "checks": checks,
            },
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle uncaught exceptions."""
        logger.error(
            "unhandled_exception",
            path=_safe_request_path(request),
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return error_response(
            str(exc) if app_settings.debug else "An unexpected error occurred",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    return app


# Initialize logging
setup_logging(
    log_level="DEBUG" if settings.debug else "INFO",
    json_logs=settings.json_logs or settings.environment == "production",
)

# Create application instance
app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "pacsview.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers,
        log_level="debug" if settings.debug else "info",
    )
