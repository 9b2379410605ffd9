"""FastAPI application entry point."""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from hubsync.api.health import router as health_router
from hubsync.api.sync import router as sync_router
from hubsync.config import Settings
from hubsync.database import create_engine
from hubsync.exceptions import ConfigurationError, SyncAPIError
from hubsync.services.metadata_service import MetadataTracker
from hubsync.services.snapshot_service import SnapshotStore

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Awaitable, Callable

    from starlette.responses import Response

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool) -> None:
    """Configure application logging."""
    level = logging.DEBUG if debug else logging.INFO
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        stream=sys.stdout,
        force=True,
    )
    # Quiet noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if debug else logging.WARNING)


def configure_storage(app: FastAPI) -> None:
    """Create the engine, snapshot store and metadata tracker on ``app.state``.

    Missing database configuration is logged and leaves the stores unset, so the
    health endpoints keep answering and store-backed endpoints report a
    configuration error per request.
    """
    settings: Settings = app.state.settings
    app.state.engine = None
    app.state.snapshot_store = None
    app.state.metadata_tracker = None

    try:
        database_url = settings.resolve_database_url()
    except ConfigurationError as exc:
        logger.critical("Database is not configured: %s", exc)
        return

    if database_url.startswith("sqlite"):
        db_path = database_url.split("///", 1)[-1] if "///" in database_url else None
        if db_path:
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    engine, session_factory = create_engine(settings)
    app.state.engine = engine
    app.state.snapshot_store = SnapshotStore(session_factory)
    app.state.metadata_tracker = MetadataTracker(session_factory)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan: startup and shutdown."""
    settings: Settings = app.state.settings
    _configure_logging(settings.debug)
    logger.info("Starting %s (debug=%s)", settings.service_name, settings.debug)
    if not settings.sync_api_key:
        logger.critical("SYNC_API_KEY is not set; authenticated endpoints will answer 500")

    try:
        configure_storage(app)
    except Exception as exc:
        logger.critical("Failed to initialize database: %s.", exc)
        raise

    yield

    engine = app.state.engine
    if engine is not None:
        try:
            await engine.dispose()
        except Exception as exc:
            logger.error("Error during engine disposal: %s", exc, exc_info=True)

    logger.info("%s stopped", settings.service_name)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="HubSync",
        description="Snapshot push/pull endpoint for a single client device",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url=None,
        openapi_url="/openapi.json" if settings.debug else None,
    )
    app.state.settings = settings
    app.state.engine = None
    app.state.snapshot_store = None
    app.state.metadata_tracker = None

    @app.middleware("http")
    async def security_headers(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        response = await call_next(request)
        if settings.security_headers_enabled:
            response.headers.setdefault("X-Content-Type-Options", "nosniff")
            response.headers.setdefault("X-Frame-Options", "DENY")
            response.headers.setdefault("Referrer-Policy", "no-referrer")
        return response

    app.include_router(health_router)
    app.include_router(sync_router)

    @app.exception_handler(SyncAPIError)
    async def sync_api_error_handler(request: Request, exc: SyncAPIError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "%s in %s %s: %s",
                type(exc).__name__,
                request.method,
                request.url.path,
                exc,
                exc_info=exc,
            )
        else:
            logger.warning(
                "%s in %s %s: %s", type(exc).__name__, request.method, request.url.path, exc
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.message},
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = []
        for err in exc.errors():
            loc = err.get("loc", ())
            field = str(loc[-1]) if loc else "unknown"
            errors.append({"field": field, "message": err.get("msg", "Invalid value")})
        logger.warning(
            "RequestValidationError in %s %s: %s",
            request.method,
            request.url.path,
            errors,
        )
        return JSONResponse(status_code=400, content={"error": "Invalid request", "fields": errors})

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        # Unknown paths and known paths with the wrong method look the same to clients.
        if exc.status_code in (404, 405):
            return JSONResponse(
                status_code=404,
                content={
                    "error": "Not Found",
                    "path": request.url.path,
                    "method": request.method,
                },
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.error(
            "SQLAlchemyError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return JSONResponse(
            status_code=500,
            content={"error": "Storage operation failed"},
        )

    return app


app = create_app()


def cli_entry() -> None:
    """CLI entry point for running the server."""
    import uvicorn

    settings: Settings = app.state.settings
    uvicorn.run(
        "hubsync.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
