"""FastAPI application entry point."""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from filesync.api.health import router as health_router
from filesync.api.sync import router as sync_router
from filesync.config import Settings
from filesync.database import create_engine
from filesync.exceptions import FileSyncError, RequestError
from filesync.models.base import Base
from filesync.services.auth_service import SessionManager
from filesync.services.keychain import Keychain
from filesync.services.session_store import DatabaseSessionStore, MemorySessionStore

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from filesync.services.session_store import SessionStore

logger = logging.getLogger(__name__)

_INTERNAL_ERROR = {"error": {"message": "Internal Server Error", "code": 500}}


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


async def initialize_state(app: FastAPI) -> None:
    """Validate settings and build the session manager on ``app.state``."""
    settings: Settings = app.state.settings
    settings.validate_runtime()

    store: SessionStore
    app.state.engine = None
    if settings.session_backend == "database":
        engine, session_factory = create_engine(settings)
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except Exception as exc:
            logger.critical("Failed to create session tables: %s.", exc)
            await engine.dispose()
            raise
        app.state.engine = engine
        store = DatabaseSessionStore(session_factory)
    else:
        store = MemorySessionStore()

    app.state.session_manager = SessionManager(
        store,
        Keychain(settings.keychain_dir),
        ttl_seconds=settings.token_ttl_seconds,
        challenge_bytes=settings.challenge_bytes,
    )


async def dispose_state(app: FastAPI) -> None:
    """Release resources created by ``initialize_state``."""
    engine = getattr(app.state, "engine", None)
    if engine is None:
        return
    try:
        await engine.dispose()
    except Exception as exc:
        logger.error("Error during engine disposal: %s", exc, exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan: startup and shutdown."""
    settings: Settings = app.state.settings
    _configure_logging(settings.debug)
    logger.info(
        "Starting FileSync (serving %s, sessions=%s)",
        settings.content_dir,
        settings.session_backend,
    )

    try:
        await initialize_state(app)
    except Exception as exc:
        logger.critical("Failed to initialize FileSync: %s", exc)
        raise

    yield

    await dispose_state(app)
    logger.info("FileSync stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="FileSync",
        description="Challenge-authenticated one-way directory sync",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )
    app.state.settings = settings

    app.include_router(health_router)
    app.include_router(sync_router)

    # Global exception handlers: responses never carry paths or tracebacks.

    @app.exception_handler(RequestError)
    async def request_error_handler(request: Request, exc: RequestError) -> JSONResponse:
        logger.info("RequestError in %s %s: %s", request.method, request.url.path, exc.detail)
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(FileSyncError)
    async def filesync_error_handler(request: Request, exc: FileSyncError) -> JSONResponse:
        logger.error(
            "FileSyncError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return JSONResponse(status_code=500, content=_INTERNAL_ERROR)

    @app.exception_handler(OSError)
    async def os_error_handler(request: Request, exc: OSError) -> JSONResponse:
        if isinstance(exc, (ConnectionError, TimeoutError)):
            raise exc
        logger.error("OSError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
        return JSONResponse(status_code=500, content=_INTERNAL_ERROR)

    @app.exception_handler(RuntimeError)
    async def runtime_error_handler(request: Request, exc: RuntimeError) -> JSONResponse:
        if isinstance(exc, (NotImplementedError, RecursionError)):
            raise exc
        logger.error(
            "RuntimeError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return JSONResponse(status_code=500, content=_INTERNAL_ERROR)

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        logger.error("ValueError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
        return JSONResponse(status_code=500, content=_INTERNAL_ERROR)

    return app


app = create_app()


def cli_entry() -> None:
    """CLI entry point for running the server."""
    import uvicorn

    settings: Settings = app.state.settings
    uvicorn.run(
        "filesync.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
