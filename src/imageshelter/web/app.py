"""FastAPI application factory."""

from __future__ import annotations

import logging
import platform
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from imageshelter.config import Settings, get_settings
from imageshelter.security.key_backup import KeyBackup
from imageshelter.storage.paths import PathGuard
from imageshelter.storage.reader import StorageReader
from imageshelter.storage.writer import StorageWriter
from imageshelter.utils.logging import register_secret
from imageshelter.web.exception_handlers import register_exception_handlers
from imageshelter.web.middleware import (
    RequestIDMiddleware,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
)
from imageshelter.web.routers.health import router as health_router
from imageshelter.web.routers.upload import router as upload_router
from imageshelter.web.routers.view import router as view_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup/shutdown.

    Handles:
    - Startup: log configuration and create the storage root
    - Shutdown: log completion (objects are written synchronously, nothing to drain)
    """
    from imageshelter import __version__

    settings: Settings = app.state.settings

    logger.info("=" * 60)
    logger.info(f"ImageShelter v{__version__} starting up")
    logger.info(
        f"Python: {platform.python_version()}, OS: {platform.system()} {platform.release()}"
    )
    logger.info("=" * 60)
    logger.info(f"Configuration: host={settings.host}, port={settings.port}")
    logger.info(f"Upload directory: {settings.uploads_path}")
    logger.info(
        f"Encryption: {'enabled' if settings.encrypt else 'disabled'}, "
        f"key backup: {'enabled' if settings.backup_keys else 'disabled'}"
    )

    if settings.debug:
        logger.warning(
            "⚠️  DEBUG MODE ENABLED - Not recommended for production! "
            "Error responses include exception details. Set IMAGESHELTER_DEBUG=false "
            "for production deployments."
        )

    settings.uploads_path.mkdir(parents=True, exist_ok=True)

    logger.info("Application startup complete")

    yield

    logger.info("Shutdown complete")


def create_app(
    *,
    debug: bool | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Create and configure FastAPI application.

    This factory pattern allows creating isolated app instances for testing
    and configuring different environments.

    Args:
        debug: Include exception details in 500 responses. If None, uses settings.
        settings: Settings instance. If None, uses get_settings().

    Returns:
        Configured FastAPI application instance

    Example:
        ```python
        app = create_app(settings=Settings(data_dir=Path("/srv/shelter")))
        # Run with: uvicorn imageshelter.web.app:app
        ```
    """
    from imageshelter import __version__

    if settings is None:
        settings = get_settings()

    effective_debug = debug if debug is not None else settings.debug

    app = FastAPI(
        title="ImageShelter",
        description="File hosting with per-upload encryption keys",
        version=__version__,
        lifespan=lifespan,
    )

    # Shared, immutable pipeline state; the storage root is canonicalized once here
    storage_config = settings.storage_config()
    guard = PathGuard(storage_config.upload_dir)
    key_backup = (
        KeyBackup(settings.key_backup_path) if settings.backup_keys and settings.encrypt else None
    )

    app.state.settings = settings
    # FastAPI's own debug flag would replace JSON 500s with HTML tracebacks
    app.state.debug = effective_debug
    app.state.storage_writer = StorageWriter(storage_config, guard=guard, key_backup=key_backup)
    app.state.storage_reader = StorageReader(storage_config, guard=guard)

    for secret in settings.secrets:
        register_secret(secret)

    register_exception_handlers(app)

    # Add middlewares (order matters: first added = last executed)
    # RequestLogging should run after RequestID is set
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware, log_all=settings.verbose)
    app.add_middleware(RequestIDMiddleware)

    # Fixed paths must be registered before the catch-all /{name} routes
    app.include_router(health_router)
    app.include_router(upload_router)
    app.include_router(view_router)

    return app


# Default app instance for uvicorn
app = create_app()
