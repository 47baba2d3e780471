"""VerseNest Auth - FastAPI Application Factory."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from versenest.api import api_router, register_exception_handlers
from versenest.core import async_session_maker, engine, settings, setup_logging
from versenest.core.logging import get_logger
from versenest.middleware import SecurityHeadersMiddleware

# Import all models to ensure they're registered with Base for Alembic
from versenest.models import AuthToken, LoginThrottle, User  # noqa: F401
from versenest.services.session_manager import SessionManager

logger = get_logger("main")


def task_done_callback(task: asyncio.Task[None]) -> None:
    """Log unhandled exceptions from background tasks."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Background task {task.get_name()} failed: {exc}")


async def sweep_once() -> int:
    """Delete expired ledger records and stale throttle windows."""
    async with async_session_maker() as db:
        return await SessionManager(db).sweep_expired()


async def _token_sweep_loop() -> None:
    """Periodically remove expired tokens from the ledger."""
    while True:
        await asyncio.sleep(settings.token_sweep_interval_seconds)
        try:
            removed = await sweep_once()
            if removed > 0:
                logger.info(f"Swept {removed} expired ledger entries")
        except Exception:
            logger.exception("Error sweeping expired tokens")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    setup_logging(
        level=settings.log_level,
        format_type="structured" if settings.is_production else "dev",
    )
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    for warning in settings.check_security_configuration():
        logger.warning(f"SECURITY: {warning}")

    sweep_task = asyncio.create_task(_token_sweep_loop(), name="token-sweep")
    sweep_task.add_done_callback(task_done_callback)

    yield

    # Shutdown
    logger.info("Shutting down...")
    sweep_task.cancel()
    try:
        await sweep_task
    except asyncio.CancelledError:
        pass
    await engine.dispose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="Authentication and session security for VerseNest",
        version=settings.app_version,
        lifespan=lifespan,
        # API schema is only published outside production
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None if settings.is_production else "/redoc",
        openapi_url=None if settings.is_production else "/openapi.json",
    )

    register_exception_handlers(app)

    # Security headers middleware
    app.add_middleware(SecurityHeadersMiddleware)

    # CORS middleware - MUST be outermost (added last in Starlette LIFO order)
    # so that CORS headers are present on ALL responses, including 401s.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=[
            "Authorization",
            "Content-Type",
            "Accept",
            "X-Request-ID",
        ],
    )

    app.include_router(api_router)

    # Root endpoint
    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint with API information."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
        }

    return app


# Application instance
app = create_app()
