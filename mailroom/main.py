"""
FastAPI application for mail ingestion and live notifications.
"""

import asyncio
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mailroom import __version__
from mailroom.config import settings
from mailroom.core.logging import configure_logging, get_logger
from mailroom.pipeline import Pipeline, build_pipeline
from mailroom.routers.deps import get_pipeline
from mailroom.routers.live import router as live_router
from mailroom.routers.mail import router as mail_router
from mailroom.scheduler import start_scheduler, stop_scheduler

log = get_logger(__name__)


def create_app(pipeline: Pipeline | None = None, enable_scheduler: bool | None = None) -> FastAPI:
    """
    Create the application.

    Args:
        pipeline: Pre-built pipeline (built from settings on startup if omitted)
        enable_scheduler: Override settings.scheduler_enabled
    """
    scheduler_enabled = (
        enable_scheduler if enable_scheduler is not None else settings.scheduler_enabled
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        # Startup
        configure_logging(log_level=settings.log_level, json_output=settings.json_logs)
        log.info("application_starting")

        app.state.pipeline = pipeline or build_pipeline()
        if app.state.pipeline.db is not None:
            app.state.pipeline.db.init_schema()

        if scheduler_enabled:
            start_scheduler(app.state.pipeline)
        else:
            log.info("scheduler_disabled")

        yield

        # Shutdown
        if scheduler_enabled:
            stop_scheduler()
        app.state.pipeline.connections.close_all()
        await app.state.pipeline.aclose()
        log.info("application_stopped")

    app = FastAPI(
        title="Mailroom",
        description="Scanned mail classification and live notifications",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["POST", "GET", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(mail_router)
    app.include_router(live_router)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy", "version": __version__}

    @app.get("/stats")
    async def get_stats(pipeline: Pipeline = Depends(get_pipeline)):
        """Pipeline counters, plus storage statistics when a database is attached."""
        stats = pipeline.stats()
        if pipeline.db is not None:
            stats["storage"] = await asyncio.to_thread(pipeline.db.get_stats)
        return stats

    return app


app = create_app()


# Run with: uvicorn mailroom.main:app --host 0.0.0.0 --port 8001
