"""
FastAPI Application Factory

Creates and configures FastAPI application
"""

import asyncio
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from inspection_engine.api.error_handlers import register_exception_handlers
from inspection_engine.api.response_middleware import ResponseTimeMiddleware, SuccessEnvelopeMiddleware
from inspection_engine.core.config import settings
from inspection_engine.core.db import close_db, init_db
from inspection_engine.core.dependencies import AppContainer, build_container
from inspection_engine.core.logging import configure_logging, get_logger
from inspection_engine.routers import health, inspections, knowledge

logger = get_logger(__name__)


async def _warmup_embeddings(container: AppContainer) -> None:
    """Preload the embedding model without delaying startup."""
    t0 = time.perf_counter()
    try:
        logger.info("embedding_warmup_start", model=container.embeddings.model.model_name)
        await container.embeddings.warmup()
        logger.info(
            "embedding_warmup_complete",
            model=container.embeddings.model.model_name,
            elapsed_seconds=f"{time.perf_counter() - t0:.2f}",
        )
    except Exception as e:  # noqa: BLE001
        # lazy initialization on first request handles it
        logger.error(
            "embedding_warmup_failed",
            error=str(e),
            elapsed_seconds=f"{time.perf_counter() - t0:.2f}",
        )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan events

    Startup:
        - Configure logging
        - Create tables (development only; Alembic elsewhere)
        - Start the outbound delivery worker
        - Schedule embedding warmup as a background task

    Shutdown:
        - Drain inspection tasks and the outbound queue
        - Close database connections
    """
    configure_logging()
    logger.info("application_startup", environment=settings.environment)
    container: AppContainer = app.state.container

    if settings.environment == "development" and app.state.manage_database:
        logger.info("initializing_database_tables")
        await init_db()

    start = getattr(container.outbound, "start", None)
    if start is not None:
        await start()

    warmup_task = asyncio.create_task(_warmup_embeddings(container))

    yield

    logger.info("application_shutdown")
    warmup_task.cancel()
    await container.inspections.shutdown()
    stop = getattr(container.outbound, "stop", None)
    if stop is not None:
        await stop()
    if app.state.manage_database:
        await close_db()


def create_app(container: AppContainer | None = None) -> FastAPI:
    """
    Create FastAPI application

    Args:
        container: pre-built runtime graph (tests); built from settings if omitted

    Usage:
        app = create_app()
        uvicorn.run(app, host="0.0.0.0", port=8000)
    """
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Vehicle inspection pipeline and similarity search",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )
    app.state.manage_database = container is None
    app.state.container = container if container is not None else build_container()

    # Success envelope middleware
    app.add_middleware(SuccessEnvelopeMiddleware)
    # Timing wraps the envelope so it measures the full response
    app.add_middleware(ResponseTimeMiddleware)

    # CORS Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_hosts,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(inspections.v1_router, prefix=settings.api_v1_prefix)
    app.include_router(inspections.router, prefix=settings.api_v2_prefix)
    app.include_router(knowledge.router, prefix=settings.api_v2_prefix)
    app.include_router(knowledge.search_router, prefix=settings.api_v2_prefix)
    app.include_router(health.router, prefix=settings.api_v2_prefix)

    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=upload_dir), name="uploads")

    register_exception_handlers(app)

    # Health check endpoint
    @app.get("/health", tags=["health"])
    async def health_check() -> dict:
        """
        Health check endpoint

        Returns:
            Status dict
        """
        return {
            "status": "ok",
            "app": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
        }

    logger.info("fastapi_app_created", routes=len(app.routes))

    return app
