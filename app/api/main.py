"""
FastAPI Application Factory

Creates and configures FastAPI application
"""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.db import close_db
from app.core.dependencies import get_index_queue, get_store_dependency
from app.core.exceptions import PCShopException
from app.core.logging import configure_logging, get_logger
from app.encoder.factory import get_encoder
from app.vectorstore.factory import get_embedding_store
from app.vectorstore.protocol import EmbeddingStoreProtocol

# Import routers
from app.routers import indexing, products, search
from app.api.error_handlers import register_exception_handlers
from app.api.response_middleware import SuccessEnvelopeMiddleware

logger = get_logger(__name__)


async def warmup_encoder() -> None:
    """Background task to preload the encoder model with progress tracking."""
    t0 = time.perf_counter()
    try:
        logger.info(
            "encoder_background_warmup_start",
            encoder_type=settings.encoder_type,
            model=settings.clip_model_name,
            device=settings.embedding_device,
        )
        await get_encoder().warmup()

        elapsed = time.perf_counter() - t0
        logger.info(
            "encoder_background_warmup_complete",
            model=settings.clip_model_name,
            elapsed_seconds=f"{elapsed:.2f}",
        )
    except Exception as e:  # noqa: BLE001 - first request retries the load
        elapsed = time.perf_counter() - t0
        logger.error(
            "encoder_background_warmup_failed",
            error=str(e),
            elapsed_seconds=f"{elapsed:.2f}",
        )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan events

    Startup:
        - Configure logging
        - Prepare the embedding store collection/table (failure only logged;
          search degrades to name matching until the store is back)
        - Start index queue workers
        - Schedule encoder warmup as background task

    Shutdown:
        - Stop index queue workers
        - Close store and database connections
    """
    configure_logging()
    logger.info("application_startup", environment=settings.environment)

    store = get_embedding_store()
    try:
        await store.initialize()
    except PCShopException as exc:
        logger.error("embedding_store_initialize_failed", error=str(exc))

    queue = get_index_queue()
    await queue.start()

    # Don't await: the server starts while the model downloads
    warmup_task = asyncio.create_task(warmup_encoder())

    yield

    # Shutdown
    logger.info("application_shutdown")
    if not warmup_task.done():
        warmup_task.cancel()
    await queue.stop()
    await store.close()
    await close_db()


def create_app() -> FastAPI:
    """
    Create FastAPI application

    Returns:
        Configured FastAPI app instance

    Usage:
        app = create_app()
        uvicorn.run(app, host="0.0.0.0", port=8000)
    """
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Multimodal product search for the PC components shop",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # Success envelope middleware
    app.add_middleware(SuccessEnvelopeMiddleware)

    # CORS Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_hosts,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(
        search.router,
        prefix=settings.api_v1_prefix,
    )
    app.include_router(
        products.router,
        prefix=settings.api_v1_prefix,
    )
    app.include_router(
        indexing.router,
        prefix=settings.api_v1_prefix,
    )

    register_exception_handlers(app)

    # Health check endpoint
    @app.get(f"{settings.api_v1_prefix}/health", tags=["health"])
    async def health_check(
        store: EmbeddingStoreProtocol = Depends(get_store_dependency),
    ) -> dict:
        """
        Health check endpoint

        Reports ``degraded`` when the embedding store is unreachable; the API
        keeps serving name-match search in that state.
        """
        store_ok = await store.health_check()
        return {
            "status": "ok" if store_ok else "degraded",
            "app": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
            "embedding_store": settings.embedding_store_type,
            "embedding_store_healthy": store_ok,
        }

    logger.info("fastapi_app_created", routes=len(app.routes))

    return app


# Application instance
app = create_app()
