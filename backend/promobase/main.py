"""
FastAPI application entry point.
Assembles the app with routers, middleware, lifespan handlers, and exception handlers.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from promobase.api.v1.router import api_router
from promobase.core.config import settings
from promobase.core.exceptions import setup_exception_handlers
from promobase.core.logging import get_logger, setup_logging
from promobase.deps.di_container import Container, build_container, set_container

logger = get_logger(__name__)


def create_app(container: Optional[Container] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        container: Pre-built container (tests); one is built from settings otherwise
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Startup selects the storage backend; shutdown closes it and drops the
        merge ledger.
        """
        # Startup
        setup_logging()
        active = container or build_container()
        app.state.container = active
        set_container(active)

        store = active.contact_store()
        backend = await store.backend()
        logger.info("Contact store ready", extra={"backend": backend.name})

        yield

        # Shutdown
        await store.close()
        set_container(None)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        description="Contact storage, search and de-duplication API",
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include API router
    app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    # Add root-level health endpoint for convenience
    from promobase.api.v1.endpoints.health import get_health

    @app.get("/health", response_model=None, include_in_schema=False)
    async def root_health():
        """Root-level health check endpoint."""
        return await get_health()

    # Global exception handlers
    setup_exception_handlers(app)

    return app


app = create_app()
