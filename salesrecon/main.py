"""
FastAPI Production Application

Main entry point for the sales reconciliation API.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
import structlog

from salesrecon.config import get_settings
from salesrecon.config.logging import configure_logging
from salesrecon.database.connection import close_database, get_session_factory, init_database
from salesrecon.reconciliation.pipeline import ImportPipeline
from salesrecon.reconciliation.session import (
    ImportSessionStore,
    MemoryImportSessionStore,
    create_session_store,
)
from salesrecon.serving.api.errors import register_error_handlers
from salesrecon.serving.api.middleware import RequestLoggingMiddleware
from salesrecon.serving.api.routes import health_router, imports_router, reports_router
from salesrecon.store.base import DocumentStore
from salesrecon.store.memory import MemoryDocumentStore
from salesrecon.store.sql import SqlDocumentStore

logger = structlog.get_logger(__name__)


def attach_services(
    app: FastAPI,
    store: DocumentStore,
    sessions: ImportSessionStore,
    clock: Callable[[], datetime] = datetime.now,
) -> None:
    """Expose the store, session store, clock, and import pipeline on app.state"""
    app.state.store = store
    app.state.sessions = sessions
    app.state.clock = clock
    app.state.pipeline = ImportPipeline(store, sessions, clock=clock)


async def create_store() -> DocumentStore:
    """Document store selected by STORE_BACKEND"""
    settings = get_settings()
    if settings.store_backend == "memory":
        logger.warning("Using in-memory document store, data is lost on restart")
        return MemoryDocumentStore()
    await init_database()
    return SqlDocumentStore(get_session_factory())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    configure_logging()
    settings = get_settings()
    logger.info("Starting sales reconciliation API", environment=settings.app_env)

    # services injected by create_app() are owned by the caller
    owned = getattr(app.state, "store", None) is None
    if owned:
        attach_services(app, await create_store(), create_session_store())

    yield

    logger.info("Shutting down...")
    if owned:
        await app.state.sessions.close()
        await app.state.store.close()
        await close_database()


def create_app(
    store: Optional[DocumentStore] = None,
    sessions: Optional[ImportSessionStore] = None,
    clock: Callable[[], datetime] = datetime.now,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    When a store is given the services are attached immediately, which is
    how tests run the app without a database.
    """
    settings = get_settings()

    app = FastAPI(
        title="Sales Reconciliation API",
        description="Marketplace sales import reconciliation and profit reporting",
        version=settings.version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)

    register_error_handlers(app)

    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(imports_router, prefix="/api/v1/imports", tags=["Imports"])
    app.include_router(reports_router, prefix="/api/v1/reports", tags=["Reports"])

    @app.get("/api/v1/info")
    async def api_info():
        """API information endpoint."""
        return {
            "name": "Sales Reconciliation API",
            "version": settings.version,
            "environment": settings.app_env,
            "documentation": "/docs",
        }

    if settings.monitoring.metrics_enabled:
        @app.get("/metrics", include_in_schema=False)
        async def metrics() -> Response:
            """Prometheus metrics endpoint."""
            return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    if store is not None:
        attach_services(app, store, sessions or MemoryImportSessionStore(), clock)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
