"""
Health Check Endpoints

Provides health and readiness checks for orchestration systems.
"""

from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from salesrecon.config import get_settings
from salesrecon.database.connection import check_database_health
from salesrecon.reconciliation.session import ImportSessionStore
from salesrecon.serving.dependencies import get_sessions, get_store
from salesrecon.store.base import DocumentStore
from salesrecon.store.sql import SqlDocumentStore

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


async def store_health(store: DocumentStore) -> Dict[str, Any]:
    if isinstance(store, SqlDocumentStore):
        return await check_database_health()
    return {"status": "healthy", "backend": "memory"}


@router.get("/health", response_model=HealthResponse)
async def health_check(
    store: DocumentStore = Depends(get_store),
    sessions: ImportSessionStore = Depends(get_sessions),
) -> HealthResponse:
    """
    Comprehensive health check endpoint.

    Checks:
    - Document store connectivity
    - Import session store connectivity
    """
    settings = get_settings()
    checks = {}
    overall_status = "healthy"

    checks["store"] = await store_health(store)
    if checks["store"].get("status") != "healthy":
        overall_status = "unhealthy"

    try:
        await sessions.ping()
        checks["sessions"] = {"status": "healthy"}
    except Exception as e:
        checks["sessions"] = {"status": "unhealthy", "error": str(e)}
        if overall_status == "healthy":
            overall_status = "degraded"

    return HealthResponse(
        status=overall_status,
        version=settings.version,
        environment=settings.app_env,
        timestamp=datetime.now(),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    """
    Kubernetes liveness probe endpoint.

    Returns 200 if the application is running.
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(response: Response, store: DocumentStore = Depends(get_store)) -> Dict[str, str]:
    """
    Kubernetes readiness probe endpoint.

    Returns 200 if the document store answers.
    """
    health = await store_health(store)
    if health.get("status") != "healthy":
        response.status_code = 503
        return {"status": "not_ready", "reason": "store_unavailable"}
    return {"status": "ready"}
