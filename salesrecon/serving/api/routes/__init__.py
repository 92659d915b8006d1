"""
API Routes Module
"""
from .health import router as health_router
from .imports import router as imports_router
from .reports import router as reports_router

__all__ = [
    "health_router",
    "imports_router",
    "reports_router",
]
