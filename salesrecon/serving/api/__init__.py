"""
API Module
"""
from .errors import register_error_handlers
from .middleware import RequestLoggingMiddleware

__all__ = [
    "register_error_handlers",
    "RequestLoggingMiddleware",
]
