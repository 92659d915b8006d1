"""
Database Module
"""
from .connection import (
    check_database_health,
    close_database,
    create_session_factory,
    get_db,
    get_session_factory,
    init_database,
)
from .models import Base, DocumentRecord

__all__ = [
    "init_database",
    "close_database",
    "create_session_factory",
    "get_db",
    "get_session_factory",
    "check_database_health",
    "Base",
    "DocumentRecord",
]
