"""
Document Store Module
"""
from .base import DocumentNotFoundError, DocumentStore, WriteBatch
from .memory import MemoryDocumentStore
from .sql import SqlDocumentStore

__all__ = [
    "DocumentNotFoundError",
    "DocumentStore",
    "WriteBatch",
    "MemoryDocumentStore",
    "SqlDocumentStore",
]
