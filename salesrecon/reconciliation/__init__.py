"""
Reconciliation Module

Sales import: aggregation, catalog matching, mapping resolution,
idempotent cost posting, and sale materialization.
"""
from .aggregator import aggregate_rows, row_key
from .idempotency import CostPostingPlan, IdempotencyGuard
from .matcher import CatalogSnapshot, MatchResult, match_items
from .materializer import MaterializationPlan, SaleMaterializer
from .pipeline import ImportOutcome, ImportPipeline, ImportSessionView
from .resolver import (
    CREATE_NEW,
    CreateNew,
    MapTo,
    apply_resolution,
    is_complete,
    missing_resolutions,
    parse_resolution,
    suggest_resolutions,
)
from .session import (
    ImportSession,
    ImportSessionStore,
    MemoryImportSessionStore,
    RedisImportSessionStore,
    create_session_store,
)

__all__ = [
    "aggregate_rows",
    "row_key",
    "CostPostingPlan",
    "IdempotencyGuard",
    "CatalogSnapshot",
    "MatchResult",
    "match_items",
    "MaterializationPlan",
    "SaleMaterializer",
    "ImportOutcome",
    "ImportPipeline",
    "ImportSessionView",
    "CREATE_NEW",
    "CreateNew",
    "MapTo",
    "apply_resolution",
    "is_complete",
    "missing_resolutions",
    "parse_resolution",
    "suggest_resolutions",
    "ImportSession",
    "ImportSessionStore",
    "MemoryImportSessionStore",
    "RedisImportSessionStore",
    "create_session_store",
]
