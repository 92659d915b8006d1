"""
Import Session Handoff

Holds the state of an import between analysis and confirmation:
- ImportSession: immutable value (rows per source order, aggregation,
  match result, catalog snapshot, resolutions)
- ImportSessionStore: where sessions wait for the operator, in process
  memory or in Redis with a TTL

A session is removed when it is confirmed or cancelled.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple
import time
import uuid

import structlog
from pydantic import BaseModel, ConfigDict, Field
from redis.asyncio import ConnectionPool, Redis

from salesrecon.config import get_settings
from salesrecon.domain.models import AggregatedItem, Product, RawExtractedRow
from salesrecon.ingestion.extraction import ExtractionSummary
from salesrecon.reconciliation.matcher import CatalogSnapshot
from salesrecon.reconciliation.resolver import Resolution

logger = structlog.get_logger(__name__)


# =============================================================================
# SESSION VALUE
# =============================================================================

class SourceOrder(BaseModel):
    """Raw rows of one source order, in file order"""

    model_config = ConfigDict(frozen=True)

    order_id: str
    rows: Tuple[RawExtractedRow, ...]


def group_orders(rows: Sequence[RawExtractedRow]) -> Tuple[SourceOrder, ...]:
    """
    Group rows by order id in first-seen order.

    Rows without an order id form a single order.
    """
    grouped: Dict[str, List[RawExtractedRow]] = {}
    for row in rows:
        grouped.setdefault(row.order_id, []).append(row)
    return tuple(SourceOrder(order_id=order_id, rows=tuple(items)) for order_id, items in grouped.items())


class ImportSession(BaseModel):
    """Immutable state of one import awaiting confirmation"""

    model_config = ConfigDict(frozen=True)

    session_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    source_name: str
    created_at: datetime
    orders: Tuple[SourceOrder, ...]
    items: Tuple[AggregatedItem, ...]
    recognized: Dict[str, str] = Field(default_factory=dict)
    unrecognized: Tuple[AggregatedItem, ...] = ()
    products: Tuple[Product, ...] = ()
    resolutions: Dict[str, Resolution] = Field(default_factory=dict)
    suggested: Tuple[str, ...] = ()
    summary: ExtractionSummary = Field(default_factory=ExtractionSummary)
    reported_summary: Optional[ExtractionSummary] = None

    @property
    def catalog(self) -> CatalogSnapshot:
        return CatalogSnapshot(products=self.products)

    @property
    def order_count(self) -> int:
        """Distinct source order ids; rows without one are not counted"""
        return sum(1 for order in self.orders if order.order_id)

    @property
    def unrecognized_keys(self) -> List[str]:
        return [item.key for item in self.unrecognized]

    def item(self, key: str) -> Optional[AggregatedItem]:
        for item in self.items:
            if item.key == key:
                return item
        return None


# =============================================================================
# SESSION STORES
# =============================================================================

class ImportSessionStore(ABC):
    """Keeps sessions between operator steps"""

    @abstractmethod
    async def save(self, session: ImportSession) -> None:
        """Store or replace a session"""

    @abstractmethod
    async def get(self, session_id: str) -> Optional[ImportSession]:
        """Fetch a session, None when unknown or expired"""

    @abstractmethod
    async def delete(self, session_id: str) -> bool:
        """Remove a session; True if it existed"""

    async def close(self) -> None:
        """Release resources"""

    async def ping(self) -> bool:
        return True


class MemoryImportSessionStore(ImportSessionStore):
    """Process-local sessions with lazy expiry"""

    def __init__(self, ttl_seconds: Optional[int] = None):
        self.ttl_seconds = ttl_seconds
        self._sessions: Dict[str, Tuple[float, ImportSession]] = {}

    def _expired(self, stored_at: float) -> bool:
        return self.ttl_seconds is not None and time.monotonic() - stored_at > self.ttl_seconds

    async def save(self, session: ImportSession) -> None:
        self._sessions[session.session_id] = (time.monotonic(), session)

    async def get(self, session_id: str) -> Optional[ImportSession]:
        entry = self._sessions.get(session_id)
        if entry is None:
            return None
        stored_at, session = entry
        if self._expired(stored_at):
            del self._sessions[session_id]
            logger.info("Import session expired", session_id=session_id)
            return None
        return session

    async def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def __len__(self) -> int:
        return len(self._sessions)


class RedisImportSessionStore(ImportSessionStore):
    """
    Sessions serialized as JSON under a namespaced Redis key.

    Example:
        store = RedisImportSessionStore.from_settings()
        await store.save(session)
        session = await store.get(session.session_id)
    """

    def __init__(self, client: Redis, ttl_seconds: int, namespace: str = "import-session"):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.namespace = namespace

    @classmethod
    def from_settings(cls) -> "RedisImportSessionStore":
        settings = get_settings()
        pool = ConnectionPool.from_url(
            settings.redis.get_url(),
            max_connections=settings.redis.max_connections,
            socket_timeout=settings.redis.socket_timeout,
            decode_responses=True,
        )
        return cls(Redis(connection_pool=pool), ttl_seconds=settings.imports.session_ttl_seconds)

    def _key(self, session_id: str) -> str:
        """Generate namespaced key"""
        return f"{self.namespace}:{session_id}"

    async def save(self, session: ImportSession) -> None:
        await self.client.setex(self._key(session.session_id), self.ttl_seconds, session.model_dump_json())

    async def get(self, session_id: str) -> Optional[ImportSession]:
        value = await self.client.get(self._key(session_id))
        if value is None:
            return None
        return ImportSession.model_validate_json(value)

    async def delete(self, session_id: str) -> bool:
        return await self.client.delete(self._key(session_id)) > 0

    async def ping(self) -> bool:
        return await self.client.ping()

    async def close(self) -> None:
        await self.client.aclose()
        logger.info("Redis connection closed")


def create_session_store() -> ImportSessionStore:
    """Session store selected by IMPORT_SESSION_BACKEND"""
    settings = get_settings()
    if settings.imports.session_backend == "redis":
        logger.info("Using Redis import session store", url=settings.redis.host)
        return RedisImportSessionStore.from_settings()
    return MemoryImportSessionStore(ttl_seconds=settings.imports.session_ttl_seconds)
