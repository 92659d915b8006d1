"""
Document Store Abstraction

A collection/document interface with read, write, and batched-write
primitives. Batches are all-or-nothing across collections.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid


class DocumentNotFoundError(KeyError):
    """Update or increment against a document that does not exist"""

    def __init__(self, collection: str, doc_id: str):
        super().__init__(f"{collection}/{doc_id}")
        self.collection = collection
        self.doc_id = doc_id


class DocumentExistsError(Exception):
    """Create against a document that is already stored"""

    def __init__(self, collection: str, doc_id: str):
        super().__init__(f"{collection}/{doc_id} already exists")
        self.collection = collection
        self.doc_id = doc_id


class WriteKind(str, Enum):
    """Batched write operations"""
    SET = "set"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    INCREMENT = "increment"


@dataclass
class WriteOp:
    """Single staged write"""
    kind: WriteKind
    collection: str
    doc_id: str
    data: Dict[str, Any] = field(default_factory=dict)
    field_name: Optional[str] = None
    delta: float = 0


class WriteBatch:
    """
    Ordered set of writes committed atomically by DocumentStore.commit().

    Example:
        batch = store.batch()
        batch.set("sales", batch.new_id(), sale_doc)
        batch.increment("products", "SKU-1", "stock", -2)
        await store.commit(batch)
    """

    def __init__(self):
        self._ops: List[WriteOp] = []

    @staticmethod
    def new_id() -> str:
        """Generate a document id for a new document"""
        return uuid.uuid4().hex

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> "WriteBatch":
        self._ops.append(WriteOp(WriteKind.SET, collection, doc_id, dict(data)))
        return self

    def create(self, collection: str, doc_id: str, data: Dict[str, Any]) -> "WriteBatch":
        """Write a new document; the batch fails with DocumentExistsError if doc_id is taken"""
        self._ops.append(WriteOp(WriteKind.CREATE, collection, doc_id, dict(data)))
        return self

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> "WriteBatch":
        self._ops.append(WriteOp(WriteKind.UPDATE, collection, doc_id, dict(data)))
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        self._ops.append(WriteOp(WriteKind.DELETE, collection, doc_id))
        return self

    def increment(self, collection: str, doc_id: str, field_name: str, delta: float) -> "WriteBatch":
        """Add delta to a numeric field, evaluated against the stored value at commit"""
        self._ops.append(
            WriteOp(WriteKind.INCREMENT, collection, doc_id, field_name=field_name, delta=delta)
        )
        return self

    @property
    def ops(self) -> List[WriteOp]:
        return list(self._ops)

    def __len__(self) -> int:
        return len(self._ops)


def matches(doc: Dict[str, Any], where: Optional[Dict[str, Any]]) -> bool:
    """Equality filter over top-level fields"""
    if not where:
        return True
    return all(doc.get(key) == value for key, value in where.items())


class DocumentStore(ABC):
    """
    Abstract document collection store.

    Documents are plain dicts. Reads return the document with its key under
    "id"; writes never persist an "id" field.
    """

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        """Fetch one document or None"""

    @abstractmethod
    async def list(
        self,
        collection: str,
        where: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch all documents of a collection matching the equality filter"""

    @abstractmethod
    async def commit(self, batch: WriteBatch) -> None:
        """Apply every write of the batch, or none of them"""

    async def close(self) -> None:
        """Release resources held by the store"""

    def batch(self) -> WriteBatch:
        return WriteBatch()

    async def add(
        self,
        collection: str,
        data: Dict[str, Any],
        doc_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create a document and return it as stored"""
        batch = self.batch()
        doc_id = doc_id or batch.new_id()
        batch.set(collection, doc_id, _strip_id(data))
        await self.commit(batch)
        return {"id": doc_id, **_strip_id(data)}

    async def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        await self.commit(self.batch().set(collection, doc_id, _strip_id(data)))

    async def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        await self.commit(self.batch().update(collection, doc_id, _strip_id(data)))

    async def delete(self, collection: str, doc_id: str) -> None:
        await self.commit(self.batch().delete(collection, doc_id))


def _strip_id(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in data.items() if key != "id"}
