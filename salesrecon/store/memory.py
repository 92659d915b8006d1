"""
In-Memory Document Store

Used by tests and by single-process development runs (STORE_BACKEND=memory).
"""

import copy
from typing import Any, Dict, List, Optional

import structlog

from salesrecon.store.base import (
    DocumentExistsError,
    DocumentNotFoundError,
    DocumentStore,
    WriteBatch,
    WriteKind,
    matches,
)

logger = structlog.get_logger(__name__)


class MemoryDocumentStore(DocumentStore):
    """Dict-of-dicts store; commit applies a batch to a copy, then swaps it in"""

    def __init__(self, initial: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = copy.deepcopy(initial or {})
        self.commit_count = 0

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        doc = self._collections.get(collection, {}).get(doc_id)
        if doc is None:
            return None
        return {"id": doc_id, **copy.deepcopy(doc)}

    async def list(
        self,
        collection: str,
        where: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        return [
            {"id": doc_id, **copy.deepcopy(doc)}
            for doc_id, doc in self._collections.get(collection, {}).items()
            if matches(doc, where)
        ]

    async def commit(self, batch: WriteBatch) -> None:
        staged = copy.deepcopy(self._collections)

        for op in batch.ops:
            docs = staged.setdefault(op.collection, {})

            if op.kind == WriteKind.SET:
                docs[op.doc_id] = copy.deepcopy(op.data)
            elif op.kind == WriteKind.CREATE:
                if op.doc_id in docs:
                    raise DocumentExistsError(op.collection, op.doc_id)
                docs[op.doc_id] = copy.deepcopy(op.data)
            elif op.kind == WriteKind.UPDATE:
                if op.doc_id not in docs:
                    raise DocumentNotFoundError(op.collection, op.doc_id)
                docs[op.doc_id].update(copy.deepcopy(op.data))
            elif op.kind == WriteKind.DELETE:
                docs.pop(op.doc_id, None)
            elif op.kind == WriteKind.INCREMENT:
                if op.doc_id not in docs:
                    raise DocumentNotFoundError(op.collection, op.doc_id)
                current = docs[op.doc_id].get(op.field_name) or 0
                docs[op.doc_id][op.field_name] = current + op.delta

        self._collections = staged
        self.commit_count += 1
        logger.debug("Batch committed", writes=len(batch))
