"""
SQL Document Store

Document store on top of the async SQLAlchemy documents table. A batch is
committed inside one transaction; rows touched by update/increment are read
with FOR UPDATE so concurrent terminals serialize on them.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from salesrecon.database.models import DocumentRecord
from salesrecon.store.base import (
    DocumentExistsError,
    DocumentNotFoundError,
    DocumentStore,
    WriteBatch,
    WriteKind,
    matches,
)

logger = structlog.get_logger(__name__)

TIMESTAMP_TAG = "__timestamp__"


def encode_value(value: Any) -> Any:
    """Convert datetimes to the tagged store-native timestamp form"""
    if isinstance(value, datetime):
        return {TIMESTAMP_TAG: value.isoformat()}
    if isinstance(value, dict):
        return {key: encode_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_value(item) for item in value]
    return value


def decode_value(value: Any) -> Any:
    """Convert tagged timestamps back to datetimes"""
    if isinstance(value, dict):
        if set(value) == {TIMESTAMP_TAG}:
            return datetime.fromisoformat(value[TIMESTAMP_TAG])
        return {key: decode_value(item) for key, item in value.items()}
    if isinstance(value, list):
        return [decode_value(item) for item in value]
    return value


class SqlDocumentStore(DocumentStore):
    """
    Document store backed by the documents table.

    Example:
        store = SqlDocumentStore(get_session_factory())
        await store.add("expenses", {"name": "Listrik", "amount": 250000, ...})
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @staticmethod
    def _to_document(record: DocumentRecord) -> Dict[str, Any]:
        return {"id": record.doc_id, **decode_value(record.data or {})}

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        async with self._session_factory() as session:
            record = await session.get(DocumentRecord, (collection, doc_id))
            if record is None:
                return None
            return self._to_document(record)

    async def list(
        self,
        collection: str,
        where: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(DocumentRecord)
                .where(DocumentRecord.collection == collection)
                .order_by(DocumentRecord.created_at, DocumentRecord.doc_id)
            )
            docs = [self._to_document(record) for record in result.scalars()]

        # Filter after decoding so timestamps compare as datetimes
        return [doc for doc in docs if matches(doc, where)]

    async def _locked(self, session: AsyncSession, collection: str, doc_id: str) -> Optional[DocumentRecord]:
        result = await session.execute(
            select(DocumentRecord)
            .where(
                DocumentRecord.collection == collection,
                DocumentRecord.doc_id == doc_id,
            )
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def commit(self, batch: WriteBatch) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                for op in batch.ops:
                    if op.kind == WriteKind.SET:
                        record = await self._locked(session, op.collection, op.doc_id)
                        if record is None:
                            session.add(
                                DocumentRecord(
                                    collection=op.collection,
                                    doc_id=op.doc_id,
                                    data=encode_value(op.data),
                                )
                            )
                        else:
                            record.data = encode_value(op.data)

                    elif op.kind == WriteKind.CREATE:
                        if await self._locked(session, op.collection, op.doc_id) is not None:
                            raise DocumentExistsError(op.collection, op.doc_id)
                        session.add(
                            DocumentRecord(
                                collection=op.collection,
                                doc_id=op.doc_id,
                                data=encode_value(op.data),
                            )
                        )
                        try:
                            await session.flush()
                        except IntegrityError as e:
                            # inserted by a concurrent transaction after our read
                            raise DocumentExistsError(op.collection, op.doc_id) from e

                    elif op.kind == WriteKind.UPDATE:
                        record = await self._locked(session, op.collection, op.doc_id)
                        if record is None:
                            raise DocumentNotFoundError(op.collection, op.doc_id)
                        record.data = {**record.data, **encode_value(op.data)}

                    elif op.kind == WriteKind.DELETE:
                        record = await self._locked(session, op.collection, op.doc_id)
                        if record is not None:
                            await session.delete(record)

                    elif op.kind == WriteKind.INCREMENT:
                        record = await self._locked(session, op.collection, op.doc_id)
                        if record is None:
                            raise DocumentNotFoundError(op.collection, op.doc_id)
                        current = record.data.get(op.field_name) or 0
                        record.data = {**record.data, op.field_name: current + op.delta}

                    # later ops of the batch may read rows staged by earlier ones
                    await session.flush()

        logger.debug("Batch committed", writes=len(batch))
