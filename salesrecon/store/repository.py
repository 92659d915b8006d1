"""
Typed Collection Access

Loads store documents into domain models and writes the few bookkeeping
documents that are not part of an import commit.
"""

from datetime import datetime
from typing import List, Optional, Sequence

import structlog

from salesrecon.domain.models import (
    SINGLETON_ID,
    SYSTEM_USER,
    ActivityLog,
    Collections,
    Expense,
    OtherIncome,
    Product,
    Return,
    Sale,
    SkuMapping,
    StoreSettings,
)
from salesrecon.store.base import DocumentStore

logger = structlog.get_logger(__name__)


async def load_products(store: DocumentStore) -> List[Product]:
    docs = await store.list(Collections.PRODUCTS)
    return [Product.from_document(doc) for doc in docs]


async def load_sales(store: DocumentStore) -> List[Sale]:
    docs = await store.list(Collections.SALES)
    return [Sale.from_document(doc) for doc in docs]


async def load_returns(store: DocumentStore) -> List[Return]:
    docs = await store.list(Collections.RETURNS)
    return [Return.from_document(doc) for doc in docs]


async def load_expenses(store: DocumentStore) -> List[Expense]:
    docs = await store.list(Collections.EXPENSES)
    return [Expense.from_document(doc) for doc in docs]


async def load_other_incomes(store: DocumentStore) -> List[OtherIncome]:
    docs = await store.list(Collections.OTHER_INCOMES)
    return [OtherIncome.from_document(doc) for doc in docs]


async def load_sku_mappings(store: DocumentStore) -> List[SkuMapping]:
    docs = await store.list(Collections.SKU_MAPPINGS)
    return [SkuMapping.from_document(doc) for doc in docs]


async def load_store_settings(store: DocumentStore) -> StoreSettings:
    """Singleton settings; defaults when the document was never written"""
    doc = await store.get(Collections.SETTINGS, SINGLETON_ID)
    if doc is None:
        return StoreSettings(id=SINGLETON_ID)
    return StoreSettings.from_document(doc)


async def has_imported_file(store: DocumentStore, file_name: str) -> bool:
    docs = await store.list(Collections.IMPORTED_FILES, where={"name": file_name})
    return len(docs) > 0


def find_sku_mapping(mappings: Sequence[SkuMapping], import_sku: str) -> Optional[SkuMapping]:
    """Case-insensitive lookup by import SKU"""
    wanted = import_sku.strip().lower()
    for mapping in mappings:
        if mapping.import_sku.strip().lower() == wanted:
            return mapping
    return None


async def add_activity_log(
    store: DocumentStore,
    description: str,
    user: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ActivityLog:
    """Append an audit trail entry"""
    log = ActivityLog(
        date=now or datetime.now(),
        user=user or SYSTEM_USER,
        description=description,
    )
    doc = await store.add(Collections.ACTIVITY_LOGS, log.to_document())
    logger.debug("Activity logged", user=log.user, description=description)
    return ActivityLog.from_document(doc)
