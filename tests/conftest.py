"""
Test Suite Configuration
"""
from datetime import datetime
from typing import AsyncGenerator, Dict, List

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from salesrecon.config import Settings
from salesrecon.database.connection import create_session_factory
from salesrecon.database.models import Base
from salesrecon.domain.models import Collections, Product, RawExtractedRow
from salesrecon.reconciliation.session import MemoryImportSessionStore
from salesrecon.store.memory import MemoryDocumentStore
from salesrecon.store.sql import SqlDocumentStore

NOW = datetime(2024, 10, 15, 10, 30)


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        APP_ENV="testing",
        DEBUG=True,
        STORE_BACKEND="memory",
    )


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock():
    """Fixed clock for the import pipeline"""
    return lambda: NOW


@pytest.fixture
def catalog_products() -> List[Product]:
    """Catalog used across reconciliation tests"""
    return [
        Product(id="KAOS-HTM-L", name="Kaos Polos Hitam L", cost_price=25000, selling_price=45000, stock=20, category="Pakaian"),
        Product(id="TOPI-01", name="Topi Baseball", cost_price=15000, selling_price=30000, stock=5, category="Aksesoris"),
        Product(id="TAS-07", name="Tas Selempang", cost_price=40000, selling_price=85000, stock=2, category="Aksesoris"),
    ]


def seed_collections(products: List[Product]) -> Dict[str, Dict[str, dict]]:
    return {
        Collections.PRODUCTS: {product.id: product.to_document() for product in products},
    }


@pytest.fixture
def memory_store(catalog_products) -> MemoryDocumentStore:
    """In-memory document store seeded with the catalog"""
    return MemoryDocumentStore(seed_collections(catalog_products))


@pytest.fixture
def session_store() -> MemoryImportSessionStore:
    return MemoryImportSessionStore()


@pytest.fixture
async def sql_store() -> AsyncGenerator[SqlDocumentStore, None]:
    """Document store on an in-memory SQLite database"""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield SqlDocumentStore(create_session_factory(engine))

    await engine.dispose()


@pytest.fixture
def marketplace_rows() -> List[RawExtractedRow]:
    """
    Three orders:
    - ORD-1: a known SKU twice at different prices, plus a known product by name
    - ORD-2: an unknown SKU
    - ORD-3: a row with no SKU, keyed by its product name
    """
    return [
        RawExtractedRow(order_id="ORD-1", sku="KAOS-HTM-L", product_name="Kaos Hitam L", quantity=2, unit_price=45000),
        RawExtractedRow(order_id="ORD-1", sku="", product_name="topi baseball", quantity=1, unit_price=30000),
        RawExtractedRow(order_id="ORD-2", sku="MP-SKU-99", product_name="Kaus Kaki Sport", quantity=3, unit_price=12000),
        RawExtractedRow(order_id="ORD-2", sku="KAOS-HTM-L", product_name="Kaos Hitam L", quantity=1, unit_price=42000),
        RawExtractedRow(order_id="ORD-3", sku="", product_name="Gantungan Kunci", quantity=4, unit_price=5000),
    ]
