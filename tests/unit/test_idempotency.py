"""
Unit Tests - Operational Cost Idempotency
"""
from datetime import datetime

import pytest

from salesrecon.domain.models import Collections, ImportedFileRecord
from salesrecon.reconciliation.idempotency import IdempotencyGuard, file_record_id
from salesrecon.store.base import DocumentExistsError
from salesrecon.store.memory import MemoryDocumentStore


class TestIdempotencyGuard:
    """Tests for IdempotencyGuard"""

    async def test_first_import_posts_cost(self, now):
        """Test a new file gets one expense of orders x per-order cost"""
        guard = IdempotencyGuard(MemoryDocumentStore(), per_order_cost=1250)

        plan = await guard.plan("oct.xlsx", order_count=10, now=now)

        assert plan.posts_cost
        assert plan.expense.amount == 12500
        assert plan.expense.name == "Biaya Resi Marketplace - oct.xlsx"
        assert plan.expense.category == "Operasional"
        assert plan.expense.subcategory == "Biaya Pengiriman"
        assert plan.expense.date == now
        assert plan.file_record.name == "oct.xlsx"
        assert plan.notice.level == "info"

    async def test_default_per_order_cost(self, now):
        """Test the configured default cost per order is 1250"""
        guard = IdempotencyGuard(MemoryDocumentStore())

        plan = await guard.plan("nov.xlsx", order_count=2, now=now)

        assert plan.expense.amount == 2500

    async def test_known_file_skipped_with_notice(self, now):
        """Test a file already recorded posts nothing and is not an error"""
        record = ImportedFileRecord(name="oct.xlsx", imported_at=datetime(2024, 10, 1))
        store = MemoryDocumentStore({Collections.IMPORTED_FILES: {"f1": record.to_document()}})
        guard = IdempotencyGuard(store)

        plan = await guard.plan("oct.xlsx", order_count=10, now=now)

        assert not plan.posts_cost
        assert plan.file_record is None
        assert plan.notice.level == "info"
        assert "oct.xlsx" in plan.notice.message

    async def test_file_names_compared_exactly(self, now):
        """Test a different file name is a new file"""
        record = ImportedFileRecord(name="oct.xlsx", imported_at=datetime(2024, 10, 1))
        store = MemoryDocumentStore({Collections.IMPORTED_FILES: {"f1": record.to_document()}})

        plan = await IdempotencyGuard(store).plan("oct (1).xlsx", order_count=1, now=now)

        assert plan.posts_cost

    async def test_zero_orders_posts_nothing(self, now):
        """Test no expense is created for a file without orders"""
        plan = await IdempotencyGuard(MemoryDocumentStore()).plan("empty.xlsx", order_count=0, now=now)

        assert not plan.posts_cost
        assert plan.notice is None

    async def test_stage_adds_both_writes(self, now):
        """Test expense and file record are staged into the same batch"""
        store = MemoryDocumentStore()
        plan = await IdempotencyGuard(store).plan("oct.xlsx", order_count=10, now=now)
        batch = store.batch()

        expense_id = plan.stage(batch)
        await store.commit(batch)

        expense = await store.get(Collections.EXPENSES, expense_id)
        assert expense["amount"] == 12500
        assert len(await store.list(Collections.IMPORTED_FILES, where={"name": "oct.xlsx"})) == 1

    async def test_stage_skip_adds_nothing(self, now):
        """Test a skipped plan stages no writes"""
        plan = await IdempotencyGuard(MemoryDocumentStore()).plan("x.xlsx", order_count=0, now=now)
        batch = MemoryDocumentStore().batch()

        assert plan.stage(batch) is None
        assert len(batch) == 0

    async def test_file_record_keyed_by_name(self, now):
        """Test the file record id is derived from the file name"""
        store = MemoryDocumentStore()
        plan = await IdempotencyGuard(store).plan("oct.xlsx", order_count=10, now=now)
        batch = store.batch()

        plan.stage(batch)
        await store.commit(batch)

        assert (await store.get(Collections.IMPORTED_FILES, file_record_id("oct.xlsx")))["name"] == "oct.xlsx"
        assert file_record_id("oct.xlsx") != file_record_id("oct (1).xlsx")

    async def test_stale_plan_cannot_record_file_twice(self, now):
        """Test a plan made before another commit of the same file is rejected"""
        store = MemoryDocumentStore()
        guard = IdempotencyGuard(store)
        first = await guard.plan("oct.xlsx", order_count=10, now=now)
        second = await guard.plan("oct.xlsx", order_count=10, now=now)

        batch = store.batch()
        first.stage(batch)
        await store.commit(batch)

        batch = store.batch()
        second.stage(batch)
        with pytest.raises(DocumentExistsError):
            await store.commit(batch)

        assert len(await store.list(Collections.EXPENSES)) == 1
