"""
Idempotency Guard

Posts the marketplace handling cost of a source file at most once.

The cost is one Expense of order_count * per_order_cost, recorded together
with an ImportedFileRecord for the file name. Importing a file whose name
is already recorded posts nothing and yields an informational notice;
the file's sales are still imported.

The file record is keyed by a digest of the file name and staged as a
create, so two imports of one file racing to commit cannot both record it.
"""

from dataclasses import dataclass
from datetime import datetime
import hashlib
from typing import Optional

import structlog

from salesrecon.config import get_settings
from salesrecon.domain.models import Collections, Expense, ImportedFileRecord, Notice
from salesrecon.store.base import DocumentStore, WriteBatch
from salesrecon.store.repository import has_imported_file

logger = structlog.get_logger(__name__)


def file_record_id(source_name: str) -> str:
    """Document id of the ImportedFileRecord for a file name"""
    return hashlib.sha256(source_name.encode("utf-8")).hexdigest()


@dataclass
class CostPostingPlan:
    """What the guard decided for one source file"""
    source_name: str
    order_count: int
    expense: Optional[Expense] = None
    file_record: Optional[ImportedFileRecord] = None
    notice: Optional[Notice] = None

    @property
    def posts_cost(self) -> bool:
        return self.expense is not None

    def stage(self, batch: WriteBatch) -> Optional[str]:
        """Add the expense and file record to the batch; returns the expense id"""
        if not self.posts_cost:
            return None
        expense_id = batch.new_id()
        batch.set(Collections.EXPENSES, expense_id, self.expense.to_document())
        batch.create(Collections.IMPORTED_FILES, file_record_id(self.source_name), self.file_record.to_document())
        return expense_id


class IdempotencyGuard:
    """
    Decides whether a file's operational cost is posted.

    Example:
        guard = IdempotencyGuard(store)
        plan = await guard.plan("oct.xlsx", order_count=10, now=now)
        plan.stage(batch)
    """

    def __init__(
        self,
        store: DocumentStore,
        per_order_cost: Optional[float] = None,
    ):
        settings = get_settings().imports
        self.store = store
        self.per_order_cost = settings.per_order_cost if per_order_cost is None else per_order_cost
        self.name_prefix = settings.expense_name_prefix
        self.category = settings.expense_category
        self.subcategory = settings.expense_subcategory

    async def plan(self, source_name: str, order_count: int, now: datetime) -> CostPostingPlan:
        plan = CostPostingPlan(source_name=source_name, order_count=order_count)

        if order_count <= 0:
            logger.info("No orders, operational cost skipped", file=source_name)
            return plan

        if await has_imported_file(self.store, source_name):
            logger.info("File already imported, operational cost skipped", file=source_name)
            plan.notice = Notice(
                level="info",
                title="Info",
                message=(
                    f'File "{source_name}" was imported before. '
                    "Its operational cost was not posted again."
                ),
            )
            return plan

        amount = order_count * self.per_order_cost
        plan.expense = Expense(
            name=f"{self.name_prefix} - {source_name}",
            amount=amount,
            category=self.category,
            subcategory=self.subcategory,
            date=now,
        )
        plan.file_record = ImportedFileRecord(name=source_name, imported_at=now)
        plan.notice = Notice(
            level="info",
            title="Operational cost posted",
            message=f"Handling cost of {amount:,.0f} for {order_count} order(s) was recorded.",
        )
        logger.info(
            "Operational cost planned",
            file=source_name,
            orders=order_count,
            amount=amount,
        )
        return plan
