"""
Sale Materializer

Turns a resolved import session into store writes:
- one Sale per source order, each line priced at the row's own unit price
- products created by CreateNew resolutions
- SkuMapping upserts for MapTo resolutions
- stock decrements as store-side increments
- the operational-cost Expense and ImportedFileRecord from the guard

Everything is staged into a single WriteBatch, so a failed commit leaves
the store untouched.
"""

from dataclasses import dataclass, field
from datetime import datetime
from math import fsum
from typing import Dict, List, Optional, Sequence, Tuple

import structlog

from salesrecon.config import get_settings
from salesrecon.domain.models import (
    Collections,
    Product,
    ProductSnapshot,
    Sale,
    SaleItem,
    SkuMapping,
)
from salesrecon.errors import IncompleteMappingError, StoreWriteError
from salesrecon.reconciliation.aggregator import row_key
from salesrecon.reconciliation.idempotency import CostPostingPlan
from salesrecon.reconciliation.resolver import CreateNew, MapTo, missing_resolutions
from salesrecon.reconciliation.session import ImportSession, SourceOrder
from salesrecon.store.base import DocumentExistsError, DocumentStore, WriteBatch
from salesrecon.store.repository import find_sku_mapping

logger = structlog.get_logger(__name__)


@dataclass
class MaterializationPlan:
    """Everything one import confirmation will write"""
    source_name: str
    sales: List[Sale] = field(default_factory=list)
    new_products: List[Product] = field(default_factory=list)
    mappings: List[SkuMapping] = field(default_factory=list)
    stock_deltas: Dict[str, int] = field(default_factory=dict)
    dropped_lines: int = 0
    cost_plan: Optional[CostPostingPlan] = None

    @property
    def total_revenue(self) -> float:
        return fsum(sale.final_total for sale in self.sales)

    @property
    def items_sold(self) -> int:
        return sum(item.quantity for sale in self.sales for item in sale.items)


@dataclass
class CommitResult:
    """Ids of the documents written by a commit"""
    sale_ids: List[str] = field(default_factory=list)
    product_ids: List[str] = field(default_factory=list)
    expense_id: Optional[str] = None
    writes: int = 0


def resolve_products(session: ImportSession, new_category: str) -> Dict[str, Product]:
    """
    Final product for every key of the session.

    Priority: direct catalog match, then MapTo, then the product a
    CreateNew resolution creates. Unresolvable keys are absent.
    """
    catalog = session.catalog
    resolved: Dict[str, Product] = {}

    for item in session.items:
        product_id = session.recognized.get(item.key)
        if product_id is not None:
            product = catalog.get(product_id)
            if product is not None:
                resolved[item.key] = product
            continue

        resolution = session.resolutions.get(item.key)
        if isinstance(resolution, MapTo):
            product = catalog.get(resolution.product_id)
            if product is not None:
                resolved[item.key] = product
        elif isinstance(resolution, CreateNew):
            resolved[item.key] = Product(
                id=item.key,
                name=item.display_name,
                cost_price=0,
                selling_price=item.average_unit_price,
                stock=0,
                category=new_category,
            )

    return resolved


class SaleMaterializer:
    """
    Builds and commits the writes of an import confirmation.

    Example:
        materializer = SaleMaterializer(store)
        plan = materializer.build(session, now, default_discount=0, mappings=mappings)
        result = await materializer.commit(plan)
    """

    def __init__(self, store: DocumentStore, new_product_category: Optional[str] = None):
        self.store = store
        self.new_product_category = new_product_category or get_settings().imports.new_product_category

    def _build_sale(
        self,
        order: SourceOrder,
        products: Dict[str, Product],
        now: datetime,
        discount: float,
    ) -> Tuple[Optional[Sale], int]:
        items: List[SaleItem] = []
        dropped = 0

        for row in order.rows:
            product = products.get(row_key(row))
            if product is None or row.quantity <= 0:
                dropped += 1
                continue
            items.append(
                SaleItem(
                    product=ProductSnapshot.of(product),
                    quantity=row.quantity,
                    price=row.unit_price,
                    cost_price_at_sale=product.cost_price,
                )
            )

        if not items:
            return None, dropped

        subtotal = fsum(item.price * item.quantity for item in items)
        sale = Sale(
            items=items,
            subtotal=subtotal,
            discount=discount,
            final_total=subtotal * (1 - discount / 100),
            date=now,
        )
        return sale, dropped

    def build(
        self,
        session: ImportSession,
        now: datetime,
        default_discount: float = 0,
        mappings: Sequence[SkuMapping] = (),
    ) -> MaterializationPlan:
        """
        Plan the writes for a session.

        Raises:
            IncompleteMappingError: an unrecognized key has no resolution
        """
        missing = missing_resolutions(session)
        if missing:
            raise IncompleteMappingError(missing)

        products = resolve_products(session, self.new_product_category)
        plan = MaterializationPlan(source_name=session.source_name)

        for key, resolution in session.resolutions.items():
            if isinstance(resolution, CreateNew):
                plan.new_products.append(products[key])
            elif isinstance(resolution, MapTo):
                product = products.get(key)
                if product is None:
                    continue
                existing = find_sku_mapping(mappings, key)
                plan.mappings.append(
                    SkuMapping(
                        id=existing.id if existing else "",
                        import_sku=key,
                        mapped_product_id=product.id,
                        mapped_product_name=product.name,
                    )
                )

        for order in session.orders:
            sale, dropped = self._build_sale(order, products, now, default_discount)
            plan.dropped_lines += dropped
            if sale is None:
                logger.info("Order has no resolvable items, skipped", order_id=order.order_id)
                continue
            plan.sales.append(sale)
            for item in sale.items:
                plan.stock_deltas[item.product.id] = plan.stock_deltas.get(item.product.id, 0) - item.quantity

        self._warn_oversell(session, plan, products)

        logger.info(
            "Materialization planned",
            sales=len(plan.sales),
            new_products=len(plan.new_products),
            mappings=len(plan.mappings),
            dropped_lines=plan.dropped_lines,
        )
        return plan

    def _warn_oversell(self, session: ImportSession, plan: MaterializationPlan, products: Dict[str, Product]) -> None:
        # Marketplace sales already happened, so stock may go negative
        stock = {product.id: product.stock for product in products.values()}
        for product_id, delta in plan.stock_deltas.items():
            remaining = stock.get(product_id, 0) + delta
            if remaining < 0:
                logger.warning(
                    "Stock will go negative",
                    file=session.source_name,
                    product_id=product_id,
                    remaining=remaining,
                )

    def stage(self, plan: MaterializationPlan, batch: WriteBatch) -> CommitResult:
        """Add every write of the plan to batch"""
        result = CommitResult()

        for product in plan.new_products:
            batch.set(Collections.PRODUCTS, product.id, product.to_document())
            result.product_ids.append(product.id)

        for mapping in plan.mappings:
            batch.set(Collections.SKU_MAPPINGS, mapping.id or batch.new_id(), mapping.to_document())

        for sale in plan.sales:
            sale_id = batch.new_id()
            batch.set(Collections.SALES, sale_id, sale.to_document())
            result.sale_ids.append(sale_id)

        for product_id, delta in plan.stock_deltas.items():
            batch.increment(Collections.PRODUCTS, product_id, "stock", delta)

        if plan.cost_plan is not None:
            result.expense_id = plan.cost_plan.stage(batch)

        result.writes = len(batch)
        return result

    async def commit(self, plan: MaterializationPlan) -> CommitResult:
        """
        Write the plan atomically.

        Raises:
            StoreWriteError: the store rejected the batch; nothing was written
            DocumentExistsError: a create in the batch hit a stored document;
                nothing was written
        """
        batch = self.store.batch()
        result = self.stage(plan, batch)

        try:
            await self.store.commit(batch)
        except DocumentExistsError:
            logger.info("Import commit conflicted", file=plan.source_name, writes=result.writes)
            raise
        except Exception as e:
            logger.error(
                "Import commit failed",
                file=plan.source_name,
                writes=result.writes,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise StoreWriteError(f"Saving the imported sales failed: {e}") from e

        logger.info(
            "Import committed",
            file=plan.source_name,
            sales=len(result.sale_ids),
            writes=result.writes,
        )
        return result
