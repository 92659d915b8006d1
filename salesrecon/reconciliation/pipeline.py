"""
Import Pipeline

Orchestrates one sales import from extraction to commit.

Steps run strictly in sequence:
1. extraction (spreadsheet reader or external collaborator payload)
2. aggregation by product key
3. matching against a catalog snapshot
4. operator resolution of unrecognized keys (session waits in the store)
5. materialization, committed as one batch

Nothing is written before confirm(); cancel() discards the session.
"""

from datetime import datetime
from math import isclose
from typing import Callable, Dict, List, Optional

import structlog
from prometheus_client import Counter, Histogram
from pydantic import BaseModel, Field

from salesrecon.domain.models import Notice
from salesrecon.errors import (
    ExtractionFailedError,
    IncompleteMappingError,
    SessionNotFoundError,
    StoreWriteError,
)
from salesrecon.ingestion.extraction import (
    ExtractionResult,
    ExtractionSummary,
    Extractor,
    select_extractor,
    summarize_rows,
)
from salesrecon.reconciliation.aggregator import aggregate_rows
from salesrecon.reconciliation.idempotency import IdempotencyGuard
from salesrecon.reconciliation.materializer import CommitResult, MaterializationPlan, SaleMaterializer
from salesrecon.reconciliation.matcher import CatalogSnapshot, match_items
from salesrecon.reconciliation.resolver import (
    apply_resolution,
    missing_resolutions,
    parse_resolution,
    suggest_resolutions,
)
from salesrecon.reconciliation.session import ImportSession, ImportSessionStore, group_orders
from salesrecon.store.base import DocumentExistsError, DocumentStore
from salesrecon.store.repository import (
    add_activity_log,
    load_products,
    load_sku_mappings,
    load_store_settings,
)

logger = structlog.get_logger(__name__)


# =============================================================================
# METRICS
# =============================================================================

IMPORT_SESSIONS = Counter(
    "salesrecon_import_sessions_total",
    "Import sessions by outcome",
    ["outcome"],
)

IMPORTED_SALES = Counter(
    "salesrecon_imported_sales_total",
    "Sales created by confirmed imports",
)

COST_POSTINGS = Counter(
    "salesrecon_cost_postings_total",
    "Operational cost decisions per confirmed import",
    ["status"],
)

COMMIT_TIME = Histogram(
    "salesrecon_import_commit_seconds",
    "Time spent committing a confirmed import",
)


PRICE_NOTE = (
    "Prices shown for review are quantity-weighted averages across all orders "
    "of this file. Each imported sale keeps the unit price of its own order."
)


# =============================================================================
# VIEWS
# =============================================================================

class ImportItemView(BaseModel):
    """One aggregated item as shown for review"""
    key: str
    display_name: str
    total_quantity: int
    average_unit_price: float
    total_value: float
    is_new: bool
    product_id: Optional[str] = None
    resolution: Optional[str] = None
    suggested: bool = False


class ImportSessionView(BaseModel):
    """Review state of an import session"""
    session_id: str
    source_name: str
    created_at: datetime
    order_count: int
    items: List[ImportItemView]
    unrecognized: List[str]
    missing: List[str]
    can_confirm: bool
    summary: ExtractionSummary
    price_note: str = PRICE_NOTE


class ImportOutcome(BaseModel):
    """Result of a confirmed import"""
    session_id: str
    source_name: str
    sales_created: int = 0
    sale_ids: List[str] = Field(default_factory=list)
    products_created: List[str] = Field(default_factory=list)
    mappings_saved: int = 0
    cost_posted: bool = False
    expense_id: Optional[str] = None
    total_revenue: float = 0
    items_sold: int = 0
    notices: List[Notice] = Field(default_factory=list)


def summaries_agree(computed: ExtractionSummary, reported: ExtractionSummary) -> bool:
    return (
        computed.total_orders == reported.total_orders
        and computed.total_items == reported.total_items
        and isclose(computed.total_revenue, reported.total_revenue, rel_tol=1e-6, abs_tol=0.5)
    )


class ImportPipeline:
    """
    Sales import orchestrator.

    Example:
        pipeline = ImportPipeline(store, MemoryImportSessionStore())
        session = await pipeline.analyze_file(content, "oct.xlsx")
        await pipeline.resolve(session.session_id, "SKU-9", "CREATE_NEW_PRODUCT")
        outcome = await pipeline.confirm(session.session_id)
    """

    def __init__(
        self,
        store: DocumentStore,
        sessions: ImportSessionStore,
        clock: Callable[[], datetime] = datetime.now,
        document_extractor: Optional[Extractor] = None,
        per_order_cost: Optional[float] = None,
    ):
        self.store = store
        self.sessions = sessions
        self.clock = clock
        self.document_extractor = document_extractor
        self.guard = IdempotencyGuard(store, per_order_cost=per_order_cost)
        self.materializer = SaleMaterializer(store)

    # -------------------------------------------------------------------------
    # Analysis
    # -------------------------------------------------------------------------

    async def analyze_file(self, content: bytes, filename: str) -> ImportSession:
        """Extract a file and open a session for it"""
        extractor = select_extractor(filename, self.document_extractor)
        try:
            extraction = await extractor.extract(content, filename)
        except ExtractionFailedError:
            IMPORT_SESSIONS.labels(outcome="extraction_failed").inc()
            raise
        except Exception as e:
            IMPORT_SESSIONS.labels(outcome="extraction_failed").inc()
            logger.error("Extraction failed", file=filename, error=str(e), error_type=type(e).__name__)
            raise ExtractionFailedError(f"Failed to analyze the file: {e}") from e
        return await self.analyze(extraction)

    async def analyze(self, extraction: ExtractionResult) -> ImportSession:
        """
        Aggregate and match extracted rows, then park the session for review.

        Raises:
            ExtractionFailedError: no rows
            EmptyAggregationError: no row has a usable key
        """
        if not extraction.rows:
            raise ExtractionFailedError("No sales data was found in the file.")

        items = aggregate_rows(extraction.rows)
        summary = summarize_rows(extraction.rows)
        if extraction.summary is not None and not summaries_agree(summary, extraction.summary):
            logger.warning(
                "Reported summary differs from extracted rows",
                file=extraction.source_name,
                reported=extraction.summary.model_dump(),
                computed=summary.model_dump(),
            )

        catalog = CatalogSnapshot.of(await load_products(self.store))
        match = match_items(items, catalog)
        suggestions = suggest_resolutions(match.unrecognized, await load_sku_mappings(self.store), catalog)

        session = ImportSession(
            source_name=extraction.source_name,
            created_at=self.clock(),
            orders=group_orders(extraction.rows),
            items=tuple(match.items),
            recognized=match.recognized,
            unrecognized=tuple(match.unrecognized),
            products=catalog.products,
            resolutions=dict(suggestions),
            suggested=tuple(suggestions),
            summary=summary,
            reported_summary=extraction.summary,
        )
        await self.sessions.save(session)
        IMPORT_SESSIONS.labels(outcome="opened").inc()

        logger.info(
            "Import session opened",
            session_id=session.session_id,
            file=session.source_name,
            orders=session.order_count,
            items=len(session.items),
            unrecognized=len(session.unrecognized),
            suggested=len(suggestions),
        )
        return session

    # -------------------------------------------------------------------------
    # Review
    # -------------------------------------------------------------------------

    async def get(self, session_id: str) -> ImportSession:
        session = await self.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    @staticmethod
    def view(session: ImportSession) -> ImportSessionView:
        missing = missing_resolutions(session)
        items = []
        for item in session.items:
            resolution = session.resolutions.get(item.key)
            items.append(
                ImportItemView(
                    key=item.key,
                    display_name=item.display_name,
                    total_quantity=item.total_quantity,
                    average_unit_price=item.average_unit_price,
                    total_value=item.total_value,
                    is_new=item.is_new,
                    product_id=session.recognized.get(item.key),
                    resolution=resolution.to_choice() if resolution is not None else None,
                    suggested=item.key in session.suggested,
                )
            )
        return ImportSessionView(
            session_id=session.session_id,
            source_name=session.source_name,
            created_at=session.created_at,
            order_count=session.order_count,
            items=items,
            unrecognized=session.unrecognized_keys,
            missing=missing,
            can_confirm=not missing,
            summary=session.summary,
        )

    async def resolve(self, session_id: str, key: str, choice: str) -> ImportSession:
        """Record the operator's choice (CREATE_NEW_PRODUCT or a product id) for key"""
        with structlog.contextvars.bound_contextvars(session_id=session_id):
            session = await self.get(session_id)
            session = apply_resolution(session, key, parse_resolution(choice))
            await self.sessions.save(session)
            logger.info("Resolution recorded", key=key, choice=choice)
            return session

    async def resolve_many(self, session_id: str, choices: Dict[str, str]) -> ImportSession:
        session = await self.get(session_id)
        for key, choice in choices.items():
            session = apply_resolution(session, key, parse_resolution(choice))
        await self.sessions.save(session)
        logger.info("Resolutions recorded", session_id=session_id, count=len(choices))
        return session

    async def cancel(self, session_id: str) -> None:
        """Discard a session; nothing was written for it"""
        if not await self.sessions.delete(session_id):
            raise SessionNotFoundError(session_id)
        IMPORT_SESSIONS.labels(outcome="cancelled").inc()
        logger.info("Import session cancelled", session_id=session_id)

    # -------------------------------------------------------------------------
    # Commit
    # -------------------------------------------------------------------------

    async def _plan(self, session: ImportSession, now: datetime) -> MaterializationPlan:
        store_settings = await load_store_settings(self.store)
        plan = self.materializer.build(
            session,
            now,
            default_discount=store_settings.default_discount,
            mappings=await load_sku_mappings(self.store),
        )
        plan.cost_plan = await self.guard.plan(session.source_name, session.order_count, now)
        return plan

    async def _commit(self, plan: MaterializationPlan, session: ImportSession, now: datetime) -> CommitResult:
        try:
            return await self.materializer.commit(plan)
        except DocumentExistsError:
            # another import of this file recorded it first; post no cost this time
            logger.info("File recorded concurrently, replanning operational cost", file=session.source_name)

        plan.cost_plan = await self.guard.plan(session.source_name, session.order_count, now)
        try:
            return await self.materializer.commit(plan)
        except DocumentExistsError as e:
            raise StoreWriteError(f"Saving the imported sales failed: {e}") from e

    async def confirm(self, session_id: str, user: Optional[str] = None) -> ImportOutcome:
        """
        Materialize and commit a fully resolved session.

        The session is claimed before anything is written, so a repeated
        confirm of the same session fails with SessionNotFoundError. A failed
        commit puts the session back for another attempt.

        Raises:
            SessionNotFoundError: unknown, expired, or already confirmed session
            IncompleteMappingError: an unrecognized key has no resolution
            StoreWriteError: the commit failed; nothing was written
        """
        with structlog.contextvars.bound_contextvars(session_id=session_id):
            session = await self.get(session_id)
            missing = missing_resolutions(session)
            if missing:
                logger.info("Confirmation refused, mapping incomplete", missing=len(missing))
                raise IncompleteMappingError(missing)

            if not await self.sessions.delete(session_id):
                logger.info("Session already claimed by another confirmation")
                raise SessionNotFoundError(session_id)

            now = self.clock()
            try:
                plan = await self._plan(session, now)
                with COMMIT_TIME.time():
                    result = await self._commit(plan, session, now)
            except StoreWriteError:
                IMPORT_SESSIONS.labels(outcome="commit_failed").inc()
                await self.sessions.save(session)
                raise
            except Exception:
                await self.sessions.save(session)
                raise

            IMPORT_SESSIONS.labels(outcome="confirmed").inc()
            IMPORTED_SALES.inc(len(result.sale_ids))
            COST_POSTINGS.labels(status="posted" if plan.cost_plan.posts_cost else "skipped").inc()

            outcome = ImportOutcome(
                session_id=session_id,
                source_name=session.source_name,
                sales_created=len(result.sale_ids),
                sale_ids=result.sale_ids,
                products_created=result.product_ids,
                mappings_saved=len(plan.mappings),
                cost_posted=plan.cost_plan.posts_cost,
                expense_id=result.expense_id,
                total_revenue=plan.total_revenue,
                items_sold=plan.items_sold,
            )
            outcome.notices.append(
                Notice(
                    level="success",
                    title="Import successful",
                    message=f"{outcome.sales_created} sale(s) from {session.source_name} were imported.",
                )
            )
            if plan.cost_plan.notice is not None:
                outcome.notices.append(plan.cost_plan.notice)

            try:
                await add_activity_log(
                    self.store,
                    f"Imported {outcome.sales_created} sale(s) from {session.source_name} "
                    f"totalling {outcome.total_revenue:,.0f}",
                    user=user,
                    now=now,
                )
            except Exception as e:
                # the import itself is committed at this point
                logger.error("Activity log write failed", error=str(e))
                outcome.notices.append(
                    Notice(level="warning", title="Activity log", message="The import was saved but not logged.")
                )

            logger.info(
                "Import confirmed",
                file=session.source_name,
                sales=outcome.sales_created,
                revenue=outcome.total_revenue,
                cost_posted=outcome.cost_posted,
            )
            return outcome
