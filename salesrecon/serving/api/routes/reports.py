"""
Financial Report Endpoints

Dashboard figures, range summaries, and the profit and loss CSV.
"""

from dataclasses import asdict
from datetime import date, datetime
from typing import Callable, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel
import structlog

from salesrecon.config import get_settings
from salesrecon.domain.models import FinancialSummary
from salesrecon.reporting.export import build_report_csv
from salesrecon.reporting.financials import (
    compute_summary,
    daily_revenue,
    dashboard_window,
    load_ledger,
    report_window,
    today_stats,
)
from salesrecon.serving.dependencies import get_clock, get_store
from salesrecon.store.base import DocumentStore
from salesrecon.store.repository import load_products

router = APIRouter()
logger = structlog.get_logger(__name__)


class TodayStatsResponse(BaseModel):
    """Figures for the current day"""
    net_revenue: float
    profit: float
    items_sold: int
    best_selling_product: Optional[str]


class DailyRevenuePoint(BaseModel):
    """Sales total of one day"""
    day: date
    revenue: float


class DashboardResponse(BaseModel):
    """Dashboard payload"""
    summary: FinancialSummary
    today: TodayStatsResponse
    daily_revenue: List[DailyRevenuePoint]


def _window(start: date, end: date):
    try:
        return report_window(start, end)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


@router.get("/dashboard", response_model=DashboardResponse)
async def get_dashboard(
    chart_days: int = Query(default=7, ge=1, le=92),
    store: DocumentStore = Depends(get_store),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> DashboardResponse:
    """Trailing-window summary, today's figures, and the daily sales chart"""
    now = clock()
    ledger = await load_ledger(store)
    catalog = await load_products(store)

    start, end = dashboard_window(now, get_settings().reports.dashboard_window_days)
    stats = today_stats(ledger, now, catalog)
    chart = daily_revenue(ledger.sales, chart_days, now)

    return DashboardResponse(
        summary=compute_summary(ledger, start, end, catalog),
        today=TodayStatsResponse(**asdict(stats)),
        daily_revenue=[DailyRevenuePoint(**row) for row in chart.iter_rows(named=True)],
    )


@router.get("/summary", response_model=FinancialSummary)
async def get_summary(
    start: date,
    end: date,
    store: DocumentStore = Depends(get_store),
) -> FinancialSummary:
    """Financial summary of a user-chosen range (end date inclusive)"""
    window_start, window_end = _window(start, end)
    logger.info("Summary requested", start=str(start), end=str(end))
    return compute_summary(await load_ledger(store), window_start, window_end, await load_products(store))


@router.get("/export.csv")
async def export_report(
    start: date,
    end: date,
    store: DocumentStore = Depends(get_store),
) -> Response:
    """Profit and loss report as CSV"""
    window_start, window_end = _window(start, end)
    content = build_report_csv(
        await load_ledger(store),
        window_start,
        window_end,
        await load_products(store),
    )
    filename = get_settings().reports.csv_filename
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
