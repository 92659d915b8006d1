"""
Financial Aggregator

Revenue, cost of goods, and profit over a closed date interval.

    net_revenue  = sum(sale.final_total) - sum(return.total_refund)
    net_cogs     = sum over sale items of cost_price_at_sale * quantity
                   - sum over returned items of cost_price_at_sale * quantity
    gross_profit = net_revenue - net_cogs
    net_profit   = gross_profit - sum(expense.amount) + sum(other_income.amount)

Costs come from the snapshot taken when the sale was created. Legacy items
without a snapshot fall back to the product's current catalog cost, then 0.
Sums use math.fsum and are never rounded; rounding happens at display or
export time.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from math import fsum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar, Union

import polars as pl
import structlog

from salesrecon.domain.models import (
    Expense,
    FinancialSummary,
    OtherIncome,
    Product,
    Return,
    ReturnItem,
    Sale,
    SaleItem,
)
from salesrecon.store.base import DocumentStore
from salesrecon.store.repository import (
    load_expenses,
    load_other_incomes,
    load_returns,
    load_sales,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T", Sale, Return, Expense, OtherIncome)

DASHBOARD_DAYS = 14


@dataclass
class Ledger:
    """The four transaction collections a summary is computed from"""
    sales: List[Sale] = field(default_factory=list)
    returns: List[Return] = field(default_factory=list)
    expenses: List[Expense] = field(default_factory=list)
    other_incomes: List[OtherIncome] = field(default_factory=list)


async def load_ledger(store: DocumentStore) -> Ledger:
    return Ledger(
        sales=await load_sales(store),
        returns=await load_returns(store),
        expenses=await load_expenses(store),
        other_incomes=await load_other_incomes(store),
    )


# =============================================================================
# WINDOWS
# =============================================================================

def local_naive(value: datetime) -> datetime:
    """Aware datetimes are converted to naive local time"""
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def start_of_day(value: Union[date, datetime]) -> datetime:
    day = value.date() if isinstance(value, datetime) else value
    return datetime.combine(day, time.min)


def end_of_day(value: Union[date, datetime]) -> datetime:
    day = value.date() if isinstance(value, datetime) else value
    return datetime.combine(day, time.max)


def dashboard_window(now: datetime, days: int = DASHBOARD_DAYS) -> Tuple[datetime, datetime]:
    """Trailing window of `days` calendar days ending today"""
    now = local_naive(now)
    return start_of_day(now - timedelta(days=days - 1)), end_of_day(now)


def report_window(start: Union[date, datetime], end: Union[date, datetime]) -> Tuple[datetime, datetime]:
    """
    User-chosen report range.

    The end date is extended to the end of its day. A start given as a date
    begins at midnight.
    """
    if isinstance(start, datetime):
        window_start = local_naive(start)
    else:
        window_start = start_of_day(start)
    window_end = end_of_day(local_naive(end) if isinstance(end, datetime) else end)
    if window_end < window_start:
        raise ValueError("Report range ends before it starts")
    return window_start, window_end


def within(entries: Iterable[T], start: datetime, end: datetime) -> List[T]:
    """Entries dated inside the closed interval [start, end]"""
    return [entry for entry in entries if start <= local_naive(entry.date) <= end]


# =============================================================================
# COSTS
# =============================================================================

class CostResolver:
    """
    Unit cost of sale and return lines.

    Sale items use their cost snapshot, falling back to the product's
    current catalog cost for legacy documents and to 0 when the product
    no longer exists.
    """

    def __init__(self, catalog: Optional[Sequence[Product]] = None, sales: Sequence[Sale] = ()):
        self._catalog: Dict[str, float] = {product.id: product.cost_price for product in catalog or ()}
        self._sales: Dict[str, Sale] = {sale.id: sale for sale in sales if sale.id}

    def catalog_cost(self, product_id: str) -> float:
        return self._catalog.get(product_id, 0.0)

    def sale_item_cost(self, item: SaleItem) -> float:
        if item.cost_price_at_sale is not None:
            return item.cost_price_at_sale
        return self.catalog_cost(item.product.id)

    def return_item_cost(self, ret: Return, item: ReturnItem) -> float:
        if item.cost_price_at_sale is not None:
            return item.cost_price_at_sale
        # cost snapshot of the matching line of the original sale
        original = self._sales.get(ret.sale_id)
        if original is not None:
            for sale_item in original.items:
                if sale_item.product.id == item.product.id:
                    return self.sale_item_cost(sale_item)
        return self.catalog_cost(item.product.id)

    def sale_cost(self, sale: Sale) -> float:
        return fsum(self.sale_item_cost(item) * item.quantity for item in sale.items)

    def return_cost(self, ret: Return) -> float:
        return fsum(self.return_item_cost(ret, item) * item.quantity for item in ret.items)


# =============================================================================
# SUMMARIES
# =============================================================================

def compute_summary(
    ledger: Ledger,
    start: datetime,
    end: datetime,
    catalog: Optional[Sequence[Product]] = None,
) -> FinancialSummary:
    """
    Financial summary of everything dated within [start, end].

    Example:
        start, end = dashboard_window(datetime.now())
        summary = compute_summary(await load_ledger(store), start, end)
    """
    costs = CostResolver(catalog, ledger.sales)

    sales = within(ledger.sales, start, end)
    returns = within(ledger.returns, start, end)
    expenses = within(ledger.expenses, start, end)
    other_incomes = within(ledger.other_incomes, start, end)

    total_sales = fsum(sale.final_total for sale in sales)
    total_returns = fsum(ret.total_refund for ret in returns)
    total_expenses = fsum(expense.amount for expense in expenses)
    total_other_income = fsum(income.amount for income in other_incomes)

    net_revenue = total_sales - total_returns
    net_cogs = fsum(costs.sale_cost(sale) for sale in sales) - fsum(costs.return_cost(ret) for ret in returns)
    gross_profit = net_revenue - net_cogs

    summary = FinancialSummary(
        start=start,
        end=end,
        net_revenue=net_revenue,
        total_cogs=net_cogs,
        total_expenses=total_expenses,
        total_returns=total_returns,
        total_other_income=total_other_income,
        gross_profit=gross_profit,
        net_profit=gross_profit - total_expenses + total_other_income,
        sales_count=len(sales),
    )

    logger.debug(
        "Financial summary computed",
        start=start.isoformat(),
        end=end.isoformat(),
        sales=len(sales),
        returns=len(returns),
        net_profit=summary.net_profit,
    )
    return summary


@dataclass
class TodayStats:
    """Dashboard figures for the current day"""
    net_revenue: float = 0
    profit: float = 0
    items_sold: int = 0
    best_selling_product: Optional[str] = None


def today_stats(
    ledger: Ledger,
    now: datetime,
    catalog: Optional[Sequence[Product]] = None,
) -> TodayStats:
    """Net revenue, gross profit, units sold, and best seller of today"""
    start, end = start_of_day(local_naive(now)), end_of_day(local_naive(now))
    summary = compute_summary(Ledger(sales=ledger.sales, returns=ledger.returns), start, end, catalog)
    sales = within(ledger.sales, start, end)

    quantities: Dict[str, int] = {}
    names: Dict[str, str] = {}
    for sale in sales:
        for item in sale.items:
            quantities[item.product.id] = quantities.get(item.product.id, 0) + item.quantity
            names.setdefault(item.product.id, item.product.name)

    best = None
    if quantities:
        # first product to reach the highest quantity wins ties
        best_id = max(quantities, key=lambda product_id: quantities[product_id])
        best = names[best_id]

    return TodayStats(
        net_revenue=summary.net_revenue,
        profit=summary.gross_profit,
        items_sold=sum(quantities.values()),
        best_selling_product=best,
    )


def daily_revenue(sales: Sequence[Sale], days: int, today: Union[date, datetime]) -> pl.DataFrame:
    """
    Sales total per day for the last `days` days ending today.

    Returns a frame with columns day (Date) and revenue (Float64), one row
    per day in ascending order; days without sales have revenue 0.
    """
    last_day = today.date() if isinstance(today, datetime) else today
    first_day = last_day - timedelta(days=days - 1)

    calendar = pl.DataFrame(
        {"day": pl.date_range(first_day, last_day, interval="1d", eager=True)}
    )
    if not sales:
        return calendar.with_columns(pl.lit(0.0).alias("revenue"))

    totals = (
        pl.DataFrame(
            {
                "day": [local_naive(sale.date).date() for sale in sales],
                "revenue": [float(sale.final_total) for sale in sales],
            },
            schema={"day": pl.Date, "revenue": pl.Float64},
        )
        .filter(pl.col("day").is_between(first_day, last_day))
        .group_by("day")
        .agg(pl.col("revenue").sum())
    )

    return (
        calendar.join(totals, on="day", how="left")
        .with_columns(pl.col("revenue").fill_null(0.0))
        .sort("day")
    )

