"""
Unit Tests - Financial Aggregation
"""
from datetime import date, datetime

import pytest

from salesrecon.domain.models import (
    Expense,
    OtherIncome,
    Product,
    ProductSnapshot,
    Return,
    ReturnedProduct,
    ReturnItem,
    Sale,
    SaleItem,
)
from salesrecon.reporting.financials import (
    Ledger,
    compute_summary,
    daily_revenue,
    dashboard_window,
    load_ledger,
    report_window,
    today_stats,
)
from salesrecon.store.memory import MemoryDocumentStore


def make_sale(sale_id, when, lines, discount=0):
    items = [
        SaleItem(
            product=ProductSnapshot(id=product_id, name=product_id.title()),
            quantity=quantity,
            price=price,
            cost_price_at_sale=cost,
        )
        for product_id, quantity, price, cost in lines
    ]
    subtotal = sum(item.price * item.quantity for item in items)
    return Sale(
        id=sale_id,
        items=items,
        subtotal=subtotal,
        discount=discount,
        final_total=subtotal * (1 - discount / 100),
        date=when,
    )


@pytest.fixture
def example_sale(now) -> Sale:
    return Sale(
        id="sale-52200",
        items=[
            SaleItem(product=ProductSnapshot(id="A", name="A"), quantity=2, price=18000, cost_price_at_sale=12000),
            SaleItem(product=ProductSnapshot(id="B", name="B"), quantity=1, price=16200, cost_price_at_sale=15000),
        ],
        subtotal=52200,
        final_total=52200,
        date=now,
    )


class TestComputeSummary:
    """Tests for compute_summary"""

    def test_worked_example(self, example_sale, now):
        """Test one sale of 52200 with costs 2x12000 + 1x15000"""
        start, end = dashboard_window(now)

        summary = compute_summary(Ledger(sales=[example_sale]), start, end)

        assert summary.net_revenue == 52200
        assert summary.total_cogs == 39000
        assert summary.gross_profit == 13200
        assert summary.net_profit == 13200
        assert summary.sales_count == 1

    def test_cost_snapshot_stability(self, example_sale, now):
        """Test later catalog cost edits do not change historical profit"""
        start, end = dashboard_window(now)
        before = compute_summary(Ledger(sales=[example_sale]), start, end)

        repriced = [Product(id="A", name="A", cost_price=99999), Product(id="B", name="B", cost_price=1)]
        after = compute_summary(Ledger(sales=[example_sale]), start, end, catalog=repriced)

        assert after.total_cogs == before.total_cogs
        assert after.gross_profit == before.gross_profit

    def test_legacy_items_use_catalog_cost(self, now):
        """Test items without a snapshot fall back to catalog cost, then 0"""
        sale = make_sale("legacy", now, [("A", 2, 20000, None), ("GONE", 1, 10000, None)])
        start, end = dashboard_window(now)

        summary = compute_summary(Ledger(sales=[sale]), start, end, catalog=[Product(id="A", name="A", cost_price=7000)])

        assert summary.total_cogs == 14000
        assert summary.gross_profit == 36000

    def test_returns_reduce_revenue_and_cost(self, example_sale, now):
        """Test refunds reduce revenue and returned units reduce COGS"""
        ret = Return(
            id="r1",
            sale_id="sale-52200",
            items=[ReturnItem(product=ReturnedProduct(id="A", name="A"), quantity=1, price_at_sale=18000)],
            total_refund=18000,
            date=now,
        )
        start, end = dashboard_window(now)

        summary = compute_summary(Ledger(sales=[example_sale], returns=[ret]), start, end)

        assert summary.total_returns == 18000
        assert summary.net_revenue == 34200
        # cost taken from the original sale line
        assert summary.total_cogs == 27000
        assert summary.gross_profit == 7200

    def test_return_snapshot_preferred(self, example_sale, now):
        """Test a return line's own cost snapshot wins"""
        ret = Return(
            id="r1",
            sale_id="sale-52200",
            items=[ReturnItem(product=ReturnedProduct(id="A", name="A"), quantity=1, cost_price_at_sale=10000)],
            total_refund=18000,
            date=now,
        )
        start, end = dashboard_window(now)

        summary = compute_summary(Ledger(sales=[example_sale], returns=[ret]), start, end)

        assert summary.total_cogs == 29000

    def test_expenses_and_other_income(self, example_sale, now):
        """Test net profit subtracts expenses and adds other income"""
        ledger = Ledger(
            sales=[example_sale],
            expenses=[Expense(name="Biaya Resi", amount=12500, category="Operasional", date=now)],
            other_incomes=[OtherIncome(name="Cashback", amount=2000, date=now)],
        )
        start, end = dashboard_window(now)

        summary = compute_summary(ledger, start, end)

        assert summary.gross_profit == 13200
        assert summary.total_expenses == 12500
        assert summary.total_other_income == 2000
        assert summary.net_profit == 2700

    def test_window_is_closed_interval(self, now):
        """Test entries on both boundary days are included and others are not"""
        ledger = Ledger(
            sales=[
                make_sale("first", datetime(2024, 10, 1, 0, 0), [("A", 1, 1000, 500)]),
                make_sale("last", datetime(2024, 10, 31, 23, 59, 59), [("A", 1, 2000, 500)]),
                make_sale("after", datetime(2024, 11, 1, 0, 0), [("A", 1, 4000, 500)]),
                make_sale("before", datetime(2024, 9, 30, 23, 59), [("A", 1, 8000, 500)]),
            ]
        )
        start, end = report_window(date(2024, 10, 1), date(2024, 10, 31))

        summary = compute_summary(ledger, start, end)

        assert summary.sales_count == 2
        assert summary.net_revenue == 3000

    def test_discount_reduces_revenue_not_cost(self, now):
        """Test revenue uses the discounted final total"""
        sale = make_sale("d", now, [("A", 2, 50000, 30000)], discount=10)
        start, end = dashboard_window(now)

        summary = compute_summary(Ledger(sales=[sale]), start, end)

        assert summary.net_revenue == pytest.approx(90000)
        assert summary.gross_profit == pytest.approx(30000)

    def test_empty_ledger(self, now):
        """Test everything is zero without entries"""
        start, end = dashboard_window(now)

        summary = compute_summary(Ledger(), start, end)

        assert summary.net_profit == 0
        assert summary.sales_count == 0

    async def test_load_ledger(self, example_sale, now):
        """Test the ledger is read from the store"""
        store = MemoryDocumentStore()
        await store.set("sales", example_sale.id, example_sale.to_document())
        await store.add("expenses", Expense(name="Listrik", amount=100000, category="Operasional", date=now).to_document())

        ledger = await load_ledger(store)

        assert [sale.id for sale in ledger.sales] == ["sale-52200"]
        assert ledger.sales[0].items[0].cost_price_at_sale == 12000
        assert ledger.expenses[0].amount == 100000
        assert ledger.returns == []


class TestWindows:
    """Tests for the date windows"""

    def test_dashboard_window(self, now):
        """Test the trailing window covers 14 calendar days ending today"""
        start, end = dashboard_window(now)

        assert start == datetime(2024, 10, 2, 0, 0)
        assert end.date() == date(2024, 10, 15)
        assert end.hour == 23 and end.minute == 59

    def test_report_window_extends_end_date(self):
        """Test the end date runs to the end of its day"""
        start, end = report_window(date(2024, 10, 1), date(2024, 10, 1))

        assert start == datetime(2024, 10, 1)
        assert end > datetime(2024, 10, 1, 23, 59, 59)

    def test_report_window_rejects_reversed_range(self):
        """Test a range ending before it starts is rejected"""
        with pytest.raises(ValueError):
            report_window(date(2024, 10, 2), date(2024, 10, 1))


class TestDashboard:
    """Tests for today's stats and the revenue chart"""

    def test_today_stats(self, now):
        """Test today's revenue, profit, units, and best seller"""
        ledger = Ledger(
            sales=[
                make_sale("s1", now.replace(hour=8), [("KAOS", 3, 10000, 6000), ("TOPI", 1, 20000, 5000)]),
                make_sale("s2", now.replace(hour=9), [("TOPI", 1, 20000, 5000)]),
                make_sale("old", datetime(2024, 10, 14, 12), [("TOPI", 10, 20000, 5000)]),
            ]
        )

        stats = today_stats(ledger, now)

        assert stats.net_revenue == 70000
        assert stats.profit == 70000 - (18000 + 10000)
        assert stats.items_sold == 5
        assert stats.best_selling_product == "Kaos"

    def test_today_stats_without_sales(self, now):
        """Test an empty day has no best seller"""
        stats = today_stats(Ledger(), now)

        assert stats.items_sold == 0
        assert stats.best_selling_product is None

    def test_daily_revenue_fills_empty_days(self, now):
        """Test one row per day with zeros where nothing was sold"""
        sales = [
            make_sale("a", datetime(2024, 10, 15, 9), [("A", 1, 1000, 0)]),
            make_sale("b", datetime(2024, 10, 15, 18), [("A", 1, 500, 0)]),
            make_sale("c", datetime(2024, 10, 13, 12), [("A", 1, 300, 0)]),
            make_sale("too-old", datetime(2024, 10, 1, 12), [("A", 1, 999, 0)]),
        ]

        frame = daily_revenue(sales, 7, now)

        assert frame.columns == ["day", "revenue"]
        assert frame["day"].to_list()[0] == date(2024, 10, 9)
        assert frame["day"].to_list()[-1] == date(2024, 10, 15)
        assert frame["revenue"].to_list() == [0.0, 0.0, 0.0, 0.0, 300.0, 0.0, 1500.0]

    def test_daily_revenue_without_sales(self, now):
        """Test a chart with no sales is all zeros"""
        frame = daily_revenue([], 3, now)

        assert frame["revenue"].to_list() == [0.0, 0.0, 0.0]
