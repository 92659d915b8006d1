"""
Unit Tests - Profit and Loss CSV Export
"""
import csv
import io
from datetime import date, datetime

import pytest

from salesrecon.domain.models import (
    Expense,
    OtherIncome,
    ProductSnapshot,
    Return,
    ReturnedProduct,
    ReturnItem,
    Sale,
    SaleItem,
)
from salesrecon.reporting.export import (
    EXPENSES_TITLE,
    RETURNS_TITLE,
    SALES_COLUMNS,
    TITLE,
    TOTALS_TITLE,
    build_report_csv,
    parse_totals_block,
    round_half_up,
)
from salesrecon.reporting.financials import Ledger, report_window


def sale(sale_id, when, quantity, price, cost, discount=0):
    subtotal = quantity * price
    return Sale(
        id=sale_id,
        items=[
            SaleItem(
                product=ProductSnapshot(id="KAOS", name="Kaos"),
                quantity=quantity,
                price=price,
                cost_price_at_sale=cost,
            )
        ],
        subtotal=subtotal,
        discount=discount,
        final_total=subtotal * (1 - discount / 100),
        date=when,
    )


@pytest.fixture
def ledger() -> Ledger:
    return Ledger(
        sales=[
            sale("sale-bbbbbb", datetime(2024, 10, 20, 15), 3, 42000, 25000, discount=10),
            sale("sale-aaaaaa", datetime(2024, 10, 5, 9), 2, 45000, 25000),
            sale("sale-outside", datetime(2024, 11, 2, 9), 1, 99000, 1000),
        ],
        returns=[
            Return(
                id="ret-1",
                sale_id="sale-aaaaaa",
                items=[ReturnItem(product=ReturnedProduct(id="KAOS", name="Kaos"), quantity=1, price_at_sale=45000)],
                reason="Ukuran salah",
                total_refund=45000,
                date=datetime(2024, 10, 6, 10),
            )
        ],
        expenses=[
            Expense(name="Biaya Resi Marketplace - oct.xlsx", amount=12500, category="Operasional", date=datetime(2024, 10, 5, 9)),
        ],
        other_incomes=[OtherIncome(name="Cashback", amount=3000, date=datetime(2024, 10, 7))],
    )


@pytest.fixture
def october():
    return report_window(date(2024, 10, 1), date(2024, 10, 31))


def sales_rows(content: str):
    section = content.split(f"{TITLE}\n\n", 1)[1].split("\n\n", 1)[0]
    return list(csv.DictReader(io.StringIO(section)))


class TestRoundHalfUp:
    """Tests for round_half_up"""

    @pytest.mark.parametrize(
        "value,expected",
        [(2.5, 3), (0.5, 1), (1234.4999, 1234), (-2.5, -2), (108000.0, 108000)],
    )
    def test_rounding(self, value, expected):
        """Test halves round toward positive infinity"""
        assert round_half_up(value) == expected


class TestBuildReportCsv:
    """Tests for build_report_csv"""

    def test_sections_in_order(self, ledger, october):
        """Test the four sections appear in order"""
        content = build_report_csv(ledger, *october)

        positions = [content.index(title) for title in (TITLE, RETURNS_TITLE, EXPENSES_TITLE, TOTALS_TITLE)]
        assert positions == sorted(positions)
        assert content.startswith(TITLE)

    def test_sales_rows_sorted_and_numbered(self, ledger, october):
        """Test one row per sale in range, oldest first"""
        rows = sales_rows(build_report_csv(ledger, *october))

        assert list(rows[0].keys()) == SALES_COLUMNS
        assert [row["No Transaksi"] for row in rows] == ["trx-0001", "trx-0002"]
        assert [row["Tanggal"] for row in rows] == ["2024-10-05", "2024-10-20"]
        assert rows[0]["Dept"] == "UTM"
        assert rows[0]["Nama Pelanggan"] == "PELANGGAN"

    def test_sale_row_figures(self, ledger, october):
        """Test sub total, cost, gross profit, discount, and final total per row"""
        rows = sales_rows(build_report_csv(ledger, *october))
        discounted = rows[1]

        assert discounted["Sub Total"] == "126000"
        assert discounted["Total Pokok"] == "75000"
        assert discounted["Laba Kotor"] == "51000"
        assert discounted["Biaya Msk Total (+) Diskon"] == "12600"
        assert discounted["Biaya Lain"] == "0"
        assert discounted["Laba Jual"] == "113400"

    def test_row_sums_match_totals(self, ledger, october):
        """Test per-sale Sub Total and Laba Kotor add up to the totals block"""
        content = build_report_csv(ledger, *october)
        rows = sales_rows(content)
        totals = parse_totals_block(content)

        assert sum(int(row["Sub Total"]) for row in rows) == totals["Sub Total:"]
        assert sum(int(row["Total Pokok"]) for row in rows) == totals["Total Pokok:"]
        assert sum(int(row["Laba Kotor"]) for row in rows) == totals["Laba Kotor:"]

    def test_fractional_rows_sum_to_totals(self, october):
        """Test rounded rows still add up to the totals block for fractional amounts"""
        ledger = Ledger(
            sales=[
                sale("sale-frac-1", datetime(2024, 10, 3, 9), 1, 100.4, 33.33),
                sale("sale-frac-2", datetime(2024, 10, 4, 9), 1, 100.4, 33.33),
            ],
            expenses=[
                Expense(name="Parkir", amount=0.6, category="Operasional", date=datetime(2024, 10, 3)),
                Expense(name="Parkir", amount=0.6, category="Operasional", date=datetime(2024, 10, 4)),
            ],
        )

        content = build_report_csv(ledger, *october)
        rows = sales_rows(content)
        totals = parse_totals_block(content)

        assert [row["Sub Total"] for row in rows] == ["100", "100"]
        assert totals["Sub Total:"] == 200
        assert totals["Total Pokok:"] == 66
        assert totals["Laba Kotor:"] == 134
        assert totals["Total Pengeluaran:"] == 2
        assert sum(int(row["Laba Kotor"]) for row in rows) == totals["Laba Kotor:"]

    def test_totals_block(self, ledger, october):
        """Test returns, expenses, and other income flow into net profit"""
        totals = parse_totals_block(build_report_csv(ledger, *october))

        assert totals["Sub Total:"] == 216000
        assert totals["Total Pokok:"] == 125000
        assert totals["Laba Kotor:"] == 91000
        assert totals["Potongan Diskon Total:"] == -12600
        assert totals["Total Retur:"] == 45000
        assert totals["Penjualan Bersih (Setelah Retur):"] == 171000
        # returned unit costed from the original sale line
        assert totals["Total Pokok (HPP) Bersih:"] == 100000
        assert totals["Laba Kotor (Setelah Retur & HPP):"] == 71000
        assert totals["Total Pengeluaran:"] == 12500
        assert totals["Pemasukan Lain:"] == 3000
        assert totals["Laba Bersih (Setelah Semua Biaya):"] == 71000 - 12600 - 12500 + 3000

    def test_discount_line_is_negative(self, ledger, october):
        """Test the discount total is written with a leading minus"""
        content = build_report_csv(ledger, *october)

        assert "Potongan Diskon Total:,-12600\n" in content

    def test_returns_and_expenses_sections(self, ledger, october):
        """Test the return and expense line items"""
        content = build_report_csv(ledger, *october)

        assert "2024-10-06,trx...aaaaaa,Ukuran salah,45000\n" in content
        assert "2024-10-05,Operasional,Biaya Resi Marketplace - oct.xlsx,12500\n" in content

    def test_empty_range(self, ledger):
        """Test a range without entries still renders every section"""
        start, end = report_window(date(2023, 1, 1), date(2023, 1, 31))

        content = build_report_csv(ledger, start, end)
        totals = parse_totals_block(content)

        assert sales_rows(content) == []
        assert all(value == 0 for value in totals.values())
        assert len(totals) == 11
