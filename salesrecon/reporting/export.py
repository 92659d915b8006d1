"""
Profit and Loss CSV Export

Line-item report for a date range:
1. one row per sale
2. returns
3. expenses
4. totals block of "label:,value" lines

Amounts are carried unrounded and rounded to whole currency units only when
written. Totals of the sale, return and expense sections add the written
lines, so every section foots to its total.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_FLOOR, Decimal
from math import fsum
from typing import List, Optional, Sequence, Tuple

import polars as pl
import structlog

from salesrecon.config import get_settings
from salesrecon.domain.models import Product, Sale
from salesrecon.reporting.financials import CostResolver, Ledger, local_naive, within

logger = structlog.get_logger(__name__)

TITLE = "LAPORAN LABA RUGI"
RETURNS_TITLE = "DAFTAR RETUR"
EXPENSES_TITLE = "DAFTAR PENGELUARAN"
TOTALS_TITLE = "TOTAL KESELURUHAN"

SALES_COLUMNS = [
    "No Transaksi",
    "Tanggal",
    "Dept",
    "Kode Pel",
    "Nama Pelanggan",
    "Sub Total",
    "Total Pokok",
    "Laba Kotor",
    "Biaya Msk Total (+) Diskon",
    "Biaya Lain",
    "Laba Jual",
]
RETURN_COLUMNS = ["Tanggal Retur", "ID Transaksi Asal", "Alasan", "Total Refund"]
EXPENSE_COLUMNS = ["Tanggal Pengeluaran", "Kategori", "Deskripsi", "Jumlah"]

DATE_FORMAT = "%Y-%m-%d"


def round_half_up(value: float) -> int:
    """Round to a whole unit; halves go toward positive infinity"""
    return int((Decimal(str(value)) + Decimal("0.5")).to_integral_value(rounding=ROUND_FLOOR))


@dataclass
class ReportTotals:
    """Totals of an exported range"""
    sub_total: float
    total_cost: float
    gross_profit: float
    discount_total: float
    returns_total: float
    returns_cost: float
    expenses_total: float
    other_income_total: float

    @property
    def net_sales(self) -> float:
        return self.sub_total - self.returns_total

    @property
    def net_cost(self) -> float:
        return self.total_cost - self.returns_cost

    @property
    def gross_profit_after_returns(self) -> float:
        return self.net_sales - self.net_cost

    @property
    def net_profit(self) -> float:
        return (
            self.gross_profit_after_returns
            - self.discount_total
            - self.expenses_total
            + self.other_income_total
        )

    def lines(self) -> List[Tuple[str, str]]:
        return [
            ("Sub Total:", str(round_half_up(self.sub_total))),
            ("Total Pokok:", str(round_half_up(self.total_cost))),
            ("Laba Kotor:", str(round_half_up(self.gross_profit))),
            ("Potongan Diskon Total:", f"-{round_half_up(self.discount_total)}"),
            ("Total Retur:", str(round_half_up(self.returns_total))),
            ("Penjualan Bersih (Setelah Retur):", str(round_half_up(self.net_sales))),
            ("Total Pokok (HPP) Bersih:", str(round_half_up(self.net_cost))),
            ("Laba Kotor (Setelah Retur & HPP):", str(round_half_up(self.gross_profit_after_returns))),
            ("Total Pengeluaran:", str(round_half_up(self.expenses_total))),
            ("Pemasukan Lain:", str(round_half_up(self.other_income_total))),
            ("Laba Bersih (Setelah Semua Biaya):", str(round_half_up(self.net_profit))),
        ]


def _by_date(entries: Sequence):
    return sorted(entries, key=lambda entry: local_naive(entry.date))


def _sale_rows(sales: Sequence[Sale], sale_costs: Sequence[float]) -> List[dict]:
    reports = get_settings().reports
    rows = []
    for index, (sale, cost) in enumerate(zip(sales, sale_costs), start=1):
        rows.append(
            {
                "No Transaksi": f"trx-{index:04d}",
                "Tanggal": local_naive(sale.date).strftime(DATE_FORMAT),
                "Dept": reports.csv_dept,
                "Kode Pel": reports.csv_customer_code,
                "Nama Pelanggan": reports.csv_customer_name,
                "Sub Total": round_half_up(sale.subtotal),
                "Total Pokok": round_half_up(cost),
                "Laba Kotor": round_half_up(sale.subtotal - cost),
                "Biaya Msk Total (+) Diskon": round_half_up(sale.discount_amount),
                "Biaya Lain": 0,
                "Laba Jual": round_half_up(sale.final_total),
            }
        )
    return rows


def _sales_frame(rows: List[dict]) -> pl.DataFrame:
    schema = {column: pl.Utf8 for column in SALES_COLUMNS[:5]}
    schema.update({column: pl.Int64 for column in SALES_COLUMNS[5:]})
    return pl.DataFrame(rows, schema=schema)


def build_report_csv(
    ledger: Ledger,
    start: datetime,
    end: datetime,
    catalog: Optional[Sequence[Product]] = None,
) -> str:
    """
    Render the profit and loss report for [start, end].

    Example:
        start, end = report_window(date(2024, 10, 1), date(2024, 10, 31))
        content = build_report_csv(await load_ledger(store), start, end)
    """
    costs = CostResolver(catalog, ledger.sales)

    sales = _by_date(within(ledger.sales, start, end))
    returns = _by_date(within(ledger.returns, start, end))
    expenses = _by_date(within(ledger.expenses, start, end))
    other_incomes = within(ledger.other_incomes, start, end)

    sale_rows = _sale_rows(sales, [costs.sale_cost(sale) for sale in sales])
    refunds = [round_half_up(ret.total_refund) for ret in returns]
    expense_amounts = [round_half_up(expense.amount) for expense in expenses]

    # section totals add the written lines
    totals = ReportTotals(
        sub_total=sum(row["Sub Total"] for row in sale_rows),
        total_cost=sum(row["Total Pokok"] for row in sale_rows),
        gross_profit=sum(row["Laba Kotor"] for row in sale_rows),
        discount_total=sum(row["Biaya Msk Total (+) Diskon"] for row in sale_rows),
        returns_total=sum(refunds),
        returns_cost=fsum(costs.return_cost(ret) for ret in returns),
        expenses_total=sum(expense_amounts),
        other_income_total=fsum(income.amount for income in other_incomes),
    )

    returns_frame = pl.DataFrame(
        {
            "Tanggal Retur": [local_naive(ret.date).strftime(DATE_FORMAT) for ret in returns],
            "ID Transaksi Asal": [f"trx...{ret.sale_id[-6:]}" for ret in returns],
            "Alasan": [ret.reason for ret in returns],
            "Total Refund": refunds,
        },
        schema={
            "Tanggal Retur": pl.Utf8,
            "ID Transaksi Asal": pl.Utf8,
            "Alasan": pl.Utf8,
            "Total Refund": pl.Int64,
        },
    )
    expenses_frame = pl.DataFrame(
        {
            "Tanggal Pengeluaran": [local_naive(expense.date).strftime(DATE_FORMAT) for expense in expenses],
            "Kategori": [expense.category for expense in expenses],
            "Deskripsi": [expense.name for expense in expenses],
            "Jumlah": expense_amounts,
        },
        schema={
            "Tanggal Pengeluaran": pl.Utf8,
            "Kategori": pl.Utf8,
            "Deskripsi": pl.Utf8,
            "Jumlah": pl.Int64,
        },
    )

    parts = [
        f"{TITLE}\n\n",
        _sales_frame(sale_rows).write_csv(),
        "\n",
        f"{RETURNS_TITLE}\n",
        returns_frame.write_csv(),
        "\n",
        f"{EXPENSES_TITLE}\n",
        expenses_frame.write_csv(),
        "\n",
        f"{TOTALS_TITLE}\n",
    ]
    parts.extend(f"{label},{value}\n" for label, value in totals.lines())

    logger.info(
        "Report exported",
        start=start.isoformat(),
        end=end.isoformat(),
        sales=len(sales),
        returns=len(returns),
        expenses=len(expenses),
    )
    return "".join(parts)


def parse_totals_block(content: str) -> dict:
    """Label -> value of the totals block of an exported report"""
    lines = content.split(f"{TOTALS_TITLE}\n", 1)[1].splitlines()
    totals = {}
    for line in lines:
        if not line.strip():
            continue
        label, value = line.rsplit(",", 1)
        totals[label] = int(value)
    return totals
