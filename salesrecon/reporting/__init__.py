"""
Reporting Module

Financial summaries over date windows and the profit and loss CSV export.
"""
from .export import build_report_csv, round_half_up
from .financials import (
    Ledger,
    TodayStats,
    compute_summary,
    daily_revenue,
    dashboard_window,
    load_ledger,
    report_window,
    today_stats,
)

__all__ = [
    "build_report_csv",
    "round_half_up",
    "Ledger",
    "TodayStats",
    "compute_summary",
    "daily_revenue",
    "dashboard_window",
    "load_ledger",
    "report_window",
    "today_stats",
]
