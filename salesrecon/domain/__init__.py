"""
Domain Module
"""
from .models import (
    ActivityLog,
    AggregatedItem,
    Collections,
    Expense,
    FinancialSummary,
    ImportedFileRecord,
    Notice,
    OtherIncome,
    Product,
    ProductSnapshot,
    RawExtractedRow,
    Return,
    ReturnItem,
    Sale,
    SaleItem,
    SkuMapping,
    StoreSettings,
)

__all__ = [
    "ActivityLog",
    "AggregatedItem",
    "Collections",
    "Expense",
    "FinancialSummary",
    "ImportedFileRecord",
    "Notice",
    "OtherIncome",
    "Product",
    "ProductSnapshot",
    "RawExtractedRow",
    "Return",
    "ReturnItem",
    "Sale",
    "SaleItem",
    "SkuMapping",
    "StoreSettings",
]
