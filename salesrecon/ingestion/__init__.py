"""
Ingestion Module
"""
from .extraction import (
    ExtractionResult,
    ExtractionSummary,
    Extractor,
    SpreadsheetExtractor,
    parse_extraction_payload,
    select_extractor,
    summarize_rows,
)

__all__ = [
    "ExtractionResult",
    "ExtractionSummary",
    "Extractor",
    "SpreadsheetExtractor",
    "parse_extraction_payload",
    "select_extractor",
    "summarize_rows",
]
