"""
Sales Extraction

Turns a source file into RawExtractedRow records.

Two producers share the ExtractionResult contract:
- SpreadsheetExtractor: marketplace CSV/Excel exports, read with Polars
- external document extractors (PDF, images, free text): a black box whose
  JSON output is validated by parse_extraction_payload()

The summary a collaborator reports is advisory only; the pipeline
recomputes its own with summarize_rows().
"""

from abc import ABC, abstractmethod
from io import BytesIO
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
import re

import polars as pl
import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from salesrecon.domain.models import RawExtractedRow
from salesrecon.errors import ExtractionFailedError

logger = structlog.get_logger(__name__)

SPREADSHEET_SUFFIXES = {".csv", ".xlsx", ".xls"}

# Normalized header aliases, first match wins
ORDER_ID_COLUMNS = ["nomor_pesanan", "orderid", "order_id", "no_pesanan"]
SKU_COLUMNS = ["nomor_referensi_sku", "sku_gudang", "sku"]
NAME_COLUMNS = ["nama_produk", "nama_sku", "productname", "product_name", "name"]
QUANTITY_COLUMNS = ["jumlah", "quantity", "qty"]
UNIT_PRICE_COLUMNS = ["harga_satuan", "sellingprice", "unitprice", "unit_price", "price"]
LINE_TOTAL_COLUMNS = ["total_harga_produk", "line_total", "total"]

# "1.250.000" / "1.250.000,50" and "1,250,000" / "1,250,000.50"
DOT_THOUSANDS = r"^-?\d{1,3}(\.\d{3})+(,\d+)?$"
COMMA_THOUSANDS = r"^-?\d{1,3}(,\d{3})+(\.\d+)?$"


class ExtractionSummary(BaseModel):
    """Totals reported alongside extracted rows"""

    model_config = ConfigDict(populate_by_name=True)

    total_orders: int = Field(default=0, alias="totalOrders")
    total_items: int = Field(default=0, alias="totalItems")
    total_revenue: float = Field(default=0, alias="totalRevenue")


class ExtractionResult(BaseModel):
    """Rows extracted from one source file"""
    source_name: str
    rows: List[RawExtractedRow]
    summary: Optional[ExtractionSummary] = None


class ExtractionPayload(BaseModel):
    """Fixed output schema of the external extraction collaborator"""
    items: List[RawExtractedRow]
    summary: Optional[ExtractionSummary] = None


def summarize_rows(rows: Sequence[RawExtractedRow]) -> ExtractionSummary:
    """Recompute the summary from the rows themselves"""
    return ExtractionSummary(
        total_orders=len({row.order_id for row in rows if row.order_id}),
        total_items=sum(row.quantity for row in rows),
        total_revenue=sum(row.quantity * row.unit_price for row in rows),
    )


def parse_extraction_payload(payload: Dict[str, Any], source_name: str) -> ExtractionResult:
    """
    Validate the collaborator's JSON output.

    Raises:
        ExtractionFailedError: payload does not match the schema or has no rows
    """
    try:
        parsed = ExtractionPayload.model_validate(payload)
    except ValidationError as e:
        logger.warning("Extraction payload rejected", source=source_name, errors=e.error_count())
        raise ExtractionFailedError(
            "The extracted data does not match the expected format."
        ) from e

    if not parsed.items:
        raise ExtractionFailedError(
            "No sales data was found in the file. Try another file or make sure it is legible."
        )

    return ExtractionResult(source_name=source_name, rows=parsed.items, summary=parsed.summary)


class Extractor(ABC):
    """Producer of RawExtractedRow records from file content"""

    @abstractmethod
    async def extract(self, content: bytes, filename: str) -> ExtractionResult:
        """Extract rows; raise ExtractionFailedError when nothing usable is found"""


def _norm_col(name: str) -> str:
    """Normalize column header for matching"""
    return re.sub(r"[^a-z0-9_]", "", str(name).strip().lower().replace(" ", "_"))


def _first_present(columns: Sequence[str], aliases: Sequence[str]) -> Optional[str]:
    for alias in aliases:
        if alias in columns:
            return alias
    return None


def _numeric(column: str) -> pl.Expr:
    """
    Parse a text column as a number; unparseable cells become null.

    "Rp 45,000" and "Rp 45.000" both read as 45000: a separator followed by
    groups of exactly three digits separates thousands, otherwise a lone ","
    or "." is the decimal point.
    """
    text = pl.col(column).str.replace_all(r"(?i)rp|\s", "")
    return (
        pl.when(text.str.contains(DOT_THOUSANDS))
        .then(text.str.replace_all(".", "", literal=True).str.replace(",", ".", literal=True))
        .when(text.str.contains(COMMA_THOUSANDS))
        .then(text.str.replace_all(",", "", literal=True))
        .otherwise(text.str.replace(",", ".", literal=True))
        .cast(pl.Float64, strict=False)
    )


def _text(column: Optional[str]) -> pl.Expr:
    if column is None:
        return pl.lit("")
    return pl.col(column).fill_null("").str.strip_chars()


class SpreadsheetExtractor(Extractor):
    """
    Marketplace export reader.

    Recognized headers (case and spacing insensitive):
    - order id: "Nomor Pesanan"
    - sku: "Nomor Referensi SKU", "SKU Gudang", "SKU"
    - name: "Nama Produk", "Nama SKU"
    - quantity: "Jumlah"
    - unit price: "Harga Satuan", or "Total Harga Produk" divided by "Jumlah"

    Example:
        extractor = SpreadsheetExtractor()
        result = await extractor.extract(content, "oct.xlsx")
    """

    def _read(self, content: bytes, filename: str) -> pl.DataFrame:
        suffix = Path(filename).suffix.lower()
        if suffix == ".csv":
            # every column as text; numbers are parsed explicitly below
            df = pl.read_csv(BytesIO(content), infer_schema_length=0, truncate_ragged_lines=True)
        elif suffix in (".xlsx", ".xls"):
            df = pl.read_excel(BytesIO(content), engine="openpyxl")
        else:
            raise ExtractionFailedError(
                "Unsupported file type. Upload an Excel or CSV file.",
            )
        df = df.rename({col: _norm_col(col) for col in df.columns})
        floats = [col for col, dtype in df.schema.items() if dtype.is_float()]
        if floats:
            # two decimals at most, so no float reads as "1.234" thousands
            df = df.with_columns(pl.col(floats).round(2))
        return df.select(pl.all().cast(pl.Utf8))

    def _to_rows(self, df: pl.DataFrame) -> pl.DataFrame:
        columns = df.columns
        order_col = _first_present(columns, ORDER_ID_COLUMNS)
        sku_col = _first_present(columns, SKU_COLUMNS)
        name_col = _first_present(columns, NAME_COLUMNS)
        qty_col = _first_present(columns, QUANTITY_COLUMNS)
        price_col = _first_present(columns, UNIT_PRICE_COLUMNS)
        total_col = _first_present(columns, LINE_TOTAL_COLUMNS)

        if (sku_col is None and name_col is None) or qty_col is None or (price_col is None and total_col is None):
            raise ExtractionFailedError(
                'File format not recognized. Make sure it has "SKU Gudang"/"Nomor Referensi SKU" '
                'or "Nama Produk", "Jumlah", and "Harga Satuan" or "Total Harga Produk" columns.'
            )

        quantity = _numeric(qty_col)
        if price_col is not None:
            unit_price = _numeric(price_col)
        else:
            unit_price = pl.when(quantity > 0).then(_numeric(total_col) / quantity).otherwise(0.0)

        return (
            df.select(
                _text(order_col).alias("order_id"),
                _text(sku_col).alias("sku"),
                _text(name_col).alias("product_name"),
                quantity.alias("quantity"),
                unit_price.fill_null(0.0).alias("unit_price"),
            )
            .filter(pl.col("quantity").is_not_null() & (pl.col("quantity") > 0))
            .filter((pl.col("sku") != "") | (pl.col("product_name") != ""))
            .filter(pl.col("unit_price") >= 0)
            .with_columns(pl.col("quantity").round(0).cast(pl.Int64))
        )

    async def extract(self, content: bytes, filename: str) -> ExtractionResult:
        try:
            df = self._read(content, filename)
        except ExtractionFailedError:
            raise
        except Exception as e:
            logger.warning("Spreadsheet could not be read", file=filename, error=str(e))
            raise ExtractionFailedError("Failed to process the file. Make sure the format is correct.") from e

        rows_df = self._to_rows(df)
        logger.info(
            "Spreadsheet parsed",
            file=filename,
            rows_read=len(df),
            rows_valid=len(rows_df),
        )

        if rows_df.is_empty():
            raise ExtractionFailedError(
                "The file contains no valid sales rows.",
            )

        rows = [RawExtractedRow(**record) for record in rows_df.iter_rows(named=True)]
        return ExtractionResult(source_name=filename, rows=rows, summary=None)


def is_spreadsheet(filename: str) -> bool:
    return Path(filename).suffix.lower() in SPREADSHEET_SUFFIXES


def select_extractor(filename: str, document_extractor: Optional[Extractor] = None) -> Extractor:
    """
    Pick the extractor for a file: spreadsheets are read directly, everything
    else goes to the external document extractor when one is configured.
    """
    if is_spreadsheet(filename):
        return SpreadsheetExtractor()
    if document_extractor is not None:
        return document_extractor
    raise ExtractionFailedError(
        "Unsupported file type. Upload an Excel or CSV file.",
    )
