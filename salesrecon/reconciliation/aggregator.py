"""
SKU Aggregator

Collapses extracted order lines into one AggregatedItem per product key.

The key of a row is its trimmed SKU, or its trimmed product name when the
SKU is blank. Rows with neither are dropped. Groups keep first-seen order,
so the same rows always aggregate to the same list.
"""

from typing import List, Sequence

import polars as pl
import structlog

from salesrecon.domain.models import AggregatedItem, RawExtractedRow
from salesrecon.errors import EmptyAggregationError

logger = structlog.get_logger(__name__)


def row_key(row: RawExtractedRow) -> str:
    """Grouping key of a raw row ("" when the row has no identity)"""
    return row.sku.strip() or row.product_name.strip()


def rows_to_frame(rows: Sequence[RawExtractedRow]) -> pl.DataFrame:
    return pl.DataFrame(
        {
            "key": [row_key(row) for row in rows],
            "product_name": [row.product_name.strip() for row in rows],
            "quantity": [row.quantity for row in rows],
            "unit_price": [row.unit_price for row in rows],
        },
        schema={
            "key": pl.Utf8,
            "product_name": pl.Utf8,
            "quantity": pl.Int64,
            "unit_price": pl.Float64,
        },
    )


def aggregate_rows(rows: Sequence[RawExtractedRow]) -> List[AggregatedItem]:
    """
    Group rows by key.

    total_quantity is the sum of quantities and average_unit_price the
    quantity-weighted mean, so total_quantity * average_unit_price equals
    the summed line value of the group. A group whose quantities sum to 0
    gets price 0.

    Raises:
        EmptyAggregationError: no row has a usable key
    """
    df = rows_to_frame(rows).filter(pl.col("key") != "")

    if df.is_empty():
        logger.warning("No aggregatable rows", rows_in=len(rows))
        raise EmptyAggregationError(
            "No valid sales rows were found. Every row is missing both SKU and product name."
        )

    grouped = (
        df.with_columns(
            (pl.col("unit_price") * pl.col("quantity")).alias("line_value"),
            pl.when(pl.col("product_name") != "")
            .then(pl.col("product_name"))
            .otherwise(None)
            .alias("named"),
        )
        .group_by("key", maintain_order=True)
        .agg(
            pl.col("quantity").sum().alias("total_quantity"),
            pl.col("line_value").sum().alias("total_value"),
            pl.col("named").drop_nulls().first().alias("display_name"),
        )
        .with_columns(
            pl.when(pl.col("total_quantity") > 0)
            .then(pl.col("total_value") / pl.col("total_quantity"))
            .otherwise(0.0)
            .alias("average_unit_price"),
            pl.col("display_name").fill_null(pl.col("key")),
        )
    )

    items = [
        AggregatedItem(
            key=record["key"],
            display_name=record["display_name"],
            total_quantity=record["total_quantity"],
            average_unit_price=record["average_unit_price"],
        )
        for record in grouped.iter_rows(named=True)
    ]

    logger.info(
        "Rows aggregated",
        rows_in=len(rows),
        rows_dropped=len(rows) - len(df),
        items_out=len(items),
    )
    return items
