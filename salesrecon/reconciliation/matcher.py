"""
Catalog Matcher

Classifies aggregated items as recognized (bound to an existing product) or
unrecognized (needs an operator resolution).
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import structlog

from salesrecon.domain.models import AggregatedItem, Product

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CatalogSnapshot:
    """
    Read-only copy of the product catalog taken when an import session starts.

    Example:
        catalog = CatalogSnapshot.of(await load_products(store))
        product = catalog.get("SKU-1")
    """
    products: Tuple[Product, ...] = ()

    @classmethod
    def of(cls, products: Sequence[Product]) -> "CatalogSnapshot":
        return cls(products=tuple(product.model_copy() for product in products))

    def get(self, product_id: str) -> Optional[Product]:
        for product in self.products:
            if product.id == product_id:
                return product
        return None

    def __contains__(self, product_id: str) -> bool:
        return self.get(product_id) is not None

    def __len__(self) -> int:
        return len(self.products)

    def find_match(self, item: AggregatedItem) -> Optional[Product]:
        """First product, in catalog order, whose id equals the key or whose name equals the display name (case-insensitive)"""
        key = item.key.lower()
        name = item.display_name.lower()
        for product in self.products:
            if product.id.lower() == key or product.name.lower() == name:
                return product
        return None


@dataclass
class MatchResult:
    """Outcome of matching one aggregation against a catalog"""
    items: List[AggregatedItem] = field(default_factory=list)
    recognized: Dict[str, str] = field(default_factory=dict)
    unrecognized: List[AggregatedItem] = field(default_factory=list)


def match_items(items: Sequence[AggregatedItem], catalog: CatalogSnapshot) -> MatchResult:
    """
    Bind every item to a product where possible.

    Recognized items map key -> product id; the rest are flagged is_new.
    """
    result = MatchResult()

    for item in items:
        product = catalog.find_match(item)
        if product is not None:
            result.recognized[item.key] = product.id
            result.items.append(item.model_copy(update={"is_new": False}))
        else:
            flagged = item.model_copy(update={"is_new": True})
            result.unrecognized.append(flagged)
            result.items.append(flagged)

    logger.info(
        "Items matched",
        items=len(items),
        recognized=len(result.recognized),
        unrecognized=len(result.unrecognized),
        catalog_size=len(catalog),
    )
    return result
