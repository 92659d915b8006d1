"""
Mapping Resolver

Operator decisions for unrecognized import keys.

A resolution is either CreateNew (a catalog product is created from the
aggregated item at commit) or MapTo (the key is bound to an existing
product and the binding is saved as a SkuMapping for future imports).

The operator-facing contract is a plain string per key: the sentinel
CREATE_NEW_PRODUCT or a product id. parse_resolution() converts it at the
boundary; everything past it works on the tagged variant.
"""

from typing import TYPE_CHECKING, Annotated, Dict, List, Literal, Sequence, Union

import structlog
from pydantic import BaseModel, ConfigDict, Field

from salesrecon.domain.models import AggregatedItem, SkuMapping
from salesrecon.errors import ResolutionError, UnknownProductError
from salesrecon.store.repository import find_sku_mapping

if TYPE_CHECKING:
    from salesrecon.reconciliation.matcher import CatalogSnapshot
    from salesrecon.reconciliation.session import ImportSession

logger = structlog.get_logger(__name__)

CREATE_NEW = "CREATE_NEW_PRODUCT"


class CreateNew(BaseModel):
    """Create a catalog product from the aggregated item"""

    model_config = ConfigDict(frozen=True)

    kind: Literal["create_new"] = "create_new"

    def to_choice(self) -> str:
        return CREATE_NEW


class MapTo(BaseModel):
    """Bind the key to an existing catalog product"""

    model_config = ConfigDict(frozen=True)

    kind: Literal["map_to"] = "map_to"
    product_id: str = Field(min_length=1)

    def to_choice(self) -> str:
        return self.product_id


Resolution = Annotated[Union[CreateNew, MapTo], Field(discriminator="kind")]


def parse_resolution(choice: str) -> Union[CreateNew, MapTo]:
    """Convert the operator's string choice to a resolution"""
    choice = (choice or "").strip()
    if not choice:
        raise ResolutionError("Choose a product or create a new one.")
    if choice == CREATE_NEW:
        return CreateNew()
    return MapTo(product_id=choice)


def suggest_resolutions(
    unrecognized: Sequence[AggregatedItem],
    mappings: Sequence[SkuMapping],
    catalog: "CatalogSnapshot",
) -> Dict[str, MapTo]:
    """
    Pre-fill resolutions from saved SkuMappings.

    A saved mapping is only suggested while its product is still in the
    catalog snapshot.
    """
    suggestions: Dict[str, MapTo] = {}
    for item in unrecognized:
        mapping = find_sku_mapping(mappings, item.key)
        if mapping is None:
            continue
        if mapping.mapped_product_id not in catalog:
            logger.info(
                "Saved mapping points to a missing product",
                key=item.key,
                product_id=mapping.mapped_product_id,
            )
            continue
        suggestions[item.key] = MapTo(product_id=mapping.mapped_product_id)

    if suggestions:
        logger.info("Resolutions suggested from saved mappings", count=len(suggestions))
    return suggestions


def validate_resolution(
    session: "ImportSession",
    key: str,
    resolution: Union[CreateNew, MapTo],
) -> None:
    if key not in session.unrecognized_keys:
        raise ResolutionError(f"'{key}' is not an unrecognized item of this import.")
    if isinstance(resolution, MapTo) and resolution.product_id not in session.catalog:
        raise UnknownProductError(resolution.product_id)


def apply_resolution(
    session: "ImportSession",
    key: str,
    resolution: Union[CreateNew, MapTo],
) -> "ImportSession":
    """
    Return a new session with the resolution recorded for key.

    Raises:
        ResolutionError: key is not unrecognized in this session
        UnknownProductError: MapTo target is not in the catalog snapshot
    """
    validate_resolution(session, key, resolution)
    resolutions = dict(session.resolutions)
    resolutions[key] = resolution
    return session.model_copy(update={"resolutions": resolutions})


def missing_resolutions(session: "ImportSession") -> List[str]:
    """Unrecognized keys that still have no resolution, in display order"""
    return [item.key for item in session.unrecognized if item.key not in session.resolutions]


def is_complete(session: "ImportSession") -> bool:
    """Confirmation gate: every unrecognized key has a resolution"""
    return not missing_resolutions(session)
