"""
Unit Tests - Mapping Resolution and Import Sessions
"""
import pytest
from pydantic import TypeAdapter

from salesrecon.domain.models import SkuMapping
from salesrecon.errors import ResolutionError, UnknownProductError
from salesrecon.reconciliation.aggregator import aggregate_rows
from salesrecon.reconciliation.matcher import CatalogSnapshot, match_items
from salesrecon.reconciliation.resolver import (
    CREATE_NEW,
    CreateNew,
    MapTo,
    Resolution,
    apply_resolution,
    is_complete,
    missing_resolutions,
    parse_resolution,
    suggest_resolutions,
)
from salesrecon.reconciliation.session import (
    ImportSession,
    MemoryImportSessionStore,
    group_orders,
)


@pytest.fixture
def session(marketplace_rows, catalog_products, now) -> ImportSession:
    catalog = CatalogSnapshot.of(catalog_products)
    match = match_items(aggregate_rows(marketplace_rows), catalog)
    return ImportSession(
        source_name="oct.xlsx",
        created_at=now,
        orders=group_orders(marketplace_rows),
        items=tuple(match.items),
        recognized=match.recognized,
        unrecognized=tuple(match.unrecognized),
        products=catalog.products,
    )


class TestParseResolution:
    """Tests for the operator string contract"""

    def test_sentinel_creates_new(self):
        """Test the sentinel maps to CreateNew"""
        assert parse_resolution(CREATE_NEW) == CreateNew()

    def test_product_id_maps(self):
        """Test any other string maps to that product"""
        assert parse_resolution("TOPI-01") == MapTo(product_id="TOPI-01")

    def test_blank_choice_rejected(self):
        """Test an empty choice is not a resolution"""
        with pytest.raises(ResolutionError):
            parse_resolution("  ")

    def test_choice_round_trip(self):
        """Test resolutions convert back to the operator string"""
        assert CreateNew().to_choice() == CREATE_NEW
        assert MapTo(product_id="TAS-07").to_choice() == "TAS-07"

    def test_tagged_union_validation(self):
        """Test the discriminator selects the variant"""
        adapter = TypeAdapter(Resolution)

        assert isinstance(adapter.validate_python({"kind": "create_new"}), CreateNew)
        assert adapter.validate_python({"kind": "map_to", "product_id": "X"}) == MapTo(product_id="X")


class TestSuggestResolutions:
    """Tests for suggestions from saved SkuMappings"""

    def test_saved_mapping_suggested(self, session):
        """Test a saved mapping pre-fills MapTo, matched case-insensitively"""
        mappings = [SkuMapping(id="m1", import_sku="mp-sku-99", mapped_product_id="TAS-07", mapped_product_name="Tas Selempang")]

        suggestions = suggest_resolutions(session.unrecognized, mappings, session.catalog)

        assert suggestions == {"MP-SKU-99": MapTo(product_id="TAS-07")}

    def test_mapping_to_deleted_product_ignored(self, session):
        """Test mappings to products missing from the snapshot are not suggested"""
        mappings = [SkuMapping(id="m1", import_sku="MP-SKU-99", mapped_product_id="GONE", mapped_product_name="Gone")]

        assert suggest_resolutions(session.unrecognized, mappings, session.catalog) == {}


class TestApplyResolution:
    """Tests for apply_resolution and the completeness gate"""

    def test_incomplete_until_every_key_resolved(self, session):
        """Test the gate opens only when every unrecognized key is resolved"""
        assert missing_resolutions(session) == ["MP-SKU-99", "Gantungan Kunci"]
        assert not is_complete(session)

        session = apply_resolution(session, "MP-SKU-99", MapTo(product_id="TAS-07"))
        assert missing_resolutions(session) == ["Gantungan Kunci"]
        assert not is_complete(session)

        session = apply_resolution(session, "Gantungan Kunci", CreateNew())
        assert missing_resolutions(session) == []
        assert is_complete(session)

    def test_returns_new_session(self, session):
        """Test the original session value is not modified"""
        updated = apply_resolution(session, "MP-SKU-99", CreateNew())

        assert session.resolutions == {}
        assert updated.resolutions == {"MP-SKU-99": CreateNew()}
        assert updated.session_id == session.session_id

    def test_complete_without_unrecognized_items(self, session):
        """Test a session with nothing unrecognized can be confirmed immediately"""
        recognized_only = session.model_copy(update={"unrecognized": ()})
        assert is_complete(recognized_only)

    def test_unknown_key_rejected(self, session):
        """Test resolving a key that is not unrecognized fails"""
        with pytest.raises(ResolutionError):
            apply_resolution(session, "KAOS-HTM-L", CreateNew())

    def test_unknown_product_rejected(self, session):
        """Test MapTo must name a product in the snapshot"""
        with pytest.raises(UnknownProductError):
            apply_resolution(session, "MP-SKU-99", MapTo(product_id="NOPE"))

    def test_resolution_can_be_changed(self, session):
        """Test a later choice replaces an earlier one"""
        session = apply_resolution(session, "MP-SKU-99", CreateNew())
        session = apply_resolution(session, "MP-SKU-99", MapTo(product_id="TOPI-01"))

        assert session.resolutions["MP-SKU-99"] == MapTo(product_id="TOPI-01")


class TestImportSession:
    """Tests for the session value and its stores"""

    def test_group_orders_keeps_source_order(self, marketplace_rows):
        """Test one group per order id, in file order"""
        orders = group_orders(marketplace_rows)

        assert [order.order_id for order in orders] == ["ORD-1", "ORD-2", "ORD-3"]
        assert [len(order.rows) for order in orders] == [2, 2, 1]

    def test_blank_order_ids_form_one_order(self, marketplace_rows):
        """Test rows without an order id are grouped together"""
        rows = [row.model_copy(update={"order_id": ""}) for row in marketplace_rows]

        assert len(group_orders(rows)) == 1

    def test_json_round_trip(self, session):
        """Test a resolved session survives JSON serialization"""
        session = apply_resolution(session, "MP-SKU-99", MapTo(product_id="TAS-07"))
        session = apply_resolution(session, "Gantungan Kunci", CreateNew())

        restored = ImportSession.model_validate_json(session.model_dump_json())

        assert restored == session
        assert restored.catalog.get("TAS-07").cost_price == 40000

    async def test_memory_store_lifecycle(self, session):
        """Test save, get, and delete"""
        store = MemoryImportSessionStore()

        await store.save(session)
        assert await store.get(session.session_id) == session

        assert await store.delete(session.session_id) is True
        assert await store.get(session.session_id) is None
        assert await store.delete(session.session_id) is False

    async def test_memory_store_expiry(self, session):
        """Test sessions older than the TTL are gone"""
        store = MemoryImportSessionStore(ttl_seconds=-1)

        await store.save(session)

        assert await store.get(session.session_id) is None
        assert len(store) == 0
