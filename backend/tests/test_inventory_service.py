"""
Inventory tests: item master, manual adjustments, FSN classification and
ledger replay.
"""

from datetime import datetime, timedelta

import pytest

from storekeeper.errors import InsufficientStockError, NotFoundError, ValidationError
from storekeeper.services import inventory_service, ledger_service
from storekeeper.storage import get_storage


AS_OF = datetime(2026, 10, 18, 12, 0, 0)


# =============================================================================
# ITEM MASTER
# =============================================================================


class TestItemMaster:

    def test_opening_stock_is_a_ledger_entry(self, make_item):
        item = make_item(sku="BP-100", name="Brake Pad", opening_stock=10)

        assert item.quantity == 10
        entries = ledger_service.list_entries(item_id=item.id)
        assert [(e.adjustment_type, e.quantity_delta) for e in entries] == [("opening_stock", 10)]

    def test_zero_opening_stock_writes_no_entry(self, make_item):
        item = make_item(opening_stock=0)
        assert item.quantity == 0
        assert ledger_service.count_entries(item_id=item.id) == 0

    def test_duplicate_sku_rejected(self, make_item):
        make_item(sku="CL-1")
        with pytest.raises(ValidationError):
            make_item(sku="CL-1")

    @pytest.mark.parametrize(
        "fields",
        [
            {"name": "   "},
            {"price_cents": -1},
            {"cost_cents": "12"},
            {"opening_stock": -3},
            {"max_stock": 0},
        ],
    )
    def test_invalid_fields_rejected(self, make_item, fields):
        with pytest.raises(ValidationError):
            make_item(**fields)

    def test_update_master_fields(self, make_item):
        item = make_item(price_cents=1000)
        updated = inventory_service.update_item(item.id, price_cents=1200, category="Brakes")
        assert updated.price_cents == 1200
        assert updated.category == "Brakes"
        assert updated.quantity == item.quantity

    def test_update_rejects_derived_fields(self, make_item):
        item = make_item()
        with pytest.raises(ValidationError):
            inventory_service.update_item(item.id, quantity=99)

    def test_update_to_taken_sku_rejected(self, make_item):
        make_item(sku="A-1")
        other = make_item(sku="B-1")
        with pytest.raises(ValidationError):
            inventory_service.update_item(other.id, sku="A-1")

    def test_deactivate_hides_from_default_listing(self, make_item):
        item = make_item(name="Spark Plug")
        inventory_service.deactivate_item(item.id)

        assert inventory_service.list_items() == []
        listed = inventory_service.list_items(include_inactive=True)
        assert [i.id for i in listed] == [item.id]
        assert listed[0].is_active is False

    def test_search_matches_name_or_sku(self, make_item):
        make_item(sku="BP-100", name="Brake Pad")
        make_item(sku="CL-200", name="Chain Lube")

        assert [i.sku for i in inventory_service.list_items(search="brake")] == ["BP-100"]
        assert [i.name for i in inventory_service.list_items(search="cl-2")] == ["Chain Lube"]

    def test_lookups_raise_not_found(self, app):
        with pytest.raises(NotFoundError):
            inventory_service.get_item(42)
        with pytest.raises(NotFoundError):
            inventory_service.get_item_by_sku("NOPE")


# =============================================================================
# MANUAL ADJUSTMENTS
# =============================================================================


class TestAdjustStock:

    def test_deduction_and_addition(self, make_item):
        item = make_item(opening_stock=10)

        inventory_service.adjust_stock(item.id, "damage_write_off", -2, note="Cracked")
        inventory_service.adjust_stock(item.id, "manual_add", 5)

        assert inventory_service.current_quantity(item.id) == 13

    def test_cannot_go_negative(self, make_item):
        item = make_item(opening_stock=2)
        with pytest.raises(InsufficientStockError) as excinfo:
            inventory_service.adjust_stock(item.id, "manual_deduction", -3)

        assert excinfo.value.available == 2
        assert excinfo.value.requested == 3
        assert inventory_service.current_quantity(item.id) == 2
        assert ledger_service.count_entries(item_id=item.id) == 1

    @pytest.mark.parametrize("adjustment_type", ["sale", "return"])
    def test_reserved_types_rejected(self, make_item, adjustment_type):
        item = make_item()
        with pytest.raises(ValidationError):
            inventory_service.adjust_stock(item.id, adjustment_type, 1)

    def test_zero_quantity_rejected(self, make_item):
        item = make_item()
        with pytest.raises(ValidationError):
            inventory_service.adjust_stock(item.id, "other", 0)

    def test_missing_item(self, app):
        with pytest.raises(NotFoundError):
            inventory_service.adjust_stock(7, "manual_add", 1)


# =============================================================================
# FSN CLASSIFICATION
# =============================================================================


class TestFsn:

    @pytest.mark.parametrize(
        "days_ago,expected",
        [(0, "F"), (30, "F"), (31, "S"), (120, "S"), (121, "N"), (None, "N")],
    )
    def test_classify_boundaries(self, days_ago, expected):
        last_sale = AS_OF - timedelta(days=days_ago) if days_ago is not None else None
        assert inventory_service.classify_fsn(last_sale, 120, AS_OF) == expected

    def test_threshold_below_fast_window_leaves_no_slow_band(self):
        assert inventory_service.classify_fsn(AS_OF - timedelta(days=31), 30, AS_OF) == "N"

    def test_recompute_classifies_by_last_sale(self, make_item, sell):
        recent = make_item(name="Recent")
        slow = make_item(name="Slow")
        stale = make_item(name="Stale")
        never = make_item(name="Never")
        sell(recent, 1, created_at=AS_OF - timedelta(days=10))
        sell(slow, 1, created_at=AS_OF - timedelta(days=60))
        sell(stale, 1, created_at=AS_OF - timedelta(days=200))

        counts = inventory_service.recompute_fsn(120, as_of=AS_OF)

        assert counts == {"F": 1, "S": 1, "N": 2}
        classes = {i.name: i.fsn_classification for i in inventory_service.list_items()}
        assert classes == {"Recent": "F", "Slow": "S", "Stale": "N", "Never": "N"}

    def test_recompute_is_idempotent(self, make_item, sell, monkeypatch):
        item = make_item()
        make_item()
        sell(item, 2, created_at=AS_OF - timedelta(days=45))

        first = inventory_service.recompute_fsn(120, as_of=AS_OF)
        before = {i.id: i.fsn_classification for i in inventory_service.list_items()}

        storage = get_storage()
        writes = []
        original = storage.update_item

        def counting_update(item_id, **changes):
            writes.append(item_id)
            return original(item_id, **changes)

        monkeypatch.setattr(storage, "update_item", counting_update)
        second = inventory_service.recompute_fsn(120, as_of=AS_OF)

        assert second == first
        assert writes == []
        assert {i.id: i.fsn_classification for i in inventory_service.list_items()} == before

    def test_invalid_threshold(self, app):
        with pytest.raises(ValidationError):
            inventory_service.recompute_fsn(0)


# =============================================================================
# LEDGER REPLAY
# =============================================================================


class TestReplay:

    def test_reconcile_clean_after_normal_flows(self, make_item, sell):
        item = make_item(opening_stock=10)
        sell(item, 4)
        inventory_service.adjust_stock(item.id, "supplier_return", -1)
        assert inventory_service.reconcile() == []

    def test_rebuild_repairs_drifted_projection(self, make_item, sell):
        item = make_item(sku="BP-100", opening_stock=10)
        sell(item, 3, created_at=AS_OF)

        storage = get_storage()
        with storage.transaction():
            storage.update_item(item.id, quantity=50, last_sale_at=None)

        drift = inventory_service.reconcile()
        assert drift == [{
            "item_id": item.id,
            "sku": "BP-100",
            "name": item.name,
            "cached_quantity": 50,
            "ledger_quantity": 7,
            "drift": 43,
        }]

        corrections = inventory_service.rebuild_from_ledger()
        assert len(corrections) == 1
        assert corrections[0]["quantity_before"] == 50
        assert corrections[0]["quantity_after"] == 7
        assert corrections[0]["last_sale_at_after"] == "2026-10-18T12:00:00Z"

        repaired = inventory_service.get_item(item.id)
        assert repaired.quantity == 7
        assert repaired.last_sale_at == AS_OF
        assert inventory_service.reconcile() == []
        assert inventory_service.rebuild_from_ledger() == []

    def test_mark_sold_never_moves_backwards(self, make_item):
        item = make_item()
        inventory_service.mark_sold(item.id, AS_OF)
        inventory_service.mark_sold(item.id, AS_OF - timedelta(days=3))
        assert inventory_service.get_item(item.id).last_sale_at == AS_OF
