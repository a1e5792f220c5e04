"""
Analytics tests: daily sales, product sales, stock status, FSN report,
profit and the dashboard summary.
"""

from datetime import datetime, timedelta

import pytest

from storekeeper.errors import ValidationError
from storekeeper.services import inventory_service, reporting_service, return_service, settings_service


AS_OF = datetime(2026, 10, 18, 12, 0, 0)
DAY = timedelta(days=1)


@pytest.fixture
def trading_days(make_item, sell):
    """
    10-17: 2 units sold.
    10-18: 3 units sold with a 500 discount, 1 unit of the 10-17 sale returned,
           plus a cancelled return.
    10-19: 1 unit of the 10-18 sale returned (a returns-only day).
    """
    item = make_item(sku="BP-100", name="Brake Pad", price_cents=1000, cost_cents=600, opening_stock=20)
    first = sell(item, 2, created_at=AS_OF - DAY)
    second = sell(item, 3, created_at=AS_OF, discount_cents=500)

    return_service.record_return(first.id, "Damage", lines=[{"item_id": item.id, "quantity": 1}], returned_at=AS_OF)
    cancelled = return_service.record_return(
        second.id, "Other", lines=[{"item_id": item.id, "quantity": 2}], returned_at=AS_OF
    )
    return_service.cancel_return(cancelled.id)
    return_service.record_return(
        second.id, "Defective", lines=[{"item_id": item.id, "quantity": 1}], returned_at=AS_OF + DAY
    )
    return item


# =============================================================================
# SALES
# =============================================================================


def test_daily_sales_nets_completed_returns(trading_days):
    rows = reporting_service.daily_sales()

    assert [r["day"] for r in rows] == ["2026-10-19", "2026-10-18", "2026-10-17"]
    by_day = {r["day"]: r for r in rows}
    assert by_day["2026-10-18"] == {
        "day": "2026-10-18",
        "invoice_count": 1,
        "items_sold": 3,
        "gross_sales_cents": 2500,
        "discount_cents": 500,
        "return_count": 1,
        "returns_cents": 1000,
        "net_sales_cents": 1500,
    }
    assert by_day["2026-10-19"]["invoice_count"] == 0
    assert by_day["2026-10-19"]["net_sales_cents"] == -1000
    assert by_day["2026-10-17"]["returns_cents"] == 0


def test_daily_sales_range_and_order(trading_days):
    rows = reporting_service.daily_sales("2026-10-17", "2026-10-18", order="asc")
    assert [r["day"] for r in rows] == ["2026-10-17", "2026-10-18"]
    with pytest.raises(ValidationError):
        reporting_service.daily_sales(order="sideways")


@pytest.mark.parametrize("bad_day", ["2026-10-18xyz", "2026-13-01", "18/10/2026", "2026-10-18 junk"])
def test_malformed_days_rejected(app, bad_day):
    with pytest.raises(ValidationError):
        reporting_service.daily_sales(start=bad_day)
    with pytest.raises(ValidationError):
        reporting_service.profit_summary(end=bad_day)


def test_timestamp_accepted_as_day(trading_days):
    rows = reporting_service.daily_sales("2026-10-18T00:00:00", "2026-10-18")
    assert [r["day"] for r in rows] == ["2026-10-18"]


@pytest.mark.parametrize(
    "report",
    [reporting_service.daily_sales, reporting_service.product_sales, reporting_service.profit_summary],
)
def test_inverted_range_is_empty(trading_days, report):
    assert report("2026-10-19", "2026-10-17") == []


def test_product_sales_sorted_and_searchable(make_item, sell):
    pads = make_item(sku="BP-100", name="Brake Pad", price_cents=45000)
    lube = make_item(sku="CL-200", name="Chain Lube", price_cents=32000)
    sell(pads, 1)
    sell(lube, 2)
    sell(pads, 1, created_at=AS_OF - 10 * DAY)

    rows = reporting_service.product_sales()
    assert [(r["sku"], r["quantity_sold"], r["sales_cents"]) for r in rows] == [
        ("BP-100", 2, 90000),
        ("CL-200", 2, 64000),
    ]
    assert rows[0]["category"] == "Uncategorized"

    recent = reporting_service.product_sales(start="2026-10-18", end="2026-10-18", search="brake")
    assert [(r["sku"], r["quantity_sold"]) for r in recent] == [("BP-100", 1)]


# =============================================================================
# PROFIT
# =============================================================================


def test_profit_summary_uses_cost_snapshot_and_nets_returns(trading_days):
    inventory_service.update_item(trading_days.id, cost_cents=999)
    rows = {r["day"]: r for r in reporting_service.profit_summary()}

    assert rows["2026-10-17"]["profit_cents"] == 2 * (1000 - 600)
    assert rows["2026-10-18"] == {
        "day": "2026-10-18",
        "revenue_cents": 3000,
        "cost_cents": 1800,
        "profit_cents": 1200,
        "returns_cents": 1000,
        "returns_cost_cents": 600,
        "net_profit_cents": 800,
    }
    assert rows["2026-10-19"]["revenue_cents"] == 0
    assert rows["2026-10-19"]["net_profit_cents"] == -400


# =============================================================================
# STOCK STATUS
# =============================================================================


class TestCurrentStock:

    def test_reorder_level_method(self, make_item):
        make_item(name="Plenty", opening_stock=20, reorder_level=5)
        make_item(name="Low", opening_stock=4, reorder_level=5)
        make_item(name="Critical", opening_stock=2, reorder_level=5)
        make_item(name="Default Level", opening_stock=5)
        make_item(name="Zero Level", opening_stock=3, reorder_level=0)

        rows = {r["name"]: r for r in reporting_service.current_stock()}
        assert rows["Plenty"]["status"] == "adequate"
        assert rows["Low"]["status"] == "low"
        assert rows["Critical"]["status"] == "critical"
        assert rows["Default Level"]["reorder_level"] == 5
        assert rows["Default Level"]["status"] == "low"
        assert rows["Zero Level"]["status"] == "adequate"

        low = reporting_service.current_stock(low_stock_only=True)
        assert {r["name"] for r in low} == {"Low", "Critical", "Default Level"}

    def test_out_of_stock_is_critical(self, make_item):
        make_item(name="Empty", opening_stock=0, reorder_level=0)
        row = reporting_service.current_stock()[0]
        assert row["status"] == "critical"
        assert row["quantity"] == 0

    def test_percentage_method(self, make_item):
        settings_service.set_settings({"low_stock_method": "percentage", "low_stock_percentage": 20})
        make_item(name="Capped Low", opening_stock=8, max_stock=50)
        make_item(name="Capped Critical", opening_stock=4, max_stock=50)
        make_item(name="Default Cap", opening_stock=30)

        rows = {r["name"]: r for r in reporting_service.current_stock()}
        assert rows["Capped Low"]["threshold"] == 10
        assert rows["Capped Low"]["status"] == "low"
        assert rows["Capped Critical"]["status"] == "critical"
        assert rows["Default Cap"]["threshold"] == 20
        assert rows["Default Cap"]["status"] == "adequate"

    def test_days_supply_method(self, make_item, sell):
        settings_service.set_settings({"low_stock_method": "days_supply", "low_stock_days_supply": 15})
        steady = make_item(name="Steady", opening_stock=20)
        sell(steady, 5, created_at=AS_OF - 9 * DAY)
        sell(steady, 5, created_at=AS_OF)
        burst = make_item(name="Burst", opening_stock=10)
        sell(burst, 2, created_at=AS_OF)
        make_item(name="Unsold", opening_stock=1)

        rows = {r["name"]: r for r in reporting_service.current_stock()}
        # 10 units over a 10-day span, 10 left
        assert rows["Steady"]["days_of_supply"] == 10.0
        assert rows["Steady"]["status"] == "low"
        assert rows["Burst"]["days_of_supply"] == 4.0
        assert rows["Burst"]["status"] == "critical"
        assert rows["Unsold"]["days_of_supply"] is None
        assert rows["Unsold"]["status"] == "adequate"
        assert rows["Unsold"]["is_low"] is False

    def test_inactive_items_excluded_and_sorted_by_value(self, make_item):
        cheap = make_item(name="Cheap", price_cents=100, opening_stock=10)
        dear = make_item(name="Dear", price_cents=5000, opening_stock=10)
        gone = make_item(name="Gone", opening_stock=10)
        inventory_service.deactivate_item(gone.id)

        rows = reporting_service.current_stock()
        assert [r["item_id"] for r in rows] == [dear.id, cheap.id]
        assert rows[0]["stock_value_cents"] == 50000


# =============================================================================
# NON-MOVING ITEMS
# =============================================================================


def test_non_moving_report_classifies_and_filters(make_item, sell):
    recent = make_item(name="Recent")
    slow = make_item(name="Slow")
    make_item(name="Never")
    sell(recent, 1, created_at=AS_OF - 10 * DAY)
    sell(slow, 1, created_at=AS_OF - 60 * DAY)

    rows = reporting_service.non_moving_items(as_of=AS_OF)
    assert [r["fsn_classification"] for r in rows] == ["N", "S", "F"]
    assert rows[1]["days_since_sale"] == 60
    assert rows[0]["last_sale_at"] is None

    only_n = reporting_service.non_moving_items(fsn="N", as_of=AS_OF)
    assert [r["name"] for r in only_n] == ["Never"]

    settings_service.set_setting("non_moving_threshold_days", 30)
    assert {r["name"] for r in reporting_service.non_moving_items(fsn="N", as_of=AS_OF)} == {"Never", "Slow"}

    with pytest.raises(ValidationError):
        reporting_service.non_moving_items(fsn="X")


# =============================================================================
# DASHBOARD
# =============================================================================


def test_dashboard_summary(make_item, sell):
    item = make_item(price_cents=1000, cost_cents=600, opening_stock=10)
    make_item(name="Empty", opening_stock=0)
    today = sell(item, 2, created_at=AS_OF)
    sell(item, 1, created_at=AS_OF - DAY)
    sell(item, 1, created_at=datetime(2026, 9, 15, 10, 0, 0))
    return_service.record_return(today.id, "Damage", lines=[{"item_id": item.id, "quantity": 1}], returned_at=AS_OF)

    summary = reporting_service.dashboard_summary(as_of=AS_OF)

    assert summary["today"] == {
        "invoice_count": 1,
        "revenue_cents": 1000,
        "cost_cents": 600,
        "profit_cents": 400,
        "returns_cents": 1000,
    }
    assert summary["yesterday"]["revenue_cents"] == 1000
    assert summary["this_month"]["invoice_count"] == 2
    assert summary["this_month"]["profit_cents"] == 800
    assert summary["last_month"]["invoice_count"] == 1
    assert summary["all_time"]["revenue_cents"] == 3000
    assert summary["all_time"]["cost_cents"] == 1800
    assert summary["item_count"] == 2
    assert summary["stock_value_cents"] == 7000
    assert summary["low_stock_count"] == 1
    assert summary["out_of_stock_count"] == 1
    assert summary["low_stock_method"] == "reorder_level"
    assert summary["as_of"] == "2026-10-18T12:00:00Z"


def test_thresholds_are_read_once_per_call(make_item, monkeypatch):
    make_item(opening_stock=3)
    calls = []
    original = reporting_service.get_thresholds

    def counting():
        calls.append(1)
        return original()

    monkeypatch.setattr(reporting_service, "get_thresholds", counting)
    reporting_service.dashboard_summary(as_of=AS_OF)
    reporting_service.current_stock()
    assert len(calls) == 2
