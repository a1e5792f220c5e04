"""
Sales recorder tests.

Verifies:
- One invoice, its lines and one `sale` ledger entry per line
- Stock checks summed across lines, before anything is written
- All-or-nothing writes when a step fails part-way
- Cost snapshot and invoice numbering
"""

from datetime import datetime, timedelta

import pytest

from storekeeper.errors import InsufficientStockError, NotFoundError, ValidationError
from storekeeper.services import inventory_service, ledger_service, reporting_service, sales_service


AS_OF = datetime(2026, 10, 18, 12, 0, 0)


def test_record_sale_writes_invoice_lines_and_ledger(make_item):
    pads = make_item(sku="BP-100", name="Brake Pad", price_cents=45000, cost_cents=30000, opening_stock=10)
    lube = make_item(sku="CL-200", name="Chain Lube", price_cents=32000, cost_cents=20000, opening_stock=5)

    invoice = sales_service.record_sale(
        [
            {"item_id": pads.id, "quantity": 2},
            {"item_id": lube.id, "quantity": 1, "unit_price_cents": 30000},
        ],
        customer_name="  Ravi ",
        discount_cents=1000,
        payment_mode="upi",
        created_at=AS_OF,
    )

    assert invoice.invoice_number == "INV-20261018-0001"
    assert invoice.customer_name == "Ravi"
    assert invoice.total_cents == 2 * 45000 + 30000 - 1000
    assert [(l.line_number, l.item_id, l.quantity, l.line_total_cents) for l in invoice.lines] == [
        (1, pads.id, 2, 90000),
        (2, lube.id, 1, 30000),
    ]

    assert inventory_service.current_quantity(pads.id) == 8
    assert inventory_service.current_quantity(lube.id) == 4
    sales = ledger_service.list_entries(adjustment_type="sale")
    assert sorted((e.item_id, e.quantity_delta) for e in sales) == sorted([(pads.id, -2), (lube.id, -1)])
    assert all(e.occurred_at == AS_OF for e in sales)
    assert inventory_service.get_item(pads.id).last_sale_at == AS_OF


def test_walking_customer_has_no_name(make_item, sell):
    item = make_item()
    invoice = sell(item, 1)
    assert invoice.customer_name is None
    assert invoice.payment_mode == "cash"


def test_brake_pad_scenario(make_item, sell):
    pads = make_item(sku="brake-pad", name="Brake Pad", reorder_level=5, opening_stock=10)

    sell(pads, 7)
    assert inventory_service.current_quantity(pads.id) == 3
    row = reporting_service.current_stock(search="brake-pad")[0]
    assert row["status"] == "low"

    with pytest.raises(InsufficientStockError) as excinfo:
        sell(pads, 9)
    err = excinfo.value
    assert (err.item_name, err.available, err.requested) == ("Brake Pad", 3, 9)
    assert inventory_service.current_quantity(pads.id) == 3
    assert len(sales_service.list_invoices()) == 1


def test_stock_check_sums_lines_for_same_item(make_item):
    item = make_item(opening_stock=5)
    with pytest.raises(InsufficientStockError) as excinfo:
        sales_service.record_sale(
            [{"item_id": item.id, "quantity": 3}, {"item_id": item.id, "quantity": 3}],
            created_at=AS_OF,
        )
    assert excinfo.value.requested == 6
    assert inventory_service.current_quantity(item.id) == 5


def test_insufficient_second_line_writes_nothing(make_item):
    ok = make_item(opening_stock=10)
    short = make_item(opening_stock=1)

    with pytest.raises(InsufficientStockError):
        sales_service.record_sale(
            [{"item_id": ok.id, "quantity": 2}, {"item_id": short.id, "quantity": 2}],
            created_at=AS_OF,
        )

    assert inventory_service.current_quantity(ok.id) == 10
    assert sales_service.list_invoices() == []
    assert ledger_service.count_entries(adjustment_type="sale") == 0


def test_failure_mid_write_rolls_back_everything(make_item, monkeypatch):
    first = make_item(opening_stock=10)
    second = make_item(opening_stock=10)
    calls = []

    def failing_mark_sold(item_id, at=None):
        calls.append(item_id)
        if len(calls) == 2:
            raise RuntimeError("disk full")
        return inventory_service.mark_sold(item_id, at)

    monkeypatch.setattr(sales_service, "mark_sold", failing_mark_sold)

    with pytest.raises(RuntimeError):
        sales_service.record_sale(
            [{"item_id": first.id, "quantity": 4}, {"item_id": second.id, "quantity": 1}],
            created_at=AS_OF,
        )

    assert inventory_service.current_quantity(first.id) == 10
    assert inventory_service.current_quantity(second.id) == 10
    assert inventory_service.get_item(first.id).last_sale_at is None
    assert sales_service.list_invoices() == []
    assert ledger_service.count_entries(adjustment_type="sale") == 0
    assert inventory_service.reconcile() == []


def test_cost_snapshot_survives_cost_change(make_item, sell):
    item = make_item(price_cents=1000, cost_cents=600)
    invoice = sell(item, 2)

    inventory_service.update_item(item.id, cost_cents=900)

    line = sales_service.list_invoice_lines(invoice.id)[0]
    assert line.unit_cost_cents == 600
    assert reporting_service.profit_summary("2026-10-18", "2026-10-18")[0]["profit_cents"] == 2 * (1000 - 600)


def test_invoice_numbers_are_sequential_per_day(make_item, sell):
    item = make_item(opening_stock=20)
    numbers = [
        sell(item, 1, created_at=AS_OF).invoice_number,
        sell(item, 1, created_at=AS_OF + timedelta(hours=1)).invoice_number,
        sell(item, 1, created_at=AS_OF + timedelta(days=1)).invoice_number,
    ]
    assert numbers == ["INV-20261018-0001", "INV-20261018-0002", "INV-20261019-0001"]


@pytest.mark.parametrize(
    "lines",
    [
        [],
        None,
        [{"item_id": 1, "quantity": 0}],
        [{"item_id": 1, "quantity": -2}],
        [{"item_id": 1, "quantity": 1, "unit_price_cents": -5}],
        ["not-an-object"],
    ],
)
def test_invalid_lines_rejected(make_item, lines):
    make_item()
    with pytest.raises(ValidationError):
        sales_service.record_sale(lines, created_at=AS_OF)


def test_unknown_item(app):
    with pytest.raises(NotFoundError):
        sales_service.record_sale([{"item_id": 404, "quantity": 1}], created_at=AS_OF)


def test_inactive_item_cannot_be_sold(make_item):
    item = make_item()
    inventory_service.deactivate_item(item.id)
    with pytest.raises(ValidationError):
        sales_service.record_sale([{"item_id": item.id, "quantity": 1}], created_at=AS_OF)


def test_discount_larger_than_subtotal(make_item):
    item = make_item(price_cents=500)
    with pytest.raises(ValidationError):
        sales_service.record_sale([{"item_id": item.id, "quantity": 1}], discount_cents=600, created_at=AS_OF)


def test_unknown_payment_mode(make_item):
    item = make_item()
    with pytest.raises(ValidationError):
        sales_service.record_sale([{"item_id": item.id, "quantity": 1}], payment_mode="barter", created_at=AS_OF)


def test_list_invoices_by_day_range(make_item, sell):
    item = make_item(opening_stock=20)
    sell(item, 1, created_at=AS_OF - timedelta(days=2))
    latest = sell(item, 1, created_at=AS_OF)

    listed = sales_service.list_invoices(start="2026-10-17", end="2026-10-18")
    assert [i.id for i in listed] == [latest.id]
    assert sales_service.list_invoices(start="2026-10-18", end="2026-10-01") == []


def test_get_invoice_not_found(app):
    with pytest.raises(NotFoundError):
        sales_service.get_invoice(1)
