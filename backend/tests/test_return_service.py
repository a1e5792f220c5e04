"""
Sales return tests.

Verifies:
- Returned stock comes back through `return` ledger entries
- Per-item bound: completed returns never exceed the invoiced quantity
- Cancelling restores the pre-return quantity with an offsetting entry
"""

from datetime import datetime, timedelta

import pytest

from storekeeper.errors import ExcessReturnQuantityError, InsufficientStockError, NotFoundError, ValidationError
from storekeeper.services import inventory_service, ledger_service, return_service, sales_service


AS_OF = datetime(2026, 10, 18, 12, 0, 0)


@pytest.fixture
def lube_invoice(make_item, sell):
    lube = make_item(sku="chain-lube", name="Chain Lube", price_cents=32000, cost_cents=20000, opening_stock=10)
    invoice = sell(lube, 5, created_at=AS_OF)
    return lube, invoice


def test_chain_lube_scenario(lube_invoice):
    lube, invoice = lube_invoice
    assert inventory_service.current_quantity(lube.id) == 5

    sales_return = return_service.record_return(
        invoice.id,
        "Damage",
        lines=[{"item_id": lube.id, "quantity": 2}],
        returned_at=AS_OF + timedelta(hours=2),
    )

    assert sales_return.status == "completed"
    assert sales_return.return_number == "RET-20261018-001"
    assert sales_return.total_cents == 2 * 32000
    assert inventory_service.current_quantity(lube.id) == 7
    returns = ledger_service.list_entries(item_id=lube.id, adjustment_type="return")
    assert [e.quantity_delta for e in returns] == [2]

    with pytest.raises(ExcessReturnQuantityError) as excinfo:
        return_service.record_return(invoice.id, "Damage", lines=[{"item_id": lube.id, "quantity": 4}])
    err = excinfo.value
    assert (err.invoiced, err.already_returned, err.requested) == (5, 2, 4)
    assert err.details["returnable"] == 3
    assert inventory_service.current_quantity(lube.id) == 7


def test_rate_defaults_to_invoice_price_and_cost_is_copied(lube_invoice):
    lube, invoice = lube_invoice
    inventory_service.update_item(lube.id, cost_cents=25000, price_cents=40000)

    line = return_service.record_return(
        invoice.id, "Defective", lines=[{"item_id": lube.id, "quantity": 1}]
    ).lines[0]
    assert line.rate_cents == 32000
    assert line.unit_cost_cents == 20000

    custom = return_service.record_return(
        invoice.id, "Other", lines=[{"item_id": lube.id, "quantity": 1, "rate_cents": 30000}]
    )
    assert custom.lines[0].rate_cents == 30000
    assert custom.total_cents == 30000


def test_rate_above_invoice_price_rejected(lube_invoice):
    lube, invoice = lube_invoice
    with pytest.raises(ValidationError) as excinfo:
        return_service.record_return(
            invoice.id, "Other", lines=[{"item_id": lube.id, "quantity": 1, "rate_cents": 999999}]
        )
    assert excinfo.value.details["unit_price_cents"] == 32000
    assert return_service.count_returns() == 0
    assert inventory_service.current_quantity(lube.id) == 5


def test_cancel_restores_quantity_and_keeps_history(lube_invoice):
    lube, invoice = lube_invoice
    before = inventory_service.current_quantity(lube.id)
    entries_before = ledger_service.count_entries(item_id=lube.id)

    sales_return = return_service.record_return(
        invoice.id, "Customer Request", lines=[{"item_id": lube.id, "quantity": 3}]
    )
    assert return_service.cancel_return(sales_return.id, cancelled_by="owner") is True

    assert inventory_service.current_quantity(lube.id) == before
    assert ledger_service.count_entries(item_id=lube.id) == entries_before + 2
    returned = ledger_service.list_entries(item_id=lube.id, adjustment_type="return")
    deducted = ledger_service.list_entries(item_id=lube.id, adjustment_type="manual_deduction")
    assert [e.quantity_delta for e in returned] == [3]
    assert [e.quantity_delta for e in deducted] == [-3]

    cancelled = return_service.get_return(sales_return.id)
    assert cancelled.status == "cancelled"
    assert cancelled.cancelled_by == "owner"
    assert cancelled.cancelled_at is not None
    assert [l.quantity for l in cancelled.lines] == [3]


def test_cancel_is_not_repeatable(lube_invoice):
    lube, invoice = lube_invoice
    sales_return = return_service.record_return(invoice.id, "Damage", lines=[{"item_id": lube.id, "quantity": 1}])
    assert return_service.cancel_return(sales_return.id) is True
    assert return_service.cancel_return(sales_return.id) is False
    assert return_service.cancel_return(9999) is False


def test_cancel_refused_when_units_were_sold_again(lube_invoice, sell):
    lube, invoice = lube_invoice
    sales_return = return_service.record_return(
        invoice.id, "Customer Request", lines=[{"item_id": lube.id, "quantity": 3}]
    )
    assert inventory_service.current_quantity(lube.id) == 8
    sell(lube, 8)

    with pytest.raises(InsufficientStockError) as excinfo:
        return_service.cancel_return(sales_return.id)
    err = excinfo.value
    assert (err.available, err.requested) == (0, 3)

    assert inventory_service.current_quantity(lube.id) == 0
    assert return_service.get_return(sales_return.id).status == "completed"
    assert ledger_service.list_entries(item_id=lube.id, adjustment_type="manual_deduction") == []
    assert inventory_service.reconcile() == []


def test_cancelled_return_frees_quantity(lube_invoice):
    lube, invoice = lube_invoice
    first = return_service.record_return(invoice.id, "Damage", lines=[{"item_id": lube.id, "quantity": 5}])
    assert return_service.returnable_quantities(invoice.id) == {lube.id: 0}

    return_service.cancel_return(first.id)
    assert return_service.returnable_quantities(invoice.id) == {lube.id: 5}
    return_service.record_return(invoice.id, "Damage", lines=[{"item_id": lube.id, "quantity": 5}])


def test_bound_sums_lines_for_same_item(lube_invoice):
    lube, invoice = lube_invoice
    with pytest.raises(ExcessReturnQuantityError):
        return_service.record_return(
            invoice.id,
            "Damage",
            lines=[{"item_id": lube.id, "quantity": 3}, {"item_id": lube.id, "quantity": 3}],
        )
    assert return_service.count_returns() == 0


def test_item_not_on_invoice(lube_invoice, make_item):
    _, invoice = lube_invoice
    other = make_item()
    with pytest.raises(ValidationError):
        return_service.record_return(invoice.id, "Damage", lines=[{"item_id": other.id, "quantity": 1}])


def test_unknown_reason_and_invoice(lube_invoice):
    lube, invoice = lube_invoice
    with pytest.raises(ValidationError):
        return_service.record_return(invoice.id, "Changed mind", lines=[{"item_id": lube.id, "quantity": 1}])
    with pytest.raises(NotFoundError):
        return_service.record_return(404, "Damage", lines=[{"item_id": lube.id, "quantity": 1}])
    with pytest.raises(ValidationError):
        return_service.record_return(invoice.id, "Damage", lines=[])


def test_listing_stats_and_invoice_ids(make_item, sell):
    item = make_item(opening_stock=20, price_cents=1000)
    yesterday_invoice = sell(item, 2, created_at=AS_OF - timedelta(days=1))
    today_invoice = sell(item, 3, created_at=AS_OF)
    untouched = sell(item, 1, created_at=AS_OF)

    return_service.record_return(
        yesterday_invoice.id, "Damage", lines=[{"item_id": item.id, "quantity": 1}],
        returned_at=AS_OF - timedelta(days=1),
    )
    today = return_service.record_return(
        today_invoice.id, "Wrong Part", lines=[{"item_id": item.id, "quantity": 2}], returned_at=AS_OF,
    )
    cancelled = return_service.record_return(
        today_invoice.id, "Other", lines=[{"item_id": item.id, "quantity": 1}], returned_at=AS_OF,
    )
    return_service.cancel_return(cancelled.id)

    assert return_service.count_returns() == 3
    assert return_service.count_returns(status="completed") == 2
    assert [r.id for r in return_service.list_returns(invoice_id=today_invoice.id, status="completed")] == [today.id]
    assert return_service.list_returns(start="2026-10-18", end="2026-10-17") == []

    assert return_service.returned_invoice_ids() == {yesterday_invoice.id, today_invoice.id}
    assert untouched.id not in return_service.returned_invoice_ids()

    assert return_service.return_stats(as_of=AS_OF) == {
        "total_returns": 2,
        "total_cents": 3000,
        "today_returns": 1,
        "today_cents": 2000,
    }


def test_invalid_status_filter(app):
    with pytest.raises(ValidationError):
        return_service.list_returns(status="pending")
