# Overview: Service-layer operations for sales returns; records, cancels and summarizes returns.

from __future__ import annotations

from datetime import timedelta
from typing import Optional

from flask import current_app

from ..errors import ExcessReturnQuantityError, InsufficientStockError, NotFoundError, ValidationError
from ..records import SalesReturn
from ..storage import get_storage
from ..time_utils import day_window, normalize_datetime, utcnow
from .inventory_service import get_item
from .ledger_service import append_entry

"""
Sales Return Invariants (authoritative)

- A return references exactly one invoice and only items on that invoice.
- Per item: returned quantity across completed returns <= invoiced quantity.
  Cancelled returns free their quantity again.
- Completing a return appends one `return` entry (+quantity) per line.
- Cancelling appends one `manual_deduction` entry (-quantity) per line and
  flips status; the original lines stay untouched. A cancel that would push
  an item below zero (units sold again since) is refused with
  InsufficientStockError before anything is written.
- Rate defaults to the invoice line price and may not exceed it; unit cost
  is always copied from the invoice line so profit netting uses the
  sale-time cost.
"""

RETURN_REASONS = ("Damage", "Wrong Part", "Customer Request", "Defective", "Other")

STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
RETURN_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED)

RETURN_PREFIX = "RET"


def _normalize_lines(lines) -> list[dict]:
    if not lines:
        raise ValidationError("A return needs at least one line")
    normalized = []
    for index, raw in enumerate(lines):
        if not isinstance(raw, dict):
            raise ValidationError(f"lines[{index}] must be an object", details={"line": index})
        item_id = raw.get("item_id")
        quantity = raw.get("quantity")
        rate = raw.get("rate_cents")
        for name, value in (("item_id", item_id), ("quantity", quantity)):
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValidationError(f"lines[{index}].{name} must be a positive integer", details={"line": index})
        if rate is not None and (isinstance(rate, bool) or not isinstance(rate, int) or rate < 0):
            raise ValidationError(f"lines[{index}].rate_cents must be >= 0", details={"line": index})
        normalized.append({"item_id": item_id, "quantity": quantity, "rate_cents": rate})
    return normalized


def next_return_number(storage, returned_at) -> str:
    prefix = f"{RETURN_PREFIX}-{returned_at.strftime('%Y%m%d')}-"
    return f"{prefix}{storage.count_returns_with_prefix(prefix) + 1:03d}"


def returnable_quantities(invoice_id: int) -> dict[int, int]:
    """Units still returnable per item on an invoice."""
    storage = get_storage()
    invoice = storage.get_invoice(invoice_id)
    if invoice is None:
        raise NotFoundError(f"Invoice {invoice_id} not found", details={"invoice_id": invoice_id})

    invoiced: dict[int, int] = {}
    for line in invoice.lines:
        invoiced[line.item_id] = invoiced.get(line.item_id, 0) + line.quantity
    returned = storage.returned_quantities(invoice_id, status=STATUS_COMPLETED)
    return {item_id: qty - returned.get(item_id, 0) for item_id, qty in invoiced.items()}


def record_return(
    invoice_id: int,
    reason: str,
    notes: Optional[str] = None,
    lines=None,
    created_by: str = "system",
    returned_at=None,
) -> SalesReturn:
    if isinstance(invoice_id, bool) or not isinstance(invoice_id, int):
        raise ValidationError("invoice_id must be an integer")
    if reason not in RETURN_REASONS:
        raise ValidationError(
            f"reason must be one of {', '.join(RETURN_REASONS)}",
            details={"reason": reason},
        )
    normalized = _normalize_lines(lines)
    returned_at = normalize_datetime(returned_at)

    storage = get_storage()
    with storage.transaction():
        invoice = storage.get_invoice(invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found", details={"invoice_id": invoice_id})

        invoice_lines: dict[int, list] = {}
        for line in invoice.lines:
            invoice_lines.setdefault(line.item_id, []).append(line)
        already = storage.returned_quantities(invoice_id, status=STATUS_COMPLETED)

        requested: dict[int, int] = {}
        for line in normalized:
            if line["item_id"] not in invoice_lines:
                raise ValidationError(
                    f"Item {line['item_id']} is not on invoice {invoice.invoice_number}",
                    details={"item_id": line["item_id"], "invoice_id": invoice_id},
                )
            requested[line["item_id"]] = requested.get(line["item_id"], 0) + line["quantity"]

        for item_id, qty in requested.items():
            invoiced = sum(l.quantity for l in invoice_lines[item_id])
            returned = already.get(item_id, 0)
            if qty > invoiced - returned:
                raise ExcessReturnQuantityError(
                    item_id=item_id,
                    item_name=get_item(item_id).name,
                    invoiced=invoiced,
                    already_returned=returned,
                    requested=qty,
                )

        priced = []
        for line in normalized:
            source = invoice_lines[line["item_id"]][0]
            rate = line["rate_cents"] if line["rate_cents"] is not None else source.unit_price_cents
            if rate > source.unit_price_cents:
                raise ValidationError(
                    f"rate_cents {rate} exceeds the invoiced price {source.unit_price_cents}",
                    details={"item_id": line["item_id"], "unit_price_cents": source.unit_price_cents},
                )
            priced.append((line, source, rate, line["quantity"] * rate))

        sales_return = storage.insert_return(
            return_number=next_return_number(storage, returned_at),
            invoice_id=invoice_id,
            reason=reason,
            total_cents=sum(total for _, _, _, total in priced),
            notes=(notes or "").strip() or None,
            status=STATUS_COMPLETED,
            created_by=created_by or "system",
            returned_at=returned_at,
        )
        for line, source, rate, line_total in priced:
            storage.insert_return_line(
                return_id=sales_return.id,
                item_id=line["item_id"],
                quantity=line["quantity"],
                rate_cents=rate,
                line_total_cents=line_total,
                unit_cost_cents=source.unit_cost_cents,
            )
            append_entry(
                line["item_id"],
                "return",
                line["quantity"],
                note=f"Return {sales_return.return_number} ({reason})",
                created_by=created_by or "system",
                occurred_at=returned_at,
            )

        sales_return = storage.get_return(sales_return.id)

    current_app.logger.info(
        "Recorded return %s invoice=%s total_cents=%s",
        sales_return.return_number, invoice.invoice_number, sales_return.total_cents,
    )
    return sales_return


def cancel_return(return_id: int, cancelled_by: str = "system") -> bool:
    """
    Cancel a completed return and take its units back out of stock.
    Returns False when the return is missing or already cancelled. Raises
    InsufficientStockError when the units are no longer on hand.
    """
    storage = get_storage()
    with storage.transaction():
        sales_return = storage.get_return(return_id)
        if sales_return is None or sales_return.status == STATUS_CANCELLED:
            return False

        # Units may have been sold again since the return; never go below zero.
        deduct: dict[int, int] = {}
        for line in sales_return.lines:
            deduct[line.item_id] = deduct.get(line.item_id, 0) + line.quantity
        for item_id, qty in deduct.items():
            item = storage.get_item(item_id, lock=True)
            if item is None:
                raise NotFoundError(f"Item {item_id} not found", details={"item_id": item_id})
            if item.quantity < qty:
                raise InsufficientStockError(
                    item_id=item.id,
                    item_name=item.name,
                    available=item.quantity,
                    requested=qty,
                )

        now = utcnow()
        storage.update_return(
            return_id,
            status=STATUS_CANCELLED,
            cancelled_at=now,
            cancelled_by=cancelled_by or "system",
        )
        for line in sales_return.lines:
            append_entry(
                line.item_id,
                "manual_deduction",
                -line.quantity,
                note=f"Cancelled return {sales_return.return_number}",
                created_by=cancelled_by or "system",
                occurred_at=now,
            )

    current_app.logger.info("Cancelled return %s", sales_return.return_number)
    return True


def get_return(return_id: int) -> SalesReturn:
    sales_return = get_storage().get_return(return_id)
    if sales_return is None:
        raise NotFoundError(f"Return {return_id} not found", details={"return_id": return_id})
    return sales_return


def _filters(invoice_id, status, start, end) -> dict:
    if status is not None and status not in RETURN_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(RETURN_STATUSES)}")
    start_dt, end_dt, empty = day_window(start, end)
    return {"empty": empty, "invoice_id": invoice_id, "status": status, "start": start_dt, "end": end_dt}


def list_returns(
    invoice_id: Optional[int] = None,
    start=None,
    end=None,
    status: Optional[str] = None,
    limit: Optional[int] = 100,
    offset: int = 0,
) -> list[SalesReturn]:
    filters = _filters(invoice_id, status, start, end)
    if filters.pop("empty"):
        return []
    return get_storage().list_returns(limit=limit, offset=offset, **filters)


def count_returns(invoice_id: Optional[int] = None, start=None, end=None, status: Optional[str] = None) -> int:
    filters = _filters(invoice_id, status, start, end)
    if filters.pop("empty"):
        return 0
    return get_storage().count_returns(**filters)


def returned_invoice_ids() -> set[int]:
    """Invoices with at least one completed return."""
    return {r.invoice_id for r in get_storage().list_returns(status=STATUS_COMPLETED)}


def return_stats(as_of=None) -> dict:
    """Counts and amounts of completed returns overall and on the as_of day."""
    as_of = normalize_datetime(as_of)
    day_start = as_of.replace(hour=0, minute=0, second=0, microsecond=0)
    storage = get_storage()
    completed = storage.list_returns(status=STATUS_COMPLETED)
    today = [r for r in completed if day_start <= r.returned_at < day_start + timedelta(days=1)]
    return {
        "total_returns": len(completed),
        "total_cents": sum(r.total_cents for r in completed),
        "today_returns": len(today),
        "today_cents": sum(r.total_cents for r in today),
    }
