# Overview: Service-layer operations for sales; records invoices and their ledger entries atomically.

"""
Sales recorder: one invoice per call, written atomically.

Every line of a recorded sale produces an invoice line (with the item's
purchase cost snapshotted), a `sale` ledger entry with delta = -quantity and
the matching projection update. Stock is checked for every item, using the
summed quantity across lines, before anything is written.
"""

from __future__ import annotations

from typing import Optional

from flask import current_app

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..records import Invoice, InvoiceLine
from ..storage import get_storage
from ..time_utils import day_window, normalize_datetime
from .inventory_service import mark_sold
from .ledger_service import append_entry


PAYMENT_MODES = ("cash", "card", "upi", "credit", "other")
INVOICE_PREFIX = "INV"


def _positive_int(name: str, value, index: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"lines[{index}].{name} must be a positive integer", details={"line": index})
    return value


def _normalize_lines(lines) -> list[dict]:
    if not lines:
        raise ValidationError("A sale needs at least one line")
    normalized = []
    for index, raw in enumerate(lines):
        if not isinstance(raw, dict):
            raise ValidationError(f"lines[{index}] must be an object", details={"line": index})
        item_id = _positive_int("item_id", raw.get("item_id"), index)
        quantity = _positive_int("quantity", raw.get("quantity"), index)
        price = raw.get("unit_price_cents")
        if price is not None and (isinstance(price, bool) or not isinstance(price, int) or price < 0):
            raise ValidationError(f"lines[{index}].unit_price_cents must be >= 0", details={"line": index})
        normalized.append({"item_id": item_id, "quantity": quantity, "unit_price_cents": price})
    return normalized


def _validate_on_hand(storage, lines: list[dict]) -> dict:
    """Load each item once and check summed demand against on-hand quantity."""
    requested: dict[int, int] = {}
    for line in lines:
        requested[line["item_id"]] = requested.get(line["item_id"], 0) + line["quantity"]

    items = {}
    for item_id, qty in requested.items():
        item = storage.get_item(item_id, lock=True)
        if item is None:
            raise NotFoundError(f"Item {item_id} not found", details={"item_id": item_id})
        if not item.is_active:
            raise ValidationError(f"Item {item.name} is inactive", details={"item_id": item_id})
        if item.quantity < qty:
            raise InsufficientStockError(
                item_id=item.id,
                item_name=item.name,
                available=item.quantity,
                requested=qty,
            )
        items[item_id] = item
    return items


def next_invoice_number(storage, created_at) -> str:
    prefix = f"{INVOICE_PREFIX}-{created_at.strftime('%Y%m%d')}-"
    return f"{prefix}{storage.count_invoices_with_prefix(prefix) + 1:04d}"


def record_sale(
    lines,
    customer_name: Optional[str] = None,
    customer_phone: Optional[str] = None,
    discount_cents: int = 0,
    total_cents: Optional[int] = None,
    payment_mode: str = "cash",
    created_by: str = "system",
    created_at=None,
) -> Invoice:
    normalized = _normalize_lines(lines)

    if isinstance(discount_cents, bool) or not isinstance(discount_cents, int) or discount_cents < 0:
        raise ValidationError("discount_cents must be a non-negative integer")
    if payment_mode not in PAYMENT_MODES:
        raise ValidationError(
            f"payment_mode must be one of {', '.join(PAYMENT_MODES)}",
            details={"payment_mode": payment_mode},
        )
    if total_cents is not None and (isinstance(total_cents, bool) or not isinstance(total_cents, int) or total_cents < 0):
        raise ValidationError("total_cents must be a non-negative integer")

    created_at = normalize_datetime(created_at)
    customer_name = (customer_name or "").strip() or None
    customer_phone = (customer_phone or "").strip() or None

    storage = get_storage()
    with storage.transaction():
        items = _validate_on_hand(storage, normalized)

        priced = []
        for line in normalized:
            item = items[line["item_id"]]
            price = line["unit_price_cents"] if line["unit_price_cents"] is not None else item.price_cents
            priced.append((line, item, price, line["quantity"] * price))

        subtotal = sum(line_total for _, _, _, line_total in priced)
        if total_cents is None:
            total_cents = subtotal - discount_cents
            if total_cents < 0:
                raise ValidationError(
                    "Discount exceeds invoice subtotal",
                    details={"subtotal_cents": subtotal, "discount_cents": discount_cents},
                )

        invoice = storage.insert_invoice(
            invoice_number=next_invoice_number(storage, created_at),
            customer_name=customer_name,
            customer_phone=customer_phone,
            discount_cents=discount_cents,
            total_cents=total_cents,
            payment_mode=payment_mode,
            created_by=created_by or "system",
            created_at=created_at,
        )

        for line_number, (line, item, price, line_total) in enumerate(priced, start=1):
            storage.insert_invoice_line(
                invoice_id=invoice.id,
                line_number=line_number,
                item_id=item.id,
                quantity=line["quantity"],
                unit_price_cents=price,
                unit_cost_cents=item.cost_cents,
                line_total_cents=line_total,
            )
            append_entry(
                item.id,
                "sale",
                -line["quantity"],
                note=f"Sale {invoice.invoice_number}",
                created_by=created_by or "system",
                occurred_at=created_at,
            )
            mark_sold(item.id, created_at)

        invoice = storage.get_invoice(invoice.id)

    current_app.logger.info(
        "Recorded sale %s lines=%s total_cents=%s", invoice.invoice_number, len(invoice.lines), invoice.total_cents
    )
    return invoice


def get_invoice(invoice_id: int) -> Invoice:
    invoice = get_storage().get_invoice(invoice_id)
    if invoice is None:
        raise NotFoundError(f"Invoice {invoice_id} not found", details={"invoice_id": invoice_id})
    return invoice


def list_invoices(start=None, end=None, limit: Optional[int] = 100, offset: int = 0) -> list[Invoice]:
    start_dt, end_dt, empty = day_window(start, end)
    if empty:
        return []
    return get_storage().list_invoices(start=start_dt, end=end_dt, limit=limit, offset=offset)


def list_invoice_lines(invoice_id: int) -> list[InvoiceLine]:
    get_invoice(invoice_id)
    return get_storage().list_invoice_lines(invoice_id)
