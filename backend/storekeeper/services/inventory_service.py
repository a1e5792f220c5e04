# Overview: Service-layer operations for inventory; item master plus the ledger-derived projection.

from __future__ import annotations

from datetime import datetime
from typing import Optional

from flask import current_app

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..records import Item
from ..storage import get_storage
from ..time_utils import days_between, normalize_datetime, to_utc_z, utcnow

"""
Inventory Projection Invariants (authoritative)

Cached state:
- items.quantity, items.last_sale_at and items.fsn_classification are derived
  from the stock ledger. quantity moves only through adjust_quantity(), which
  ledger_service.append_entry() calls inside the same transaction.
- rebuild_from_ledger() replays the ledger and overwrites the cached values;
  reconcile() reports drift without writing.

Quantity rules:
- Normal flows never push quantity below zero. record_sale, adjust_stock and
  return_service.cancel_return check availability before appending.

FSN classification (as_of defaults to now):
- F: last sale at most FAST_MOVING_DAYS days ago
- S: last sale at most threshold_days ago
- N: older than threshold_days, or never sold
- threshold_days <= FAST_MOVING_DAYS leaves the S band empty.
"""

FAST_MOVING_DAYS = 30
FSN_CLASSES = ("F", "S", "N")

MASTER_FIELDS = ("sku", "name", "category", "price_cents", "cost_cents", "reorder_level", "max_stock")


# -----------------------------------------------------------------------------
# Validation helpers
# -----------------------------------------------------------------------------

def _require_int(name: str, value, *, minimum: Optional[int] = None, allow_none: bool = False):
    if value is None and allow_none:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer", details={"field": name})
    if minimum is not None and value < minimum:
        raise ValidationError(f"{name} must be >= {minimum}", details={"field": name})
    return value


def _require_text(name: str, value, *, allow_none: bool = False) -> Optional[str]:
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"{name} must be a string", details={"field": name})
    text = (value or "").strip()
    if not text:
        if allow_none:
            return None
        raise ValidationError(f"{name} is required", details={"field": name})
    return text


def _clean_master_fields(changes: dict) -> dict:
    cleaned = {}
    for key, value in changes.items():
        if key in ("sku", "name"):
            cleaned[key] = _require_text(key, value)
        elif key == "category":
            cleaned[key] = _require_text(key, value, allow_none=True)
        elif key in ("price_cents", "cost_cents"):
            cleaned[key] = _require_int(key, value, minimum=0)
        elif key == "reorder_level":
            cleaned[key] = _require_int(key, value, minimum=0, allow_none=True)
        elif key == "max_stock":
            cleaned[key] = _require_int(key, value, minimum=1, allow_none=True)
    return cleaned


def _ensure_sku_free(sku: str, *, item_id: Optional[int] = None) -> None:
    existing = get_storage().get_item_by_sku(sku)
    if existing is not None and existing.id != item_id:
        raise ValidationError(f"SKU {sku!r} already exists", details={"sku": sku, "item_id": existing.id})


# -----------------------------------------------------------------------------
# Item master
# -----------------------------------------------------------------------------

def create_item(
    sku: str,
    name: str,
    price_cents: int,
    cost_cents: int,
    category: Optional[str] = None,
    reorder_level: Optional[int] = None,
    max_stock: Optional[int] = None,
    opening_stock: int = 0,
    created_by: str = "system",
) -> Item:
    """
    Create an item. A positive opening_stock is written as an `opening_stock`
    ledger entry in the same transaction, never as a bare quantity.
    """
    from .ledger_service import append_entry

    fields = _clean_master_fields({
        "sku": sku,
        "name": name,
        "category": category,
        "price_cents": price_cents,
        "cost_cents": cost_cents,
        "reorder_level": reorder_level,
        "max_stock": max_stock,
    })
    opening_stock = _require_int("opening_stock", opening_stock, minimum=0)

    storage = get_storage()
    with storage.transaction():
        _ensure_sku_free(fields["sku"])
        item = storage.insert_item(**fields)
        if opening_stock > 0:
            append_entry(
                item.id,
                "opening_stock",
                opening_stock,
                note="Opening stock",
                created_by=created_by,
            )
            item = storage.get_item(item.id)

    current_app.logger.info("Created item id=%s sku=%s opening_stock=%s", item.id, item.sku, opening_stock)
    return item


def update_item(item_id: int, **changes) -> Item:
    """Update master fields. Quantity and derived fields are not editable here."""
    blocked = set(changes) - set(MASTER_FIELDS)
    if blocked:
        raise ValidationError(
            f"Fields not editable: {', '.join(sorted(blocked))}",
            details={"fields": sorted(blocked)},
        )
    cleaned = _clean_master_fields(changes)

    storage = get_storage()
    with storage.transaction():
        get_item(item_id)
        if "sku" in cleaned:
            _ensure_sku_free(cleaned["sku"], item_id=item_id)
        item = storage.update_item(item_id, **cleaned) if cleaned else storage.get_item(item_id)
    return item


def deactivate_item(item_id: int) -> Item:
    storage = get_storage()
    with storage.transaction():
        get_item(item_id)
        item = storage.update_item(item_id, is_active=False)
    current_app.logger.info("Deactivated item id=%s", item_id)
    return item


def get_item(item_id: int) -> Item:
    item = get_storage().get_item(item_id)
    if item is None:
        raise NotFoundError(f"Item {item_id} not found", details={"item_id": item_id})
    return item


def get_item_by_sku(sku: str) -> Item:
    item = get_storage().get_item_by_sku((sku or "").strip())
    if item is None:
        raise NotFoundError(f"Item with SKU {sku!r} not found", details={"sku": sku})
    return item


def list_items(search: Optional[str] = None, include_inactive: bool = False) -> list[Item]:
    items = get_storage().list_items(include_inactive=include_inactive)
    needle = (search or "").strip().lower()
    if not needle:
        return items
    return [i for i in items if needle in i.name.lower() or needle in i.sku.lower()]


# -----------------------------------------------------------------------------
# Projection
# -----------------------------------------------------------------------------

def current_quantity(item_id: int) -> int:
    return get_item(item_id).quantity


def adjust_quantity(item_id: int, delta: int) -> Item:
    """Move the cached quantity by delta. Called once per ledger append."""
    storage = get_storage()
    with storage.transaction():
        item = storage.get_item(item_id, lock=True)
        if item is None:
            raise NotFoundError(f"Item {item_id} not found", details={"item_id": item_id})
        return storage.update_item(item_id, quantity=item.quantity + delta)


def mark_sold(item_id: int, at: Optional[datetime] = None) -> Item:
    """Record a sale time; last_sale_at never moves backwards."""
    at = normalize_datetime(at)
    storage = get_storage()
    with storage.transaction():
        item = get_item(item_id)
        if item.last_sale_at is not None and item.last_sale_at >= at:
            return item
        return storage.update_item(item_id, last_sale_at=at)


def adjust_stock(
    item_id: int,
    adjustment_type: str,
    quantity: int,
    note: Optional[str] = None,
    created_by: str = "system",
    occurred_at=None,
):
    """
    Manual stock adjustment (stock adjustment screen).

    quantity is the signed delta. `sale` and `return` entries are reserved for
    the sales/returns recorder.
    """
    from .ledger_service import ADJUSTMENT_TYPES, RESERVED_TYPES, append_entry

    if adjustment_type not in ADJUSTMENT_TYPES:
        raise ValidationError(
            f"adjustment_type must be one of {', '.join(ADJUSTMENT_TYPES)}",
            details={"adjustment_type": adjustment_type},
        )
    if adjustment_type in RESERVED_TYPES:
        raise ValidationError(
            f"{adjustment_type!r} adjustments are recorded through invoices and returns",
            details={"adjustment_type": adjustment_type},
        )
    quantity = _require_int("quantity", quantity)
    if quantity == 0:
        raise ValidationError("quantity must not be zero", details={"field": "quantity"})

    storage = get_storage()
    with storage.transaction():
        item = storage.get_item(item_id, lock=True)
        if item is None:
            raise NotFoundError(f"Item {item_id} not found", details={"item_id": item_id})
        if item.quantity + quantity < 0:
            raise InsufficientStockError(
                item_id=item.id,
                item_name=item.name,
                available=item.quantity,
                requested=-quantity,
            )
        entry = append_entry(
            item_id,
            adjustment_type,
            quantity,
            note=note,
            created_by=created_by,
            occurred_at=occurred_at,
        )

    current_app.logger.info(
        "Stock adjusted item=%s type=%s delta=%s by=%s", item_id, adjustment_type, quantity, created_by
    )
    return entry


# -----------------------------------------------------------------------------
# FSN classification
# -----------------------------------------------------------------------------

def classify_fsn(last_sale_at: Optional[datetime], threshold_days: int, as_of: Optional[datetime] = None) -> str:
    if last_sale_at is None:
        return "N"
    days = days_between(last_sale_at, as_of or utcnow())
    if days <= FAST_MOVING_DAYS:
        return "F"
    if days <= threshold_days:
        return "S"
    return "N"


def recompute_fsn(threshold_days: int, as_of=None) -> dict[str, int]:
    """
    Reclassify every item. Only rows whose class changed are written, so a
    second call with the same inputs writes nothing.
    """
    threshold_days = _require_int("threshold_days", threshold_days, minimum=1)
    as_of = normalize_datetime(as_of)

    counts = {cls: 0 for cls in FSN_CLASSES}
    changed = 0
    storage = get_storage()
    with storage.transaction():
        for item in storage.list_items(include_inactive=True):
            cls = classify_fsn(item.last_sale_at, threshold_days, as_of)
            counts[cls] += 1
            if item.fsn_classification != cls:
                storage.update_item(item.id, fsn_classification=cls)
                changed += 1

    if changed:
        current_app.logger.info("FSN recompute changed %s item(s): %s", changed, counts)
    return counts


# -----------------------------------------------------------------------------
# Ledger replay
# -----------------------------------------------------------------------------

def rebuild_from_ledger() -> list[dict]:
    """Recompute quantity and last_sale_at for every item from the ledger."""
    storage = get_storage()
    corrections = []
    with storage.transaction():
        ledger_qty = storage.ledger_quantity_by_item()
        history = storage.sale_history()
        for item in storage.list_items(include_inactive=True):
            quantity = ledger_qty.get(item.id, 0)
            sale = history.get(item.id)
            last_sale_at = sale.last_sale_at if sale else None
            if quantity == item.quantity and last_sale_at == item.last_sale_at:
                continue
            storage.update_item(item.id, quantity=quantity, last_sale_at=last_sale_at)
            corrections.append({
                "item_id": item.id,
                "sku": item.sku,
                "quantity_before": item.quantity,
                "quantity_after": quantity,
                "last_sale_at_before": to_utc_z(item.last_sale_at),
                "last_sale_at_after": to_utc_z(last_sale_at),
            })

    if corrections:
        current_app.logger.warning("Rebuild from ledger corrected %s item(s)", len(corrections))
    return corrections


def reconcile() -> list[dict]:
    """Items whose cached quantity differs from the ledger sum (read-only)."""
    storage = get_storage()
    ledger_qty = storage.ledger_quantity_by_item()
    drift = []
    for item in storage.list_items(include_inactive=True):
        expected = ledger_qty.get(item.id, 0)
        if expected != item.quantity:
            drift.append({
                "item_id": item.id,
                "sku": item.sku,
                "name": item.name,
                "cached_quantity": item.quantity,
                "ledger_quantity": expected,
                "drift": item.quantity - expected,
            })
    return drift
