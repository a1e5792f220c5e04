# Overview: Service-layer operations for the stock ledger; append-only record of quantity changes.

from __future__ import annotations

from datetime import datetime
from typing import Optional

from flask import current_app

from ..errors import ValidationError
from ..records import LedgerEntry
from ..storage import get_storage
from ..time_utils import day_window, normalize_datetime
from .inventory_service import adjust_quantity

"""
Stock Ledger Invariants (authoritative)

- Append-only: there is no update or delete path. Corrections are new,
  offsetting entries.
- Every append moves the cached item quantity by the same delta inside the
  same storage transaction, so for every item:
      SUM(quantity_delta) == items.quantity
- The ledger never judges sign or magnitude. Stock checks belong to callers
  (record_sale, adjust_stock) and run before the append.
- occurred_at is business time (defaults to now); list order is
  occurred_at desc, id desc.
"""

ADJUSTMENT_TYPES = (
    "opening_stock",
    "manual_add",
    "manual_deduction",
    "supplier_return",
    "damage_write_off",
    "sale",
    "return",
    "other",
)

# Written only by the sales/returns recorder
RESERVED_TYPES = frozenset({"sale", "return"})

DEFAULT_PAGE_SIZE = 100


def _validate_type(adjustment_type: str) -> str:
    if adjustment_type not in ADJUSTMENT_TYPES:
        raise ValidationError(
            f"adjustment_type must be one of {', '.join(ADJUSTMENT_TYPES)}",
            details={"adjustment_type": adjustment_type},
        )
    return adjustment_type


def append_entry(
    item_id: int,
    adjustment_type: str,
    quantity_delta: int,
    note: Optional[str] = None,
    created_by: str = "system",
    occurred_at: Optional[datetime] = None,
) -> LedgerEntry:
    """
    Append one ledger entry and move the item's cached quantity by its delta.

    Runs inside the caller's transaction when there is one.
    """
    _validate_type(adjustment_type)
    if isinstance(quantity_delta, bool) or not isinstance(quantity_delta, int):
        raise ValidationError("quantity_delta must be an integer")

    storage = get_storage()
    with storage.transaction():
        entry = storage.insert_ledger_entry(
            item_id=item_id,
            adjustment_type=adjustment_type,
            quantity_delta=quantity_delta,
            note=note,
            created_by=created_by or "system",
            occurred_at=normalize_datetime(occurred_at),
        )
        adjust_quantity(item_id, quantity_delta)

    current_app.logger.debug(
        "Ledger append item=%s type=%s delta=%s", item_id, adjustment_type, quantity_delta
    )
    return entry


def _filters(item_id, adjustment_type, start, end) -> dict:
    if adjustment_type is not None:
        _validate_type(adjustment_type)
    start_dt, end_dt, empty = day_window(start, end)
    return {
        "empty": empty,
        "item_id": item_id,
        "adjustment_type": adjustment_type,
        "start": start_dt,
        "end": end_dt,
    }


def list_entries(
    item_id: Optional[int] = None,
    adjustment_type: Optional[str] = None,
    start=None,
    end=None,
    limit: Optional[int] = DEFAULT_PAGE_SIZE,
    offset: int = 0,
) -> list[LedgerEntry]:
    """Ledger entries newest first. start/end are inclusive YYYY-MM-DD days."""
    if limit is not None and limit < 0:
        raise ValidationError("limit must be >= 0")
    if offset < 0:
        raise ValidationError("offset must be >= 0")

    filters = _filters(item_id, adjustment_type, start, end)
    if filters.pop("empty"):
        return []
    return get_storage().list_ledger_entries(limit=limit, offset=offset, **filters)


def count_entries(
    item_id: Optional[int] = None,
    adjustment_type: Optional[str] = None,
    start=None,
    end=None,
) -> int:
    filters = _filters(item_id, adjustment_type, start, end)
    if filters.pop("empty"):
        return 0
    return get_storage().count_ledger_entries(**filters)


def totals_by_type(item_id: int) -> dict[str, int]:
    """Signed sum of deltas for every adjustment type (zero when absent)."""
    present = get_storage().ledger_totals_by_type(item_id)
    return {adj_type: present.get(adj_type, 0) for adj_type in ADJUSTMENT_TYPES}
