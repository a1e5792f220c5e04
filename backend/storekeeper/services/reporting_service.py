# Overview: Read-only analytics over invoices, returns, the stock ledger and the item projection.

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Optional

from ..errors import ValidationError
from ..storage import get_storage
from ..records import UNCATEGORIZED
from ..time_utils import day_window, days_between, normalize_datetime, to_utc_z
from .inventory_service import FSN_CLASSES, recompute_fsn
from .return_service import STATUS_COMPLETED
from .settings_service import ThresholdConfig, get_thresholds

"""
Reporting Semantics (authoritative)

Ranges:
- start/end are inclusive calendar days (YYYY-MM-DD, UTC dates).
- start > end yields an empty report, not an error.

Returns policy:
- Per-day reports carry gross figures from invoices plus completed returns
  dated the same day, and the net of the two. Cancelled returns never count.

Thresholds:
- One ThresholdConfig snapshot is read at the start of each report call.
- reorder_level defaults to DEFAULT_REORDER_LEVEL, max_stock to
  DEFAULT_MAX_STOCK when unset on the item.
"""

DEFAULT_REORDER_LEVEL = 5
DEFAULT_MAX_STOCK = 100

STATUS_CRITICAL = "critical"
STATUS_LOW = "low"
STATUS_ADEQUATE = "adequate"

FSN_ORDER = {"N": 0, "S": 1, "F": 2}


def _matches(search: Optional[str], *values) -> bool:
    needle = (search or "").strip().lower()
    if not needle:
        return True
    return any(needle in (v or "").lower() for v in values)


# -----------------------------------------------------------------------------
# Sales
# -----------------------------------------------------------------------------

def daily_sales(start=None, end=None, order: str = "desc") -> list[dict]:
    if order not in ("asc", "desc"):
        raise ValidationError("order must be 'asc' or 'desc'")
    start_dt, end_dt, empty = day_window(start, end)
    if empty:
        return []

    storage = get_storage()
    sales = {row.day: row for row in storage.daily_sales(start=start_dt, end=end_dt)}
    returns = {
        row.day: row
        for row in storage.daily_returns(start=start_dt, end=end_dt, status=STATUS_COMPLETED)
    }

    rows = []
    for day in sorted(set(sales) | set(returns), reverse=(order == "desc")):
        s = sales.get(day)
        r = returns.get(day)
        gross = s.gross_cents if s else 0
        returned = r.returns_cents if r else 0
        rows.append({
            "day": day,
            "invoice_count": s.invoice_count if s else 0,
            "items_sold": s.items_sold if s else 0,
            "gross_sales_cents": gross,
            "discount_cents": s.discount_cents if s else 0,
            "return_count": r.return_count if r else 0,
            "returns_cents": returned,
            "net_sales_cents": gross - returned,
        })
    return rows


def product_sales(start=None, end=None, search: Optional[str] = None) -> list[dict]:
    start_dt, end_dt, empty = day_window(start, end)
    if empty:
        return []

    storage = get_storage()
    items = {i.id: i for i in storage.list_items(include_inactive=True)}
    rows = []
    for agg in storage.product_sales(start=start_dt, end=end_dt):
        item = items.get(agg.item_id)
        name = item.name if item else f"Item {agg.item_id}"
        sku = item.sku if item else ""
        if not _matches(search, name, sku):
            continue
        rows.append({
            "item_id": agg.item_id,
            "sku": sku,
            "name": name,
            "category": (item.category if item else None) or UNCATEGORIZED,
            "quantity_sold": agg.quantity_sold,
            "sales_cents": agg.sales_cents,
        })
    rows.sort(key=lambda r: (-r["sales_cents"], r["name"]))
    return rows


# -----------------------------------------------------------------------------
# Stock
# -----------------------------------------------------------------------------

def _daily_sale_rates(storage) -> dict[int, float]:
    """Average units sold per day over each item's sale span (inclusive days)."""
    rates = {}
    for item_id, history in storage.sale_history().items():
        span_days = (history.last_sale_at - history.first_sale_at).total_seconds() / 86400
        days = max(1, math.ceil(span_days) + 1)
        rates[item_id] = history.quantity_sold / days
    return rates


def _grade(value: float, threshold: float) -> str:
    if value <= threshold / 2:
        return STATUS_CRITICAL
    if value <= threshold:
        return STATUS_LOW
    return STATUS_ADEQUATE


def _stock_rows(thresholds: ThresholdConfig, search: Optional[str], low_stock_only: bool) -> list[dict]:
    storage = get_storage()
    method = thresholds.low_stock_method
    rates = _daily_sale_rates(storage) if method == "days_supply" else {}

    rows = []
    for item in storage.list_items():
        if not _matches(search, item.name, item.sku):
            continue

        reorder_level = item.reorder_level if item.reorder_level is not None else DEFAULT_REORDER_LEVEL
        days_of_supply = None

        if method == "percentage":
            max_stock = item.max_stock if item.max_stock is not None else DEFAULT_MAX_STOCK
            threshold = max_stock * thresholds.low_stock_percentage / 100
            grade = _grade(item.quantity, threshold)
        elif method == "days_supply":
            threshold = thresholds.low_stock_days_supply
            rate = rates.get(item.id, 0)
            if rate > 0:
                days_of_supply = item.quantity / rate
                grade = _grade(days_of_supply, threshold)
            else:
                # No sales history: never low.
                grade = STATUS_ADEQUATE
        else:
            threshold = reorder_level
            grade = _grade(item.quantity, threshold)

        status = STATUS_CRITICAL if item.quantity <= 0 else grade
        is_low = grade != STATUS_ADEQUATE
        if low_stock_only and not is_low:
            continue

        rows.append({
            "item_id": item.id,
            "sku": item.sku,
            "name": item.name,
            "category": item.category or UNCATEGORIZED,
            "quantity": item.quantity,
            "price_cents": item.price_cents,
            "stock_value_cents": item.quantity * item.price_cents,
            "reorder_level": reorder_level,
            "threshold": threshold,
            "days_of_supply": round(days_of_supply, 1) if days_of_supply is not None else None,
            "status": status,
            "is_low": is_low,
        })

    rows.sort(key=lambda r: (-r["stock_value_cents"], r["name"]))
    return rows


def current_stock(search: Optional[str] = None, low_stock_only: bool = False) -> list[dict]:
    return _stock_rows(get_thresholds(), search, low_stock_only)


def non_moving_items(fsn: Optional[str] = None, as_of=None) -> list[dict]:
    """FSN report. Reclassifies every item before reading."""
    if fsn is not None and fsn not in FSN_CLASSES:
        raise ValidationError(f"fsn must be one of {', '.join(FSN_CLASSES)}")
    as_of = normalize_datetime(as_of)
    thresholds = get_thresholds()
    recompute_fsn(thresholds.non_moving_threshold_days, as_of=as_of)

    rows = []
    for item in get_storage().list_items():
        if fsn is not None and item.fsn_classification != fsn:
            continue
        rows.append({
            "item_id": item.id,
            "sku": item.sku,
            "name": item.name,
            "category": item.category or UNCATEGORIZED,
            "quantity": item.quantity,
            "stock_value_cents": item.quantity * item.price_cents,
            "last_sale_at": to_utc_z(item.last_sale_at),
            "days_since_sale": days_between(item.last_sale_at, as_of) if item.last_sale_at else None,
            "fsn_classification": item.fsn_classification,
        })

    rows.sort(key=lambda r: (FSN_ORDER.get(r["fsn_classification"], 0), -r["stock_value_cents"], r["name"]))
    return rows


# -----------------------------------------------------------------------------
# Profit
# -----------------------------------------------------------------------------

def profit_summary(start=None, end=None) -> list[dict]:
    """
    Per-day profit from invoice lines, using the cost snapshotted on each line.

    revenue/cost/profit are gross; returns_* and net_profit_cents net out
    completed returns dated the same day.
    """
    start_dt, end_dt, empty = day_window(start, end)
    if empty:
        return []

    storage = get_storage()
    profit = {row.day: row for row in storage.daily_profit(start=start_dt, end=end_dt)}
    returns = {
        row.day: row
        for row in storage.daily_returns(start=start_dt, end=end_dt, status=STATUS_COMPLETED)
    }

    rows = []
    for day in sorted(set(profit) | set(returns), reverse=True):
        p = profit.get(day)
        r = returns.get(day)
        revenue = p.revenue_cents if p else 0
        cost = p.cost_cents if p else 0
        returns_cents = r.returns_cents if r else 0
        returns_cost = r.returns_cost_cents if r else 0
        rows.append({
            "day": day,
            "revenue_cents": revenue,
            "cost_cents": cost,
            "profit_cents": revenue - cost,
            "returns_cents": returns_cents,
            "returns_cost_cents": returns_cost,
            "net_profit_cents": (revenue - returns_cents) - (cost - returns_cost),
        })
    return rows


def _period_totals(storage, start: datetime, end: datetime) -> dict:
    sales = storage.daily_sales(start=start, end=end)
    profit = storage.daily_profit(start=start, end=end)
    returns = storage.daily_returns(start=start, end=end, status=STATUS_COMPLETED)

    gross = sum(r.gross_cents for r in sales)
    cost = sum(r.cost_cents for r in profit)
    returned = sum(r.returns_cents for r in returns)
    returned_cost = sum(r.returns_cost_cents for r in returns)

    revenue = gross - returned
    net_cost = cost - returned_cost
    return {
        "invoice_count": sum(r.invoice_count for r in sales),
        "revenue_cents": revenue,
        "cost_cents": net_cost,
        "profit_cents": revenue - net_cost,
        "returns_cents": returned,
    }


def _month_start(day: datetime) -> datetime:
    return day.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def dashboard_summary(as_of=None) -> dict:
    """Headline numbers for the dashboard, net of completed returns."""
    as_of = normalize_datetime(as_of)
    thresholds = get_thresholds()
    storage = get_storage()

    today = as_of.replace(hour=0, minute=0, second=0, microsecond=0)
    tomorrow = today + timedelta(days=1)
    yesterday = today - timedelta(days=1)
    this_month = _month_start(today)
    last_month = _month_start(this_month - timedelta(days=1))

    stock = _stock_rows(thresholds, None, False)

    return {
        "as_of": to_utc_z(as_of),
        "all_time": _period_totals(storage, None, None),
        "today": _period_totals(storage, today, tomorrow),
        "yesterday": _period_totals(storage, yesterday, today),
        "this_month": _period_totals(storage, this_month, tomorrow),
        "last_month": _period_totals(storage, last_month, this_month),
        "item_count": len(stock),
        "stock_value_cents": sum(r["stock_value_cents"] for r in stock),
        "low_stock_count": sum(1 for r in stock if r["is_low"]),
        "out_of_stock_count": sum(1 for r in stock if r["quantity"] <= 0),
        "low_stock_method": thresholds.low_stock_method,
    }
