# Overview: In-process storage backend (dicts guarded by one re-entrant mutex).

from __future__ import annotations

import copy
import dataclasses
import threading
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime

from ..records import (
    DailyProfit,
    DailyReturns,
    DailySales,
    Invoice,
    InvoiceLine,
    Item,
    LedgerEntry,
    ProductSales,
    ReturnLine,
    SaleHistory,
    SalesReturn,
)
from ..time_utils import day_key, utcnow
from .base import ITEM_MUTABLE_FIELDS, RETURN_MUTABLE_FIELDS, StorageBackend


def _in_window(value: datetime, start: datetime | None, end: datetime | None) -> bool:
    if start is not None and value < start:
        return False
    if end is not None and value >= end:
        return False
    return True


def _page(rows: list, limit: int | None, offset: int) -> list:
    rows = rows[offset:] if offset else rows
    return rows[:limit] if limit is not None else rows


@dataclasses.dataclass
class _State:
    items: dict[int, Item] = dataclasses.field(default_factory=dict)
    ledger: list[LedgerEntry] = dataclasses.field(default_factory=list)
    invoices: dict[int, Invoice] = dataclasses.field(default_factory=dict)
    invoice_lines: dict[int, list[InvoiceLine]] = dataclasses.field(default_factory=dict)
    returns: dict[int, SalesReturn] = dataclasses.field(default_factory=dict)
    return_lines: dict[int, list[ReturnLine]] = dataclasses.field(default_factory=dict)
    settings: dict[str, str] = dataclasses.field(default_factory=dict)
    next_ids: dict[str, int] = dataclasses.field(default_factory=lambda: defaultdict(int))

    def next_id(self, table: str) -> int:
        self.next_ids[table] += 1
        return self.next_ids[table]

    def snapshot(self) -> "_State":
        # Records are frozen, so copying the containers one level deep is enough.
        return _State(
            items=dict(self.items),
            ledger=list(self.ledger),
            invoices=dict(self.invoices),
            invoice_lines={k: list(v) for k, v in self.invoice_lines.items()},
            returns=dict(self.returns),
            return_lines={k: list(v) for k, v in self.return_lines.items()},
            settings=dict(self.settings),
            next_ids=copy.copy(self.next_ids),
        )


class MemoryStorage(StorageBackend):
    """
    Storage kept in process memory.

    One RLock serializes every call. transaction() holds the lock for the
    whole block and restores a snapshot of the state if the block raises,
    so readers on other threads never see a partial unit of work.
    """

    name = "memory"

    def __init__(self):
        self._lock = threading.RLock()
        self._state = _State()
        self._depth = 0

    @contextmanager
    def transaction(self):
        with self._lock:
            outermost = self._depth == 0
            saved = self._state.snapshot() if outermost else None
            self._depth += 1
            try:
                yield self
            except BaseException:
                if outermost:
                    self._state = saved
                raise
            finally:
                self._depth -= 1

    # -- items --------------------------------------------------------------

    def insert_item(self, *, sku, name, price_cents, cost_cents, category=None,
                    reorder_level=None, max_stock=None) -> Item:
        with self._lock:
            now = utcnow()
            item = Item(
                id=self._state.next_id("items"),
                sku=sku,
                name=name,
                price_cents=price_cents,
                cost_cents=cost_cents,
                quantity=0,
                category=category,
                reorder_level=reorder_level,
                max_stock=max_stock,
                is_active=True,
                created_at=now,
                updated_at=now,
            )
            self._state.items[item.id] = item
            return item

    def get_item(self, item_id: int, *, lock: bool = False) -> Item | None:
        with self._lock:
            return self._state.items.get(item_id)

    def get_item_by_sku(self, sku: str) -> Item | None:
        with self._lock:
            for item in self._state.items.values():
                if item.sku == sku:
                    return item
            return None

    def list_items(self, *, include_inactive: bool = False) -> list[Item]:
        with self._lock:
            items = [i for i in self._state.items.values() if include_inactive or i.is_active]
        return sorted(items, key=lambda i: (i.name, i.id))

    def update_item(self, item_id: int, **changes) -> Item | None:
        unknown = set(changes) - ITEM_MUTABLE_FIELDS
        if unknown:
            raise TypeError(f"update_item got unexpected fields: {sorted(unknown)}")
        with self._lock:
            item = self._state.items.get(item_id)
            if item is None:
                return None
            item = dataclasses.replace(item, updated_at=utcnow(), **changes)
            self._state.items[item_id] = item
            return item

    # -- ledger -------------------------------------------------------------

    def insert_ledger_entry(self, *, item_id, adjustment_type, quantity_delta, note,
                            created_by, occurred_at) -> LedgerEntry:
        with self._lock:
            entry = LedgerEntry(
                id=self._state.next_id("ledger"),
                item_id=item_id,
                adjustment_type=adjustment_type,
                quantity_delta=quantity_delta,
                note=note,
                created_by=created_by,
                occurred_at=occurred_at,
            )
            self._state.ledger.append(entry)
            return entry

    def _ledger_matches(self, item_id, adjustment_type, start, end) -> list[LedgerEntry]:
        return [
            e for e in self._state.ledger
            if (item_id is None or e.item_id == item_id)
            and (adjustment_type is None or e.adjustment_type == adjustment_type)
            and _in_window(e.occurred_at, start, end)
        ]

    def list_ledger_entries(self, *, item_id=None, adjustment_type=None, start=None,
                            end=None, limit=None, offset=0) -> list[LedgerEntry]:
        with self._lock:
            rows = self._ledger_matches(item_id, adjustment_type, start, end)
        rows.sort(key=lambda e: (e.occurred_at, e.id), reverse=True)
        return _page(rows, limit, offset)

    def count_ledger_entries(self, *, item_id=None, adjustment_type=None, start=None,
                             end=None) -> int:
        with self._lock:
            return len(self._ledger_matches(item_id, adjustment_type, start, end))

    def ledger_totals_by_type(self, item_id: int) -> dict[str, int]:
        totals: dict[str, int] = defaultdict(int)
        with self._lock:
            for entry in self._state.ledger:
                if entry.item_id == item_id:
                    totals[entry.adjustment_type] += entry.quantity_delta
        return dict(totals)

    def ledger_quantity_by_item(self) -> dict[int, int]:
        totals: dict[int, int] = defaultdict(int)
        with self._lock:
            for entry in self._state.ledger:
                totals[entry.item_id] += entry.quantity_delta
        return dict(totals)

    def sale_history(self) -> dict[int, SaleHistory]:
        history: dict[int, SaleHistory] = {}
        with self._lock:
            sales = [e for e in self._state.ledger if e.adjustment_type == "sale"]
        for entry in sales:
            prev = history.get(entry.item_id)
            if prev is None:
                history[entry.item_id] = SaleHistory(
                    item_id=entry.item_id,
                    quantity_sold=-entry.quantity_delta,
                    first_sale_at=entry.occurred_at,
                    last_sale_at=entry.occurred_at,
                )
            else:
                history[entry.item_id] = SaleHistory(
                    item_id=entry.item_id,
                    quantity_sold=prev.quantity_sold - entry.quantity_delta,
                    first_sale_at=min(prev.first_sale_at, entry.occurred_at),
                    last_sale_at=max(prev.last_sale_at, entry.occurred_at),
                )
        return history

    # -- invoices -----------------------------------------------------------

    def count_invoices_with_prefix(self, prefix: str) -> int:
        with self._lock:
            return sum(1 for inv in self._state.invoices.values() if inv.invoice_number.startswith(prefix))

    def insert_invoice(self, *, invoice_number, customer_name, customer_phone,
                       discount_cents, total_cents, payment_mode, created_by,
                       created_at) -> Invoice:
        with self._lock:
            invoice = Invoice(
                id=self._state.next_id("invoices"),
                invoice_number=invoice_number,
                customer_name=customer_name,
                customer_phone=customer_phone,
                discount_cents=discount_cents,
                total_cents=total_cents,
                payment_mode=payment_mode,
                created_by=created_by,
                created_at=created_at,
            )
            self._state.invoices[invoice.id] = invoice
            self._state.invoice_lines[invoice.id] = []
            return invoice

    def insert_invoice_line(self, *, invoice_id, line_number, item_id, quantity,
                            unit_price_cents, unit_cost_cents,
                            line_total_cents) -> InvoiceLine:
        with self._lock:
            line = InvoiceLine(
                id=self._state.next_id("invoice_lines"),
                invoice_id=invoice_id,
                line_number=line_number,
                item_id=item_id,
                quantity=quantity,
                unit_price_cents=unit_price_cents,
                unit_cost_cents=unit_cost_cents,
                line_total_cents=line_total_cents,
            )
            self._state.invoice_lines.setdefault(invoice_id, []).append(line)
            return line

    def get_invoice(self, invoice_id: int) -> Invoice | None:
        with self._lock:
            invoice = self._state.invoices.get(invoice_id)
            if invoice is None:
                return None
            lines = sorted(self._state.invoice_lines.get(invoice_id, []), key=lambda l: l.line_number)
        return dataclasses.replace(invoice, lines=tuple(lines))

    def list_invoices(self, *, start=None, end=None, limit=None, offset=0) -> list[Invoice]:
        with self._lock:
            rows = [i for i in self._state.invoices.values() if _in_window(i.created_at, start, end)]
        rows.sort(key=lambda i: (i.created_at, i.id), reverse=True)
        return _page(rows, limit, offset)

    def list_invoice_lines(self, invoice_id: int) -> list[InvoiceLine]:
        with self._lock:
            lines = list(self._state.invoice_lines.get(invoice_id, []))
        return sorted(lines, key=lambda l: l.line_number)

    # -- returns ------------------------------------------------------------

    def count_returns_with_prefix(self, prefix: str) -> int:
        with self._lock:
            return sum(1 for r in self._state.returns.values() if r.return_number.startswith(prefix))

    def insert_return(self, *, return_number, invoice_id, reason, total_cents, notes,
                      status, created_by, returned_at) -> SalesReturn:
        with self._lock:
            sales_return = SalesReturn(
                id=self._state.next_id("returns"),
                return_number=return_number,
                invoice_id=invoice_id,
                reason=reason,
                total_cents=total_cents,
                notes=notes,
                status=status,
                created_by=created_by,
                returned_at=returned_at,
            )
            self._state.returns[sales_return.id] = sales_return
            self._state.return_lines[sales_return.id] = []
            return sales_return

    def insert_return_line(self, *, return_id, item_id, quantity, rate_cents,
                           line_total_cents, unit_cost_cents) -> ReturnLine:
        with self._lock:
            line = ReturnLine(
                id=self._state.next_id("return_lines"),
                return_id=return_id,
                item_id=item_id,
                quantity=quantity,
                rate_cents=rate_cents,
                line_total_cents=line_total_cents,
                unit_cost_cents=unit_cost_cents,
            )
            self._state.return_lines.setdefault(return_id, []).append(line)
            return line

    def get_return(self, return_id: int) -> SalesReturn | None:
        with self._lock:
            sales_return = self._state.returns.get(return_id)
            if sales_return is None:
                return None
            lines = list(self._state.return_lines.get(return_id, []))
        return dataclasses.replace(sales_return, lines=tuple(lines))

    def _return_matches(self, invoice_id, status, start, end) -> list[SalesReturn]:
        return [
            r for r in self._state.returns.values()
            if (invoice_id is None or r.invoice_id == invoice_id)
            and (status is None or r.status == status)
            and _in_window(r.returned_at, start, end)
        ]

    def list_returns(self, *, invoice_id=None, status=None, start=None, end=None,
                     limit=None, offset=0) -> list[SalesReturn]:
        with self._lock:
            rows = self._return_matches(invoice_id, status, start, end)
        rows.sort(key=lambda r: (r.returned_at, r.id), reverse=True)
        return _page(rows, limit, offset)

    def count_returns(self, *, invoice_id=None, status=None, start=None, end=None) -> int:
        with self._lock:
            return len(self._return_matches(invoice_id, status, start, end))

    def update_return(self, return_id: int, **changes) -> SalesReturn | None:
        unknown = set(changes) - RETURN_MUTABLE_FIELDS
        if unknown:
            raise TypeError(f"update_return got unexpected fields: {sorted(unknown)}")
        with self._lock:
            sales_return = self._state.returns.get(return_id)
            if sales_return is None:
                return None
            self._state.returns[return_id] = dataclasses.replace(sales_return, **changes)
        return self.get_return(return_id)

    def returned_quantities(self, invoice_id: int, *, status: str) -> dict[int, int]:
        totals: dict[int, int] = defaultdict(int)
        with self._lock:
            for sales_return in self._state.returns.values():
                if sales_return.invoice_id != invoice_id or sales_return.status != status:
                    continue
                for line in self._state.return_lines.get(sales_return.id, []):
                    totals[line.item_id] += line.quantity
        return dict(totals)

    # -- settings -----------------------------------------------------------

    def get_setting_value(self, key: str) -> str | None:
        with self._lock:
            return self._state.settings.get(key)

    def put_setting_value(self, key: str, value: str) -> None:
        with self._lock:
            self._state.settings[key] = value

    def setting_values(self) -> dict[str, str]:
        with self._lock:
            return dict(self._state.settings)

    # -- aggregates ---------------------------------------------------------

    def _invoices_with_lines(self, start, end) -> list[tuple[Invoice, list[InvoiceLine]]]:
        with self._lock:
            return [
                (inv, list(self._state.invoice_lines.get(inv.id, [])))
                for inv in self._state.invoices.values()
                if _in_window(inv.created_at, start, end)
            ]

    def daily_sales(self, *, start, end) -> list[DailySales]:
        buckets: dict[str, list[int]] = {}
        for invoice, lines in self._invoices_with_lines(start, end):
            bucket = buckets.setdefault(day_key(invoice.created_at), [0, 0, 0, 0])
            bucket[0] += 1
            bucket[1] += sum(l.quantity for l in lines)
            bucket[2] += invoice.total_cents
            bucket[3] += invoice.discount_cents
        return [
            DailySales(day=d, invoice_count=c, items_sold=u, gross_cents=g, discount_cents=disc)
            for d, (c, u, g, disc) in buckets.items()
        ]

    def product_sales(self, *, start, end) -> list[ProductSales]:
        buckets: dict[int, list[int]] = {}
        for _invoice, lines in self._invoices_with_lines(start, end):
            for line in lines:
                bucket = buckets.setdefault(line.item_id, [0, 0])
                bucket[0] += line.quantity
                bucket[1] += line.quantity * line.unit_price_cents
        return [
            ProductSales(item_id=item_id, quantity_sold=qty, sales_cents=sales)
            for item_id, (qty, sales) in buckets.items()
        ]

    def daily_profit(self, *, start, end) -> list[DailyProfit]:
        buckets: dict[str, list[int]] = {}
        for invoice, lines in self._invoices_with_lines(start, end):
            if not lines:
                continue
            bucket = buckets.setdefault(day_key(invoice.created_at), [0, 0])
            for line in lines:
                bucket[0] += line.quantity * line.unit_price_cents
                bucket[1] += line.quantity * line.unit_cost_cents
        return [
            DailyProfit(day=d, revenue_cents=revenue, cost_cents=cost)
            for d, (revenue, cost) in buckets.items()
        ]

    def daily_returns(self, *, start, end, status) -> list[DailyReturns]:
        buckets: dict[str, list[int]] = {}
        with self._lock:
            selected = [
                (r, list(self._state.return_lines.get(r.id, [])))
                for r in self._state.returns.values()
                if r.status == status and _in_window(r.returned_at, start, end)
            ]
        for sales_return, lines in selected:
            if not lines:
                continue
            bucket = buckets.setdefault(day_key(sales_return.returned_at), [0, 0, 0])
            bucket[0] += 1
            bucket[1] += sum(l.line_total_cents for l in lines)
            bucket[2] += sum(l.quantity * l.unit_cost_cents for l in lines)
        return [
            DailyReturns(day=d, return_count=n, returns_cents=amount, returns_cost_cents=cost)
            for d, (n, amount, cost) in buckets.items()
        ]
