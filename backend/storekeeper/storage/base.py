# Overview: Storage interface shared by the SQL and in-memory backends.

"""
Storage contract (authoritative)

- Every method returns records from storekeeper.records (frozen dataclasses).
- Writes must run inside transaction(). A transaction is all-or-nothing: on any
  exception nothing written inside the block is visible to later readers.
- Nested transaction() blocks join the outermost one.
- Date filters take UTC-naive datetimes: start is inclusive, end is exclusive.
  Services translate calendar-day ranges with time_utils.day_window().
- The ledger has no update/delete methods.
- Storage does no business validation. Callers check stock, return bounds and
  settings ranges before writing.
"""

from __future__ import annotations

import abc
from contextlib import AbstractContextManager
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


ITEM_MUTABLE_FIELDS = frozenset({
    "sku",
    "name",
    "category",
    "price_cents",
    "cost_cents",
    "quantity",
    "reorder_level",
    "max_stock",
    "last_sale_at",
    "fsn_classification",
    "is_active",
})

RETURN_MUTABLE_FIELDS = frozenset({"status", "cancelled_at", "cancelled_by"})


class StorageBackend(abc.ABC):
    name: str = "abstract"

    # -- transactions -------------------------------------------------------

    @abc.abstractmethod
    def transaction(self) -> AbstractContextManager:
        """All-or-nothing unit of work."""

    # -- items --------------------------------------------------------------

    @abc.abstractmethod
    def insert_item(
        self,
        *,
        sku: str,
        name: str,
        price_cents: int,
        cost_cents: int,
        category: str | None = None,
        reorder_level: int | None = None,
        max_stock: int | None = None,
    ) -> Item:
        """Create an item with zero quantity."""

    @abc.abstractmethod
    def get_item(self, item_id: int, *, lock: bool = False) -> Item | None:
        ...

    @abc.abstractmethod
    def get_item_by_sku(self, sku: str) -> Item | None:
        ...

    @abc.abstractmethod
    def list_items(self, *, include_inactive: bool = False) -> list[Item]:
        """Items ordered by name."""

    @abc.abstractmethod
    def update_item(self, item_id: int, **changes) -> Item | None:
        """Apply changes limited to ITEM_MUTABLE_FIELDS. None if missing."""

    # -- ledger -------------------------------------------------------------

    @abc.abstractmethod
    def insert_ledger_entry(
        self,
        *,
        item_id: int,
        adjustment_type: str,
        quantity_delta: int,
        note: str | None,
        created_by: str,
        occurred_at: datetime,
    ) -> LedgerEntry:
        ...

    @abc.abstractmethod
    def list_ledger_entries(
        self,
        *,
        item_id: int | None = None,
        adjustment_type: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[LedgerEntry]:
        """Newest first (occurred_at desc, id desc)."""

    @abc.abstractmethod
    def count_ledger_entries(
        self,
        *,
        item_id: int | None = None,
        adjustment_type: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> int:
        ...

    @abc.abstractmethod
    def ledger_totals_by_type(self, item_id: int) -> dict[str, int]:
        """Signed sum of deltas per adjustment type (only types present)."""

    @abc.abstractmethod
    def ledger_quantity_by_item(self) -> dict[int, int]:
        """Signed sum of all deltas per item."""

    @abc.abstractmethod
    def sale_history(self) -> dict[int, SaleHistory]:
        """Units sold and first/last sale time per item, from `sale` entries."""

    # -- invoices -----------------------------------------------------------

    @abc.abstractmethod
    def count_invoices_with_prefix(self, prefix: str) -> int:
        ...

    @abc.abstractmethod
    def insert_invoice(
        self,
        *,
        invoice_number: str,
        customer_name: str | None,
        customer_phone: str | None,
        discount_cents: int,
        total_cents: int,
        payment_mode: str,
        created_by: str,
        created_at: datetime,
    ) -> Invoice:
        ...

    @abc.abstractmethod
    def insert_invoice_line(
        self,
        *,
        invoice_id: int,
        line_number: int,
        item_id: int,
        quantity: int,
        unit_price_cents: int,
        unit_cost_cents: int,
        line_total_cents: int,
    ) -> InvoiceLine:
        ...

    @abc.abstractmethod
    def get_invoice(self, invoice_id: int) -> Invoice | None:
        """Invoice with its lines attached."""

    @abc.abstractmethod
    def list_invoices(
        self,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Invoice]:
        """Newest first, without lines."""

    @abc.abstractmethod
    def list_invoice_lines(self, invoice_id: int) -> list[InvoiceLine]:
        ...

    # -- returns ------------------------------------------------------------

    @abc.abstractmethod
    def count_returns_with_prefix(self, prefix: str) -> int:
        ...

    @abc.abstractmethod
    def insert_return(
        self,
        *,
        return_number: str,
        invoice_id: int,
        reason: str,
        total_cents: int,
        notes: str | None,
        status: str,
        created_by: str,
        returned_at: datetime,
    ) -> SalesReturn:
        ...

    @abc.abstractmethod
    def insert_return_line(
        self,
        *,
        return_id: int,
        item_id: int,
        quantity: int,
        rate_cents: int,
        line_total_cents: int,
        unit_cost_cents: int,
    ) -> ReturnLine:
        ...

    @abc.abstractmethod
    def get_return(self, return_id: int) -> SalesReturn | None:
        """Return with its lines attached."""

    @abc.abstractmethod
    def list_returns(
        self,
        *,
        invoice_id: int | None = None,
        status: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[SalesReturn]:
        """Newest first, without lines."""

    @abc.abstractmethod
    def count_returns(
        self,
        *,
        invoice_id: int | None = None,
        status: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> int:
        ...

    @abc.abstractmethod
    def update_return(self, return_id: int, **changes) -> SalesReturn | None:
        """Apply changes limited to RETURN_MUTABLE_FIELDS. None if missing."""

    @abc.abstractmethod
    def returned_quantities(self, invoice_id: int, *, status: str) -> dict[int, int]:
        """Units returned per item on an invoice, for returns in `status`."""

    # -- settings -----------------------------------------------------------

    @abc.abstractmethod
    def get_setting_value(self, key: str) -> str | None:
        ...

    @abc.abstractmethod
    def put_setting_value(self, key: str, value: str) -> None:
        ...

    @abc.abstractmethod
    def setting_values(self) -> dict[str, str]:
        ...

    # -- aggregates for reporting --------------------------------------------

    @abc.abstractmethod
    def daily_sales(self, *, start: datetime | None, end: datetime | None) -> list[DailySales]:
        """Per creation day: invoice count, units, grand totals, discounts."""

    @abc.abstractmethod
    def product_sales(self, *, start: datetime | None, end: datetime | None) -> list[ProductSales]:
        """Per item: units sold and quantity x price."""

    @abc.abstractmethod
    def daily_profit(self, *, start: datetime | None, end: datetime | None) -> list[DailyProfit]:
        """Per day: line revenue and line cost (snapshotted cost)."""

    @abc.abstractmethod
    def daily_returns(
        self, *, start: datetime | None, end: datetime | None, status: str
    ) -> list[DailyReturns]:
        """Per return day: count, refund amount and cost of returned units."""
