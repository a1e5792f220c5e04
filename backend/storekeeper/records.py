# Overview: Backend-neutral record types returned by every storage implementation.

"""
Both storage backends hand out these frozen dataclasses, never ORM rows or
mutable dicts. Services treat them as read-only snapshots; every change goes
back through the storage interface.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from .time_utils import to_utc_z


UNCATEGORIZED = "Uncategorized"


@dataclass(frozen=True)
class Item:
    id: int
    sku: str
    name: str
    price_cents: int
    cost_cents: int
    quantity: int
    category: str | None = None
    reorder_level: int | None = None
    max_stock: int | None = None
    last_sale_at: datetime | None = None
    fsn_classification: str | None = None
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "category": self.category or UNCATEGORIZED,
            "price_cents": self.price_cents,
            "cost_cents": self.cost_cents,
            "quantity": self.quantity,
            "reorder_level": self.reorder_level,
            "max_stock": self.max_stock,
            "last_sale_at": to_utc_z(self.last_sale_at),
            "fsn_classification": self.fsn_classification,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


@dataclass(frozen=True)
class LedgerEntry:
    id: int
    item_id: int
    adjustment_type: str
    quantity_delta: int
    note: str | None
    created_by: str
    occurred_at: datetime

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_id": self.item_id,
            "adjustment_type": self.adjustment_type,
            "quantity_delta": self.quantity_delta,
            "note": self.note,
            "created_by": self.created_by,
            "occurred_at": to_utc_z(self.occurred_at),
        }


@dataclass(frozen=True)
class InvoiceLine:
    id: int
    invoice_id: int
    line_number: int
    item_id: int
    quantity: int
    unit_price_cents: int
    # Purchase cost captured when the sale was recorded
    unit_cost_cents: int
    line_total_cents: int

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "line_number": self.line_number,
            "item_id": self.item_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "line_total_cents": self.line_total_cents,
        }


@dataclass(frozen=True)
class Invoice:
    id: int
    invoice_number: str
    customer_name: str | None
    customer_phone: str | None
    discount_cents: int
    total_cents: int
    payment_mode: str
    created_by: str
    created_at: datetime
    lines: tuple[InvoiceLine, ...] = field(default=(), compare=False)

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "payment_mode": self.payment_mode,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


@dataclass(frozen=True)
class ReturnLine:
    id: int
    return_id: int
    item_id: int
    quantity: int
    rate_cents: int
    line_total_cents: int
    # Copied from the original invoice line, not the item's current cost
    unit_cost_cents: int

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_id": self.return_id,
            "item_id": self.item_id,
            "quantity": self.quantity,
            "rate_cents": self.rate_cents,
            "line_total_cents": self.line_total_cents,
            "unit_cost_cents": self.unit_cost_cents,
        }


@dataclass(frozen=True)
class SalesReturn:
    id: int
    return_number: str
    invoice_id: int
    reason: str
    total_cents: int
    notes: str | None
    status: str
    created_by: str
    returned_at: datetime
    cancelled_at: datetime | None = None
    cancelled_by: str | None = None
    lines: tuple[ReturnLine, ...] = field(default=(), compare=False)

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "return_number": self.return_number,
            "invoice_id": self.invoice_id,
            "reason": self.reason,
            "total_cents": self.total_cents,
            "notes": self.notes,
            "status": self.status,
            "created_by": self.created_by,
            "returned_at": to_utc_z(self.returned_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancelled_by": self.cancelled_by,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


# Aggregate rows produced by the storage backends for the reporting layer.

@dataclass(frozen=True)
class DailySales:
    day: str
    invoice_count: int
    items_sold: int
    gross_cents: int
    discount_cents: int


@dataclass(frozen=True)
class ProductSales:
    item_id: int
    quantity_sold: int
    sales_cents: int


@dataclass(frozen=True)
class DailyProfit:
    day: str
    revenue_cents: int
    cost_cents: int


@dataclass(frozen=True)
class DailyReturns:
    day: str
    return_count: int
    returns_cents: int
    returns_cost_cents: int


@dataclass(frozen=True)
class SaleHistory:
    item_id: int
    quantity_sold: int
    first_sale_at: datetime
    last_sale_at: datetime
