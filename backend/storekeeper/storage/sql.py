# Overview: SQLAlchemy-backed storage (Flask-SQLAlchemy session, SQLite by default).

from __future__ import annotations

import functools
import threading
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy import func
from sqlalchemy.exc import OperationalError

from ..errors import StorageUnavailableError
from ..extensions import db
from ..models import (
    Invoice as InvoiceRow,
    InvoiceLine as InvoiceLineRow,
    Item as ItemRow,
    ReturnLine as ReturnLineRow,
    SalesReturn as SalesReturnRow,
    Setting as SettingRow,
    StockAdjustment,
)
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
from .base import ITEM_MUTABLE_FIELDS, RETURN_MUTABLE_FIELDS, StorageBackend


def _unavailable(fn):
    """Translate driver-level failures into StorageUnavailableError."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except OperationalError as exc:
            raise StorageUnavailableError(
                "Storage is unavailable",
                details={"operation": fn.__name__, "reason": str(exc.orig or exc)},
            ) from exc

    return wrapper


def _day(column):
    return func.strftime("%Y-%m-%d", column)


def _item_record(row: ItemRow) -> Item:
    return Item(
        id=row.id,
        sku=row.sku,
        name=row.name,
        price_cents=row.price_cents,
        cost_cents=row.cost_cents,
        quantity=row.quantity,
        category=row.category,
        reorder_level=row.reorder_level,
        max_stock=row.max_stock,
        last_sale_at=row.last_sale_at,
        fsn_classification=row.fsn_classification,
        is_active=bool(row.is_active),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _ledger_record(row: StockAdjustment) -> LedgerEntry:
    return LedgerEntry(
        id=row.id,
        item_id=row.item_id,
        adjustment_type=row.adjustment_type,
        quantity_delta=row.quantity_delta,
        note=row.note,
        created_by=row.created_by,
        occurred_at=row.occurred_at,
    )


def _invoice_line_record(row: InvoiceLineRow) -> InvoiceLine:
    return InvoiceLine(
        id=row.id,
        invoice_id=row.invoice_id,
        line_number=row.line_number,
        item_id=row.item_id,
        quantity=row.quantity,
        unit_price_cents=row.unit_price_cents,
        unit_cost_cents=row.unit_cost_cents,
        line_total_cents=row.line_total_cents,
    )


def _invoice_record(row: InvoiceRow, with_lines: bool = False) -> Invoice:
    return Invoice(
        id=row.id,
        invoice_number=row.invoice_number,
        customer_name=row.customer_name,
        customer_phone=row.customer_phone,
        discount_cents=row.discount_cents,
        total_cents=row.total_cents,
        payment_mode=row.payment_mode,
        created_by=row.created_by,
        created_at=row.created_at,
        lines=tuple(_invoice_line_record(l) for l in row.lines) if with_lines else (),
    )


def _return_line_record(row: ReturnLineRow) -> ReturnLine:
    return ReturnLine(
        id=row.id,
        return_id=row.return_id,
        item_id=row.item_id,
        quantity=row.quantity,
        rate_cents=row.rate_cents,
        line_total_cents=row.line_total_cents,
        unit_cost_cents=row.unit_cost_cents,
    )


def _return_record(row: SalesReturnRow, with_lines: bool = False) -> SalesReturn:
    return SalesReturn(
        id=row.id,
        return_number=row.return_number,
        invoice_id=row.invoice_id,
        reason=row.reason,
        total_cents=row.total_cents,
        notes=row.notes,
        status=row.status,
        created_by=row.created_by,
        returned_at=row.returned_at,
        cancelled_at=row.cancelled_at,
        cancelled_by=row.cancelled_by,
        lines=tuple(_return_line_record(l) for l in row.lines) if with_lines else (),
    )


def _between(query, column, start: datetime | None, end: datetime | None):
    if start is not None:
        query = query.filter(column >= start)
    if end is not None:
        query = query.filter(column < end)
    return query


class SqlStorage(StorageBackend):
    """
    Storage over the Flask-SQLAlchemy session.

    transaction() commits once at the end of the outermost block and rolls
    back on any exception. Inserts flush so generated ids are available to
    the rest of the unit of work.
    """

    name = "sql"

    def __init__(self):
        self._local = threading.local()

    @contextmanager
    def transaction(self):
        depth = getattr(self._local, "depth", 0)
        self._local.depth = depth + 1
        try:
            yield self
            if depth == 0:
                db.session.commit()
        except OperationalError as exc:
            if depth == 0:
                db.session.rollback()
            raise StorageUnavailableError(
                "Storage is unavailable",
                details={"operation": "commit", "reason": str(exc.orig or exc)},
            ) from exc
        except Exception:
            if depth == 0:
                db.session.rollback()
            raise
        finally:
            self._local.depth = depth

    # -- items --------------------------------------------------------------

    @_unavailable
    def insert_item(self, *, sku, name, price_cents, cost_cents, category=None,
                    reorder_level=None, max_stock=None) -> Item:
        row = ItemRow(
            sku=sku,
            name=name,
            price_cents=price_cents,
            cost_cents=cost_cents,
            category=category,
            reorder_level=reorder_level,
            max_stock=max_stock,
            quantity=0,
            is_active=True,
        )
        db.session.add(row)
        db.session.flush()
        return _item_record(row)

    @_unavailable
    def get_item(self, item_id: int, *, lock: bool = False) -> Item | None:
        query = db.session.query(ItemRow).filter_by(id=item_id)
        if lock:
            # SQLite ignores FOR UPDATE; server databases honor it.
            query = query.with_for_update()
        row = query.one_or_none()
        return _item_record(row) if row else None

    @_unavailable
    def get_item_by_sku(self, sku: str) -> Item | None:
        row = db.session.query(ItemRow).filter_by(sku=sku).one_or_none()
        return _item_record(row) if row else None

    @_unavailable
    def list_items(self, *, include_inactive: bool = False) -> list[Item]:
        query = db.session.query(ItemRow)
        if not include_inactive:
            query = query.filter(ItemRow.is_active.is_(True))
        rows = query.order_by(ItemRow.name.asc(), ItemRow.id.asc()).all()
        return [_item_record(r) for r in rows]

    @_unavailable
    def update_item(self, item_id: int, **changes) -> Item | None:
        unknown = set(changes) - ITEM_MUTABLE_FIELDS
        if unknown:
            raise TypeError(f"update_item got unexpected fields: {sorted(unknown)}")
        row = db.session.get(ItemRow, item_id)
        if row is None:
            return None
        for field_name, value in changes.items():
            setattr(row, field_name, value)
        db.session.flush()
        return _item_record(row)

    # -- ledger -------------------------------------------------------------

    @_unavailable
    def insert_ledger_entry(self, *, item_id, adjustment_type, quantity_delta, note,
                            created_by, occurred_at) -> LedgerEntry:
        row = StockAdjustment(
            item_id=item_id,
            adjustment_type=adjustment_type,
            quantity_delta=quantity_delta,
            note=note,
            created_by=created_by,
            occurred_at=occurred_at,
        )
        db.session.add(row)
        db.session.flush()
        return _ledger_record(row)

    def _ledger_query(self, item_id, adjustment_type, start, end):
        query = db.session.query(StockAdjustment)
        if item_id is not None:
            query = query.filter(StockAdjustment.item_id == item_id)
        if adjustment_type is not None:
            query = query.filter(StockAdjustment.adjustment_type == adjustment_type)
        return _between(query, StockAdjustment.occurred_at, start, end)

    @_unavailable
    def list_ledger_entries(self, *, item_id=None, adjustment_type=None, start=None,
                            end=None, limit=None, offset=0) -> list[LedgerEntry]:
        query = self._ledger_query(item_id, adjustment_type, start, end).order_by(
            StockAdjustment.occurred_at.desc(), StockAdjustment.id.desc()
        )
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return [_ledger_record(r) for r in query.all()]

    @_unavailable
    def count_ledger_entries(self, *, item_id=None, adjustment_type=None, start=None,
                             end=None) -> int:
        return self._ledger_query(item_id, adjustment_type, start, end).count()

    @_unavailable
    def ledger_totals_by_type(self, item_id: int) -> dict[str, int]:
        rows = (
            db.session.query(
                StockAdjustment.adjustment_type,
                func.coalesce(func.sum(StockAdjustment.quantity_delta), 0),
            )
            .filter(StockAdjustment.item_id == item_id)
            .group_by(StockAdjustment.adjustment_type)
            .all()
        )
        return {adj_type: int(total) for adj_type, total in rows}

    @_unavailable
    def ledger_quantity_by_item(self) -> dict[int, int]:
        rows = (
            db.session.query(
                StockAdjustment.item_id,
                func.coalesce(func.sum(StockAdjustment.quantity_delta), 0),
            )
            .group_by(StockAdjustment.item_id)
            .all()
        )
        return {item_id: int(total) for item_id, total in rows}

    @_unavailable
    def sale_history(self) -> dict[int, SaleHistory]:
        rows = (
            db.session.query(
                StockAdjustment.item_id,
                func.coalesce(func.sum(StockAdjustment.quantity_delta), 0),
                func.min(StockAdjustment.occurred_at),
                func.max(StockAdjustment.occurred_at),
            )
            .filter(StockAdjustment.adjustment_type == "sale")
            .group_by(StockAdjustment.item_id)
            .all()
        )
        return {
            item_id: SaleHistory(
                item_id=item_id,
                quantity_sold=-int(total),
                first_sale_at=first_at,
                last_sale_at=last_at,
            )
            for item_id, total, first_at, last_at in rows
        }

    # -- invoices -----------------------------------------------------------

    @_unavailable
    def count_invoices_with_prefix(self, prefix: str) -> int:
        return (
            db.session.query(func.count(InvoiceRow.id))
            .filter(InvoiceRow.invoice_number.like(f"{prefix}%"))
            .scalar()
        ) or 0

    @_unavailable
    def insert_invoice(self, *, invoice_number, customer_name, customer_phone,
                       discount_cents, total_cents, payment_mode, created_by,
                       created_at) -> Invoice:
        row = InvoiceRow(
            invoice_number=invoice_number,
            customer_name=customer_name,
            customer_phone=customer_phone,
            discount_cents=discount_cents,
            total_cents=total_cents,
            payment_mode=payment_mode,
            created_by=created_by,
            created_at=created_at,
        )
        db.session.add(row)
        db.session.flush()
        return _invoice_record(row)

    @_unavailable
    def insert_invoice_line(self, *, invoice_id, line_number, item_id, quantity,
                            unit_price_cents, unit_cost_cents,
                            line_total_cents) -> InvoiceLine:
        row = InvoiceLineRow(
            invoice_id=invoice_id,
            line_number=line_number,
            item_id=item_id,
            quantity=quantity,
            unit_price_cents=unit_price_cents,
            unit_cost_cents=unit_cost_cents,
            line_total_cents=line_total_cents,
        )
        db.session.add(row)
        db.session.flush()
        return _invoice_line_record(row)

    @_unavailable
    def get_invoice(self, invoice_id: int) -> Invoice | None:
        row = db.session.get(InvoiceRow, invoice_id)
        return _invoice_record(row, with_lines=True) if row else None

    @_unavailable
    def list_invoices(self, *, start=None, end=None, limit=None, offset=0) -> list[Invoice]:
        query = _between(db.session.query(InvoiceRow), InvoiceRow.created_at, start, end)
        query = query.order_by(InvoiceRow.created_at.desc(), InvoiceRow.id.desc())
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return [_invoice_record(r) for r in query.all()]

    @_unavailable
    def list_invoice_lines(self, invoice_id: int) -> list[InvoiceLine]:
        rows = (
            db.session.query(InvoiceLineRow)
            .filter(InvoiceLineRow.invoice_id == invoice_id)
            .order_by(InvoiceLineRow.line_number.asc())
            .all()
        )
        return [_invoice_line_record(r) for r in rows]

    # -- returns ------------------------------------------------------------

    @_unavailable
    def count_returns_with_prefix(self, prefix: str) -> int:
        return (
            db.session.query(func.count(SalesReturnRow.id))
            .filter(SalesReturnRow.return_number.like(f"{prefix}%"))
            .scalar()
        ) or 0

    @_unavailable
    def insert_return(self, *, return_number, invoice_id, reason, total_cents, notes,
                      status, created_by, returned_at) -> SalesReturn:
        row = SalesReturnRow(
            return_number=return_number,
            invoice_id=invoice_id,
            reason=reason,
            total_cents=total_cents,
            notes=notes,
            status=status,
            created_by=created_by,
            returned_at=returned_at,
        )
        db.session.add(row)
        db.session.flush()
        return _return_record(row)

    @_unavailable
    def insert_return_line(self, *, return_id, item_id, quantity, rate_cents,
                           line_total_cents, unit_cost_cents) -> ReturnLine:
        row = ReturnLineRow(
            return_id=return_id,
            item_id=item_id,
            quantity=quantity,
            rate_cents=rate_cents,
            line_total_cents=line_total_cents,
            unit_cost_cents=unit_cost_cents,
        )
        db.session.add(row)
        db.session.flush()
        return _return_line_record(row)

    @_unavailable
    def get_return(self, return_id: int) -> SalesReturn | None:
        row = db.session.get(SalesReturnRow, return_id)
        return _return_record(row, with_lines=True) if row else None

    def _returns_query(self, invoice_id, status, start, end):
        query = db.session.query(SalesReturnRow)
        if invoice_id is not None:
            query = query.filter(SalesReturnRow.invoice_id == invoice_id)
        if status is not None:
            query = query.filter(SalesReturnRow.status == status)
        return _between(query, SalesReturnRow.returned_at, start, end)

    @_unavailable
    def list_returns(self, *, invoice_id=None, status=None, start=None, end=None,
                     limit=None, offset=0) -> list[SalesReturn]:
        query = self._returns_query(invoice_id, status, start, end).order_by(
            SalesReturnRow.returned_at.desc(), SalesReturnRow.id.desc()
        )
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return [_return_record(r) for r in query.all()]

    @_unavailable
    def count_returns(self, *, invoice_id=None, status=None, start=None, end=None) -> int:
        return self._returns_query(invoice_id, status, start, end).count()

    @_unavailable
    def update_return(self, return_id: int, **changes) -> SalesReturn | None:
        unknown = set(changes) - RETURN_MUTABLE_FIELDS
        if unknown:
            raise TypeError(f"update_return got unexpected fields: {sorted(unknown)}")
        row = db.session.get(SalesReturnRow, return_id)
        if row is None:
            return None
        for field_name, value in changes.items():
            setattr(row, field_name, value)
        db.session.flush()
        return _return_record(row, with_lines=True)

    @_unavailable
    def returned_quantities(self, invoice_id: int, *, status: str) -> dict[int, int]:
        rows = (
            db.session.query(
                ReturnLineRow.item_id,
                func.coalesce(func.sum(ReturnLineRow.quantity), 0),
            )
            .join(SalesReturnRow, SalesReturnRow.id == ReturnLineRow.return_id)
            .filter(SalesReturnRow.invoice_id == invoice_id)
            .filter(SalesReturnRow.status == status)
            .group_by(ReturnLineRow.item_id)
            .all()
        )
        return {item_id: int(qty) for item_id, qty in rows}

    # -- settings -----------------------------------------------------------

    @_unavailable
    def get_setting_value(self, key: str) -> str | None:
        row = db.session.get(SettingRow, key)
        return row.value if row else None

    @_unavailable
    def put_setting_value(self, key: str, value: str) -> None:
        row = db.session.get(SettingRow, key)
        if row is None:
            db.session.add(SettingRow(key=key, value=value))
        else:
            row.value = value
        db.session.flush()

    @_unavailable
    def setting_values(self) -> dict[str, str]:
        return {row.key: row.value for row in db.session.query(SettingRow).all()}

    # -- aggregates ---------------------------------------------------------

    @_unavailable
    def daily_sales(self, *, start, end) -> list[DailySales]:
        day = _day(InvoiceRow.created_at)
        headers = _between(
            db.session.query(
                day.label("day"),
                func.count(InvoiceRow.id),
                func.coalesce(func.sum(InvoiceRow.total_cents), 0),
                func.coalesce(func.sum(InvoiceRow.discount_cents), 0),
            ),
            InvoiceRow.created_at,
            start,
            end,
        ).group_by(day).all()

        # Units come from lines; kept separate so header sums are not multiplied by the join.
        units = dict(
            _between(
                db.session.query(day.label("day"), func.coalesce(func.sum(InvoiceLineRow.quantity), 0))
                .join(InvoiceRow, InvoiceRow.id == InvoiceLineRow.invoice_id),
                InvoiceRow.created_at,
                start,
                end,
            ).group_by(day).all()
        )

        return [
            DailySales(
                day=d,
                invoice_count=int(count),
                items_sold=int(units.get(d, 0)),
                gross_cents=int(total),
                discount_cents=int(discount),
            )
            for d, count, total, discount in headers
        ]

    @_unavailable
    def product_sales(self, *, start, end) -> list[ProductSales]:
        rows = _between(
            db.session.query(
                InvoiceLineRow.item_id,
                func.coalesce(func.sum(InvoiceLineRow.quantity), 0),
                func.coalesce(func.sum(InvoiceLineRow.quantity * InvoiceLineRow.unit_price_cents), 0),
            ).join(InvoiceRow, InvoiceRow.id == InvoiceLineRow.invoice_id),
            InvoiceRow.created_at,
            start,
            end,
        ).group_by(InvoiceLineRow.item_id).all()
        return [
            ProductSales(item_id=item_id, quantity_sold=int(qty), sales_cents=int(sales))
            for item_id, qty, sales in rows
        ]

    @_unavailable
    def daily_profit(self, *, start, end) -> list[DailyProfit]:
        day = _day(InvoiceRow.created_at)
        rows = _between(
            db.session.query(
                day.label("day"),
                func.coalesce(func.sum(InvoiceLineRow.quantity * InvoiceLineRow.unit_price_cents), 0),
                func.coalesce(func.sum(InvoiceLineRow.quantity * InvoiceLineRow.unit_cost_cents), 0),
            ).join(InvoiceRow, InvoiceRow.id == InvoiceLineRow.invoice_id),
            InvoiceRow.created_at,
            start,
            end,
        ).group_by(day).all()
        return [
            DailyProfit(day=d, revenue_cents=int(revenue), cost_cents=int(cost))
            for d, revenue, cost in rows
        ]

    @_unavailable
    def daily_returns(self, *, start, end, status) -> list[DailyReturns]:
        day = _day(SalesReturnRow.returned_at)
        rows = _between(
            db.session.query(
                day.label("day"),
                func.count(func.distinct(SalesReturnRow.id)),
                func.coalesce(func.sum(ReturnLineRow.line_total_cents), 0),
                func.coalesce(func.sum(ReturnLineRow.quantity * ReturnLineRow.unit_cost_cents), 0),
            )
            .join(ReturnLineRow, ReturnLineRow.return_id == SalesReturnRow.id)
            .filter(SalesReturnRow.status == status),
            SalesReturnRow.returned_at,
            start,
            end,
        ).group_by(day).all()
        return [
            DailyReturns(
                day=d,
                return_count=int(count),
                returns_cents=int(amount),
                returns_cost_cents=int(cost),
            )
            for d, count, amount, cost in rows
        ]
