from __future__ import annotations

from ..extensions import db


class Invoice(db.Model):
    """
    Sale header. Written once, together with its lines and ledger entries.

    customer_name is nullable: a walking customer has no record.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.Index("ix_invoices_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number, e.g. "INV-20261018-0001"
    invoice_number = db.Column(db.String(32), nullable=False, unique=True)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)

    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)
    payment_mode = db.Column(db.String(16), nullable=False, default="cash")

    created_by = db.Column(db.String(64), nullable=False, default="system")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    lines = db.relationship(
        "InvoiceLine",
        backref="invoice",
        lazy=True,
        order_by="InvoiceLine.line_number",
    )

    def __repr__(self) -> str:
        return f"<Invoice id={self.id} number={self.invoice_number!r} total_cents={self.total_cents}>"


class InvoiceLine(db.Model):
    """
    Individual line on an invoice.

    CRITICAL: unit_cost_cents is the item's purchase cost snapshotted when the
    sale was recorded. Profit reports read this column, never the item's
    current cost, so historical figures stay stable after price changes.
    """
    __tablename__ = "invoice_lines"
    __table_args__ = (
        db.UniqueConstraint("invoice_id", "line_number", name="uq_invoice_lines_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)

    def __repr__(self) -> str:
        return f"<InvoiceLine id={self.id} invoice_id={self.invoice_id} item_id={self.item_id} qty={self.quantity}>"
