from __future__ import annotations

from ..extensions import db


class SalesReturn(db.Model):
    """
    Return document against one invoice.

    LIFECYCLE:
    1. completed: written with its lines; stock restored through `return`
       ledger entries.
    2. cancelled: status flipped and offsetting `manual_deduction` entries
       appended. The row and its lines are kept for audit.
    """
    __tablename__ = "sales_returns"
    __table_args__ = (
        db.Index("ix_sales_returns_status_returned", "status", "returned_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number, e.g. "RET-20261018-001" (sequence per calendar day)
    return_number = db.Column(db.String(32), nullable=False, unique=True)

    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)

    reason = db.Column(db.String(32), nullable=False)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, default="completed", index=True)

    created_by = db.Column(db.String(64), nullable=False, default="system")
    returned_at = db.Column(db.DateTime(timezone=True), nullable=False)

    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by = db.Column(db.String(64), nullable=True)

    invoice = db.relationship("Invoice", backref=db.backref("returns", lazy=True))
    lines = db.relationship("ReturnLine", backref="sales_return", lazy=True, order_by="ReturnLine.id")

    def __repr__(self) -> str:
        return f"<SalesReturn id={self.id} number={self.return_number!r} status={self.status!r}>"


class ReturnLine(db.Model):
    __tablename__ = "return_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("sales_returns.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    rate_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    # Cost snapshot from the original invoice line (profit netting)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
