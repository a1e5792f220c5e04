from __future__ import annotations

from ..extensions import db


class Item(db.Model):
    """
    Item master data plus the cached projection of its ledger.

    CACHED FIELDS:
    quantity, last_sale_at and fsn_classification are derived from
    stock_adjustments and kept in sync on every ledger append. They can be
    rebuilt at any time by replaying the ledger.

    Items are never deleted once referenced by the ledger; is_active=False
    hides them from stock reports instead.
    """
    __tablename__ = "items"
    __table_args__ = (
        db.Index("ix_items_name", "name"),
        db.Index("ix_items_active_fsn", "is_active", "fsn_classification"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(120), nullable=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_cents = db.Column(db.Integer, nullable=False, default=0)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=True)
    max_stock = db.Column(db.Integer, nullable=True)

    last_sale_at = db.Column(db.DateTime(timezone=True), nullable=True)
    fsn_classification = db.Column(db.String(1), nullable=True)  # F, S, N

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Item id={self.id} sku={self.sku!r} name={self.name!r} quantity={self.quantity}>"


class StockAdjustment(db.Model):
    """
    Append-only stock ledger. One row per quantity-changing event.

    Rows are never updated or deleted; corrections are offsetting rows.
    """
    __tablename__ = "stock_adjustments"
    __table_args__ = (
        db.Index("ix_stockadj_item_occurred", "item_id", "occurred_at"),
        db.Index("ix_stockadj_item_type", "item_id", "adjustment_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)

    adjustment_type = db.Column(db.String(32), nullable=False, index=True)
    quantity_delta = db.Column(db.Integer, nullable=False)

    note = db.Column(db.String(255), nullable=True)
    created_by = db.Column(db.String(64), nullable=False, default="system")

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    item = db.relationship("Item", backref=db.backref("stock_adjustments", lazy=True))

    def __repr__(self) -> str:
        return (
            f"<StockAdjustment id={self.id} item_id={self.item_id} "
            f"type={self.adjustment_type!r} delta={self.quantity_delta}>"
        )
