from __future__ import annotations

from ..extensions import db


class Setting(db.Model):
    """
    Flat key-value store for persisted setting overrides.

    Values are stored as text and parsed against the setting definitions in
    settings_service; keys without a row fall back to their defaults.
    """
    __tablename__ = "settings"

    key = db.Column(db.String(128), primary_key=True)
    value = db.Column(db.Text, nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<Setting key={self.key!r} value={self.value!r}>"
