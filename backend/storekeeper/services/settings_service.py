# Overview: Service-layer operations for threshold settings; typed catalog, validation and persisted overrides.

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from flask import current_app

from ..errors import ValidationError
from ..storage import get_storage


LOW_STOCK_METHODS = ("reorder_level", "percentage", "days_supply")

TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

TRUE_STRINGS = {"true", "1", "yes", "on"}
FALSE_STRINGS = {"false", "0", "no", "off"}

SETTINGS_CATALOG = [
    {
        "key": "low_stock_method",
        "type": "choice",
        "default": "reorder_level",
        "choices": LOW_STOCK_METHODS,
        "description": "How the current stock report decides an item is low.",
    },
    {
        "key": "low_stock_percentage",
        "type": "int",
        "default": 20,
        "min": 0,
        "max": 100,
        "description": "Low when quantity is at or below this percent of max stock.",
    },
    {
        "key": "low_stock_days_supply",
        "type": "int",
        "default": 15,
        "min": 1,
        "max": 30,
        "description": "Low when remaining stock covers at most this many days of sales.",
    },
    {
        "key": "non_moving_threshold_days",
        "type": "int",
        "default": 120,
        "min": 30,
        "max": 365,
        "description": "Days without a sale before an item is non-moving.",
    },
    {
        "key": "auto_backup_enabled",
        "type": "bool",
        "default": True,
        "description": "Whether the desktop shell schedules a daily backup.",
    },
    {
        "key": "auto_backup_time",
        "type": "time",
        "default": "23:00",
        "description": "Daily backup time, HH:MM 24h.",
    },
    {
        "key": "backup_retention_days",
        "type": "int",
        "default": 30,
        "min": 1,
        "max": 365,
        "description": "Backups older than this are removed by cleanup.",
    },
]

CATALOG_BY_KEY = {row["key"]: row for row in SETTINGS_CATALOG}


@dataclass(frozen=True)
class ThresholdConfig:
    """Snapshot of the settings the analytics reports depend on."""

    low_stock_method: str = "reorder_level"
    low_stock_percentage: int = 20
    low_stock_days_supply: int = 15
    non_moving_threshold_days: int = 120


def _definition(key: str) -> dict:
    try:
        return CATALOG_BY_KEY[key]
    except KeyError:
        raise ValidationError(f"Unknown setting {key!r}", details={"key": key}) from None


def _coerce(definition: dict, value: Any) -> Any:
    """Validate a value against its definition and return the typed value."""
    key = definition["key"]
    kind = definition["type"]

    if kind == "bool":
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in TRUE_STRINGS:
            return True
        if text in FALSE_STRINGS:
            return False
        raise ValidationError(f"{key} must be a boolean", details={"key": key, "value": value})

    if kind == "int":
        if isinstance(value, bool):
            raise ValidationError(f"{key} must be an integer", details={"key": key, "value": value})
        try:
            number = int(str(value).strip()) if not isinstance(value, int) else value
        except ValueError:
            raise ValidationError(f"{key} must be an integer", details={"key": key, "value": value}) from None
        lo, hi = definition["min"], definition["max"]
        if not lo <= number <= hi:
            raise ValidationError(
                f"{key} must be between {lo} and {hi}",
                details={"key": key, "value": number, "min": lo, "max": hi},
            )
        return number

    text = str(value).strip() if value is not None else ""
    if kind == "choice":
        if text not in definition["choices"]:
            raise ValidationError(
                f"{key} must be one of {', '.join(definition['choices'])}",
                details={"key": key, "value": value},
            )
        return text
    if kind == "time":
        if not TIME_RE.match(text):
            raise ValidationError(f"{key} must be HH:MM (24h)", details={"key": key, "value": value})
        return text
    raise ValidationError(f"Unsupported setting type {kind!r}", details={"key": key})


def _serialize(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _parse_stored(definition: dict, raw: str | None) -> Any:
    """Stored text -> typed value. Unparsable or out-of-range text yields the default."""
    if raw is None:
        return definition["default"]
    try:
        return _coerce(definition, raw)
    except ValidationError:
        current_app.logger.warning(
            "Ignoring invalid stored value for setting %s: %r", definition["key"], raw
        )
        return definition["default"]


def get_defaults() -> dict[str, Any]:
    return {row["key"]: row["default"] for row in SETTINGS_CATALOG}


def get_all_settings() -> dict[str, Any]:
    """Defaults merged with persisted overrides. Unknown stored keys are ignored."""
    stored = get_storage().setting_values()
    return {row["key"]: _parse_stored(row, stored.get(row["key"])) for row in SETTINGS_CATALOG}


def get_setting(key: str) -> Any:
    definition = _definition(key)
    return _parse_stored(definition, get_storage().get_setting_value(key))


def set_setting(key: str, value: Any) -> Any:
    return set_settings({key: value})[key]


def set_settings(values: dict[str, Any]) -> dict[str, Any]:
    """
    Validate every value first, then persist them in one transaction.
    Any invalid entry rejects the whole batch.
    """
    if not isinstance(values, dict) or not values:
        raise ValidationError("settings payload must be a non-empty object")

    cleaned: dict[str, Any] = {}
    errors = []
    for key, value in values.items():
        try:
            cleaned[key] = _coerce(_definition(key), value)
        except ValidationError as exc:
            errors.append({"key": key, "error": str(exc)})
    if errors:
        raise ValidationError("Invalid settings", details={"errors": errors})

    storage = get_storage()
    with storage.transaction():
        for key, value in cleaned.items():
            storage.put_setting_value(key, _serialize(value))

    current_app.logger.info("Settings updated: %s", ", ".join(sorted(cleaned)))
    return cleaned


def get_thresholds() -> ThresholdConfig:
    settings = get_all_settings()
    return ThresholdConfig(
        low_stock_method=settings["low_stock_method"],
        low_stock_percentage=settings["low_stock_percentage"],
        low_stock_days_supply=settings["low_stock_days_supply"],
        non_moving_threshold_days=settings["non_moving_threshold_days"],
    )
