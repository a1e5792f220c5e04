from __future__ import annotations

from flask import Flask, current_app

from .base import StorageBackend
from .memory import MemoryStorage
from .sql import SqlStorage

EXTENSION_KEY = "storekeeper_storage"

BACKENDS = {
    "sql": SqlStorage,
    "memory": MemoryStorage,
}


def init_storage(app: Flask) -> StorageBackend:
    """Instantiate the backend named by STORAGE_BACKEND and attach it to the app."""
    backend_name = (app.config.get("STORAGE_BACKEND") or "sql").strip().lower()
    try:
        backend_cls = BACKENDS[backend_name]
    except KeyError:
        raise ValueError(
            f"Unknown STORAGE_BACKEND {backend_name!r}; expected one of {sorted(BACKENDS)}"
        ) from None

    storage = backend_cls()
    app.extensions[EXTENSION_KEY] = storage
    app.logger.info("Storage backend: %s", storage.name)
    return storage


def get_storage() -> StorageBackend:
    return current_app.extensions[EXTENSION_KEY]


__all__ = ["StorageBackend", "SqlStorage", "MemoryStorage", "init_storage", "get_storage"]
