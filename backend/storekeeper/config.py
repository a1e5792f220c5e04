# backend/storekeeper/config.py
from __future__ import annotations
import os


class Config:
    # SQLite DB stored in backend/instance/storekeeper.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///storekeeper.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # "sql" (SQLAlchemy models) or "memory" (in-process, nothing persisted)
    STORAGE_BACKEND = os.environ.get("STORAGE_BACKEND", "sql")

    # Defaults to <instance_path>/backups when unset
    BACKUP_DIR = os.environ.get("BACKUP_DIR")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
