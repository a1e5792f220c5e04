# Overview: Service-layer operations for database backups; file copies of the SQLite database.

from __future__ import annotations

import os
import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from flask import current_app

from ..errors import BackupError, NotFoundError, ValidationError
from ..extensions import db
from ..storage import get_storage
from ..time_utils import to_utc_z, utcnow
from . import settings_service

"""
Backup Rules (authoritative)

- Only a file-backed SQLite database under the sql storage backend can be
  backed up. Anything else raises BackupError.
- Backups live in BACKUP_DIR (default <instance_path>/backups) and are named
  storekeeper_backup_YYYY-MM-DD_HH-MM-SS.db.
- Restore and import write a safety copy of the current database first
  (pre_restore_safety_*.db / pre_import_safety_*.db).
- Connections are released before any copy touches the live file.
- Only *.db files inside BACKUP_DIR can be restored, exported or deleted.
"""

BACKUP_PREFIX = "storekeeper_backup_"
RESTORE_SAFETY_PREFIX = "pre_restore_safety_"
IMPORT_SAFETY_PREFIX = "pre_import_safety_"
BACKUP_SUFFIX = ".db"
TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"

SQLITE_HEADER = b"SQLite format 3\x00"


def backup_dir() -> Path:
    configured = current_app.config.get("BACKUP_DIR")
    path = Path(configured) if configured else Path(current_app.instance_path) / "backups"
    path.mkdir(parents=True, exist_ok=True)
    return path


def database_path() -> Path:
    if get_storage().name != "sql":
        raise BackupError("Backups require the sql storage backend")
    url = db.engine.url
    if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
        raise BackupError(
            "Backups are only supported for file-backed SQLite databases",
            details={"database": url.render_as_string(hide_password=True)},
        )
    path = Path(url.database)
    if not path.is_absolute():
        path = Path(current_app.instance_path) / path
    return path


def _release_connections() -> None:
    db.session.remove()
    db.engine.dispose()


def _timestamped(prefix: str) -> Path:
    directory = backup_dir()
    stamp = utcnow().strftime(TIMESTAMP_FORMAT)
    candidate = directory / f"{prefix}{stamp}{BACKUP_SUFFIX}"
    counter = 1
    while candidate.exists():
        candidate = directory / f"{prefix}{stamp}_{counter}{BACKUP_SUFFIX}"
        counter += 1
    return candidate


def _file_info(path: Path) -> dict:
    stat = path.stat()
    return {
        "filename": path.name,
        "path": str(path),
        "size_bytes": stat.st_size,
        "modified_at": to_utc_z(datetime.fromtimestamp(stat.st_mtime, timezone.utc)),
    }


def _backup_file(filename: str) -> Path:
    """Resolve a backup filename inside BACKUP_DIR; rejects paths and non-.db names."""
    if not filename or os.path.basename(filename) != filename or filename in (".", ".."):
        raise ValidationError("filename must be a plain file name", details={"filename": filename})
    if not filename.endswith(BACKUP_SUFFIX):
        raise ValidationError("Only .db backup files are supported", details={"filename": filename})
    path = backup_dir() / filename
    if not path.is_file():
        raise NotFoundError(f"Backup file not found: {filename}", details={"filename": filename})
    return path


def _copy_live_database(prefix: str) -> Optional[Path]:
    source = database_path()
    if not source.exists():
        return None
    _release_connections()
    target = _timestamped(prefix)
    shutil.copy2(source, target)
    return target


def create_backup() -> dict:
    source = database_path()
    if not source.exists():
        raise BackupError("Database file does not exist yet", details={"path": str(source)})
    target = _copy_live_database(BACKUP_PREFIX)
    current_app.logger.info("Backup created: %s", target.name)
    return _file_info(target)


def list_backups() -> list[dict]:
    """All .db files in BACKUP_DIR, newest first."""
    files = [p for p in backup_dir().iterdir() if p.is_file() and p.suffix == BACKUP_SUFFIX]
    files.sort(key=lambda p: p.stat().st_mtime, reverse=True)
    return [_file_info(p) for p in files]


def restore_backup(filename: str) -> dict:
    source = _backup_file(filename)
    target = database_path()
    safety = _copy_live_database(RESTORE_SAFETY_PREFIX)
    _release_connections()
    shutil.copy2(source, target)
    current_app.logger.warning(
        "Database restored from %s (safety copy: %s)", filename, safety.name if safety else None
    )
    return {
        "restored_from": filename,
        "safety_backup": safety.name if safety else None,
    }


def import_backup(path: str) -> dict:
    """Replace the live database with an external .db file."""
    source = Path(path or "")
    if source.suffix != BACKUP_SUFFIX:
        raise ValidationError("Only .db files can be imported", details={"path": str(source)})
    if not source.is_file():
        raise NotFoundError(f"Import file not found: {source}", details={"path": str(source)})
    with source.open("rb") as fh:
        if fh.read(len(SQLITE_HEADER)) != SQLITE_HEADER:
            raise ValidationError("File is not a SQLite database", details={"path": str(source)})

    target = database_path()
    safety = _copy_live_database(IMPORT_SAFETY_PREFIX)
    _release_connections()
    shutil.copy2(source, target)
    current_app.logger.warning(
        "Database imported from %s (safety copy: %s)", source, safety.name if safety else None
    )
    return {
        "imported_from": str(source),
        "safety_backup": safety.name if safety else None,
    }


def export_backup(filename: str, destination: str) -> dict:
    """Copy a backup out of BACKUP_DIR. destination may be a directory or a file path."""
    source = _backup_file(filename)
    dest = Path(destination)
    if dest.is_dir():
        dest = dest / source.name
    if not dest.parent.exists():
        raise ValidationError("Destination directory does not exist", details={"destination": str(dest.parent)})
    shutil.copy2(source, dest)
    current_app.logger.info("Backup %s exported to %s", filename, dest)
    return {"filename": filename, "destination": str(dest)}


def delete_backup(filename: str) -> bool:
    path = _backup_file(filename)
    path.unlink()
    current_app.logger.info("Backup deleted: %s", filename)
    return True


def cleanup_backups(retention_days: Optional[int] = None) -> list[str]:
    """Delete backups (and safety copies) older than retention_days."""
    if retention_days is None:
        retention_days = settings_service.get_setting("backup_retention_days")
    if isinstance(retention_days, bool) or not isinstance(retention_days, int) or retention_days < 1:
        raise ValidationError("retention_days must be a positive integer")

    cutoff = (datetime.now(timezone.utc) - timedelta(days=retention_days)).timestamp()
    prefixes = (BACKUP_PREFIX, RESTORE_SAFETY_PREFIX, IMPORT_SAFETY_PREFIX)
    deleted = []
    for path in backup_dir().iterdir():
        if not path.is_file() or path.suffix != BACKUP_SUFFIX or not path.name.startswith(prefixes):
            continue
        if path.stat().st_mtime < cutoff:
            path.unlink()
            deleted.append(path.name)

    if deleted:
        current_app.logger.info("Backup cleanup removed %s file(s)", len(deleted))
    return sorted(deleted)
