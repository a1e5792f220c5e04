# Overview: Flask API routes for health and version checks; returns JSON responses.

# backend/storekeeper/routes/system.py
"""
Health and version endpoints.

/api/health reports the active storage backend and, for the sql backend,
database reachability. 503 when the store cannot be queried.
"""

import sys
import time

from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..storage import get_storage
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")

API_VERSION = "1.0.0"


def check_storage_health() -> dict:
    start_time = time.time()
    storage = get_storage()
    try:
        if storage.name == "sql":
            db.session.execute(text("SELECT 1"))
        item_count = len(storage.list_items(include_inactive=True))
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "backend": storage.name,
            "latency_ms": round(elapsed_ms, 2),
            "details": {"items": item_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Storage health check failed")
        return {
            "status": "unhealthy",
            "backend": storage.name,
            "latency_ms": round(elapsed_ms, 2),
            "error": "Storage error",
        }


@system_bp.get("/health")
def health():
    storage_health = check_storage_health()
    http_status = 200 if storage_health["status"] == "healthy" else 503
    return {
        "status": storage_health["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {"storage": storage_health},
    }, http_status


@system_bp.get("/version")
def version():
    return {
        "api_version": API_VERSION,
        "environment": "development" if current_app.debug else "production",
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }
