# Overview: Shared request helpers for the API blueprints; error-to-status mapping and body parsing.

from __future__ import annotations

from flask import current_app, jsonify, request

from ..errors import (
    BackupError,
    ExcessReturnQuantityError,
    InsufficientStockError,
    NotFoundError,
    StorageUnavailableError,
    StorekeeperError,
    ValidationError,
)


STATUS_BY_ERROR = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (InsufficientStockError, 409),
    (ExcessReturnQuantityError, 409),
    (BackupError, 409),
    (StorageUnavailableError, 503),
)


def error_response(exc: Exception, action: str):
    """
    Map a service exception to a JSON error response.

    Known errors carry their message and details; anything else is logged
    with a traceback and reported as a 500.
    """
    if isinstance(exc, StorekeeperError):
        for error_cls, status in STATUS_BY_ERROR:
            if isinstance(exc, error_cls):
                break
        else:
            status = 400
        if status >= 500:
            current_app.logger.error("Failed to %s: %s", action, exc)
        body = {"error": str(exc)}
        if exc.details:
            body["details"] = exc.details
        return jsonify(body), status

    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error"}), 500


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("JSON body must be an object")
    return data


def bool_arg(name: str, default: bool = False) -> bool:
    value = request.args.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def page_args(default_limit: int = 100) -> tuple[int, int]:
    limit = request.args.get("limit", default_limit, type=int)
    offset = request.args.get("offset", 0, type=int)
    if limit < 0 or offset < 0:
        raise ValidationError("limit and offset must be >= 0")
    return limit, offset
