# Overview: Flask API routes for threshold settings; parses input and returns JSON responses.

from flask import Blueprint, jsonify

from ..services import settings_service
from .errors import error_response, json_body


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
def get_settings_route():
    try:
        return jsonify(settings_service.get_all_settings()), 200
    except Exception as exc:
        return error_response(exc, "get settings")


@settings_bp.put("")
def update_settings_route():
    """Validate every key first; any invalid value rejects the whole batch."""
    try:
        settings_service.set_settings(json_body())
        return jsonify(settings_service.get_all_settings()), 200
    except Exception as exc:
        return error_response(exc, "update settings")


@settings_bp.get("/defaults")
def get_defaults_route():
    return jsonify(settings_service.get_defaults()), 200


@settings_bp.get("/<key>")
def get_setting_route(key: str):
    try:
        return jsonify({"key": key, "value": settings_service.get_setting(key)}), 200
    except Exception as exc:
        return error_response(exc, "get setting")


@settings_bp.put("/<key>")
def update_setting_route(key: str):
    try:
        data = json_body()
        if "value" not in data:
            return jsonify({"error": "value is required"}), 400
        value = settings_service.set_setting(key, data["value"])
        return jsonify({"key": key, "value": value}), 200
    except Exception as exc:
        return error_response(exc, "update setting")
