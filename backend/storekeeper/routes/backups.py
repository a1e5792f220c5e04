# Overview: Flask API routes for database backups; parses input and returns JSON responses.

from flask import Blueprint, jsonify

from ..services import backup_service
from .errors import error_response, json_body


backups_bp = Blueprint("backups", __name__, url_prefix="/api/backups")


@backups_bp.get("")
def list_backups_route():
    try:
        return jsonify(backup_service.list_backups()), 200
    except Exception as exc:
        return error_response(exc, "list backups")


@backups_bp.post("")
def create_backup_route():
    try:
        return jsonify(backup_service.create_backup()), 201
    except Exception as exc:
        return error_response(exc, "create backup")


@backups_bp.post("/<filename>/restore")
def restore_backup_route(filename: str):
    try:
        return jsonify(backup_service.restore_backup(filename)), 200
    except Exception as exc:
        return error_response(exc, "restore backup")


@backups_bp.post("/<filename>/export")
def export_backup_route(filename: str):
    try:
        data = json_body()
        if not data.get("destination"):
            return jsonify({"error": "destination is required"}), 400
        return jsonify(backup_service.export_backup(filename, data["destination"])), 200
    except Exception as exc:
        return error_response(exc, "export backup")


@backups_bp.post("/import")
def import_backup_route():
    try:
        data = json_body()
        if not data.get("path"):
            return jsonify({"error": "path is required"}), 400
        return jsonify(backup_service.import_backup(data["path"])), 200
    except Exception as exc:
        return error_response(exc, "import backup")


@backups_bp.delete("/<filename>")
def delete_backup_route(filename: str):
    try:
        backup_service.delete_backup(filename)
        return jsonify({"deleted": filename}), 200
    except Exception as exc:
        return error_response(exc, "delete backup")


@backups_bp.post("/cleanup")
def cleanup_backups_route():
    try:
        data = json_body()
        deleted = backup_service.cleanup_backups(data.get("retention_days"))
        return jsonify({"deleted": deleted, "count": len(deleted)}), 200
    except Exception as exc:
        return error_response(exc, "clean up backups")
