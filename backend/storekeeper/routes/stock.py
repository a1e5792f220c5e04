# Overview: Flask API routes for stock adjustments and the ledger; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..services import inventory_service, ledger_service
from ..services.settings_service import get_thresholds
from .errors import error_response, json_body, page_args


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.post("/adjustments")
def create_adjustment_route():
    """
    Manual stock adjustment.

    Request body:
    {
        "item_id": 1,
        "adjustment_type": "damage_write_off",
        "quantity": -2,              (signed delta)
        "note": "Cracked in transit", (optional)
        "created_by": "owner"         (optional)
    }

    Returns:
        201: Ledger entry created
        400: Invalid input or reserved adjustment type
        404: Item not found
        409: Adjustment would make stock negative
    """
    try:
        data = json_body()
        entry = inventory_service.adjust_stock(
            item_id=data.get("item_id"),
            adjustment_type=data.get("adjustment_type"),
            quantity=data.get("quantity"),
            note=data.get("note"),
            created_by=data.get("created_by") or "system",
            occurred_at=data.get("occurred_at"),
        )
        item = inventory_service.get_item(entry.item_id)
        return jsonify({"entry": entry.to_dict(), "item": item.to_dict()}), 201
    except Exception as exc:
        return error_response(exc, "adjust stock")


@stock_bp.get("/adjustments")
def list_adjustments_route():
    """Ledger history, newest first. Filters: item_id, adjustment_type, start, end."""
    try:
        limit, offset = page_args()
        filters = {
            "item_id": request.args.get("item_id", type=int),
            "adjustment_type": request.args.get("adjustment_type") or None,
            "start": request.args.get("start"),
            "end": request.args.get("end"),
        }
        entries = ledger_service.list_entries(limit=limit, offset=offset, **filters)
        total = ledger_service.count_entries(**filters)
        return jsonify({
            "entries": [e.to_dict() for e in entries],
            "total": total,
            "limit": limit,
            "offset": offset,
        }), 200
    except Exception as exc:
        return error_response(exc, "list stock adjustments")


@stock_bp.get("/items/<int:item_id>/summary")
def item_summary_route(item_id: int):
    try:
        item = inventory_service.get_item(item_id)
        return jsonify({
            "item": item.to_dict(),
            "quantity": item.quantity,
            "totals_by_type": ledger_service.totals_by_type(item_id),
        }), 200
    except Exception as exc:
        return error_response(exc, "summarize item stock")


@stock_bp.post("/rebuild")
def rebuild_route():
    try:
        corrections = inventory_service.rebuild_from_ledger()
        return jsonify({"corrections": corrections, "corrected": len(corrections)}), 200
    except Exception as exc:
        return error_response(exc, "rebuild stock from ledger")


@stock_bp.get("/reconcile")
def reconcile_route():
    try:
        drift = inventory_service.reconcile()
        return jsonify({"ok": not drift, "drift": drift}), 200
    except Exception as exc:
        return error_response(exc, "reconcile stock")


@stock_bp.post("/fsn/recompute")
def recompute_fsn_route():
    try:
        data = json_body()
        threshold = data.get("threshold_days") or get_thresholds().non_moving_threshold_days
        counts = inventory_service.recompute_fsn(threshold, as_of=data.get("as_of"))
        return jsonify({"threshold_days": threshold, "counts": counts}), 200
    except Exception as exc:
        return error_response(exc, "recompute FSN classification")
