# Overview: Flask API routes for sales returns; parses input and returns JSON responses.

# backend/storekeeper/routes/returns.py
"""
Sales Return API Routes

- Record a return against an invoice (stock comes back immediately)
- Cancel a return (stock is deducted again, the document is kept)
- Browse returns and summary counts
"""

from flask import Blueprint, jsonify, request

from ..services import return_service
from .errors import error_response, json_body, page_args


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.post("")
def record_return_route():
    """
    Request body:
    {
        "invoice_id": 12,
        "reason": "Defective",
        "notes": "Chain snapped",     (optional)
        "lines": [{"item_id": 3, "quantity": 1, "rate_cents": 32000}],
        "created_by": "counter-1"     (optional)
    }

    Returns:
        201: Return with lines
        400: Invalid input / item not on invoice
        404: Invoice not found
        409: Quantity exceeds what remains returnable
    """
    try:
        data = json_body()
        sales_return = return_service.record_return(
            invoice_id=data.get("invoice_id"),
            reason=data.get("reason"),
            notes=data.get("notes"),
            lines=data.get("lines"),
            created_by=data.get("created_by") or "system",
            returned_at=data.get("returned_at"),
        )
        return jsonify(sales_return.to_dict()), 201
    except Exception as exc:
        return error_response(exc, "record return")


@returns_bp.get("")
def list_returns_route():
    try:
        limit, offset = page_args()
        filters = {
            "invoice_id": request.args.get("invoice_id", type=int),
            "status": request.args.get("status") or None,
            "start": request.args.get("start"),
            "end": request.args.get("end"),
        }
        returns = return_service.list_returns(limit=limit, offset=offset, **filters)
        return jsonify({
            "returns": [r.to_dict(include_lines=False) for r in returns],
            "total": return_service.count_returns(**filters),
            "limit": limit,
            "offset": offset,
        }), 200
    except Exception as exc:
        return error_response(exc, "list returns")


@returns_bp.get("/stats")
def return_stats_route():
    try:
        return jsonify(return_service.return_stats()), 200
    except Exception as exc:
        return error_response(exc, "get return stats")


@returns_bp.get("/invoice-ids")
def returned_invoice_ids_route():
    try:
        return jsonify(sorted(return_service.returned_invoice_ids())), 200
    except Exception as exc:
        return error_response(exc, "list returned invoices")


@returns_bp.get("/<int:return_id>")
def get_return_route(return_id: int):
    try:
        return jsonify(return_service.get_return(return_id).to_dict()), 200
    except Exception as exc:
        return error_response(exc, "get return")


@returns_bp.post("/<int:return_id>/cancel")
def cancel_return_route(return_id: int):
    try:
        data = json_body()
        return_service.get_return(return_id)
        cancelled = return_service.cancel_return(return_id, cancelled_by=data.get("cancelled_by") or "system")
        if not cancelled:
            return jsonify({"error": "Return already cancelled"}), 409
        return jsonify(return_service.get_return(return_id).to_dict()), 200
    except Exception as exc:
        return error_response(exc, "cancel return")
