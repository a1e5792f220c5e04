# Overview: Flask API routes for invoices (recorded sales); parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..services import return_service, sales_service
from .errors import error_response, json_body, page_args


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.post("")
def record_sale_route():
    """
    Record a sale as one invoice.

    Request body:
    {
        "lines": [{"item_id": 1, "quantity": 2, "unit_price_cents": 45000}],
        "customer_name": "Ravi",      (optional; omitted for a walking customer)
        "customer_phone": "98...",    (optional)
        "discount_cents": 0,          (optional)
        "total_cents": 90000,         (optional; defaults to lines - discount)
        "payment_mode": "cash",       (optional)
        "created_by": "counter-1"     (optional)
    }

    Returns:
        201: Invoice with lines
        400: Invalid input
        404: Unknown item
        409: Insufficient stock (details name the item, available and requested)
    """
    try:
        data = json_body()
        invoice = sales_service.record_sale(
            data.get("lines"),
            customer_name=data.get("customer_name"),
            customer_phone=data.get("customer_phone"),
            discount_cents=data.get("discount_cents", 0),
            total_cents=data.get("total_cents"),
            payment_mode=data.get("payment_mode") or "cash",
            created_by=data.get("created_by") or "system",
            created_at=data.get("created_at"),
        )
        return jsonify(invoice.to_dict()), 201
    except Exception as exc:
        return error_response(exc, "record sale")


@invoices_bp.get("")
def list_invoices_route():
    try:
        limit, offset = page_args()
        invoices = sales_service.list_invoices(
            start=request.args.get("start"),
            end=request.args.get("end"),
            limit=limit,
            offset=offset,
        )
        return jsonify([i.to_dict(include_lines=False) for i in invoices]), 200
    except Exception as exc:
        return error_response(exc, "list invoices")


@invoices_bp.get("/<int:invoice_id>")
def get_invoice_route(invoice_id: int):
    try:
        return jsonify(sales_service.get_invoice(invoice_id).to_dict()), 200
    except Exception as exc:
        return error_response(exc, "get invoice")


@invoices_bp.get("/<int:invoice_id>/lines")
def list_invoice_lines_route(invoice_id: int):
    try:
        lines = sales_service.list_invoice_lines(invoice_id)
        return jsonify([l.to_dict() for l in lines]), 200
    except Exception as exc:
        return error_response(exc, "list invoice lines")


@invoices_bp.get("/<int:invoice_id>/returnable")
def returnable_route(invoice_id: int):
    """Units still returnable per item on the invoice."""
    try:
        remaining = return_service.returnable_quantities(invoice_id)
        return jsonify([
            {"item_id": item_id, "returnable": qty} for item_id, qty in sorted(remaining.items())
        ]), 200
    except Exception as exc:
        return error_response(exc, "get returnable quantities")
