# Overview: Flask API routes for analytics reports; parses query arguments and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..services import reporting_service
from .errors import bool_arg, error_response


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/daily-sales")
def daily_sales_report():
    try:
        rows = reporting_service.daily_sales(
            start=request.args.get("start"),
            end=request.args.get("end"),
            order=request.args.get("order", "desc"),
        )
        return jsonify(rows), 200
    except Exception as exc:
        return error_response(exc, "build daily sales report")


@reports_bp.get("/product-sales")
def product_sales_report():
    try:
        rows = reporting_service.product_sales(
            start=request.args.get("start"),
            end=request.args.get("end"),
            search=request.args.get("search"),
        )
        return jsonify(rows), 200
    except Exception as exc:
        return error_response(exc, "build product sales report")


@reports_bp.get("/current-stock")
def current_stock_report():
    try:
        rows = reporting_service.current_stock(
            search=request.args.get("search"),
            low_stock_only=bool_arg("low_stock_only"),
        )
        return jsonify(rows), 200
    except Exception as exc:
        return error_response(exc, "build current stock report")


@reports_bp.get("/non-moving")
def non_moving_report():
    try:
        rows = reporting_service.non_moving_items(fsn=request.args.get("fsn") or None)
        return jsonify(rows), 200
    except Exception as exc:
        return error_response(exc, "build non-moving items report")


@reports_bp.get("/profit")
def profit_report():
    try:
        rows = reporting_service.profit_summary(
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
        return jsonify(rows), 200
    except Exception as exc:
        return error_response(exc, "build profit report")


@reports_bp.get("/dashboard")
def dashboard_report():
    try:
        return jsonify(reporting_service.dashboard_summary()), 200
    except Exception as exc:
        return error_response(exc, "build dashboard summary")
