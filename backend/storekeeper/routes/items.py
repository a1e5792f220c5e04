# Overview: Flask API routes for the item master; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..services import inventory_service
from .errors import bool_arg, error_response, json_body


items_bp = Blueprint("items", __name__, url_prefix="/api/items")


@items_bp.get("")
def list_items_route():
    try:
        items = inventory_service.list_items(
            search=request.args.get("search"),
            include_inactive=bool_arg("include_inactive"),
        )
        return jsonify([i.to_dict() for i in items]), 200
    except Exception as exc:
        return error_response(exc, "list items")


@items_bp.post("")
def create_item_route():
    """
    Create an item.

    Request body:
    {
        "sku": "BP-100",
        "name": "Brake Pad",
        "price_cents": 45000,
        "cost_cents": 30000,
        "category": "Brakes",        (optional)
        "reorder_level": 5,          (optional)
        "max_stock": 50,             (optional)
        "opening_stock": 10,         (optional, default 0)
        "created_by": "owner"        (optional)
    }
    """
    try:
        data = json_body()
        item = inventory_service.create_item(
            sku=data.get("sku"),
            name=data.get("name"),
            price_cents=data.get("price_cents", 0),
            cost_cents=data.get("cost_cents", 0),
            category=data.get("category"),
            reorder_level=data.get("reorder_level"),
            max_stock=data.get("max_stock"),
            opening_stock=data.get("opening_stock", 0),
            created_by=data.get("created_by") or "system",
        )
        return jsonify(item.to_dict()), 201
    except Exception as exc:
        return error_response(exc, "create item")


@items_bp.get("/<int:item_id>")
def get_item_route(item_id: int):
    try:
        return jsonify(inventory_service.get_item(item_id).to_dict()), 200
    except Exception as exc:
        return error_response(exc, "get item")


@items_bp.get("/by-sku/<sku>")
def get_item_by_sku_route(sku: str):
    try:
        return jsonify(inventory_service.get_item_by_sku(sku).to_dict()), 200
    except Exception as exc:
        return error_response(exc, "get item by sku")


@items_bp.patch("/<int:item_id>")
def update_item_route(item_id: int):
    try:
        item = inventory_service.update_item(item_id, **json_body())
        return jsonify(item.to_dict()), 200
    except Exception as exc:
        return error_response(exc, "update item")


@items_bp.delete("/<int:item_id>")
def deactivate_item_route(item_id: int):
    """Soft delete: items referenced by the ledger are never removed."""
    try:
        item = inventory_service.deactivate_item(item_id)
        return jsonify(item.to_dict()), 200
    except Exception as exc:
        return error_response(exc, "deactivate item")
