# Overview: Flask API routes for inventory and reservation visibility; parses input and returns JSON responses.

# backend/app/routes/inventory.py
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import SaleEngineError
from ..services import inventory_service, reservation_service
from ..decorators import require_context


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/")
@require_context
def list_inventory_route():
    rows = inventory_service.list_inventory(g.request_context.business_id)
    return jsonify({"inventory": [row.to_dict() for row in rows]}), 200


@inventory_bp.get("/low-stock")
@require_context
def low_stock_route():
    rows = inventory_service.list_low_stock(g.request_context.business_id)
    return jsonify({"inventory": [row.to_dict() for row in rows]}), 200


@inventory_bp.get("/<int:product_id>")
@require_context
def inventory_summary_route(product_id: int):
    """
    Committed, reserved and available stock for one product.

    available = committed - active reservations (floored at zero).
    """
    business_id = g.request_context.business_id
    try:
        inv = inventory_service.get_inventory(product_id, business_id)
        reserved = reservation_service.get_reserved_stock(product_id, business_id)
        return jsonify({
            "product_id": product_id,
            "committed": inv.current_stock,
            "reserved": reserved,
            "available": max(inv.current_stock - reserved, 0),
            "low_stock_alert": inv.low_stock_alert,
        }), 200

    except SaleEngineError as e:
        return jsonify(e.to_dict()), e.status_code


@inventory_bp.put("/<int:product_id>")
@require_context
def set_stock_route(product_id: int):
    """Body: quantity, low_stock_alert (optional)"""
    try:
        data = request.get_json(silent=True) or {}
        quantity = data.get("quantity")
        if not isinstance(quantity, int) or isinstance(quantity, bool):
            return jsonify({"error": "quantity must be an integer"}), 400

        inv = inventory_service.set_stock(
            product_id,
            g.request_context.business_id,
            quantity,
            low_stock_alert=data.get("low_stock_alert"),
        )
        return jsonify({"inventory": inv.to_dict()}), 200

    except SaleEngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to set stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/<int:product_id>/restock")
@require_context
def restock_route(product_id: int):
    try:
        data = request.get_json(silent=True) or {}
        quantity = data.get("quantity")
        if not isinstance(quantity, int) or isinstance(quantity, bool):
            return jsonify({"error": "quantity must be an integer"}), 400

        inv = inventory_service.restock(product_id, g.request_context.business_id, quantity)
        return jsonify({"inventory": inv.to_dict()}), 200

    except SaleEngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to restock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/reservations")
@require_context
def sale_reservations_route():
    """Reservations held by one sale: ?sale_id=<id>"""
    sale_id = request.args.get("sale_id", type=int)
    if not sale_id:
        return jsonify({"error": "sale_id required"}), 400

    reservations = [
        r for r in reservation_service.get_reservations_by_sale(sale_id)
        if r.business_id == g.request_context.business_id
    ]
    return jsonify({"reservations": [r.to_dict() for r in reservations]}), 200
