# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/app/routes/sales.py
"""Sale engine API routes: drafts, items, hold/resume, completion, void, bills, history"""

from datetime import date

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import SaleEngineError
from ..services import activity_log_service, bill_service, sales_service
from ..decorators import require_context
from app.time_utils import business_day_bounds


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _engine_error(e: SaleEngineError):
    return jsonify(e.to_dict()), e.status_code


def _internal_error(message: str):
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/")
@require_context
def create_draft_route():
    """
    Create a new DRAFT sale, optionally with initial items.

    Body: table_id, table_number, customer_name, customer_phone, order_type,
    items: [{product_id, quantity}]
    """
    try:
        data = request.get_json(silent=True) or {}
        result = sales_service.create_draft(
            g.request_context,
            table_id=data.get("table_id"),
            table_number=data.get("table_number"),
            customer_name=data.get("customer_name"),
            customer_phone=data.get("customer_phone"),
            order_type=data.get("order_type"),
            items=data.get("items"),
        )
        return jsonify(result.to_dict()), 201

    except SaleEngineError as e:
        return _engine_error(e)
    except Exception:
        return _internal_error("Failed to create draft sale")


@sales_bp.get("/")
@require_context
def list_sales_route():
    """List sales for the business; filters: status, payment_method, date (YYYY-MM-DD)."""
    try:
        start = end = None
        date_str = request.args.get("date")
        if date_str:
            try:
                start, end = business_day_bounds(date.fromisoformat(date_str))
            except ValueError:
                return jsonify({"error": "date must be YYYY-MM-DD"}), 400

        sales = sales_service.list_sales(
            g.request_context,
            status=request.args.get("status"),
            payment_method=request.args.get("payment_method"),
            start=start,
            end=end,
            limit=request.args.get("limit", 200, type=int),
        )
        return jsonify({"sales": [sale.to_dict() for sale in sales]}), 200

    except SaleEngineError as e:
        return _engine_error(e)
    except Exception:
        return _internal_error("Failed to list sales")


@sales_bp.get("/held")
@require_context
def list_held_route():
    """Held bills; ?all=true includes other cashiers' bills."""
    cashier_only = request.args.get("all", "false").lower() != "true"
    results = sales_service.list_held_sales(g.request_context, cashier_only=cashier_only)
    return jsonify({"sales": [result.to_dict() for result in results]}), 200


@sales_bp.get("/activity/recent")
@require_context
def recent_activity_route():
    limit = request.args.get("limit", 50, type=int)
    entries = activity_log_service.get_recent_activity(g.request_context.business_id, limit=limit)
    return jsonify({"activity": [entry.to_dict() for entry in entries]}), 200


@sales_bp.get("/<int:sale_id>")
@require_context
def get_sale_route(sale_id: int):
    try:
        result = sales_service.get_sale_details(g.request_context, sale_id)
        return jsonify(result.to_dict()), 200

    except SaleEngineError as e:
        return _engine_error(e)


@sales_bp.get("/<int:sale_id>/history")
@require_context
def sale_history_route(sale_id: int):
    entries = activity_log_service.get_sale_history(sale_id, g.request_context.business_id)
    return jsonify({"history": [entry.to_dict() for entry in entries]}), 200


@sales_bp.post("/<int:sale_id>/items")
@require_context
def add_item_route(sale_id: int):
    """
    Add a product to the sale, reserving stock.

    Returns 422 when available stock cannot cover the new line quantity.
    """
    try:
        data = request.get_json(silent=True) or {}
        product_id = data.get("product_id")
        quantity = data.get("quantity")

        if product_id is None or quantity is None:
            return jsonify({"error": "product_id and quantity required"}), 400

        result = sales_service.add_item(g.request_context, sale_id, product_id, quantity)
        return jsonify(result.to_dict()), 201

    except SaleEngineError as e:
        return _engine_error(e)
    except Exception:
        return _internal_error("Failed to add sale item")


@sales_bp.patch("/<int:sale_id>/items/<int:item_id>")
@require_context
def update_item_route(sale_id: int, item_id: int):
    try:
        data = request.get_json(silent=True) or {}
        quantity = data.get("quantity")
        if quantity is None:
            return jsonify({"error": "quantity required"}), 400

        result = sales_service.update_item_quantity(g.request_context, sale_id, item_id, quantity)
        return jsonify(result.to_dict()), 200

    except SaleEngineError as e:
        return _engine_error(e)
    except Exception:
        return _internal_error("Failed to update sale item")


@sales_bp.delete("/<int:sale_id>/items/<int:item_id>")
@require_context
def remove_item_route(sale_id: int, item_id: int):
    """Remove a line; ?release_reservation=false keeps the reservation."""
    try:
        release = request.args.get("release_reservation", "true").lower() != "false"
        result = sales_service.remove_item(
            g.request_context, sale_id, item_id, release_reservation=release
        )
        return jsonify(result.to_dict()), 200

    except SaleEngineError as e:
        return _engine_error(e)
    except Exception:
        return _internal_error("Failed to remove sale item")


@sales_bp.post("/<int:sale_id>/hold")
@require_context
def hold_sale_route(sale_id: int):
    try:
        sale = sales_service.hold_sale(g.request_context, sale_id)
        return jsonify({"sale": sale.to_dict()}), 200

    except SaleEngineError as e:
        return _engine_error(e)
    except Exception:
        return _internal_error("Failed to hold sale")


@sales_bp.post("/<int:sale_id>/resume")
@require_context
def resume_sale_route(sale_id: int):
    try:
        result = sales_service.resume_sale(g.request_context, sale_id)
        return jsonify(result.to_dict()), 200

    except SaleEngineError as e:
        return _engine_error(e)
    except Exception:
        return _internal_error("Failed to resume sale")


@sales_bp.delete("/<int:sale_id>")
@require_context
def delete_draft_route(sale_id: int):
    try:
        sales_service.delete_draft(g.request_context, sale_id)
        return jsonify({"deleted": True, "sale_id": sale_id}), 200

    except SaleEngineError as e:
        return _engine_error(e)
    except Exception:
        return _internal_error("Failed to delete draft sale")


@sales_bp.post("/<int:sale_id>/complete")
@require_context
def complete_sale_route(sale_id: int):
    """
    Take payment and finalize the sale.

    Body: payment_method, amount_paid_cents, discount_cents (optional)
    """
    try:
        data = request.get_json(silent=True) or {}
        payment_method = data.get("payment_method")
        amount_paid_cents = data.get("amount_paid_cents")

        if not payment_method or amount_paid_cents is None:
            return jsonify({"error": "payment_method and amount_paid_cents required"}), 400

        receipt = sales_service.complete_sale(
            g.request_context,
            sale_id,
            payment_method=payment_method,
            amount_paid_cents=amount_paid_cents,
            discount_cents=data.get("discount_cents", 0),
        )
        return jsonify(receipt.to_dict()), 200

    except SaleEngineError as e:
        return _engine_error(e)
    except Exception:
        return _internal_error("Failed to complete sale")


@sales_bp.post("/<int:sale_id>/void")
@require_context
def void_sale_route(sale_id: int):
    """
    Void a sale. Completed sales are restocked and removed from shift totals.
    """
    try:
        data = request.get_json(silent=True) or {}
        reason = data.get("reason")

        if not reason:
            return jsonify({"error": "reason required"}), 400

        sale = sales_service.void_sale(g.request_context, sale_id, reason)
        return jsonify({"sale": sale.to_dict()}), 200

    except SaleEngineError as e:
        return _engine_error(e)
    except Exception:
        return _internal_error("Failed to void sale")


@sales_bp.post("/<int:sale_id>/transfer")
@require_context
def transfer_bill_route(sale_id: int):
    try:
        data = request.get_json(silent=True) or {}
        sale = bill_service.transfer_bill(
            g.request_context,
            sale_id,
            data.get("to_table_number"),
            to_table_id=data.get("to_table_id"),
        )
        return jsonify({"sale": sale.to_dict()}), 200

    except SaleEngineError as e:
        return _engine_error(e)
    except Exception:
        return _internal_error("Failed to transfer bill")


@sales_bp.post("/<int:sale_id>/merge")
@require_context
def merge_bills_route(sale_id: int):
    """Body: secondary_sale_ids, target_table_id, target_table_number"""
    try:
        data = request.get_json(silent=True) or {}
        result = bill_service.merge_bills(
            g.request_context,
            sale_id,
            data.get("secondary_sale_ids") or [],
            target_table_id=data.get("target_table_id"),
            target_table_number=data.get("target_table_number"),
        )
        return jsonify(result.to_dict()), 200

    except SaleEngineError as e:
        return _engine_error(e)
    except Exception:
        return _internal_error("Failed to merge bills")
