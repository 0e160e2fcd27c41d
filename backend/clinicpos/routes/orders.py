# backend/clinicpos/routes/orders.py
"""
Order API routes.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import WorkflowError
from ..services import order_service, sales_service
from ..services.concurrency import unit_of_work


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.route("", methods=["POST"])
@require_actor
def create_order_route():
    """
    Create a pending order. Items follow the quote item rules.

    Request body:
    {
        "patient_id": int,
        "laboratory_id": int (optional),
        "appointment_id": int (optional),
        "items": [...],
        "discount": str (optional),
        "notes": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        with unit_of_work():
            order = order_service.create_order(data, g.actor_id)
        return jsonify(order.to_dict()), 201

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.route("", methods=["GET"])
def list_orders_route():
    try:
        orders = order_service.list_orders(
            status=request.args.get("status"),
            patient_id=request.args.get("patient_id", type=int),
        )
        return jsonify({"orders": [o.to_dict(include_items=False) for o in orders]}), 200
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.route("/<int:order_id>", methods=["GET"])
def get_order_route(order_id: int):
    try:
        return jsonify(order_service.get_order(order_id).to_dict()), 200
    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.route("/<int:order_id>/status", methods=["POST"])
@require_actor
def update_order_status_route(order_id: int):
    data = request.get_json(silent=True) or {}

    try:
        with unit_of_work():
            order = order_service.update_order_status(order_id, data.get("status"))
        return jsonify(order.to_dict(include_items=False)), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.route("/<int:order_id>/sale", methods=["POST"])
@require_actor
def create_sale_from_order_route(order_id: int):
    """
    Register the sale for an order.

    Request body:
    {
        "payments": [{"amount": str, "payment_method": str,
                      "reference_number": str (non-cash), "payment_date": "YYYY-MM-DD"}],
        "laboratory_id": int (optional),
        "laboratory_notes": str (optional)
    }

    Returns:
        201: Sale created, with items and payments
        409: Order cancelled or already sold
    """
    data = request.get_json(silent=True) or {}

    try:
        with unit_of_work():
            sale = sales_service.create_sale_from_order(
                order_id,
                g.actor_id,
                payments=data.get("payments") or [],
                laboratory_id=data.get("laboratory_id"),
                laboratory_notes=data.get("laboratory_notes"),
            )
            summary = sales_service.get_sale_summary(sale.id)
        return jsonify(summary), 201

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale from order")
        return jsonify({"error": "Internal server error"}), 500
