# backend/clinicpos/routes/laboratory.py
"""
Laboratory order API routes.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import WorkflowError
from ..services import laboratory_service
from ..services.concurrency import unit_of_work


laboratory_bp = Blueprint("laboratory", __name__, url_prefix="/api/laboratory-orders")


@laboratory_bp.route("", methods=["POST"])
@require_actor
def create_laboratory_order_route():
    """
    Request body:
    {
        "laboratory_id": int,
        "patient_id": int,
        "order_id": int (optional),
        "sale_id": int (optional),
        "priority": "low"|"normal"|"high"|"urgent" (optional),
        "estimated_completion_date": "YYYY-MM-DD" (optional),
        "notes": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        with unit_of_work():
            lab_order = laboratory_service.create_laboratory_order(data, g.actor_id)
        return jsonify(lab_order.to_dict(include_history=True)), 201

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create laboratory order")
        return jsonify({"error": "Internal server error"}), 500


@laboratory_bp.route("", methods=["GET"])
def list_laboratory_orders_route():
    try:
        lab_orders = laboratory_service.list_laboratory_orders(
            status=request.args.get("status"),
            laboratory_id=request.args.get("laboratory_id", type=int),
            patient_id=request.args.get("patient_id", type=int),
        )
        return jsonify({"laboratory_orders": [o.to_dict() for o in lab_orders]}), 200
    except Exception:
        current_app.logger.exception("Failed to list laboratory orders")
        return jsonify({"error": "Internal server error"}), 500


@laboratory_bp.route("/stats", methods=["GET"])
def laboratory_stats_route():
    try:
        return jsonify(laboratory_service.laboratory_order_stats()), 200
    except Exception:
        current_app.logger.exception("Failed to compute laboratory stats")
        return jsonify({"error": "Internal server error"}), 500


@laboratory_bp.route("/<int:lab_order_id>", methods=["GET"])
def get_laboratory_order_route(lab_order_id: int):
    try:
        lab_order = laboratory_service.get_laboratory_order(lab_order_id)
        return jsonify(lab_order.to_dict(include_history=True)), 200
    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code


@laboratory_bp.route("/<int:lab_order_id>/status", methods=["POST"])
@require_actor
def update_laboratory_status_route(lab_order_id: int):
    """
    Append a status to the history.

    Request body:
    {
        "status": "pending"|"in_process"|"sent_to_lab"|"ready_for_delivery"|"delivered"|"cancelled",
        "notes": str (optional)
    }

    Repeating the current status returns 200 without a new history row.
    """
    data = request.get_json(silent=True) or {}

    try:
        with unit_of_work():
            lab_order = laboratory_service.update_laboratory_order_status(
                lab_order_id, data.get("status"), g.actor_id, notes=data.get("notes")
            )
        return jsonify(lab_order.to_dict(include_history=True)), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update laboratory order status")
        return jsonify({"error": "Internal server error"}), 500


@laboratory_bp.route("/<int:lab_order_id>/history", methods=["GET"])
def get_laboratory_history_route(lab_order_id: int):
    try:
        history = laboratory_service.get_status_history(lab_order_id)
        return jsonify({"history": [h.to_dict() for h in history]}), 200
    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code


@laboratory_bp.route("/<int:lab_order_id>", methods=["DELETE"])
@require_actor
def delete_laboratory_order_route(lab_order_id: int):
    try:
        with unit_of_work():
            laboratory_service.delete_laboratory_order(lab_order_id)
        return jsonify({"deleted": lab_order_id}), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete laboratory order")
        return jsonify({"error": "Internal server error"}), 500
