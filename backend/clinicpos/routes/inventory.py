# backend/clinicpos/routes/inventory.py
"""
Stock and inter-location transfer API routes.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import WorkflowError
from ..services import catalog_service, inventory_service, transfer_service
from ..services.concurrency import unit_of_work


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.route("/receive", methods=["POST"])
@require_actor
def receive_stock_route():
    """
    Request body:
    {
        "item_type": "product"|"lens",
        "item_id": int,
        "location_id": int,
        "quantity": int (>= 1)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        with unit_of_work():
            ref = catalog_service.parse_ref(data.get("item_type"), data.get("item_id"))
            row = inventory_service.receive_stock(ref, data.get("location_id"), data.get("quantity"))
        return jsonify(row.to_dict()), 201

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to receive stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.route("/stock", methods=["GET"])
def list_stock_route():
    try:
        ref = None
        if request.args.get("item_type"):
            ref = catalog_service.parse_ref(request.args.get("item_type"), request.args.get("item_id"))
        rows = inventory_service.list_stock(location_id=request.args.get("location_id", type=int), ref=ref)
        return jsonify({"items": [r.to_dict() for r in rows]}), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list stock")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# TRANSFERS
# =============================================================================

@inventory_bp.route("/transfers", methods=["POST"])
@require_actor
def create_transfer_route():
    """
    Create a pending transfer. Stock is checked when it completes.

    Request body:
    {
        "item_type": "product"|"lens",
        "item_id": int,
        "source_location_id": int,
        "destination_location_id": int,
        "quantity": int,
        "notes": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        with unit_of_work():
            ref = catalog_service.parse_ref(data.get("item_type"), data.get("item_id"))
            transfer = transfer_service.create_transfer(
                ref,
                data.get("source_location_id"),
                data.get("destination_location_id"),
                data.get("quantity"),
                g.actor_id,
                notes=data.get("notes"),
            )
        return jsonify(transfer.to_dict()), 201

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create transfer")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.route("/transfers", methods=["GET"])
def list_transfers_route():
    try:
        transfers = transfer_service.list_transfers(
            status=request.args.get("status"),
            location_id=request.args.get("location_id", type=int),
        )
        return jsonify({"transfers": [t.to_dict() for t in transfers]}), 200
    except Exception:
        current_app.logger.exception("Failed to list transfers")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.route("/transfers/<int:transfer_id>", methods=["GET"])
def get_transfer_route(transfer_id: int):
    try:
        return jsonify(transfer_service.get_transfer(transfer_id).to_dict()), 200
    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code


@inventory_bp.route("/transfers/<int:transfer_id>/complete", methods=["POST"])
@require_actor
def complete_transfer_route(transfer_id: int):
    """
    Move the stock.

    Returns:
        200: Transfer completed
        409: Not pending, or insufficient stock at the source (transfer stays pending)
    """
    try:
        with unit_of_work():
            transfer = transfer_service.complete_transfer(transfer_id, g.actor_id)
        return jsonify(transfer.to_dict()), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to complete transfer")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.route("/transfers/<int:transfer_id>/cancel", methods=["POST"])
@require_actor
def cancel_transfer_route(transfer_id: int):
    data = request.get_json(silent=True) or {}

    try:
        with unit_of_work():
            transfer = transfer_service.cancel_transfer(transfer_id, g.actor_id, reason=data.get("reason"))
        return jsonify(transfer.to_dict()), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel transfer")
        return jsonify({"error": "Internal server error"}), 500
