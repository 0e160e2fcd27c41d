# backend/clinicpos/routes/discounts.py
"""
Discount request API routes.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import WorkflowError
from ..services import catalog_service, discount_service
from ..services.concurrency import unit_of_work


discounts_bp = Blueprint("discounts", __name__, url_prefix="/api/discounts")


def _serialize(discount) -> dict:
    return discount.to_dict(valid=discount_service.is_valid(discount))


@discounts_bp.route("", methods=["POST"])
@require_actor
def create_discount_route():
    """
    Request a discount on a catalog item.

    Request body:
    {
        "item_type": "product"|"lens",
        "item_id": int,
        "discount_percentage": str,
        "patient_id": int (required unless is_global),
        "is_global": bool (optional),
        "expiry_date": "YYYY-MM-DD" (optional),
        "reason": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        with unit_of_work():
            ref = catalog_service.parse_ref(data.get("item_type"), data.get("item_id"))
            discount = discount_service.create_discount_request(
                requester_id=g.actor_id,
                ref=ref,
                discount_percentage=data.get("discount_percentage"),
                patient_id=data.get("patient_id"),
                expiry_date=data.get("expiry_date"),
                is_global=bool(data.get("is_global", False)),
                reason=data.get("reason"),
            )
        return jsonify(_serialize(discount)), 201

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create discount request")
        return jsonify({"error": "Internal server error"}), 500


@discounts_bp.route("", methods=["GET"])
def list_discounts_route():
    try:
        ref = None
        if request.args.get("item_type"):
            ref = catalog_service.parse_ref(request.args.get("item_type"), request.args.get("item_id"))
        discounts = discount_service.list_discount_requests(
            status=request.args.get("status"),
            ref=ref,
            patient_id=request.args.get("patient_id", type=int),
        )
        return jsonify({"discounts": [_serialize(d) for d in discounts]}), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list discount requests")
        return jsonify({"error": "Internal server error"}), 500


@discounts_bp.route("/active", methods=["GET"])
def active_discounts_route():
    """Valid discounts for one item, best first. Query: item_type, item_id, patient_id (optional)."""
    try:
        ref = catalog_service.parse_ref(request.args.get("item_type"), request.args.get("item_id"))
        discounts = discount_service.get_active_discounts(ref, request.args.get("patient_id", type=int))
        return jsonify({"discounts": [_serialize(d) for d in discounts]}), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load active discounts")
        return jsonify({"error": "Internal server error"}), 500


@discounts_bp.route("/<int:discount_id>", methods=["GET"])
def get_discount_route(discount_id: int):
    try:
        return jsonify(_serialize(discount_service.get_discount_request(discount_id))), 200
    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code


@discounts_bp.route("/<int:discount_id>/approve", methods=["POST"])
@require_actor
def approve_discount_route(discount_id: int):
    data = request.get_json(silent=True) or {}

    try:
        with unit_of_work():
            discount = discount_service.approve_discount_request(discount_id, g.actor_id, data.get("notes"))
        return jsonify(_serialize(discount)), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to approve discount request")
        return jsonify({"error": "Internal server error"}), 500


@discounts_bp.route("/<int:discount_id>/reject", methods=["POST"])
@require_actor
def reject_discount_route(discount_id: int):
    data = request.get_json(silent=True) or {}

    try:
        with unit_of_work():
            discount = discount_service.reject_discount_request(discount_id, g.actor_id, data.get("reason"))
        return jsonify(_serialize(discount)), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reject discount request")
        return jsonify({"error": "Internal server error"}), 500


@discounts_bp.route("/<int:discount_id>", methods=["DELETE"])
@require_actor
def withdraw_discount_route(discount_id: int):
    try:
        with unit_of_work():
            discount_service.withdraw_discount_request(discount_id, g.actor_id)
        return jsonify({"deleted": discount_id}), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to withdraw discount request")
        return jsonify({"error": "Internal server error"}), 500
