# backend/clinicpos/routes/sales.py
"""
Sale API routes: lifecycle, summary, statistics and lens price adjustments.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import WorkflowError
from ..services import laboratory_service, price_adjustment_service, sales_service
from ..services.concurrency import unit_of_work
from ..validation import coerce_date, unwrap


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.route("", methods=["GET"])
def list_sales_route():
    try:
        date_from = request.args.get("date_from")
        date_to = request.args.get("date_to")
        sales = sales_service.list_sales(
            patient_id=request.args.get("patient_id", type=int),
            status=request.args.get("status"),
            payment_status=request.args.get("payment_status"),
            date_from=unwrap(coerce_date("date_from", date_from)) if date_from else None,
            date_to=unwrap(coerce_date("date_to", date_to)) if date_to else None,
        )
        return jsonify({"sales": [s.to_dict(include_items=False) for s in sales]}), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.route("/stats", methods=["GET"])
def sale_stats_route():
    try:
        stats = sales_service.get_sale_stats(request.args.get("date_from"), request.args.get("date_to"))
        return jsonify(stats), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute sale stats")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.route("/<int:sale_id>", methods=["GET"])
def get_sale_route(sale_id: int):
    """Sale with items, both payment channels, adjustments and laboratory orders."""
    try:
        return jsonify(sales_service.get_sale_summary(sale_id)), 200
    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.route("/<int:sale_id>/complete", methods=["POST"])
@require_actor
def complete_sale_route(sale_id: int):
    try:
        with unit_of_work():
            sale = sales_service.complete_sale(sale_id)
        return jsonify(sale.to_dict(include_items=False)), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to complete sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.route("/<int:sale_id>/cancel", methods=["POST"])
@require_actor
def cancel_sale_route(sale_id: int):
    try:
        with unit_of_work():
            sale = sales_service.cancel_sale(sale_id, g.actor_id)
        return jsonify(sale.to_dict(include_items=False)), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.route("/<int:sale_id>/laboratory-order", methods=["POST"])
@require_actor
def create_laboratory_order_for_sale_route(sale_id: int):
    """Open (or return the existing) laboratory order for a sale."""
    data = request.get_json(silent=True) or {}

    try:
        with unit_of_work():
            lab_order = laboratory_service.create_laboratory_order_from_sale(
                sale_id,
                g.actor_id,
                laboratory_id=data.get("laboratory_id"),
                notes=data.get("notes"),
            )
        return jsonify(lab_order.to_dict(include_history=True)), 201

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create laboratory order for sale")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# LENS PRICE ADJUSTMENTS
# =============================================================================

@sales_bp.route("/<int:sale_id>/lens-adjustments", methods=["POST"])
@require_actor
def create_adjustment_route(sale_id: int):
    """
    Raise a lens price on this sale.

    Request body:
    {
        "lens_id": int,
        "adjusted_price": str (greater than the lens catalog price),
        "reason": str (optional)
    }

    Returns:
        201: Adjustment recorded
        400: Adjusted price not above the catalog price
        409: Lens already adjusted on this sale
    """
    data = request.get_json(silent=True) or {}

    try:
        with unit_of_work():
            adjustment = price_adjustment_service.create_adjustment(
                sale_id,
                data.get("lens_id"),
                data.get("adjusted_price"),
                g.actor_id,
                reason=data.get("reason"),
            )
        return jsonify(adjustment.to_dict()), 201

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create lens price adjustment")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.route("/<int:sale_id>/lens-adjustments", methods=["GET"])
def list_adjustments_route(sale_id: int):
    try:
        sales_service.get_sale(sale_id)
        return jsonify(price_adjustment_service.adjustment_summary(sale_id)), 200
    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.route("/<int:sale_id>/lens-adjustments/<int:adjustment_id>", methods=["DELETE"])
@require_actor
def remove_adjustment_route(sale_id: int, adjustment_id: int):
    try:
        with unit_of_work():
            price_adjustment_service.remove_adjustment(sale_id, adjustment_id)
        return jsonify({"deleted": adjustment_id}), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to remove lens price adjustment")
        return jsonify({"error": "Internal server error"}), 500
