# backend/clinicpos/routes/quotes.py
"""
Quote API routes: creation, header edits, status moves and conversion to a sale or an order.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import WorkflowError
from ..services import order_service, quote_service
from ..services.concurrency import unit_of_work


quotes_bp = Blueprint("quotes", __name__, url_prefix="/api/quotes")


@quotes_bp.route("", methods=["POST"])
@require_actor
def create_quote_route():
    """
    Create a pending quote.

    Request body:
    {
        "patient_id": int,
        "items": [{"item_type": "product"|"lens", "item_id": int, "quantity": int,
                   "price": str (optional), "discount": str (optional),
                   "discount_request_id": int (optional)}],
        "subtotal"/"tax"/"total": str (optional, all three or none),
        "discount": str (optional),
        "expiration_date": "YYYY-MM-DD" (optional),
        "notes": str (optional)
    }

    Returns:
        201: Quote created
        400: Validation failed (nothing written)
        404: Patient or catalog item not found
    """
    data = request.get_json(silent=True) or {}

    try:
        with unit_of_work():
            quote = quote_service.create_quote(data, g.actor_id)
        return jsonify(quote.to_dict()), 201

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create quote")
        return jsonify({"error": "Internal server error"}), 500


@quotes_bp.route("", methods=["GET"])
def list_quotes_route():
    status = request.args.get("status")
    patient_id = request.args.get("patient_id", type=int)
    limit = request.args.get("limit", default=100, type=int)
    offset = request.args.get("offset", default=0, type=int)

    try:
        rows, total = quote_service.list_quotes(status=status, patient_id=patient_id, limit=limit, offset=offset)
        return jsonify({
            "quotes": [q.to_dict(include_items=False) for q in rows],
            "total": total,
            "limit": limit,
            "offset": offset,
        }), 200
    except Exception:
        current_app.logger.exception("Failed to list quotes")
        return jsonify({"error": "Internal server error"}), 500


@quotes_bp.route("/<int:quote_id>", methods=["GET"])
def get_quote_route(quote_id: int):
    try:
        return jsonify(quote_service.get_quote(quote_id).to_dict()), 200
    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code


@quotes_bp.route("/<int:quote_id>", methods=["PATCH"])
@require_actor
def update_quote_route(quote_id: int):
    """
    Partial update of header fields (patient, totals, expiration, notes).

    Returns:
        200: Updated quote
        400: Validation failed or items supplied
        409: Quote already converted
    """
    data = request.get_json(silent=True) or {}

    try:
        with unit_of_work():
            quote = quote_service.update_quote(quote_id, data)
        return jsonify(quote.to_dict()), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update quote")
        return jsonify({"error": "Internal server error"}), 500


@quotes_bp.route("/<int:quote_id>/status", methods=["POST"])
@require_actor
def update_quote_status_route(quote_id: int):
    data = request.get_json(silent=True) or {}

    try:
        with unit_of_work():
            quote = quote_service.update_quote_status(quote_id, data.get("status"))
        return jsonify(quote.to_dict(include_items=False)), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update quote status")
        return jsonify({"error": "Internal server error"}), 500


@quotes_bp.route("/<int:quote_id>/convert", methods=["POST"])
@require_actor
def convert_quote_route(quote_id: int):
    """
    Convert an open quote into a pending sale.

    Returns:
        201: Sale created (quote is now converted)
        404: Quote not found
        409: Already converted, rejected/expired, or past its expiration date
        503: Storage unavailable (nothing written, safe to retry)
    """
    try:
        with unit_of_work():
            sale = quote_service.convert_quote_to_sale(quote_id, g.actor_id)
        return jsonify(sale.to_dict()), 201

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to convert quote")
        return jsonify({"error": "Internal server error"}), 500


@quotes_bp.route("/<int:quote_id>/order", methods=["POST"])
@require_actor
def convert_quote_to_order_route(quote_id: int):
    """
    Convert an open quote into a pending lab-facing order.

    Request body (optional):
    {
        "laboratory_id": 3
    }

    Returns:
        201: Order created (quote is now converted)
        404: Quote or laboratory not found
        409: Already converted, rejected/expired, or past its expiration date
    """
    data = request.get_json(silent=True) or {}

    try:
        with unit_of_work():
            order = order_service.create_order_from_quote(quote_id, g.actor_id, data.get("laboratory_id"))
        return jsonify(order.to_dict()), 201

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to convert quote to order")
        return jsonify({"error": "Internal server error"}), 500
