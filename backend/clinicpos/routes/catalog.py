# backend/clinicpos/routes/catalog.py
"""
Catalog API routes (products and lenses).
"""
from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_actor
from ..errors import WorkflowError
from ..services import catalog_service, discount_service
from ..services.concurrency import unit_of_work


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/catalog")


@catalog_bp.route("/products", methods=["POST"])
@require_actor
def create_product_route():
    data = request.get_json(silent=True) or {}

    try:
        with unit_of_work():
            product = catalog_service.create_product(
                code=data.get("code"),
                name=data.get("name"),
                price=data.get("price"),
                cost=data.get("cost"),
                description=data.get("description"),
            )
        return jsonify(product.to_dict()), 201

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.route("/lenses", methods=["POST"])
@require_actor
def create_lens_route():
    data = request.get_json(silent=True) or {}

    try:
        with unit_of_work():
            lens = catalog_service.create_lens(
                code=data.get("code"),
                name=data.get("name"),
                price=data.get("price"),
                cost=data.get("cost"),
                lens_type=data.get("lens_type"),
                material=data.get("material"),
            )
        return jsonify(lens.to_dict()), 201

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create lens")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.route("/<item_type>/<int:item_id>", methods=["GET"])
def get_catalog_entry_route(item_type: str, item_id: int):
    """Catalog record plus whether a valid discount currently exists for it."""
    try:
        ref = catalog_service.parse_ref(item_type, item_id)
        data = catalog_service.get_record(ref).to_dict()
        data["has_active_discount"] = discount_service.has_active_discount(ref)
        return jsonify(data), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load catalog entry")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.route("/<item_type>/<int:item_id>/price", methods=["PUT"])
@require_actor
def update_price_route(item_type: str, item_id: int):
    """
    Request body: {"price": str (> 0)}

    Existing discount requests keep their frozen prices.
    """
    data = request.get_json(silent=True) or {}

    try:
        with unit_of_work():
            ref = catalog_service.parse_ref(item_type, item_id)
            record = catalog_service.update_price(ref, data.get("price"))
        return jsonify(record.to_dict()), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update catalog price")
        return jsonify({"error": "Internal server error"}), 500
