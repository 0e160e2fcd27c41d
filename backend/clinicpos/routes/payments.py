# backend/clinicpos/routes/payments.py
"""
Payment API routes.

Two channels share one ledger view:
- POST /api/payments/sales/<id>          payment taken at sale time
- POST /api/payments/sales/<id>/partial  later top-up against the balance
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import WorkflowError
from ..services import payment_service
from ..services.concurrency import unit_of_work


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


def _record(recorder, sale_id: int):
    data = request.get_json(silent=True) or {}

    with unit_of_work():
        payment = recorder(
            sale_id,
            data.get("amount"),
            data.get("payment_method"),
            g.actor_id,
            reference_number=data.get("reference_number"),
            payment_date=data.get("payment_date"),
            notes=data.get("notes"),
        )
        history = payment_service.get_payment_history(sale_id)
    return {"payment": payment.to_dict(), "sale": history}


@payments_bp.route("/sales/<int:sale_id>", methods=["POST"])
@require_actor
def add_sale_payment_route(sale_id: int):
    """
    Request body:
    {
        "amount": str (> 0),
        "payment_method": "cash"|"credit_card"|"debit_card"|"bank_transfer"|"check",
        "reference_number": str (required for non-cash methods),
        "payment_date": "YYYY-MM-DD" (optional, default today),
        "notes": str (optional)
    }

    Returns:
        201: Payment recorded, with the recomputed balance
        400: Invalid amount, method or missing reference
        404: Sale not found
        409: Sale cancelled or refunded
    """
    try:
        return jsonify(_record(payment_service.record_sale_payment, sale_id)), 201

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add sale payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.route("/sales/<int:sale_id>/partial", methods=["POST"])
@require_actor
def add_partial_payment_route(sale_id: int):
    try:
        return jsonify(_record(payment_service.record_partial_payment, sale_id)), 201

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add partial payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.route("/sales/<int:sale_id>", methods=["GET"])
def get_payment_history_route(sale_id: int):
    try:
        return jsonify(payment_service.get_payment_history(sale_id)), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load payment history")
        return jsonify({"error": "Internal server error"}), 500
