# backend/clinicpos/services/laboratory_service.py
"""
Laboratory fulfillment tracker.

WHY: Lens work orders go to an external laboratory and come back over days.
Every status change is recorded as a new LaboratoryOrderStatus row; the
order's status column always matches the newest row.

EXPECTED FLOW:
    pending -> in_process -> sent_to_lab -> ready_for_delivery -> delivered
    cancelled from any non-terminal state

Ordering is not enforced (staff correct mistakes by moving orders back).
Backward moves and moves out of a terminal state are accepted and logged
as warnings. Repeating the current status is a no-op and writes no history.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..errors import InvalidStateTransition, NotFoundError, ValidationError
from ..extensions import db
from ..models import Laboratory, LaboratoryOrder, LaboratoryOrderStatus, Order, Patient, Sale
from ..time_utils import today
from ..validation import coerce_date, coerce_int, one_of, unwrap
from .concurrency import lock_for_update, run_with_retry
from .document_service import PREFIX_LAB, next_document_number


LAB_STATUS_PENDING = "pending"
LAB_STATUS_IN_PROCESS = "in_process"
LAB_STATUS_SENT_TO_LAB = "sent_to_lab"
LAB_STATUS_READY_FOR_DELIVERY = "ready_for_delivery"
LAB_STATUS_DELIVERED = "delivered"
LAB_STATUS_CANCELLED = "cancelled"

EXPECTED_FLOW = (
    LAB_STATUS_PENDING,
    LAB_STATUS_IN_PROCESS,
    LAB_STATUS_SENT_TO_LAB,
    LAB_STATUS_READY_FOR_DELIVERY,
    LAB_STATUS_DELIVERED,
)
LAB_STATUSES = EXPECTED_FLOW + (LAB_STATUS_CANCELLED,)
TERMINAL_LAB_STATUSES = (LAB_STATUS_DELIVERED, LAB_STATUS_CANCELLED)

# Orders past pending have physical work attached and cannot be deleted
DELETABLE_LAB_STATUSES = (LAB_STATUS_PENDING, LAB_STATUS_CANCELLED)

PRIORITIES = ("low", "normal", "high", "urgent")


def get_laboratory_order(lab_order_id: int) -> LaboratoryOrder:
    lab_order = db.session.get(LaboratoryOrder, lab_order_id)
    if not lab_order:
        raise NotFoundError(f"Laboratory order {lab_order_id} not found", {"laboratory_order_id": lab_order_id})
    return lab_order


def list_laboratory_orders(status: str | None = None, laboratory_id: int | None = None, patient_id: int | None = None):
    query = db.session.query(LaboratoryOrder)
    if status:
        query = query.filter(LaboratoryOrder.status == status)
    if laboratory_id:
        query = query.filter(LaboratoryOrder.laboratory_id == laboratory_id)
    if patient_id:
        query = query.filter(LaboratoryOrder.patient_id == patient_id)
    return query.order_by(LaboratoryOrder.id.desc()).all()


def _require_laboratory(laboratory_id) -> Laboratory:
    laboratory_id = unwrap(coerce_int("laboratory_id", laboratory_id, minimum=1))
    laboratory = db.session.get(Laboratory, laboratory_id)
    if not laboratory:
        raise NotFoundError(f"Laboratory {laboratory_id} not found", {"laboratory_id": laboratory_id})
    if laboratory.status != "active":
        raise ValidationError("laboratory_id", "laboratory is inactive")
    return laboratory


def _append_history(lab_order: LaboratoryOrder, status: str, actor_id: int, notes: str | None) -> LaboratoryOrderStatus:
    row = LaboratoryOrderStatus(status=status, notes=notes, user_id=actor_id)
    lab_order.status_history.append(row)
    return row


def _new_order(
    *,
    laboratory: Laboratory,
    patient_id: int,
    actor_id: int,
    order_id: int | None = None,
    sale_id: int | None = None,
    priority: str = "normal",
    estimated_completion_date=None,
    notes: str | None = None,
) -> LaboratoryOrder:
    lab_order = LaboratoryOrder(
        order_number=next_document_number(PREFIX_LAB),
        order_id=order_id,
        sale_id=sale_id,
        laboratory_id=laboratory.id,
        patient_id=patient_id,
        status=LAB_STATUS_PENDING,
        priority=priority,
        estimated_completion_date=estimated_completion_date,
        notes=notes,
        created_by_user_id=actor_id,
    )
    _append_history(lab_order, LAB_STATUS_PENDING, actor_id, "Initial status")
    db.session.add(lab_order)
    db.session.flush()
    return lab_order


def create_laboratory_order(payload: dict, actor_id: int) -> LaboratoryOrder:
    """Create a pending laboratory order with its first history row."""
    def _op() -> LaboratoryOrder:
        laboratory = _require_laboratory(payload.get("laboratory_id"))

        patient_id = unwrap(coerce_int("patient_id", payload.get("patient_id"), minimum=1))
        if not db.session.get(Patient, patient_id):
            raise NotFoundError(f"Patient {patient_id} not found", {"patient_id": patient_id})

        order_id = payload.get("order_id")
        if order_id is not None:
            order_id = unwrap(coerce_int("order_id", order_id, minimum=1))
            if not db.session.get(Order, order_id):
                raise NotFoundError(f"Order {order_id} not found", {"order_id": order_id})
        sale_id = payload.get("sale_id")
        if sale_id is not None:
            sale_id = unwrap(coerce_int("sale_id", sale_id, minimum=1))
            if not db.session.get(Sale, sale_id):
                raise NotFoundError(f"Sale {sale_id} not found", {"sale_id": sale_id})

        priority = unwrap(one_of("priority", payload.get("priority") or "normal", PRIORITIES))
        estimated = None
        if payload.get("estimated_completion_date") is not None:
            estimated = unwrap(coerce_date("estimated_completion_date", payload["estimated_completion_date"]))
            if estimated < today():
                raise ValidationError("estimated_completion_date", "must not be in the past")

        return _new_order(
            laboratory=laboratory,
            patient_id=patient_id,
            actor_id=actor_id,
            order_id=order_id,
            sale_id=sale_id,
            priority=priority,
            estimated_completion_date=estimated,
            notes=payload.get("notes"),
        )

    return run_with_retry(_op)


def create_for_sale_locked(
    sale: Sale,
    actor_id: int,
    laboratory_id: int | None = None,
    notes: str | None = None,
) -> LaboratoryOrder:
    """
    Laboratory order for a sale inside the caller's transaction.

    Returns the existing order when the sale already has one. The laboratory
    comes from the argument or from the sale's order.
    """
    existing = db.session.query(LaboratoryOrder).filter_by(sale_id=sale.id).order_by(LaboratoryOrder.id).first()
    if existing:
        return existing

    if laboratory_id is None and sale.order is not None:
        laboratory_id = sale.order.laboratory_id
    if laboratory_id is None:
        raise ValidationError("laboratory_id", "is required when the sale's order has no laboratory")
    laboratory = _require_laboratory(laboratory_id)

    return _new_order(
        laboratory=laboratory,
        patient_id=sale.patient_id,
        actor_id=actor_id,
        order_id=sale.order_id,
        sale_id=sale.id,
        notes=notes,
    )


def create_laboratory_order_from_sale(
    sale_id: int,
    actor_id: int,
    laboratory_id: int | None = None,
    notes: str | None = None,
) -> LaboratoryOrder:
    def _op() -> LaboratoryOrder:
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if not sale:
            raise NotFoundError(f"Sale {sale_id} not found", {"sale_id": sale_id})
        return create_for_sale_locked(sale, actor_id, laboratory_id=laboratory_id, notes=notes)

    return run_with_retry(_op)


def _is_out_of_order(current: str, target: str) -> bool:
    if current in TERMINAL_LAB_STATUSES:
        return True
    if target == LAB_STATUS_CANCELLED:
        return False
    return EXPECTED_FLOW.index(target) < EXPECTED_FLOW.index(current)


def update_laboratory_order_status(
    lab_order_id: int,
    status: str,
    actor_id: int,
    notes: str | None = None,
) -> LaboratoryOrder:
    """
    Append a status history row and move the order to it.

    Same-state repeats are logged and skipped. Out-of-order moves are
    accepted and logged as warnings.
    """
    status = unwrap(one_of("status", status, LAB_STATUSES))

    def _op() -> LaboratoryOrder:
        lab_order = lock_for_update(db.session.query(LaboratoryOrder).filter_by(id=lab_order_id)).first()
        if not lab_order:
            raise NotFoundError(f"Laboratory order {lab_order_id} not found", {"laboratory_order_id": lab_order_id})

        current = lab_order.status
        if current == status:
            current_app.logger.warning(
                "Laboratory order %s already in status %s; no history row written",
                lab_order.order_number, status,
            )
            return lab_order

        if _is_out_of_order(current, status):
            current_app.logger.warning(
                "Laboratory order %s moved out of order: %s -> %s by user %s",
                lab_order.order_number, current, status, actor_id,
            )

        _append_history(lab_order, status, actor_id, notes)
        lab_order.status = status
        if status == LAB_STATUS_DELIVERED:
            lab_order.completion_date = today()
        db.session.flush()
        return lab_order

    return run_with_retry(_op)


def get_status_history(lab_order_id: int) -> list[LaboratoryOrderStatus]:
    lab_order = get_laboratory_order(lab_order_id)
    return list(lab_order.status_history)


def delete_laboratory_order(lab_order_id: int) -> None:
    """Remove a laboratory order that has no work attached yet."""
    def _op():
        lab_order = lock_for_update(db.session.query(LaboratoryOrder).filter_by(id=lab_order_id)).first()
        if not lab_order:
            raise NotFoundError(f"Laboratory order {lab_order_id} not found", {"laboratory_order_id": lab_order_id})
        if lab_order.status not in DELETABLE_LAB_STATUSES:
            raise InvalidStateTransition("laboratory order", lab_order.status, "deleted", {"laboratory_order_id": lab_order.id})
        db.session.delete(lab_order)
        db.session.flush()

    return run_with_retry(_op)


def laboratory_order_stats() -> dict:
    """Counts per status (every status present, zero when empty) plus overdue."""
    counts = dict(
        db.session.query(LaboratoryOrder.status, func.count(LaboratoryOrder.id))
        .group_by(LaboratoryOrder.status)
        .all()
    )
    stats = {status: counts.get(status, 0) for status in LAB_STATUSES}
    stats["total"] = sum(stats.values())
    stats["overdue"] = (
        db.session.query(func.count(LaboratoryOrder.id))
        .filter(
            LaboratoryOrder.estimated_completion_date.isnot(None),
            LaboratoryOrder.estimated_completion_date < today(),
            LaboratoryOrder.status.notin_(TERMINAL_LAB_STATUSES),
        )
        .scalar()
    )
    return stats
