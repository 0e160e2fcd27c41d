# Overview: Lab-facing orders; priced like quotes, payment status mirrors the sale.

from __future__ import annotations

from flask import current_app

from ..errors import InvalidStateTransition, NotFoundError
from ..extensions import db
from ..models import Laboratory, Order, OrderItem, Patient
from ..validation import coerce_int, one_of, unwrap
from .concurrency import lock_for_update, run_with_retry
from .document_service import PREFIX_ORDER, next_document_number
from .line_item_service import document_totals, price_items
from .quote_service import claim_quote


ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_PROCESSING = "processing"
ORDER_STATUS_COMPLETED = "completed"
ORDER_STATUS_CANCELLED = "cancelled"
ORDER_STATUS_ON_HOLD = "on-hold"

ORDER_STATUSES = (
    ORDER_STATUS_PENDING,
    ORDER_STATUS_PROCESSING,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_ON_HOLD,
)
TERMINAL_ORDER_STATUSES = (ORDER_STATUS_COMPLETED, ORDER_STATUS_CANCELLED)

# Sale payment_status -> Order payment_status
PAYMENT_STATUS_MAP = {
    "pending": "pending",
    "partial": "partially-paid",
    "paid": "paid",
    "refunded": "refunded",
}


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError(f"Order {order_id} not found", {"order_id": order_id})
    return order


def list_orders(status: str | None = None, patient_id: int | None = None):
    query = db.session.query(Order)
    if status:
        query = query.filter(Order.status == status)
    if patient_id:
        query = query.filter(Order.patient_id == patient_id)
    return query.order_by(Order.id.desc()).all()


def create_order(payload: dict, actor_id: int) -> Order:
    """
    Create a pending order from raw items.

    Same item rules as quotes: catalog references, quantity >= 1 and the
    price floor backed by approved discounts.
    """
    def _op() -> Order:
        patient_id = unwrap(coerce_int("patient_id", payload.get("patient_id"), minimum=1))
        if not db.session.get(Patient, patient_id):
            raise NotFoundError(f"Patient {patient_id} not found", {"patient_id": patient_id})

        laboratory_id = payload.get("laboratory_id")
        if laboratory_id is not None:
            laboratory_id = unwrap(coerce_int("laboratory_id", laboratory_id, minimum=1))
            if not db.session.get(Laboratory, laboratory_id):
                raise NotFoundError(f"Laboratory {laboratory_id} not found", {"laboratory_id": laboratory_id})

        lines = price_items(payload.get("items"), patient_id)
        totals = document_totals(lines, payload, current_app.config["TAX_RATE"])

        order = Order(
            order_number=next_document_number(PREFIX_ORDER),
            patient_id=patient_id,
            laboratory_id=laboratory_id,
            appointment_id=payload.get("appointment_id"),
            subtotal=totals.subtotal,
            discount_amount=totals.discount_amount,
            tax_amount=totals.tax_amount,
            total=totals.total,
            status=ORDER_STATUS_PENDING,
            payment_status="pending",
            notes=payload.get("notes"),
            created_by_user_id=actor_id,
        )
        for position, line in enumerate(lines):
            order.items.append(OrderItem(position=position, **line.columns()))

        db.session.add(order)
        db.session.flush()
        return order

    return run_with_retry(_op)


def create_order_from_quote(quote_id: int, actor_id: int, laboratory_id: int | None = None) -> Order:
    """
    Turn an open quote into a pending order, in one transaction.

    The quote is claimed exactly like a quote-to-sale conversion, so a quote
    yields one order or one sale, never both. Totals and items are copied
    as frozen on the quote.

    Raises:
        NotFoundError: unknown quote or laboratory
        AlreadyConverted: the quote was converted before or concurrently
        InvalidStateTransition: quote is rejected or expired
        QuoteExpired: open quote past its expiration date
    """
    if laboratory_id is not None:
        laboratory_id = unwrap(coerce_int("laboratory_id", laboratory_id, minimum=1))

    def _op() -> Order:
        if laboratory_id is not None and not db.session.get(Laboratory, laboratory_id):
            raise NotFoundError(f"Laboratory {laboratory_id} not found", {"laboratory_id": laboratory_id})

        quote = claim_quote(quote_id, actor_id)

        order = Order(
            order_number=next_document_number(PREFIX_ORDER),
            patient_id=quote.patient_id,
            laboratory_id=laboratory_id,
            quote_id=quote.id,
            subtotal=quote.subtotal,
            discount_amount=quote.discount_amount,
            tax_amount=quote.tax_amount,
            total=quote.total,
            status=ORDER_STATUS_PENDING,
            payment_status="pending",
            notes=quote.notes,
            created_by_user_id=actor_id,
        )
        db.session.add(order)
        for item in quote.items:
            order.items.append(OrderItem(
                position=item.position,
                item_type=item.item_type,
                item_id=item.item_id,
                name=item.name,
                quantity=item.quantity,
                price=item.price,
                original_price=item.original_price,
                discount_percentage=item.discount_percentage,
                discount_amount=item.discount_amount,
                total=item.total,
                discount_request_id=item.discount_request_id,
                notes=item.notes,
            ))
        db.session.flush()

        current_app.logger.info(
            "Quote %s converted to order %s by user %s", quote.quote_number, order.order_number, actor_id
        )
        return order

    return run_with_retry(_op)


def sync_payment_status(order: Order, sale_payment_status: str) -> Order:
    """Mirror a sale's payment status onto its order (partial -> partially-paid)."""
    order.payment_status = PAYMENT_STATUS_MAP.get(sale_payment_status, sale_payment_status)
    return order


def update_order_status(order_id: int, status: str) -> Order:
    status = unwrap(one_of("status", status, ORDER_STATUSES))

    def _op() -> Order:
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if not order:
            raise NotFoundError(f"Order {order_id} not found", {"order_id": order_id})
        if order.status in TERMINAL_ORDER_STATUSES and order.status != status:
            raise InvalidStateTransition("order", order.status, status, {"order_id": order.id})
        order.status = status
        db.session.flush()
        return order

    return run_with_retry(_op)
