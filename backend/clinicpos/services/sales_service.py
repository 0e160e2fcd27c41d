# Overview: Service-layer operations for sales; registration from orders and the lifecycle axis.

"""
Sales

Two independent axes live on a Sale:
- status (lifecycle): pending -> completed, pending/completed -> cancelled
- payment_status (financial): derived by payment_service from the balance

Completing a sale does not require it to be paid, and paying a sale does not
complete it.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.orm.exc import StaleDataError

from ..errors import AlreadyConverted, InvalidStateTransition, NotFoundError, ValidationError
from ..extensions import db
from ..models import Order, Sale, SaleItem, SalePayment
from ..time_utils import utcnow
from ..validation import coerce_date, unwrap
from .catalog_service import ITEM_TYPE_LENS
from .concurrency import lock_for_update, run_with_retry
from .document_service import PREFIX_SALE, next_document_number
from .laboratory_service import create_for_sale_locked
from .order_service import ORDER_STATUS_CANCELLED, sync_payment_status
from .payment_service import append_payment_locked, validate_payment
from .price_adjustment_service import adjustment_summary


SALE_STATUS_PENDING = "pending"
SALE_STATUS_COMPLETED = "completed"
SALE_STATUS_CANCELLED = "cancelled"
SALE_STATUS_REFUNDED = "refunded"
SALE_STATUS_PARTIALLY_PAID = "partially_paid"
SALE_STATUS_PAID = "paid"

SALE_STATUSES = (
    SALE_STATUS_PENDING,
    SALE_STATUS_COMPLETED,
    SALE_STATUS_CANCELLED,
    SALE_STATUS_REFUNDED,
    SALE_STATUS_PARTIALLY_PAID,
    SALE_STATUS_PAID,
)
CLOSED_SALE_STATUSES = (SALE_STATUS_CANCELLED, SALE_STATUS_REFUNDED)


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError(f"Sale {sale_id} not found", {"sale_id": sale_id})
    return sale


def list_sales(
    patient_id: int | None = None,
    status: str | None = None,
    payment_status: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
):
    query = db.session.query(Sale)
    if patient_id:
        query = query.filter(Sale.patient_id == patient_id)
    if status:
        query = query.filter(Sale.status == status)
    if payment_status:
        query = query.filter(Sale.payment_status == payment_status)
    if date_from:
        query = query.filter(func.date(Sale.created_at) >= date_from.isoformat())
    if date_to:
        query = query.filter(func.date(Sale.created_at) <= date_to.isoformat())
    return query.order_by(Sale.id.desc()).all()


def create_sale_from_order(
    order_id: int,
    actor_id: int,
    payments=(),
    laboratory_id: int | None = None,
    laboratory_notes: str | None = None,
) -> Sale:
    """
    Register a sale for an order, in one transaction.

    Totals and items are copied from the order. Initial payments go through
    the payment ledger. A laboratory order is opened when a laboratory is
    given, or when the order has one and contains lenses.

    Raises:
        NotFoundError: unknown order
        InvalidStateTransition: order is cancelled
        AlreadyConverted: the order already has an open sale
        ValidationError: any payment fails validation (nothing is written)
    """
    payments = list(payments or [])
    for index, payment in enumerate(payments):
        if not isinstance(payment, dict):
            raise ValidationError(f"payments[{index}]", "must be an object")
        validate_payment(
            payment.get("amount"),
            payment.get("payment_method"),
            payment.get("reference_number"),
            payment.get("payment_date"),
        )

    def _op() -> Sale:
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if not order:
            raise NotFoundError(f"Order {order_id} not found", {"order_id": order_id})
        if order.status == ORDER_STATUS_CANCELLED:
            raise InvalidStateTransition("order", order.status, "sold", {"order_id": order.id})

        open_sale = (
            db.session.query(Sale)
            .filter(Sale.order_id == order.id, Sale.status.notin_(CLOSED_SALE_STATUSES))
            .first()
        )
        if open_sale:
            raise AlreadyConverted(
                f"Order {order.order_number} already has sale {open_sale.sale_number}",
                {"order_id": order.id, "sale_id": open_sale.id},
            )

        # Claim the order by its version; a concurrent registration that got
        # there first leaves rowcount 0 and the retry then sees its sale.
        claimed = db.session.execute(
            update(Order)
            .where(Order.id == order.id, Order.version_id == order.version_id)
            .values(version_id=Order.version_id + 1)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            raise StaleDataError(f"Order {order.order_number} changed while registering its sale")
        db.session.refresh(order)

        sale = Sale(
            sale_number=next_document_number(PREFIX_SALE),
            patient_id=order.patient_id,
            order=order,
            appointment_id=order.appointment_id,
            subtotal=order.subtotal,
            discount_amount=order.discount_amount,
            tax_amount=order.tax_amount,
            total=order.total,
            amount_paid=Decimal("0.00"),
            balance=order.total,
            status=SALE_STATUS_PENDING,
            payment_status="pending",
            notes=order.notes,
            created_by_user_id=actor_id,
        )
        db.session.add(sale)
        for item in order.items:
            sale.items.append(SaleItem(
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

        for payment in payments:
            append_payment_locked(
                sale,
                SalePayment,
                payment.get("amount"),
                payment.get("payment_method"),
                actor_id,
                reference_number=payment.get("reference_number"),
                payment_date=payment.get("payment_date"),
                notes=payment.get("notes"),
            )
        sync_payment_status(order, sale.payment_status)

        has_lenses = any(item.item_type == ITEM_TYPE_LENS for item in order.items)
        if laboratory_id is not None or (order.laboratory_id is not None and has_lenses):
            create_for_sale_locked(sale, actor_id, laboratory_id=laboratory_id, notes=laboratory_notes)

        db.session.flush()
        current_app.logger.info(
            "Sale %s registered from order %s by user %s", sale.sale_number, order.order_number, actor_id
        )
        return sale

    return run_with_retry(_op)


def complete_sale(sale_id: int) -> Sale:
    """Mark the sale completed. Payment state is not consulted."""
    def _op() -> Sale:
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if not sale:
            raise NotFoundError(f"Sale {sale_id} not found", {"sale_id": sale_id})
        if sale.status in CLOSED_SALE_STATUSES or sale.status == SALE_STATUS_COMPLETED:
            raise InvalidStateTransition("sale", sale.status, SALE_STATUS_COMPLETED, {"sale_id": sale.id})
        sale.status = SALE_STATUS_COMPLETED
        sale.completed_at = utcnow()
        db.session.flush()
        return sale

    return run_with_retry(_op)


def cancel_sale(sale_id: int, actor_id: int | None = None) -> Sale:
    """
    Cancel a sale and its linked order.

    Payments stay on record; the balance is not touched.
    """
    def _op() -> Sale:
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if not sale:
            raise NotFoundError(f"Sale {sale_id} not found", {"sale_id": sale_id})
        if sale.status in CLOSED_SALE_STATUSES:
            raise InvalidStateTransition("sale", sale.status, SALE_STATUS_CANCELLED, {"sale_id": sale.id})

        sale.status = SALE_STATUS_CANCELLED
        sale.cancelled_at = utcnow()
        sale.cancelled_by_user_id = actor_id
        if sale.order is not None:
            sale.order.status = ORDER_STATUS_CANCELLED
        db.session.flush()
        current_app.logger.info("Sale %s cancelled by user %s", sale.sale_number, actor_id)
        return sale

    return run_with_retry(_op)


def get_sale_summary(sale_id: int) -> dict:
    sale = get_sale(sale_id)
    data = sale.to_dict(include_items=True)
    data["payments"] = [p.to_dict() for p in sale.payments]
    data["partial_payments"] = [p.to_dict() for p in sale.partial_payments]
    data["lens_price_adjustments"] = adjustment_summary(sale.id)
    data["laboratory_orders"] = [lab.to_dict() for lab in sale.laboratory_orders]
    return data


def get_sale_stats(date_from=None, date_to=None) -> dict:
    """Totals grouped by payment status over an optional created_at date range."""
    query = db.session.query(Sale)
    if date_from is not None:
        query = query.filter(func.date(Sale.created_at) >= unwrap(coerce_date("date_from", date_from)).isoformat())
    if date_to is not None:
        query = query.filter(func.date(Sale.created_at) <= unwrap(coerce_date("date_to", date_to)).isoformat())

    rows = (
        query.with_entities(Sale.payment_status, func.count(Sale.id), func.coalesce(func.sum(Sale.total), 0))
        .group_by(Sale.payment_status)
        .all()
    )
    by_status = {status: (count, total) for status, count, total in rows}

    def _amount(status: str) -> str:
        return str(by_status.get(status, (0, 0))[1])

    return {
        "total_sales": sum(count for count, _ in by_status.values()),
        "total_amount": str(sum((total for _, total in by_status.values()), 0)),
        "paid_amount": _amount("paid"),
        "pending_amount": _amount("pending"),
        "partial_amount": _amount("partial"),
    }
