# Overview: Discount approval workflow and price-floor checks for line items.

"""
Discount approval engine

WHY: Selling a catalog item below its listed price needs an approver. A
request freezes the catalog price and the discounted price at creation; the
approver moves it once from pending to approved or rejected.

Validity is derived on every read:
    valid = status == approved AND (expiry_date is null OR expiry_date >= today)

Applying an approved-but-expired discount raises DiscountExpired. Applying a
pending or rejected one is a validation failure.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import case, or_

from ..errors import DiscountExpired, InvalidStateTransition, NotFoundError, ValidationError
from ..extensions import db
from ..models import DiscountRequest, Patient
from ..time_utils import today as _today, utcnow
from ..validation import coerce_date, coerce_int, percentage, unwrap
from . import catalog_service
from .catalog_service import CatalogRef
from .concurrency import lock_for_update, run_with_retry
from .pricing_service import HUNDRED, round_money


STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"

STATUSES = (STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED)


def _get_patient(patient_id) -> Patient:
    patient_id = unwrap(coerce_int("patient_id", patient_id, minimum=1))
    patient = db.session.get(Patient, patient_id)
    if not patient:
        raise NotFoundError(f"Patient {patient_id} not found", {"patient_id": patient_id})
    return patient


def get_discount_request(discount_id: int) -> DiscountRequest:
    discount = db.session.get(DiscountRequest, discount_id)
    if not discount:
        raise NotFoundError(f"Discount request {discount_id} not found", {"discount_request_id": discount_id})
    return discount


def create_discount_request(
    requester_id: int,
    ref: CatalogRef,
    discount_percentage,
    patient_id: int | None = None,
    expiry_date=None,
    is_global: bool = False,
    reason: str | None = None,
) -> DiscountRequest:
    """
    Create a pending request against the current catalog price.

    original_price and discounted_price are frozen here and never recomputed,
    even if the catalog price changes later.
    """
    pct = unwrap(percentage("discount_percentage", discount_percentage))
    entry = catalog_service.resolve(ref)

    if patient_id is not None:
        _get_patient(patient_id)
    if not is_global and patient_id is None:
        raise ValidationError("patient_id", "is required unless the discount is global")

    expiry = None
    if expiry_date is not None:
        expiry = unwrap(coerce_date("expiry_date", expiry_date))
        if expiry < _today():
            raise ValidationError("expiry_date", "must not be in the past")

    original = round_money(entry.price)
    discounted = round_money(original * (HUNDRED - pct) / HUNDRED)

    discount = DiscountRequest(
        requested_by_user_id=requester_id,
        item_type=ref.item_type,
        item_id=ref.id,
        patient_id=patient_id,
        is_global=bool(is_global),
        status=STATUS_PENDING,
        discount_percentage=pct,
        original_price=original,
        discounted_price=discounted,
        reason=reason,
        expiry_date=expiry,
    )
    db.session.add(discount)
    db.session.flush()
    return discount


def approve_discount_request(discount_id: int, approver_id: int, notes: str | None = None) -> DiscountRequest:
    def _op():
        discount = lock_for_update(db.session.query(DiscountRequest).filter_by(id=discount_id)).first()
        if not discount:
            raise NotFoundError(f"Discount request {discount_id} not found", {"discount_request_id": discount_id})
        if discount.status != STATUS_PENDING:
            raise InvalidStateTransition("discount request", discount.status, STATUS_APPROVED)

        discount.status = STATUS_APPROVED
        discount.approved_by_user_id = approver_id
        discount.approved_at = utcnow()
        discount.approval_notes = notes
        db.session.flush()
        return discount

    return run_with_retry(_op)


def reject_discount_request(discount_id: int, approver_id: int, reason: str | None = None) -> DiscountRequest:
    def _op():
        discount = lock_for_update(db.session.query(DiscountRequest).filter_by(id=discount_id)).first()
        if not discount:
            raise NotFoundError(f"Discount request {discount_id} not found", {"discount_request_id": discount_id})
        if discount.status != STATUS_PENDING:
            raise InvalidStateTransition("discount request", discount.status, STATUS_REJECTED)

        discount.status = STATUS_REJECTED
        discount.rejected_by_user_id = approver_id
        discount.rejected_at = utcnow()
        discount.rejection_reason = reason
        db.session.flush()
        return discount

    return run_with_retry(_op)


def withdraw_discount_request(discount_id: int, requester_id: int) -> None:
    """Delete a request that is still pending. Only its requester may withdraw it."""
    def _op():
        discount = lock_for_update(db.session.query(DiscountRequest).filter_by(id=discount_id)).first()
        if not discount:
            raise NotFoundError(f"Discount request {discount_id} not found", {"discount_request_id": discount_id})
        if discount.status != STATUS_PENDING:
            raise InvalidStateTransition("discount request", discount.status, "withdrawn")
        if discount.requested_by_user_id != requester_id:
            raise ValidationError("requester_id", "only the requester may withdraw a request")
        db.session.delete(discount)
        db.session.flush()

    return run_with_retry(_op)


def is_valid(discount: DiscountRequest, today: date | None = None) -> bool:
    today = today or _today()
    if discount.status != STATUS_APPROVED:
        return False
    return discount.expiry_date is None or discount.expiry_date >= today


def _active_query(ref: CatalogRef, patient_id: int | None, today: date):
    query = db.session.query(DiscountRequest).filter(
        DiscountRequest.item_type == ref.item_type,
        DiscountRequest.item_id == ref.id,
        DiscountRequest.status == STATUS_APPROVED,
        or_(DiscountRequest.expiry_date.is_(None), DiscountRequest.expiry_date >= today),
    )
    if patient_id is None:
        return query.filter(DiscountRequest.is_global.is_(True))
    return query.filter(
        or_(DiscountRequest.is_global.is_(True), DiscountRequest.patient_id == patient_id)
    )


def get_active_discounts(ref: CatalogRef, patient_id: int | None = None, today: date | None = None) -> list[DiscountRequest]:
    """
    Valid discounts for a catalog item.

    Patient-specific discounts come first, then global ones; within each
    group the highest percentage wins.
    """
    today = today or _today()
    query = _active_query(ref, patient_id, today)
    if patient_id is not None:
        patient_first = case((DiscountRequest.patient_id == patient_id, 0), else_=1)
        query = query.order_by(patient_first)
    return query.order_by(DiscountRequest.discount_percentage.desc(), DiscountRequest.id.asc()).all()


def best_discount(ref: CatalogRef, patient_id: int | None = None, today: date | None = None) -> DiscountRequest | None:
    discounts = get_active_discounts(ref, patient_id, today)
    return discounts[0] if discounts else None


def has_active_discount(ref: CatalogRef, patient_id: int | None = None, today: date | None = None) -> bool:
    """Derived on demand from DiscountRequest rows; nothing is cached."""
    today = today or _today()
    return db.session.query(_active_query(ref, patient_id, today).exists()).scalar()


def ensure_applicable(
    discount: DiscountRequest,
    ref: CatalogRef,
    patient_id: int | None,
    unit_price: Decimal,
    today: date | None = None,
) -> DiscountRequest:
    """
    Check that a discount may back a line item priced at unit_price.

    Raises:
        DiscountExpired: approved but past its expiry date
        ValidationError: pending/rejected, wrong item, wrong patient or a
            price below the approved discounted price
    """
    if discount.status == STATUS_APPROVED and not is_valid(discount, today):
        raise DiscountExpired(
            f"Discount request {discount.id} expired on {discount.expiry_date.isoformat()}",
            {"discount_request_id": discount.id, "expiry_date": discount.expiry_date.isoformat()},
        )
    if discount.status != STATUS_APPROVED:
        raise ValidationError(
            "discount_request_id",
            f"discount request is {discount.status}, only approved discounts apply",
            {"discount_request_id": discount.id},
        )
    if discount.item_type != ref.item_type or discount.item_id != ref.id:
        raise ValidationError(
            "discount_request_id",
            "discount request targets a different catalog item",
            {"discount_request_id": discount.id},
        )
    if not discount.is_global and discount.patient_id is not None and discount.patient_id != patient_id:
        raise ValidationError(
            "discount_request_id",
            "discount request belongs to a different patient",
            {"discount_request_id": discount.id},
        )
    if round_money(unit_price) < round_money(discount.discounted_price):
        raise ValidationError(
            "price",
            f"must not be below the approved discounted price {discount.discounted_price}",
            {"discount_request_id": discount.id},
        )
    return discount


def check_price_floor(
    ref: CatalogRef,
    patient_id: int | None,
    unit_price: Decimal,
    discount_request_id=None,
) -> DiscountRequest | None:
    """
    Enforce the line price floor: catalog price, unless an approved and
    unexpired discount for the same item backs the lower price.

    A referenced discount is always checked, even at catalog price.
    Returns the applied discount, if any.
    """
    entry = catalog_service.resolve(ref)
    discount = None
    if discount_request_id is not None:
        discount_request_id = unwrap(coerce_int("discount_request_id", discount_request_id, minimum=1))
        discount = get_discount_request(discount_request_id)
        ensure_applicable(discount, ref, patient_id, unit_price)
    if round_money(unit_price) < round_money(entry.price) and discount is None:
        raise ValidationError(
            "price",
            f"must not be below the catalog price {round_money(entry.price)} without an approved discount",
            {"item_type": ref.item_type, "item_id": ref.id},
        )
    return discount


def list_discount_requests(status: str | None = None, ref: CatalogRef | None = None, patient_id: int | None = None):
    query = db.session.query(DiscountRequest)
    if status:
        query = query.filter(DiscountRequest.status == status)
    if ref is not None:
        query = query.filter(DiscountRequest.item_type == ref.item_type, DiscountRequest.item_id == ref.id)
    if patient_id is not None:
        query = query.filter(DiscountRequest.patient_id == patient_id)
    return query.order_by(DiscountRequest.id.desc()).all()
