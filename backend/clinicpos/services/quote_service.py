# backend/clinicpos/services/quote_service.py
"""
Quotes and their conversion into a sale or an order.

WHY: A quote is the priced proposal the patient agreed to. Converting it
creates the binding Sale with the quote's frozen totals; nothing is
recomputed at conversion time.

LIFECYCLE:
1. PENDING: created, open
2. APPROVED: accepted by staff, still open
3. REJECTED / EXPIRED: closed without a sale
4. CONVERTED: a Sale or an Order exists for this quote (terminal)

CONVERSION: the quote status is checked and set with a single conditional
UPDATE (status IN open states) inside the caller's transaction, so among
concurrent converters exactly one sees rowcount == 1; the others get
AlreadyConverted. Any later failure rolls the claim back with the new document.
"""
from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import update

from ..errors import AlreadyConverted, InvalidStateTransition, NotFoundError, QuoteExpired, ValidationError
from ..extensions import db
from ..models import Patient, Quote, QuoteItem, Sale, SaleItem
from ..time_utils import today as _today, utcnow
from ..validation import coerce_int, future_date, non_negative_money, one_of, unwrap
from .concurrency import lock_for_update, run_with_retry
from .document_service import PREFIX_QUOTE, PREFIX_SALE, next_document_number
from .line_item_service import document_totals, price_items
from .pricing_service import HUNDRED, round_money, totals_consistent


QUOTE_STATUS_PENDING = "pending"
QUOTE_STATUS_APPROVED = "approved"
QUOTE_STATUS_REJECTED = "rejected"
QUOTE_STATUS_EXPIRED = "expired"
QUOTE_STATUS_CONVERTED = "converted"

OPEN_STATUSES = (QUOTE_STATUS_PENDING, QUOTE_STATUS_APPROVED)
SETTABLE_STATUSES = (
    QUOTE_STATUS_PENDING,
    QUOTE_STATUS_APPROVED,
    QUOTE_STATUS_REJECTED,
    QUOTE_STATUS_EXPIRED,
)


def _require_patient(patient_id) -> int:
    patient_id = unwrap(coerce_int("patient_id", patient_id, minimum=1))
    if not db.session.get(Patient, patient_id):
        raise NotFoundError(f"Patient {patient_id} not found", {"patient_id": patient_id})
    return patient_id


def get_quote(quote_id: int) -> Quote:
    quote = db.session.get(Quote, quote_id)
    if not quote:
        raise NotFoundError(f"Quote {quote_id} not found", {"quote_id": quote_id})
    return quote


def list_quotes(status: str | None = None, patient_id: int | None = None, limit: int = 100, offset: int = 0):
    query = db.session.query(Quote)
    if status:
        query = query.filter(Quote.status == status)
    if patient_id:
        query = query.filter(Quote.patient_id == patient_id)
    total = query.count()
    rows = query.order_by(Quote.id.desc()).offset(max(offset, 0)).limit(min(max(limit, 1), 500)).all()
    return rows, total


def create_quote(payload: dict, actor_id: int) -> Quote:
    """
    Create a pending quote.

    Payload:
        patient_id, items (non-empty), optional subtotal/tax/discount/total,
        optional expiration_date (strictly after today), optional notes.

    Raises:
        ValidationError / NotFoundError before anything is written.
    """
    def _op() -> Quote:
        patient_id = _require_patient(payload.get("patient_id"))
        lines = price_items(payload.get("items"), patient_id)

        tax_rate = current_app.config["TAX_RATE"]
        totals = document_totals(lines, payload, tax_rate)

        today = _today()
        if payload.get("expiration_date") is not None:
            expiration = unwrap(future_date("expiration_date", payload["expiration_date"], today))
        else:
            expiration = today + timedelta(days=current_app.config["QUOTE_VALIDITY_DAYS"])

        computed = all(payload.get(name) is None for name in ("subtotal", "tax", "total"))

        quote = Quote(
            quote_number=next_document_number(PREFIX_QUOTE),
            patient_id=patient_id,
            subtotal=totals.subtotal,
            discount_amount=totals.discount_amount,
            tax_amount=totals.tax_amount,
            total=totals.total,
            tax_percentage=round_money(Decimal(str(tax_rate)) * HUNDRED) if computed else None,
            status=QUOTE_STATUS_PENDING,
            expiration_date=expiration,
            notes=payload.get("notes"),
            created_by_user_id=actor_id,
        )
        for position, line in enumerate(lines):
            quote.items.append(QuoteItem(position=position, **line.columns()))

        db.session.add(quote)
        db.session.flush()
        return quote

    return run_with_retry(_op)


def update_quote(quote_id: int, payload: dict) -> Quote:
    """
    Partial update of quote header fields.

    Items cannot be changed through this call. Totals, when touched, must
    still satisfy total == subtotal - discount + tax against the stored items.
    """
    if "items" in payload:
        raise ValidationError("items", "are not updatable once a quote exists")

    def _op() -> Quote:
        quote = lock_for_update(db.session.query(Quote).filter_by(id=quote_id)).first()
        if not quote:
            raise NotFoundError(f"Quote {quote_id} not found", {"quote_id": quote_id})
        if quote.status == QUOTE_STATUS_CONVERTED:
            raise AlreadyConverted(f"Quote {quote.quote_number} is converted and can no longer change", {"quote_id": quote.id})

        patient_id = _require_patient(payload["patient_id"]) if "patient_id" in payload else quote.patient_id
        expiration = quote.expiration_date
        if payload.get("expiration_date") is not None:
            expiration = unwrap(future_date("expiration_date", payload["expiration_date"], _today()))

        subtotal = quote.subtotal
        discount = quote.discount_amount
        tax = quote.tax_amount
        total = quote.total
        if payload.get("subtotal") is not None:
            subtotal = round_money(unwrap(non_negative_money("subtotal", payload["subtotal"])))
        if payload.get("discount") is not None:
            discount = round_money(unwrap(non_negative_money("discount", payload["discount"])))
        if payload.get("tax") is not None:
            tax = round_money(unwrap(non_negative_money("tax", payload["tax"])))
        if payload.get("total") is not None:
            total = round_money(unwrap(non_negative_money("total", payload["total"])))

        gross = sum((round_money(item.price * item.quantity) for item in quote.items), round_money(0))
        if round_money(subtotal) != gross:
            raise ValidationError("subtotal", f"must equal the sum of item amounts ({gross})")
        if not totals_consistent(subtotal, discount, tax, total):
            raise ValidationError("total", "must equal subtotal - discount + tax")

        quote.patient_id = patient_id
        quote.expiration_date = expiration
        quote.subtotal = subtotal
        quote.discount_amount = discount
        quote.tax_amount = tax
        quote.total = total

        if "notes" in payload:
            quote.notes = payload["notes"]

        db.session.flush()
        return quote

    return run_with_retry(_op)


def update_quote_status(quote_id: int, status: str) -> Quote:
    """Move a quote to pending, approved, rejected or expired. Converted is terminal."""
    status = unwrap(one_of("status", status, SETTABLE_STATUSES))

    def _op() -> Quote:
        quote = get_quote(quote_id)
        if quote.status == QUOTE_STATUS_CONVERTED:
            raise AlreadyConverted(f"Quote {quote.quote_number} is already converted", {"quote_id": quote.id})

        result = db.session.execute(
            update(Quote)
            .where(Quote.id == quote_id, Quote.status != QUOTE_STATUS_CONVERTED)
            .values(status=status, updated_at=utcnow(), version_id=Quote.version_id + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise AlreadyConverted(f"Quote {quote.quote_number} is already converted", {"quote_id": quote.id})

        db.session.refresh(quote)
        return quote

    return run_with_retry(_op)


def claim_quote(quote_id: int, actor_id: int) -> Quote:
    """
    Move an open quote to converted with a conditional UPDATE.

    Shared by every conversion target (sale or order). Must run inside the
    caller's retry/unit of work so the claim rolls back with whatever the
    conversion creates.

    Raises:
        NotFoundError: unknown quote
        AlreadyConverted: the quote was converted before or concurrently
        InvalidStateTransition: quote is rejected or expired
        QuoteExpired: open quote past its expiration date
    """
    quote = get_quote(quote_id)
    if quote.status == QUOTE_STATUS_CONVERTED:
        raise AlreadyConverted(f"Quote {quote.quote_number} is already converted", {"quote_id": quote.id})
    if quote.status not in OPEN_STATUSES:
        raise InvalidStateTransition("quote", quote.status, QUOTE_STATUS_CONVERTED, {"quote_id": quote.id})
    if quote.expiration_date is not None and quote.expiration_date < _today():
        raise QuoteExpired(
            f"Quote {quote.quote_number} expired on {quote.expiration_date.isoformat()}",
            {"quote_id": quote.id, "expiration_date": quote.expiration_date.isoformat()},
        )

    claimed = db.session.execute(
        update(Quote)
        .where(Quote.id == quote_id, Quote.status.in_(OPEN_STATUSES))
        .values(
            status=QUOTE_STATUS_CONVERTED,
            converted_at=utcnow(),
            converted_by_user_id=actor_id,
            version_id=Quote.version_id + 1,
        )
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount != 1:
        raise AlreadyConverted(f"Quote {quote.quote_number} is already converted", {"quote_id": quote.id})

    db.session.refresh(quote)
    return quote


def convert_quote_to_sale(quote_id: int, actor_id: int) -> Sale:
    """
    Promote an open quote into a pending Sale.

    Steps, all inside the caller's unit of work:
    1. Claim the quote (pending/approved -> converted) with a conditional UPDATE
    2. Allocate the SALE number
    3. Create the Sale with the quote's totals, amount_paid 0, balance = total
    4. Mirror every QuoteItem as a SaleItem

    Raises:
        NotFoundError: unknown quote
        AlreadyConverted: the quote was converted before or concurrently
        InvalidStateTransition: quote is rejected or expired
        QuoteExpired: open quote past its expiration date
    """
    def _op() -> Sale:
        quote = claim_quote(quote_id, actor_id)

        sale = Sale(
            sale_number=next_document_number(PREFIX_SALE),
            patient_id=quote.patient_id,
            quote_id=quote.id,
            subtotal=quote.subtotal,
            discount_amount=quote.discount_amount,
            tax_amount=quote.tax_amount,
            total=quote.total,
            amount_paid=Decimal("0.00"),
            balance=quote.total,
            status="pending",
            payment_status="pending",
            notes=quote.notes,
            created_by_user_id=actor_id,
        )
        for item in quote.items:
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

        db.session.add(sale)
        db.session.flush()
        db.session.refresh(quote)

        current_app.logger.info(
            "Quote %s converted to sale %s by user %s", quote.quote_number, sale.sale_number, actor_id
        )
        return sale

    return run_with_retry(_op)


def expire_stale_quotes(today: date | None = None) -> int:
    """Mark open quotes whose expiration date has passed as expired. Returns the count."""
    today = today or _today()
    result = db.session.execute(
        update(Quote)
        .where(
            Quote.status.in_(OPEN_STATUSES),
            Quote.expiration_date.isnot(None),
            Quote.expiration_date < today,
        )
        .values(status=QUOTE_STATUS_EXPIRED, updated_at=utcnow(), version_id=Quote.version_id + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        current_app.logger.info("Expired %s stale quote(s) as of %s", result.rowcount, today.isoformat())
    return result.rowcount
