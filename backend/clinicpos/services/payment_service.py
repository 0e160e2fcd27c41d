# Overview: Service-layer operations for payments; append-only ledger plus balance recompute.

"""
Payment Ledger

WHY: A sale is paid through two channels: payments taken when the sale is
registered (SalePayment) and later top-ups against the balance
(PartialPayment). Both are append-only so the history stays auditable.

RECOMPUTE (after every insert, in the same transaction, sale row locked):
    amount_paid    = sum(SalePayment.amount) + sum(PartialPayment.amount)
    balance        = total - amount_paid
    payment_status = "paid"    if balance <= 0
                     "partial" if amount_paid > 0
                     "pending" otherwise

Always summed from the full history, never incremented, so replaying the
recompute in any order gives the same result. Overpayment shows up as a
negative balance; it is not clamped.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable

from flask import current_app
from sqlalchemy import func

from ..errors import InvalidStateTransition, NotFoundError, ValidationError
from ..extensions import db
from ..models import PartialPayment, Sale, SalePayment
from ..time_utils import today
from ..validation import coerce_date, one_of, positive_money, unwrap
from .concurrency import lock_for_update, run_with_retry
from .order_service import sync_payment_status
from .pricing_service import round_money


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_CASH = "cash"
METHOD_CREDIT_CARD = "credit_card"
METHOD_DEBIT_CARD = "debit_card"
METHOD_BANK_TRANSFER = "bank_transfer"
METHOD_CHECK = "check"

VALID_PAYMENT_METHODS = (
    METHOD_CASH,
    METHOD_CREDIT_CARD,
    METHOD_DEBIT_CARD,
    METHOD_BANK_TRANSFER,
    METHOD_CHECK,
)

# Every method except cash needs an authorization / transfer / check number
METHODS_REQUIRING_REFERENCE = (
    METHOD_CREDIT_CARD,
    METHOD_DEBIT_CARD,
    METHOD_BANK_TRANSFER,
    METHOD_CHECK,
)


# =============================================================================
# PAYMENT STATUS (CONSTANTS)
# =============================================================================

PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_PARTIAL = "partial"
PAYMENT_STATUS_PAID = "paid"

# Sales in these lifecycle states accept no new money
CLOSED_SALE_STATUSES = ("cancelled", "refunded")


@dataclass(frozen=True)
class BalanceState:
    amount_paid: Decimal
    balance: Decimal
    payment_status: str


def compute_balance(total, amounts: Iterable) -> BalanceState:
    """Pure balance calculation; the order of amounts does not matter."""
    amount_paid = round_money(sum((Decimal(str(a)) for a in amounts), Decimal("0")))
    balance = round_money(Decimal(str(total)) - amount_paid)
    if balance <= 0:
        status = PAYMENT_STATUS_PAID
    elif amount_paid > 0:
        status = PAYMENT_STATUS_PARTIAL
    else:
        status = PAYMENT_STATUS_PENDING
    return BalanceState(amount_paid=amount_paid, balance=balance, payment_status=status)


def recompute_sale_balance(sale: Sale) -> BalanceState:
    """
    Re-derive amount_paid, balance and payment_status from the full history.

    Caller holds the sale row lock. The linked order's payment status is
    synced in the same transaction.
    """
    db.session.flush()
    sale_total = db.session.query(func.coalesce(func.sum(SalePayment.amount), 0)).filter(
        SalePayment.sale_id == sale.id
    ).scalar()
    partial_total = db.session.query(func.coalesce(func.sum(PartialPayment.amount), 0)).filter(
        PartialPayment.sale_id == sale.id
    ).scalar()

    state = compute_balance(sale.total, [sale_total, partial_total])
    sale.amount_paid = state.amount_paid
    sale.balance = state.balance
    sale.payment_status = state.payment_status

    if sale.order is not None:
        sync_payment_status(sale.order, state.payment_status)

    db.session.flush()
    current_app.logger.info(
        "Sale %s recomputed: paid=%s balance=%s status=%s",
        sale.sale_number, state.amount_paid, state.balance, state.payment_status,
    )
    return state


def validate_payment(amount, payment_method, reference_number=None, payment_date=None) -> tuple[Decimal, str, date]:
    """Boundary checks for a payment; runs before the sale is touched."""
    amount = round_money(unwrap(positive_money("amount", amount)))
    if amount <= 0:
        raise ValidationError("amount", "must be greater than 0")
    payment_method = unwrap(one_of("payment_method", payment_method, VALID_PAYMENT_METHODS))
    if payment_method in METHODS_REQUIRING_REFERENCE and not (reference_number or "").strip():
        raise ValidationError("reference_number", f"is required for {payment_method} payments")
    paid_on = unwrap(coerce_date("payment_date", payment_date)) if payment_date is not None else today()
    return amount, payment_method, paid_on


def append_payment_locked(
    sale: Sale,
    model_cls,
    amount,
    payment_method: str,
    actor_id: int,
    reference_number: str | None = None,
    payment_date=None,
    notes: str | None = None,
):
    """
    Insert one payment row and recompute, for a sale already locked by the caller.

    Used directly by sales_service when a sale is registered with payments.
    """
    amount, payment_method, paid_on = validate_payment(amount, payment_method, reference_number, payment_date)
    if sale.status in CLOSED_SALE_STATUSES:
        raise InvalidStateTransition("sale", sale.status, "paid", {"sale_id": sale.id})

    payment = model_cls(
        payment_method=payment_method,
        amount=amount,
        reference_number=reference_number,
        payment_date=paid_on,
        notes=notes,
        created_by_user_id=actor_id,
    )
    if model_cls is SalePayment:
        sale.payments.append(payment)
    else:
        sale.partial_payments.append(payment)
    recompute_sale_balance(sale)
    return payment


def _record(model_cls, sale_id: int, amount, payment_method, actor_id, reference_number, payment_date, notes):
    # Validate before taking the lock; a bad amount never reaches the sale
    validate_payment(amount, payment_method, reference_number, payment_date)

    def _op():
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if not sale:
            raise NotFoundError(f"Sale {sale_id} not found", {"sale_id": sale_id})
        return append_payment_locked(
            sale,
            model_cls,
            amount,
            payment_method,
            actor_id,
            reference_number=reference_number,
            payment_date=payment_date,
            notes=notes,
        )

    return run_with_retry(_op)


def record_sale_payment(
    sale_id: int,
    amount,
    payment_method: str,
    actor_id: int,
    reference_number: str | None = None,
    payment_date=None,
    notes: str | None = None,
) -> SalePayment:
    """Record a payment taken at sale time."""
    return _record(SalePayment, sale_id, amount, payment_method, actor_id, reference_number, payment_date, notes)


def record_partial_payment(
    sale_id: int,
    amount,
    payment_method: str,
    actor_id: int,
    reference_number: str | None = None,
    payment_date=None,
    notes: str | None = None,
) -> PartialPayment:
    """Record a later top-up against the outstanding balance."""
    return _record(PartialPayment, sale_id, amount, payment_method, actor_id, reference_number, payment_date, notes)


def get_payment_history(sale_id: int) -> dict:
    """Both channels merged in payment order, with the current balance."""
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError(f"Sale {sale_id} not found", {"sale_id": sale_id})

    rows = [p.to_dict() for p in sale.payments] + [p.to_dict() for p in sale.partial_payments]
    rows.sort(key=lambda r: (r["payment_date"] or "", r["created_at"] or "", r["channel"], r["id"]))
    return {
        "sale_id": sale.id,
        "sale_number": sale.sale_number,
        "total": str(sale.total),
        "amount_paid": str(sale.amount_paid),
        "balance": str(sale.balance),
        "payment_status": sale.payment_status,
        "payments": rows,
    }
