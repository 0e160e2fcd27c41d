# Overview: Lens price increases over catalog on a specific sale.

from __future__ import annotations

from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from ..errors import NotFoundError, StateError, ValidationError
from ..extensions import db
from ..models import Lens, Sale, SaleLensPriceAdjustment
from ..validation import coerce_int, unwrap, validate_price_increase
from .concurrency import run_with_retry
from .pricing_service import round_money


class DuplicateAdjustment(StateError):
    code = "DUPLICATE_ADJUSTMENT"


def _get_lens(lens_id) -> Lens:
    lens_id = unwrap(coerce_int("lens_id", lens_id, minimum=1))
    lens = db.session.get(Lens, lens_id)
    if not lens:
        raise NotFoundError(f"lens {lens_id} not found", {"item_type": "lens", "item_id": lens_id})
    return lens


def create_adjustment(
    sale_id: int,
    lens_id: int,
    adjusted_price,
    actor_id: int,
    reason: str | None = None,
) -> SaleLensPriceAdjustment:
    """
    Record a price increase for one lens on one sale.

    The base price is the lens catalog price right now. Reductions are refused
    here and must go through a discount request. One adjustment per lens per sale.
    """
    def _op() -> SaleLensPriceAdjustment:
        sale = db.session.get(Sale, sale_id)
        if not sale:
            raise NotFoundError(f"Sale {sale_id} not found", {"sale_id": sale_id})
        lens = _get_lens(lens_id)

        base_price = round_money(lens.price)
        adjusted = round_money(unwrap(validate_price_increase(base_price, adjusted_price)))
        if adjusted <= base_price:
            raise ValidationError("adjusted_price", "must be greater than the base price")

        existing = db.session.query(SaleLensPriceAdjustment).filter_by(sale_id=sale.id, lens_id=lens.id).first()
        if existing:
            raise DuplicateAdjustment(
                f"Lens {lens.id} already has a price adjustment on sale {sale.sale_number}",
                {"sale_id": sale.id, "lens_id": lens.id, "adjustment_id": existing.id},
            )

        adjustment = SaleLensPriceAdjustment(
            sale_id=sale.id,
            lens_id=lens.id,
            base_price=base_price,
            adjusted_price=adjusted,
            adjustment_amount=adjusted - base_price,
            reason=reason,
            adjusted_by_user_id=actor_id,
        )
        sale.lens_price_adjustments.append(adjustment)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise DuplicateAdjustment(
                f"Lens {lens.id} already has a price adjustment on sale {sale.sale_number}",
                {"sale_id": sale.id, "lens_id": lens.id},
            ) from exc
        return adjustment

    return run_with_retry(_op)


def effective_price(sale_id: int, lens_id: int) -> Decimal:
    """Adjusted price for the lens on this sale, or its catalog price."""
    adjustment = db.session.query(SaleLensPriceAdjustment).filter_by(sale_id=sale_id, lens_id=lens_id).first()
    if adjustment:
        return round_money(adjustment.adjusted_price)
    return round_money(_get_lens(lens_id).price)


def remove_adjustment(sale_id: int, adjustment_id: int) -> None:
    adjustment = db.session.query(SaleLensPriceAdjustment).filter_by(id=adjustment_id, sale_id=sale_id).first()
    if not adjustment:
        raise NotFoundError(
            f"Price adjustment {adjustment_id} not found on sale {sale_id}",
            {"sale_id": sale_id, "adjustment_id": adjustment_id},
        )
    db.session.delete(adjustment)
    db.session.flush()


def adjustment_summary(sale_id: int) -> dict:
    adjustments = (
        db.session.query(SaleLensPriceAdjustment)
        .filter_by(sale_id=sale_id)
        .order_by(SaleLensPriceAdjustment.id)
        .all()
    )
    return {
        "count": len(adjustments),
        "total_adjustment_amount": str(sum((a.adjustment_amount for a in adjustments), round_money(0))),
        "adjustments": [a.to_dict() for a in adjustments],
    }
