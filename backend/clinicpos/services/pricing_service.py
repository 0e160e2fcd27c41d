# Overview: Pure line-item and document totals calculator.

"""
Pricing calculator

No side effects and no database access: the same item set always produces
the same totals, so documents can be recomputed on demand.

    line_total     = unit_price * quantity - line_discount
    subtotal       = sum(unit_price * quantity)
    discount_amount= sum(line_discount) + document_discount
    tax_amount     = (subtotal - discount_amount) * tax_rate
    total          = subtotal - discount_amount + tax_amount

Every money value is rounded half-up to 2 decimals.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from ..errors import ValidationError


CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def round_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class LineInput:
    unit_price: Decimal
    quantity: int
    discount_amount: Optional[Decimal] = None
    discount_percentage: Optional[Decimal] = None


@dataclass(frozen=True)
class LineTotals:
    gross: Decimal
    discount_amount: Decimal
    discount_percentage: Decimal
    total: Decimal


@dataclass(frozen=True)
class DocumentTotals:
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total: Decimal

    def as_dict(self) -> dict:
        return {
            "subtotal": self.subtotal,
            "discount_amount": self.discount_amount,
            "tax_amount": self.tax_amount,
            "total": self.total,
        }


def price_line(line: LineInput) -> LineTotals:
    """
    Price a single line.

    An explicit discount_amount wins over discount_percentage; the percentage
    reported back is derived from whichever was used.
    """
    if line.quantity < 1:
        raise ValidationError("quantity", "must be at least 1")
    unit_price = Decimal(str(line.unit_price))
    if unit_price < 0:
        raise ValidationError("price", "must be greater than or equal to 0")

    gross = round_money(unit_price * line.quantity)

    if line.discount_amount is not None:
        discount = round_money(line.discount_amount)
    elif line.discount_percentage is not None:
        discount = round_money(gross * Decimal(str(line.discount_percentage)) / HUNDRED)
    else:
        discount = Decimal("0.00")

    if discount < 0:
        raise ValidationError("discount", "must be greater than or equal to 0")
    if discount > gross:
        raise ValidationError("discount", "must not exceed the line amount")

    if line.discount_percentage is not None and line.discount_amount is None:
        percentage = Decimal(str(line.discount_percentage))
    elif gross > 0:
        percentage = (discount * HUNDRED / gross).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)
    else:
        percentage = Decimal("0")

    return LineTotals(
        gross=gross,
        discount_amount=discount,
        discount_percentage=percentage,
        total=gross - discount,
    )


def price_document(lines: Iterable[LineInput], document_discount=0, *, tax_rate) -> DocumentTotals:
    """Totals for a quote, order or sale. tax_rate is a fraction (0.19 for 19%)."""
    priced = [price_line(line) for line in lines]
    subtotal = sum((p.gross for p in priced), Decimal("0.00"))
    extra = round_money(document_discount or 0)
    if extra < 0:
        raise ValidationError("discount", "must be greater than or equal to 0")

    discount = sum((p.discount_amount for p in priced), Decimal("0.00")) + extra
    if discount > subtotal:
        raise ValidationError("discount", "must not exceed the subtotal")

    tax = round_money((subtotal - discount) * Decimal(str(tax_rate)))
    return DocumentTotals(
        subtotal=round_money(subtotal),
        discount_amount=round_money(discount),
        tax_amount=tax,
        total=round_money(subtotal - discount + tax),
    )


def totals_consistent(subtotal, discount, tax, total) -> bool:
    """True when total == subtotal - discount + tax to the cent."""
    return round_money(subtotal) - round_money(discount) + round_money(tax) == round_money(total)
