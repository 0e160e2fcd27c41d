# Overview: Validates and prices raw line items shared by quotes and orders.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from ..errors import ValidationError
from ..validation import coerce_int, non_negative_money, unwrap
from . import catalog_service, discount_service
from .catalog_service import CatalogRef
from .pricing_service import (
    DocumentTotals,
    LineInput,
    LineTotals,
    price_document,
    price_line,
    round_money,
    totals_consistent,
)


@dataclass(frozen=True)
class PricedLine:
    ref: CatalogRef
    name: str
    quantity: int
    price: Decimal
    original_price: Decimal
    totals: LineTotals
    discount_request_id: Optional[int]
    notes: Optional[str]

    @property
    def line_input(self) -> LineInput:
        return LineInput(
            unit_price=self.price,
            quantity=self.quantity,
            discount_amount=self.totals.discount_amount,
        )

    def columns(self) -> dict:
        """Column values for QuoteItem / OrderItem / SaleItem."""
        return {
            "item_type": self.ref.item_type,
            "item_id": self.ref.id,
            "name": self.name,
            "quantity": self.quantity,
            "price": self.price,
            "original_price": self.original_price,
            "discount_percentage": self.totals.discount_percentage,
            "discount_amount": self.totals.discount_amount,
            "total": self.totals.total,
            "discount_request_id": self.discount_request_id,
            "notes": self.notes,
        }


def _field(index: int, name: str) -> str:
    return f"items[{index}].{name}"


def _optional_money(index: int, raw: dict, name: str) -> Decimal | None:
    if raw.get(name) is None:
        return None
    return unwrap(non_negative_money(_field(index, name), raw[name]))


def price_item(index: int, raw: dict, patient_id: int | None) -> PricedLine:
    """
    Validate one raw item and enforce its price floor.

    Without an explicit price the best active discount for the patient is
    used, falling back to the catalog price.
    """
    if not isinstance(raw, dict):
        raise ValidationError(f"items[{index}]", "must be an object")

    try:
        ref = catalog_service.parse_ref(raw.get("item_type"), raw.get("item_id"))
    except ValidationError as exc:
        raise ValidationError(_field(index, exc.field), exc.constraint) from exc

    quantity = unwrap(coerce_int(_field(index, "quantity"), raw.get("quantity"), minimum=1))

    entry = catalog_service.resolve(ref)
    discount_request_id = raw.get("discount_request_id")

    price = _optional_money(index, raw, "price")
    if price is None:
        if discount_request_id is not None:
            discount = discount_service.get_discount_request(
                unwrap(coerce_int(_field(index, "discount_request_id"), discount_request_id, minimum=1))
            )
            price = round_money(discount.discounted_price)
        else:
            best = discount_service.best_discount(ref, patient_id)
            if best is not None:
                price = round_money(best.discounted_price)
                discount_request_id = best.id
            else:
                price = round_money(entry.price)

    applied = discount_service.check_price_floor(ref, patient_id, price, discount_request_id)

    totals = price_line(LineInput(
        unit_price=price,
        quantity=quantity,
        discount_amount=_optional_money(index, raw, "discount"),
        discount_percentage=_optional_money(index, raw, "discount_percentage"),
    ))

    declared_total = _optional_money(index, raw, "total")
    if declared_total is not None and round_money(declared_total) != totals.total:
        raise ValidationError(
            _field(index, "total"),
            f"must equal price * quantity - discount ({totals.total})",
        )

    return PricedLine(
        ref=ref,
        name=entry.name,
        quantity=quantity,
        price=round_money(price),
        original_price=round_money(entry.price),
        totals=totals,
        discount_request_id=applied.id if applied is not None else None,
        notes=raw.get("notes"),
    )


def price_items(raw_items, patient_id: int | None) -> list[PricedLine]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items", "must be a non-empty list")
    return [price_item(index, raw, patient_id) for index, raw in enumerate(raw_items)]


def document_totals(lines: list[PricedLine], payload: dict, tax_rate) -> DocumentTotals:
    """
    Document totals for freshly priced lines.

    Callers either let the calculator derive every total (with an optional
    document-level "discount"), or supply subtotal, tax and total themselves.
    Supplied totals must match the lines' subtotal and satisfy
    total == subtotal - discount + tax.
    """
    supplied = [name for name in ("subtotal", "tax", "total") if payload.get(name) is not None]
    discount = unwrap(non_negative_money("discount", payload.get("discount") or 0))

    if not supplied:
        return price_document([line.line_input for line in lines], discount, tax_rate=tax_rate)
    if len(supplied) != 3:
        raise ValidationError("totals", "subtotal, tax and total must be provided together")

    subtotal = round_money(unwrap(non_negative_money("subtotal", payload["subtotal"])))
    tax = round_money(unwrap(non_negative_money("tax", payload["tax"])))
    total = round_money(unwrap(non_negative_money("total", payload["total"])))
    discount = round_money(discount)

    gross = sum((line.totals.gross for line in lines), Decimal("0.00"))
    if subtotal != gross:
        raise ValidationError("subtotal", f"must equal the sum of item amounts ({gross})")
    line_discounts = sum((line.totals.discount_amount for line in lines), Decimal("0.00"))
    if discount < line_discounts:
        raise ValidationError("discount", f"must include the item discounts ({line_discounts})")
    if discount > subtotal:
        raise ValidationError("discount", "must not exceed the subtotal")
    if not totals_consistent(subtotal, discount, tax, total):
        raise ValidationError("total", "must equal subtotal - discount + tax")

    return DocumentTotals(subtotal=subtotal, discount_amount=discount, tax_amount=tax, total=total)
