# Overview: Catalog reference resolution and catalog price writes.

"""
Catalog references

Line items, discounts, inventory rows and transfers point at either a general
product or a lens. The reference is a small tagged union persisted as
(item_type, item_id) and resolved through one lookup function per variant.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Union

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Lens, Product
from ..validation import coerce_int, non_negative_money, unwrap, validate_catalog_price


ITEM_TYPE_PRODUCT = "product"
ITEM_TYPE_LENS = "lens"


@dataclass(frozen=True)
class ProductRef:
    id: int
    item_type = ITEM_TYPE_PRODUCT


@dataclass(frozen=True)
class LensRef:
    id: int
    item_type = ITEM_TYPE_LENS


CatalogRef = Union[ProductRef, LensRef]


@dataclass(frozen=True)
class CatalogEntry:
    ref: CatalogRef
    name: str
    price: Decimal
    cost: Optional[Decimal]
    status: str


def _lookup_product(ref: ProductRef) -> Product | None:
    return db.session.get(Product, ref.id)


def _lookup_lens(ref: LensRef) -> Lens | None:
    return db.session.get(Lens, ref.id)


_LOOKUPS = {
    ProductRef: _lookup_product,
    LensRef: _lookup_lens,
}

_REF_TYPES = {
    ITEM_TYPE_PRODUCT: ProductRef,
    ITEM_TYPE_LENS: LensRef,
}


def parse_ref(item_type, item_id) -> CatalogRef:
    """Build a catalog reference from wire data ("product"/"lens" + id)."""
    ref_cls = _REF_TYPES.get(item_type)
    if ref_cls is None:
        raise ValidationError("item_type", f"must be one of {', '.join(_REF_TYPES)}")
    return ref_cls(unwrap(coerce_int("item_id", item_id, minimum=1)))


def ref_of(row) -> CatalogRef:
    """Reference carried by any row with item_type/item_id columns."""
    return parse_ref(row.item_type, row.item_id)


def get_record(ref: CatalogRef):
    lookup = _LOOKUPS.get(type(ref))
    if lookup is None:
        raise ValidationError("item_type", "unknown catalog reference")
    record = lookup(ref)
    if record is None:
        raise NotFoundError(f"{ref.item_type} {ref.id} not found", {"item_type": ref.item_type, "item_id": ref.id})
    return record


def resolve(ref: CatalogRef) -> CatalogEntry:
    """Resolve a reference into its current catalog name, price and cost."""
    record = get_record(ref)
    return CatalogEntry(
        ref=ref,
        name=record.name,
        price=Decimal(record.price),
        cost=Decimal(record.cost) if record.cost is not None else None,
        status=record.status,
    )


def _require_text(field: str, value) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(field, "is required")
    return value.strip()


def _require_unique_code(model, code: str) -> str:
    code = _require_text("code", code)
    if db.session.query(model.id).filter_by(code=code).first():
        raise ValidationError("code", f"{code} already exists")
    return code


def create_product(code: str, name: str, price, cost=None, description: str | None = None) -> Product:
    price = unwrap(validate_catalog_price(price))
    code = _require_unique_code(Product, code)
    name = _require_text("name", name)
    if cost is not None:
        cost = unwrap(non_negative_money("cost", cost))
    product = Product(code=code, name=name, price=price, cost=cost, description=description)
    db.session.add(product)
    db.session.flush()
    return product


def create_lens(
    code: str,
    name: str,
    price,
    cost=None,
    lens_type: str | None = None,
    material: str | None = None,
) -> Lens:
    price = unwrap(validate_catalog_price(price))
    code = _require_unique_code(Lens, code)
    name = _require_text("name", name)
    if cost is not None:
        cost = unwrap(non_negative_money("cost", cost))
    lens = Lens(code=code, name=name, price=price, cost=cost, lens_type=lens_type, material=material)
    db.session.add(lens)
    db.session.flush()
    return lens


def update_price(ref: CatalogRef, price):
    """
    Change a catalog price.

    Existing discount requests keep their frozen original/discounted prices.
    """
    price = unwrap(validate_catalog_price(price))
    record = get_record(ref)
    record.price = price
    db.session.flush()
    return record
