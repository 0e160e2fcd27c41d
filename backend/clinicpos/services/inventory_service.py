# Overview: Stock on hand per catalog item and warehouse location.

from __future__ import annotations

from sqlalchemy import func, update

from ..errors import NotFoundError
from ..extensions import db
from ..models import InventoryItem, WarehouseLocation
from ..validation import coerce_int, unwrap
from . import catalog_service
from .catalog_service import CatalogRef
from .concurrency import run_with_retry


ITEM_STATUS_AVAILABLE = "available"
ITEM_STATUS_RESERVED = "reserved"
ITEM_STATUS_DAMAGED = "damaged"
ITEM_STATUS_SOLD = "sold"
ITEM_STATUS_RETURNED = "returned"
ITEM_STATUS_LOST = "lost"

ITEM_STATUSES = (
    ITEM_STATUS_AVAILABLE,
    ITEM_STATUS_RESERVED,
    ITEM_STATUS_DAMAGED,
    ITEM_STATUS_SOLD,
    ITEM_STATUS_RETURNED,
    ITEM_STATUS_LOST,
)


def get_location(location_id, field: str = "location_id") -> WarehouseLocation:
    location_id = unwrap(coerce_int(field, location_id, minimum=1))
    location = db.session.get(WarehouseLocation, location_id)
    if not location:
        raise NotFoundError(f"Location {location_id} not found", {"location_id": location_id})
    return location


def _stock_row(ref: CatalogRef, location_id: int, status: str = ITEM_STATUS_AVAILABLE):
    return (
        db.session.query(InventoryItem)
        .filter_by(item_type=ref.item_type, item_id=ref.id, location_id=location_id, status=status)
        .first()
    )


def add_stock_locked(ref: CatalogRef, location: WarehouseLocation, quantity: int) -> InventoryItem:
    """
    Increment available stock at a location inside the caller's transaction.

    The increment is a single UPDATE (quantity = quantity + n); the row is
    created on first use.
    """
    result = db.session.execute(
        update(InventoryItem)
        .where(
            InventoryItem.item_type == ref.item_type,
            InventoryItem.item_id == ref.id,
            InventoryItem.location_id == location.id,
            InventoryItem.status == ITEM_STATUS_AVAILABLE,
        )
        .values(
            quantity=InventoryItem.quantity + quantity,
            updated_at=func.now(),
            version_id=InventoryItem.version_id + 1,
        )
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        row = InventoryItem(
            item_type=ref.item_type,
            item_id=ref.id,
            warehouse_id=location.warehouse_id,
            location_id=location.id,
            quantity=quantity,
            status=ITEM_STATUS_AVAILABLE,
        )
        db.session.add(row)
        db.session.flush()
        return row

    row = _stock_row(ref, location.id)
    db.session.refresh(row)
    return row


def receive_stock(ref: CatalogRef, location_id: int, quantity) -> InventoryItem:
    """Put received units into available stock at a location."""
    quantity = unwrap(coerce_int("quantity", quantity, minimum=1))

    def _op() -> InventoryItem:
        catalog_service.resolve(ref)
        location = get_location(location_id)
        return add_stock_locked(ref, location, quantity)

    return run_with_retry(_op)


def available_quantity(ref: CatalogRef, location_id: int) -> int:
    quantity = (
        db.session.query(func.coalesce(func.sum(InventoryItem.quantity), 0))
        .filter(
            InventoryItem.item_type == ref.item_type,
            InventoryItem.item_id == ref.id,
            InventoryItem.location_id == location_id,
            InventoryItem.status == ITEM_STATUS_AVAILABLE,
        )
        .scalar()
    )
    return int(quantity)


def list_stock(location_id: int | None = None, ref: CatalogRef | None = None):
    query = db.session.query(InventoryItem)
    if location_id:
        query = query.filter(InventoryItem.location_id == location_id)
    if ref is not None:
        query = query.filter(InventoryItem.item_type == ref.item_type, InventoryItem.item_id == ref.id)
    return query.order_by(InventoryItem.id).all()
