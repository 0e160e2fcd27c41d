# backend/clinicpos/services/transfer_service.py
"""
Inventory transfers between warehouse locations.

WHY: Move stock between shelves, stores and display cases with an audit
trail, without ever driving a location negative.

LIFECYCLE:
1. PENDING: transfer requested; nothing reserved or moved
2. COMPLETED: stock moved atomically (terminal)
3. CANCELLED: abandoned before completion, stock untouched (terminal)

COMPLETION is one transaction: the source decrement is a conditional UPDATE
(quantity >= requested) so two transfers draining the same location cannot
both succeed; the destination increment and completed_at stamp follow. If
the decrement matches no row the transfer stays PENDING and
InsufficientStock is raised.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import func, update

from ..errors import InsufficientStock, InvalidStateTransition, NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryItem, InventoryTransfer
from ..time_utils import utcnow
from ..validation import coerce_int, unwrap
from . import catalog_service
from .catalog_service import CatalogRef
from .concurrency import lock_for_update, run_with_retry
from .inventory_service import ITEM_STATUS_AVAILABLE, add_stock_locked, available_quantity, get_location


TRANSFER_STATUS_PENDING = "pending"
TRANSFER_STATUS_COMPLETED = "completed"
TRANSFER_STATUS_CANCELLED = "cancelled"


def get_transfer(transfer_id: int) -> InventoryTransfer:
    transfer = db.session.get(InventoryTransfer, transfer_id)
    if not transfer:
        raise NotFoundError(f"Transfer {transfer_id} not found", {"transfer_id": transfer_id})
    return transfer


def list_transfers(status: str | None = None, location_id: int | None = None):
    query = db.session.query(InventoryTransfer)
    if status:
        query = query.filter(InventoryTransfer.status == status)
    if location_id:
        query = query.filter(
            (InventoryTransfer.source_location_id == location_id)
            | (InventoryTransfer.destination_location_id == location_id)
        )
    return query.order_by(InventoryTransfer.id.desc()).all()


def create_transfer(
    ref: CatalogRef,
    source_location_id: int,
    destination_location_id: int,
    quantity,
    actor_id: int,
    notes: str | None = None,
) -> InventoryTransfer:
    """
    Create a pending transfer. Stock is only checked when it completes.

    Raises:
        ValidationError: quantity < 1 or source == destination
        NotFoundError: unknown catalog item or location
    """
    quantity = unwrap(coerce_int("quantity", quantity, minimum=1))
    source_location_id = unwrap(coerce_int("source_location_id", source_location_id, minimum=1))
    destination_location_id = unwrap(coerce_int("destination_location_id", destination_location_id, minimum=1))
    if source_location_id == destination_location_id:
        raise ValidationError("destination_location_id", "must differ from the source location")

    def _op() -> InventoryTransfer:
        catalog_service.resolve(ref)
        get_location(source_location_id)
        get_location(destination_location_id)

        transfer = InventoryTransfer(
            item_type=ref.item_type,
            item_id=ref.id,
            source_location_id=source_location_id,
            destination_location_id=destination_location_id,
            quantity=quantity,
            status=TRANSFER_STATUS_PENDING,
            notes=notes,
            transferred_by_user_id=actor_id,
        )
        db.session.add(transfer)
        db.session.flush()
        return transfer

    return run_with_retry(_op)


def complete_transfer(transfer_id: int, actor_id: int) -> InventoryTransfer:
    """
    Move the stock and mark the transfer completed.

    Raises:
        NotFoundError: unknown transfer
        InvalidStateTransition: transfer is not pending
        InsufficientStock: source holds less than requested (transfer stays pending)
    """
    def _op() -> InventoryTransfer:
        transfer = lock_for_update(db.session.query(InventoryTransfer).filter_by(id=transfer_id)).first()
        if not transfer:
            raise NotFoundError(f"Transfer {transfer_id} not found", {"transfer_id": transfer_id})
        if transfer.status != TRANSFER_STATUS_PENDING:
            raise InvalidStateTransition("transfer", transfer.status, TRANSFER_STATUS_COMPLETED, {"transfer_id": transfer.id})

        ref = catalog_service.ref_of(transfer)

        decremented = db.session.execute(
            update(InventoryItem)
            .where(
                InventoryItem.item_type == transfer.item_type,
                InventoryItem.item_id == transfer.item_id,
                InventoryItem.location_id == transfer.source_location_id,
                InventoryItem.status == ITEM_STATUS_AVAILABLE,
                InventoryItem.quantity >= transfer.quantity,
            )
            .values(
                quantity=InventoryItem.quantity - transfer.quantity,
                updated_at=func.now(),
                version_id=InventoryItem.version_id + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if decremented.rowcount != 1:
            available = available_quantity(ref, transfer.source_location_id)
            raise InsufficientStock(
                f"Insufficient stock at location {transfer.source_location_id}: "
                f"available {available}, requested {transfer.quantity}",
                {
                    "transfer_id": transfer.id,
                    "location_id": transfer.source_location_id,
                    "available": available,
                    "requested": transfer.quantity,
                },
            )

        add_stock_locked(ref, get_location(transfer.destination_location_id), transfer.quantity)

        transfer.status = TRANSFER_STATUS_COMPLETED
        transfer.completed_at = utcnow()
        transfer.completed_by_user_id = actor_id
        db.session.flush()

        current_app.logger.info(
            "Transfer %s completed: %s %s x%s from location %s to %s",
            transfer.id, transfer.item_type, transfer.item_id, transfer.quantity,
            transfer.source_location_id, transfer.destination_location_id,
        )
        return transfer

    return run_with_retry(_op)


def cancel_transfer(transfer_id: int, actor_id: int, reason: str | None = None) -> InventoryTransfer:
    """Cancel a pending transfer. Nothing was moved, so stock is untouched."""
    def _op() -> InventoryTransfer:
        transfer = lock_for_update(db.session.query(InventoryTransfer).filter_by(id=transfer_id)).first()
        if not transfer:
            raise NotFoundError(f"Transfer {transfer_id} not found", {"transfer_id": transfer_id})
        if transfer.status != TRANSFER_STATUS_PENDING:
            raise InvalidStateTransition("transfer", transfer.status, TRANSFER_STATUS_CANCELLED, {"transfer_id": transfer.id})

        transfer.status = TRANSFER_STATUS_CANCELLED
        transfer.cancelled_at = utcnow()
        transfer.cancelled_by_user_id = actor_id
        transfer.cancellation_reason = reason
        db.session.flush()
        return transfer

    return run_with_retry(_op)
