from __future__ import annotations

from ..extensions import db
from clinicpos.time_utils import to_utc_z


class Warehouse(db.Model):
    __tablename__ = "warehouses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    code = db.Column(db.String(32), nullable=False, unique=True)
    status = db.Column(db.String(16), nullable=False, default="active")

    locations = db.relationship("WarehouseLocation", backref="warehouse", lazy=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "code": self.code, "status": self.status}


class WarehouseLocation(db.Model):
    """Named storage location (shelf, drawer, display case) inside a warehouse."""
    __tablename__ = "warehouse_locations"
    __table_args__ = (
        db.UniqueConstraint("warehouse_id", "code", name="uq_locations_warehouse_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    code = db.Column(db.String(32), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "warehouse_id": self.warehouse_id,
            "name": self.name,
            "code": self.code,
        }


class InventoryItem(db.Model):
    """
    Stocked quantity of one catalog item at one location, in one status.

    WHY one row per (item, location, status): lets the transfer ledger move
    stock with a single conditional UPDATE on the source row.

    INVARIANT: quantity >= 0 (enforced by a CHECK constraint and by the
    compare-and-swap decrement in transfer_service.complete_transfer).
    """
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.UniqueConstraint("item_type", "item_id", "location_id", "status", name="uq_inventory_item_location_status"),
        db.CheckConstraint("quantity >= 0", name="ck_inventory_items_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_type = db.Column(db.String(16), nullable=False)
    item_id = db.Column(db.Integer, nullable=False)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("warehouse_locations.id"), nullable=True, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default="available", index=True)  # available, reserved, damaged, sold, returned, lost
    notes = db.Column(db.Text, nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    warehouse = db.relationship("Warehouse")
    location = db.relationship("WarehouseLocation")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_type": self.item_type,
            "item_id": self.item_id,
            "warehouse_id": self.warehouse_id,
            "location_id": self.location_id,
            "quantity": self.quantity,
            "status": self.status,
            "notes": self.notes,
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class InventoryTransfer(db.Model):
    """
    Movement of stock between two warehouse locations.

    LIFECYCLE:
    1. PENDING: requested, nothing reserved or moved
    2. COMPLETED: stock moved atomically (terminal)
    3. CANCELLED: abandoned before completion (terminal)
    """
    __tablename__ = "inventory_transfers"
    __table_args__ = (
        db.Index("ix_inventory_transfers_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_type = db.Column(db.String(16), nullable=False)
    item_id = db.Column(db.Integer, nullable=False)
    source_location_id = db.Column(db.Integer, db.ForeignKey("warehouse_locations.id"), nullable=False, index=True)
    destination_location_id = db.Column(db.Integer, db.ForeignKey("warehouse_locations.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    notes = db.Column(db.Text, nullable=True)

    transferred_by_user_id = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_by_user_id = db.Column(db.Integer, nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    source_location = db.relationship("WarehouseLocation", foreign_keys=[source_location_id])
    destination_location = db.relationship("WarehouseLocation", foreign_keys=[destination_location_id])
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_type": self.item_type,
            "item_id": self.item_id,
            "source_location_id": self.source_location_id,
            "destination_location_id": self.destination_location_id,
            "quantity": self.quantity,
            "status": self.status,
            "notes": self.notes,
            "transferred_by_user_id": self.transferred_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
            "completed_by_user_id": self.completed_by_user_id,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "cancellation_reason": self.cancellation_reason,
            "version_id": self.version_id,
        }
