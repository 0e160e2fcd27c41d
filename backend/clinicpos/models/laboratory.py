from __future__ import annotations

from ..extensions import db
from clinicpos.time_utils import to_utc_z, to_iso_date


class Laboratory(db.Model):
    """External lens-grinding laboratory."""
    __tablename__ = "laboratories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    contact_email = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="active")  # active, inactive

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact_email": self.contact_email,
            "status": self.status,
        }


class LaboratoryOrder(db.Model):
    """
    Fulfillment request sent to a laboratory.

    status always equals the latest LaboratoryOrderStatus row; history rows are
    append-only and never edited.

    EXPECTED FLOW: pending -> in_process -> sent_to_lab -> ready_for_delivery -> delivered
    cancelled is reachable from any non-terminal state.
    """
    __tablename__ = "laboratory_orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_laboratory_orders_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    laboratory_id = db.Column(db.Integer, db.ForeignKey("laboratories.id"), nullable=False, index=True)
    patient_id = db.Column(db.Integer, db.ForeignKey("patients.id"), nullable=False, index=True)

    status = db.Column(db.String(24), nullable=False, default="pending", index=True)
    priority = db.Column(db.String(16), nullable=False, default="normal")  # low, normal, high, urgent

    estimated_completion_date = db.Column(db.Date, nullable=True)
    completion_date = db.Column(db.Date, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    laboratory = db.relationship("Laboratory")
    sale = db.relationship("Sale", backref=db.backref("laboratory_orders", lazy=True))
    order = db.relationship("Order", backref=db.backref("laboratory_orders", lazy=True))
    status_history = db.relationship(
        "LaboratoryOrderStatus",
        backref="laboratory_order",
        cascade="all, delete-orphan",
        order_by="LaboratoryOrderStatus.id",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_history: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "order_id": self.order_id,
            "sale_id": self.sale_id,
            "laboratory_id": self.laboratory_id,
            "patient_id": self.patient_id,
            "status": self.status,
            "priority": self.priority,
            "estimated_completion_date": to_iso_date(self.estimated_completion_date),
            "completion_date": to_iso_date(self.completion_date),
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        if include_history:
            data["status_history"] = [row.to_dict() for row in self.status_history]
        return data


class LaboratoryOrderStatus(db.Model):
    """Immutable status history row."""
    __tablename__ = "laboratory_order_statuses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    laboratory_order_id = db.Column(
        db.Integer,
        db.ForeignKey("laboratory_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status = db.Column(db.String(24), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    user_id = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "laboratory_order_id": self.laboratory_order_id,
            "status": self.status,
            "notes": self.notes,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
