from __future__ import annotations

from ..extensions import db
from clinicpos.time_utils import to_utc_z


class Order(db.Model):
    """
    Lab-facing order of purchased items.

    Structurally parallel to Quote. payment_status mirrors the financial state
    of the Sale created from it (pending, partially-paid, paid, refunded).
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False)
    patient_id = db.Column(db.Integer, db.ForeignKey("patients.id"), nullable=False, index=True)
    laboratory_id = db.Column(db.Integer, db.ForeignKey("laboratories.id"), nullable=True, index=True)
    quote_id = db.Column(db.Integer, db.ForeignKey("quotes.id"), nullable=True, index=True)
    appointment_id = db.Column(db.Integer, nullable=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)  # pending, processing, completed, cancelled, on-hold
    payment_status = db.Column(db.String(16), nullable=False, default="pending", index=True)  # pending, partially-paid, paid, refunded

    notes = db.Column(db.Text, nullable=True)
    created_by_user_id = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    patient = db.relationship("Patient")
    laboratory = db.relationship("Laboratory")
    quote = db.relationship("Quote")
    items = db.relationship(
        "OrderItem",
        backref="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "patient_id": self.patient_id,
            "laboratory_id": self.laboratory_id,
            "quote_id": self.quote_id,
            "appointment_id": self.appointment_id,
            "subtotal": str(self.subtotal),
            "discount_amount": str(self.discount_amount),
            "tax_amount": str(self.tax_amount),
            "total": str(self.total),
            "status": self.status,
            "payment_status": self.payment_status,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    """Line on an order."""
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    item_type = db.Column(db.String(16), nullable=False)
    item_id = db.Column(db.Integer, nullable=False)
    name = db.Column(db.String(255), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False)
    original_price = db.Column(db.Numeric(12, 2), nullable=False)
    discount_percentage = db.Column(db.Numeric(7, 4), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False)

    discount_request_id = db.Column(db.Integer, db.ForeignKey("discount_requests.id"), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "item_type": self.item_type,
            "item_id": self.item_id,
            "name": self.name,
            "quantity": self.quantity,
            "price": str(self.price),
            "original_price": str(self.original_price),
            "discount_percentage": str(self.discount_percentage),
            "discount_amount": str(self.discount_amount),
            "total": str(self.total),
            "discount_request_id": self.discount_request_id,
            "notes": self.notes,
        }
