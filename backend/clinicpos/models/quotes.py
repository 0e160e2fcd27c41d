from __future__ import annotations

from ..extensions import db
from clinicpos.time_utils import to_utc_z, to_iso_date


class Quote(db.Model):
    """
    Priced, time-limited proposal to a patient.

    LIFECYCLE:
    - PENDING / APPROVED: open, may be converted into a sale
    - REJECTED / EXPIRED: closed by staff or by the expiry job
    - CONVERTED: terminal, a Sale exists for this quote

    INVARIANT: total == subtotal - discount_amount + tax_amount
    """
    __tablename__ = "quotes"
    __table_args__ = (
        db.UniqueConstraint("quote_number", name="uq_quotes_number"),
        db.Index("ix_quotes_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    quote_number = db.Column(db.String(32), nullable=False)
    patient_id = db.Column(db.Integer, db.ForeignKey("patients.id"), nullable=False, index=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax_percentage = db.Column(db.Numeric(5, 2), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    expiration_date = db.Column(db.Date, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())

    # Conversion audit trail
    converted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    converted_by_user_id = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    patient = db.relationship("Patient")
    items = db.relationship(
        "QuoteItem",
        backref="quote",
        cascade="all, delete-orphan",
        order_by="QuoteItem.position",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "quote_number": self.quote_number,
            "patient_id": self.patient_id,
            "subtotal": str(self.subtotal),
            "discount_amount": str(self.discount_amount),
            "tax_amount": str(self.tax_amount),
            "tax_percentage": str(self.tax_percentage) if self.tax_percentage is not None else None,
            "total": str(self.total),
            "status": self.status,
            "expiration_date": to_iso_date(self.expiration_date),
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "converted_at": to_utc_z(self.converted_at),
            "converted_by_user_id": self.converted_by_user_id,
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class QuoteItem(db.Model):
    """
    Line on a quote.

    price may be below original_price only when discount_request_id points at
    an approved, unexpired discount for the same catalog item.
    """
    __tablename__ = "quote_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    quote_id = db.Column(db.Integer, db.ForeignKey("quotes.id", ondelete="CASCADE"), nullable=False, index=True)
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

    discount_request_id = db.Column(db.Integer, db.ForeignKey("discount_requests.id"), nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    discount_request = db.relationship("DiscountRequest")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "quote_id": self.quote_id,
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
