from __future__ import annotations

from ..extensions import db
from clinicpos.time_utils import to_utc_z, to_iso_date


class Sale(db.Model):
    """
    Financial record of a completed or in-progress transaction.

    Two independent axes:
    - status: lifecycle (pending, completed, cancelled, refunded, ...)
    - payment_status: derived from balance (pending, partial, paid)

    INVARIANT: amount_paid + balance == total. Both fields are only written
    by payment_service.recompute_sale_balance, which sums the full history.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("sale_number", name="uq_sales_number"),
        db.Index("ix_sales_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable document number (e.g., "SALE-20261018-0001")
    sale_number = db.Column(db.String(32), nullable=False)

    patient_id = db.Column(db.Integer, db.ForeignKey("patients.id"), nullable=False, index=True)
    quote_id = db.Column(db.Integer, db.ForeignKey("quotes.id"), nullable=True, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    appointment_id = db.Column(db.Integer, nullable=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    # Payment tracking
    amount_paid = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    payment_status = db.Column(db.String(16), nullable=False, default="pending", index=True)  # pending, partial, paid

    # Lifecycle status
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    patient = db.relationship("Patient")
    quote = db.relationship("Quote")
    order = db.relationship("Order", backref=db.backref("sales", lazy=True))
    items = db.relationship("SaleItem", backref="sale", cascade="all, delete-orphan", order_by="SaleItem.position", lazy=True)
    payments = db.relationship("SalePayment", backref="sale", cascade="all, delete-orphan", order_by="SalePayment.id", lazy=True)
    partial_payments = db.relationship("PartialPayment", backref="sale", cascade="all, delete-orphan", order_by="PartialPayment.id", lazy=True)
    lens_price_adjustments = db.relationship("SaleLensPriceAdjustment", backref="sale", cascade="all, delete-orphan", lazy=True)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "sale_number": self.sale_number,
            "patient_id": self.patient_id,
            "quote_id": self.quote_id,
            "order_id": self.order_id,
            "appointment_id": self.appointment_id,
            "subtotal": str(self.subtotal),
            "discount_amount": str(self.discount_amount),
            "tax_amount": str(self.tax_amount),
            "total": str(self.total),
            "amount_paid": str(self.amount_paid),
            "balance": str(self.balance),
            "payment_status": self.payment_status,
            "status": self.status,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """Individual line items on a sale document."""
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    item_type = db.Column(db.String(16), nullable=False)
    item_id = db.Column(db.Integer, nullable=False)
    name = db.Column(db.String(255), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False)
    original_price = db.Column(db.Numeric(12, 2), nullable=True)
    discount_percentage = db.Column(db.Numeric(7, 4), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False)

    discount_request_id = db.Column(db.Integer, db.ForeignKey("discount_requests.id"), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "item_type": self.item_type,
            "item_id": self.item_id,
            "name": self.name,
            "quantity": self.quantity,
            "price": str(self.price),
            "original_price": str(self.original_price) if self.original_price is not None else None,
            "discount_percentage": str(self.discount_percentage),
            "discount_amount": str(self.discount_amount),
            "total": str(self.total),
            "discount_request_id": self.discount_request_id,
            "notes": self.notes,
        }


class SalePayment(db.Model):
    """
    Payment taken when the sale is registered (full or initial partial).

    Append-only: never edited or deleted once recorded.
    """
    __tablename__ = "sale_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)

    payment_method = db.Column(db.String(32), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    reference_number = db.Column(db.String(128), nullable=True)
    payment_date = db.Column(db.Date, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "channel": "sale_payment",
            "payment_method": self.payment_method,
            "amount": str(self.amount),
            "reference_number": self.reference_number,
            "payment_date": to_iso_date(self.payment_date),
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class PartialPayment(db.Model):
    """
    Later top-up payment (abono) against an outstanding balance.

    Append-only, same as SalePayment.
    """
    __tablename__ = "partial_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)

    payment_method = db.Column(db.String(32), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    reference_number = db.Column(db.String(128), nullable=True)
    payment_date = db.Column(db.Date, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "channel": "partial_payment",
            "payment_method": self.payment_method,
            "amount": str(self.amount),
            "reference_number": self.reference_number,
            "payment_date": to_iso_date(self.payment_date),
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class SaleLensPriceAdjustment(db.Model):
    """
    Price increase over catalog for a specific lens on a specific sale.

    INVARIANT: adjusted_price > base_price. Decreases go through DiscountRequest.
    """
    __tablename__ = "sale_lens_price_adjustments"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "lens_id", name="uq_sale_lens_adjustment"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    lens_id = db.Column(db.Integer, db.ForeignKey("lenses.id"), nullable=False, index=True)

    base_price = db.Column(db.Numeric(12, 2), nullable=False)
    adjusted_price = db.Column(db.Numeric(12, 2), nullable=False)
    adjustment_amount = db.Column(db.Numeric(12, 2), nullable=False)
    reason = db.Column(db.Text, nullable=True)

    adjusted_by_user_id = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    lens = db.relationship("Lens")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "lens_id": self.lens_id,
            "base_price": str(self.base_price),
            "adjusted_price": str(self.adjusted_price),
            "adjustment_amount": str(self.adjustment_amount),
            "reason": self.reason,
            "adjusted_by_user_id": self.adjusted_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
