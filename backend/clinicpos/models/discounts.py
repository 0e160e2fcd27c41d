from __future__ import annotations

from ..extensions import db
from clinicpos.time_utils import to_utc_z, to_iso_date


class DiscountRequest(db.Model):
    """
    Approval-gated permission to sell a catalog item below its listed price.

    LIFECYCLE:
    1. PENDING: created by a requester
    2. APPROVED: approver accepted it (terminal)
    3. REJECTED: approver declined it (terminal)

    Prices are frozen at creation: original_price is the catalog price at
    request time and discounted_price is derived from it once.

    There is no "is_valid" column; validity depends on today's
    date and is computed by discount_service.is_valid on every read.
    """
    __tablename__ = "discount_requests"
    __table_args__ = (
        db.Index("ix_discount_requests_item", "item_type", "item_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    requested_by_user_id = db.Column(db.Integer, nullable=False, index=True)

    # Catalog target (tagged reference)
    item_type = db.Column(db.String(16), nullable=False)
    item_id = db.Column(db.Integer, nullable=False)

    # Optional patient scope; global discounts apply to everyone
    patient_id = db.Column(db.Integer, db.ForeignKey("patients.id"), nullable=True, index=True)
    is_global = db.Column(db.Boolean, nullable=False, default=False)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)  # pending, approved, rejected

    discount_percentage = db.Column(db.Numeric(5, 2), nullable=False)
    original_price = db.Column(db.Numeric(12, 2), nullable=False)
    discounted_price = db.Column(db.Numeric(12, 2), nullable=False)

    reason = db.Column(db.Text, nullable=True)
    approval_notes = db.Column(db.Text, nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    expiry_date = db.Column(db.Date, nullable=True)

    approved_by_user_id = db.Column(db.Integer, nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_by_user_id = db.Column(db.Integer, nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    patient = db.relationship("Patient")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, *, valid: bool | None = None) -> dict:
        data = {
            "id": self.id,
            "requested_by_user_id": self.requested_by_user_id,
            "item_type": self.item_type,
            "item_id": self.item_id,
            "patient_id": self.patient_id,
            "is_global": self.is_global,
            "status": self.status,
            "discount_percentage": str(self.discount_percentage),
            "original_price": str(self.original_price),
            "discounted_price": str(self.discounted_price),
            "reason": self.reason,
            "approval_notes": self.approval_notes,
            "rejection_reason": self.rejection_reason,
            "expiry_date": to_iso_date(self.expiry_date),
            "approved_by_user_id": self.approved_by_user_id,
            "approved_at": to_utc_z(self.approved_at),
            "rejected_by_user_id": self.rejected_by_user_id,
            "rejected_at": to_utc_z(self.rejected_at),
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        if valid is not None:
            data["is_valid"] = valid
        return data
