from __future__ import annotations

from ..extensions import db
from clinicpos.time_utils import to_utc_z


class DocumentSequence(db.Model):
    """
    Atomic per-prefix, per-day document sequences.

    WHY: Prevent race conditions when generating document numbers
    (quotes, orders, sales, laboratory orders). One row per prefix+date;
    next_number is bumped with a single UPDATE so concurrent callers serialize.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("prefix", "scope_date", name="uq_doc_sequences_prefix_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    prefix = db.Column(db.String(16), nullable=False, index=True)
    scope_date = db.Column(db.Date, nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "prefix": self.prefix,
            "scope_date": self.scope_date.isoformat(),
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
