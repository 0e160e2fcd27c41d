from __future__ import annotations

from ..extensions import db
from clinicpos.time_utils import to_utc_z


class Patient(db.Model):
    """
    Patient reference.

    Demographics and clinical history are owned by other parts of the clinic
    system; the commerce workflow only needs to know the patient exists.
    """
    __tablename__ = "patients"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(128), nullable=False)
    last_name = db.Column(db.String(128), nullable=False)
    identification = db.Column(db.String(64), nullable=True, unique=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "identification": self.identification,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    General catalog product (frames, solutions, accessories).

    Price must be strictly positive; see validation.validate_catalog_price.
    """
    __tablename__ = "products"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    price = db.Column(db.Numeric(12, 2), nullable=False)
    cost = db.Column(db.Numeric(12, 2), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="active")  # active, inactive
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_type": "product",
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "price": str(self.price),
            "cost": str(self.cost) if self.cost is not None else None,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }


class Lens(db.Model):
    """
    Ophthalmic lens catalog entry.

    Lenses are priced like products and are the items that trigger
    laboratory fulfillment when sold.
    """
    __tablename__ = "lenses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    lens_type = db.Column(db.String(64), nullable=True)  # monofocal, bifocal, progressive...
    material = db.Column(db.String(64), nullable=True)
    price = db.Column(db.Numeric(12, 2), nullable=False)
    cost = db.Column(db.Numeric(12, 2), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="active")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "item_type": "lens",
            "code": self.code,
            "name": self.name,
            "lens_type": self.lens_type,
            "material": self.material,
            "price": str(self.price),
            "cost": str(self.cost) if self.cost is not None else None,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }
