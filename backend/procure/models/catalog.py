from __future__ import annotations

from ..extensions import db
from procure.time_utils import to_utc_z


PRODUCT_UNITS = ("liter", "kilogram", "box", "piece", "meter", "pack", "bottle")
_UNIT_LIST = ", ".join(f"'{unit}'" for unit in PRODUCT_UNITS)


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "image_url": self.image_url,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data.

    STOCK DESIGN DECISION:
    current_stock is a stored counter, not a ledger sum. It is shared between
    the order lifecycle (verify credits it) and the expiration sweep (debits it),
    so it is ONLY ever changed through stock_service, which issues a single
    UPDATE ... SET current_stock = <expr> statement. Never assign it on a loaded
    instance and flush.

    INVARIANT: current_stock >= 0 (CHECK constraint + clamped decrements).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("current_stock >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint(f"unit IN ({_UNIT_LIST})", name="ck_products_unit"),
        db.Index("ix_products_category", "category_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, unique=True)
    barcode = db.Column(db.String(64), nullable=True)
    unit = db.Column(db.String(16), nullable=False, default="piece")
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True)
    image_url = db.Column(db.String(512), nullable=True)
    description = db.Column(db.Text, nullable=True)

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    min_qty = db.Column(db.Integer, nullable=False, default=0)
    recommended_qty = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.current_stock}>"

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock < self.min_qty

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "barcode": self.barcode,
            "unit": self.unit,
            "category_id": self.category_id,
            "image_url": self.image_url,
            "description": self.description,
            "current_stock": self.current_stock,
            "min_qty": self.min_qty,
            "recommended_qty": self.recommended_qty,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

    def to_summary_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "current_stock": self.current_stock,
            "image_url": self.image_url,
            "barcode": self.barcode,
        }


class Supplier(db.Model):
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    contact_person = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone1 = db.Column(db.String(64), nullable=True)
    address = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(512), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Supplier id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact_person": self.contact_person,
            "email": self.email,
            "phone1": self.phone1,
            "address": self.address,
            "image_url": self.image_url,
            "is_active": self.is_active,
        }
