from __future__ import annotations

from ..extensions import db
from procure.time_utils import to_utc_z, utcnow


# Status values are part of the client contract; keep them verbatim.
STATUS_NOT_ASSIGNED = "not assigned"
STATUS_ASSIGNED = "assigned"
STATUS_PENDING_REVIEW = "pending_review"
STATUS_VERIFIED = "verified"
STATUS_PAID = "paid"
STATUS_CANCELED = "canceled"

ORDER_STATUSES = (
    STATUS_NOT_ASSIGNED,
    STATUS_ASSIGNED,
    STATUS_PENDING_REVIEW,
    STATUS_VERIFIED,
    STATUS_PAID,
    STATUS_CANCELED,
)


def cents_to_amount(cents: int | None) -> float | None:
    if cents is None:
        return None
    return round(cents / 100, 2)


class Order(db.Model):
    """
    Purchase order header grouping one or more batches under one supplier.

    STATE MACHINE (see services/order_service.py):
        not assigned -> assigned -> pending_review -> verified -> paid
        not assigned | assigned | pending_review -> canceled

    items are created with the order and never added/removed afterwards.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        db.CheckConstraint("total_amount_cents >= 0", name="ck_orders_total_non_negative"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        db.Index("ix_orders_staff_status", "staff_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)

    status = db.Column(db.String(32), nullable=False, default=STATUS_NOT_ASSIGNED)

    # Authoritative storage in cents (API formats to 2 decimals)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    bill_url = db.Column(db.String(512), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    assigned_date = db.Column(db.DateTime(timezone=True), nullable=True)
    pending_review_date = db.Column(db.DateTime(timezone=True), nullable=True)
    submitted_by_staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)
    verified_date = db.Column(db.DateTime(timezone=True), nullable=True)
    verified_by_staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)
    paid_date = db.Column(db.DateTime(timezone=True), nullable=True)
    canceled_date = db.Column(db.DateTime(timezone=True), nullable=True)
    expected_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    supplier = db.relationship("Supplier", backref=db.backref("orders", lazy=True))
    staff = db.relationship("Staff", foreign_keys=[staff_id])
    submitted_by = db.relationship("Staff", foreign_keys=[submitted_by_staff_id])
    verified_by = db.relationship("Staff", foreign_keys=[verified_by_staff_id])
    items = db.relationship(
        "PurchaseOrder",
        back_populates="order",
        order_by="PurchaseOrder.position",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} status={self.status!r}>"

    def to_dict(self, *, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "supplier_id": self.supplier_id,
            "staff_id": self.staff_id,
            "status": self.status,
            "total_amount": cents_to_amount(self.total_amount_cents),
            "total_amount_cents": self.total_amount_cents,
            "bill_url": self.bill_url,
            "notes": self.notes,
            "item_ids": [item.id for item in self.items],
            "assigned_date": to_utc_z(self.assigned_date),
            "pending_review_date": to_utc_z(self.pending_review_date),
            "submitted_by_staff_id": self.submitted_by_staff_id,
            "verified_date": to_utc_z(self.verified_date),
            "verified_by_staff_id": self.verified_by_staff_id,
            "paid_date": to_utc_z(self.paid_date),
            "canceled_date": to_utc_z(self.canceled_date),
            "expected_date": to_utc_z(self.expected_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict(include_product=True) for item in self.items]
            data["supplier"] = self.supplier.to_dict() if self.supplier else None
            data["staff"] = self.staff.to_summary_dict() if self.staff else None
        return data


class PurchaseOrder(db.Model):
    """
    One line item (batch) of an Order: one product, quantity, unit cost and
    optional expiration date.

    remaining_qte starts equal to quantity and is only changed by the
    expiration sweep, which zeroes it and records expired_quantity exactly once
    (guarded by is_expired).
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_purchase_orders_quantity_positive"),
        db.CheckConstraint("unit_cost_cents >= 0", name="ck_purchase_orders_cost_non_negative"),
        db.CheckConstraint("remaining_qte >= 0", name="ck_purchase_orders_remaining_non_negative"),
        db.UniqueConstraint("order_id", "position", name="uq_purchase_orders_order_position"),
        db.Index("ix_purchase_orders_expiry_scan", "is_expired", "expiration_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    expiration_date = db.Column(db.DateTime(timezone=True), nullable=True)

    remaining_qte = db.Column(db.Integer, nullable=False)
    is_expired = db.Column(db.Boolean, nullable=False, default=False)
    expired_quantity = db.Column(db.Integer, nullable=False, default=0)
    expired_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    order = db.relationship("Order", back_populates="items")
    product = db.relationship("Product")

    def __repr__(self) -> str:
        return (
            f"<PurchaseOrder id={self.id} product_id={self.product_id} "
            f"qty={self.quantity} remaining={self.remaining_qte} expired={self.is_expired}>"
        )

    def to_dict(self, *, include_product: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_cost": cents_to_amount(self.unit_cost_cents),
            "unit_cost_cents": self.unit_cost_cents,
            "expiration_date": to_utc_z(self.expiration_date),
            "remaining_qte": self.remaining_qte,
            "is_expired": self.is_expired,
            "expired_quantity": self.expired_quantity,
            "expired_at": to_utc_z(self.expired_at),
            "created_at": to_utc_z(self.created_at),
        }
        if include_product:
            data["product"] = self.product.to_summary_dict() if self.product else None
        return data
