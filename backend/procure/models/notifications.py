from __future__ import annotations

from ..extensions import db
from procure.time_utils import to_utc_z


TYPE_LOW_STOCK = "low_stock"
TYPE_BUDGET_ALERT = "budget_alert"
TYPE_EXPIRY_WARNING = "expiry_warning"
TYPE_COMPLETED_TASK = "completed_task"
NOTIFICATION_TYPES = (TYPE_LOW_STOCK, TYPE_BUDGET_ALERT, TYPE_EXPIRY_WARNING, TYPE_COMPLETED_TASK)


class Notification(db.Model):
    """
    Dashboard alert. The core only ever inserts these.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_type_created", "type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(32), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    recipient_role = db.Column(db.String(16), nullable=True)
    action_url = db.Column(db.String(512), nullable=True)

    # Set for stock/expiry alerts so they can be traced back
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "is_read": self.is_read,
            "recipient_role": self.recipient_role,
            "action_url": self.action_url,
            "product_id": self.product_id,
            "purchase_order_id": self.purchase_order_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
