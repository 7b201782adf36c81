# Overview: Service-layer operations for notifications; create-only sink plus read listing.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Notification
from ..models.notifications import (
    NOTIFICATION_TYPES,
    TYPE_EXPIRY_WARNING,
    TYPE_LOW_STOCK,
)
from ..errors import ValidationError


def product_action_url(product_id: int) -> str:
    origin = current_app.config.get("CLIENT_ORIGIN", "").rstrip("/")
    return f"{origin}/api/products/{product_id}"


def push_notification(
    *,
    type: str,
    title: str,
    message: str,
    action_url: str | None = None,
    recipient_role: str | None = None,
    product_id: int | None = None,
    purchase_order_id: int | None = None,
) -> Notification:
    """
    Record a notification in the current transaction (flushed, not committed).
    """
    if type not in NOTIFICATION_TYPES:
        raise ValidationError(
            f"Invalid notification type '{type}'. Must be one of: {', '.join(NOTIFICATION_TYPES)}"
        )

    notification = Notification(
        type=type,
        title=title,
        message=message,
        action_url=action_url,
        recipient_role=recipient_role,
        product_id=product_id,
        purchase_order_id=purchase_order_id,
    )
    db.session.add(notification)
    db.session.flush()
    return notification


def notify_low_stock(*, product_id: int, product_name: str, current_stock: int) -> Notification:
    return push_notification(
        type=TYPE_LOW_STOCK,
        title=f"{product_name} Stock Alert",
        message=f"Product {product_name} is below minimum stock level! Current stock: {current_stock}",
        action_url=product_action_url(product_id),
        product_id=product_id,
    )


def notify_expired_batch(*, product_id: int, purchase_order_id: int, expired_quantity: int) -> Notification:
    return push_notification(
        type=TYPE_EXPIRY_WARNING,
        title=f"Batch Expired: {purchase_order_id}",
        message=(
            f"Batch {purchase_order_id} of product {product_id} has expired. "
            f"Expired quantity: {expired_quantity}"
        ),
        action_url=product_action_url(product_id),
        product_id=product_id,
        purchase_order_id=purchase_order_id,
    )


def notify_expired_product(
    *,
    product_id: int,
    product_name: str,
    purchase_order_id: int,
    expired_quantity: int,
    current_stock: int,
) -> Notification:
    return push_notification(
        type=TYPE_EXPIRY_WARNING,
        title=f"Product Expired: {product_name}",
        message=(
            f"Product {product_name} has expired. Expired quantity: {expired_quantity}. "
            f"Current stock: {current_stock}"
        ),
        action_url=product_action_url(product_id),
        product_id=product_id,
        purchase_order_id=purchase_order_id,
    )


def list_notifications(
    *,
    type: str | None = None,
    unread_only: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Notification], int]:
    query = db.session.query(Notification)
    if type:
        if type not in NOTIFICATION_TYPES:
            raise ValidationError(
                f"Invalid notification type '{type}'. Must be one of: {', '.join(NOTIFICATION_TYPES)}"
            )
        query = query.filter(Notification.type == type)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))

    total = query.count()
    rows = (
        query.order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return rows, total
