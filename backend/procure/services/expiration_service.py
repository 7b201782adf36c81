# Overview: Service-layer operations for batch expiration; expires elapsed batches and debits stock.

"""
Expiration Sweep

For every batch whose expiration_date has passed, is not yet expired and
still has remaining quantity:

    1. mark it expired (is_expired, expired_quantity = remaining_qte, remaining_qte = 0)
    2. raise an expiry_warning for the batch
    3. debit product stock by expired_quantity (clamped at zero)
    4. raise an expiry_warning for the product with the new level
    5. raise low_stock if the product fell below min_qty

Steps 1-5 for one batch are ONE database transaction. Step 1 is a
conditional UPDATE on is_expired = false, so a batch taken by a concurrent
or earlier sweep is skipped and stock is debited exactly once.

A failure on one batch rolls back that batch only; the sweep logs it with
the batch id and continues. The next scheduled run retries it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app
from sqlalchemy import select
from sqlalchemy.orm import joinedload

from ..extensions import db
from ..models import Product, PurchaseOrder
from ..errors import ValidationError
from .concurrency import compare_and_set
from .notification_service import (
    notify_expired_batch,
    notify_expired_product,
    notify_low_stock,
)
from .stock_service import decrement_stock_clamped
from procure.time_utils import days_from_now, utcnow


@dataclass(frozen=True)
class BatchExpiry:
    purchase_order_id: int
    product_id: int
    expired_quantity: int
    stock_removed: int
    stock_after: int
    low_stock: bool


@dataclass
class SweepResult:
    found: int = 0
    expired: list[BatchExpiry] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "found": self.found,
            "expired": len(self.expired),
            "expired_batch_ids": [e.purchase_order_id for e in self.expired],
            "skipped_batch_ids": self.skipped,
            "failed_batch_ids": self.failed,
        }


def _live_batches(query):
    return query.where(
        PurchaseOrder.is_expired.is_(False),
        PurchaseOrder.remaining_qte > 0,
    )


def find_expired_batch_ids(now: datetime | None = None) -> list[int]:
    now = now or utcnow()
    stmt = _live_batches(select(PurchaseOrder.id)).where(
        PurchaseOrder.expiration_date.is_not(None),
        PurchaseOrder.expiration_date <= now,
    ).order_by(PurchaseOrder.expiration_date.asc(), PurchaseOrder.id.asc())
    return list(db.session.execute(stmt).scalars())


def expire_batch(batch_id: int, *, now: datetime | None = None) -> BatchExpiry | None:
    """
    Expire one batch and debit its product, atomically.

    Returns None when the batch was already expired (or emptied) by someone
    else. Commits on success; rolls back and re-raises on failure.
    """
    now = now or utcnow()
    try:
        row = db.session.execute(
            select(PurchaseOrder.product_id, PurchaseOrder.remaining_qte)
            .where(PurchaseOrder.id == batch_id)
        ).one_or_none()
        if row is None or row.remaining_qte <= 0:
            db.session.rollback()
            return None

        expired_quantity = row.remaining_qte
        taken = compare_and_set(
            PurchaseOrder,
            batch_id,
            expected={"is_expired": False, "remaining_qte": expired_quantity},
            values={
                "is_expired": True,
                "expired_quantity": expired_quantity,
                "remaining_qte": 0,
                "expired_at": now,
            },
        )
        if not taken:
            db.session.rollback()
            return None

        notify_expired_batch(
            product_id=row.product_id,
            purchase_order_id=batch_id,
            expired_quantity=expired_quantity,
        )

        change = decrement_stock_clamped(row.product_id, expired_quantity)
        if change.clamped:
            current_app.logger.warning(
                "Batch %s expired %s units of product %s but only %s were in stock; clamped to 0",
                batch_id, expired_quantity, row.product_id, change.applied,
            )

        product_name = db.session.execute(
            select(Product.name).where(Product.id == row.product_id)
        ).scalar_one()

        notify_expired_product(
            product_id=row.product_id,
            product_name=product_name,
            purchase_order_id=batch_id,
            expired_quantity=expired_quantity,
            current_stock=change.stock_after,
        )
        if change.is_low_stock:
            notify_low_stock(
                product_id=row.product_id,
                product_name=product_name,
                current_stock=change.stock_after,
            )

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Batch %s of product %s expired - removed %s units (stock now %s)",
        batch_id, row.product_id, change.applied, change.stock_after,
    )
    return BatchExpiry(
        purchase_order_id=batch_id,
        product_id=row.product_id,
        expired_quantity=expired_quantity,
        stock_removed=change.applied,
        stock_after=change.stock_after,
        low_stock=change.is_low_stock,
    )


def run_sweep_once(now: datetime | None = None) -> SweepResult:
    """
    One pass over all elapsed batches. Never raises for a single bad batch.
    """
    now = now or utcnow()
    result = SweepResult()

    batch_ids = find_expired_batch_ids(now)
    result.found = len(batch_ids)
    current_app.logger.info("Found %s expired batches to process", result.found)

    for batch_id in batch_ids:
        try:
            expiry = expire_batch(batch_id, now=now)
        except Exception:
            current_app.logger.exception("Error handling expired batch %s", batch_id)
            result.failed.append(batch_id)
            continue
        if expiry is None:
            result.skipped.append(batch_id)
        else:
            result.expired.append(expiry)

    return result


def get_batches_expiring_within(days: int, *, now: datetime | None = None) -> list[PurchaseOrder]:
    """
    Batches that expire in (now, now + days], still in stock, with product loaded.
    Read-only.
    """
    if isinstance(days, bool) or not isinstance(days, int) or days < 0:
        raise ValidationError("days must be a non-negative integer")

    now = now or utcnow()
    horizon = days_from_now(days, now)
    stmt = (
        _live_batches(select(PurchaseOrder))
        .where(
            PurchaseOrder.expiration_date > now,
            PurchaseOrder.expiration_date <= horizon,
        )
        .options(joinedload(PurchaseOrder.product))
        .order_by(PurchaseOrder.expiration_date.asc(), PurchaseOrder.id.asc())
    )
    return list(db.session.execute(stmt).scalars())
