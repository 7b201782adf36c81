# Overview: Service-layer operations for order reporting; read-only aggregations.

from __future__ import annotations

from collections import OrderedDict

from sqlalchemy import func

from ..extensions import db
from ..models import Order, Staff
from ..models.orders import ORDER_STATUSES, STATUS_PAID, cents_to_amount
from ..errors import ValidationError
from procure.time_utils import month_bounds, utcnow


ANALYTICS_PERIODS = {
    # period -> number of most recent buckets returned
    "week": 8,
    "month": 12,
    "year": 5,
}

_STATUS_KEYS = {
    "not assigned": "not_assigned_orders",
    "assigned": "assigned_orders",
    "pending_review": "pending_review_orders",
    "verified": "verified_orders",
    "paid": "paid_orders",
    "canceled": "canceled_orders",
}


def _scoped(query, staff: Staff | None):
    if staff is not None and not staff.is_admin:
        query = query.filter(Order.staff_id == staff.id)
    return query


def _status_counts(staff: Staff | None) -> dict[str, int]:
    rows = (
        _scoped(db.session.query(Order.status, func.count(Order.id)), staff)
        .group_by(Order.status)
        .all()
    )
    counts = {status: 0 for status in ORDER_STATUSES}
    for status, count in rows:
        counts[status] = int(count)
    return counts


def get_order_stats(*, staff: Staff | None = None) -> dict:
    """
    Dashboard counters.

    Non-admin staff only see their own assigned orders. paid_orders and
    total_value cover orders PAID during the current calendar month.
    """
    counts = _status_counts(staff)

    start, end = month_bounds(utcnow())
    paid_count, paid_cents = (
        _scoped(
            db.session.query(
                func.count(Order.id),
                func.coalesce(func.sum(Order.total_amount_cents), 0),
            ),
            staff,
        )
        .filter(
            Order.status == STATUS_PAID,
            Order.paid_date >= start,
            Order.paid_date < end,
        )
        .one()
    )

    result = {
        _STATUS_KEYS[status]: count
        for status, count in counts.items()
        if status != STATUS_PAID
    }
    result["counts_by_status"] = counts
    result["paid_orders"] = int(paid_count or 0)
    result["total_value"] = cents_to_amount(int(paid_cents or 0))
    return result


def _bucket(created_at, period: str) -> tuple[tuple[int, ...], str]:
    if period == "week":
        iso = created_at.isocalendar()
        return (iso[0], iso[1]), f"{iso[0]}-W{iso[1]:02d}"
    if period == "month":
        return (created_at.year, created_at.month), f"{created_at.year}-{created_at.month:02d}"
    return (created_at.year,), str(created_at.year)


def get_order_analytics(*, period: str = "month") -> dict:
    """
    Summary over all orders plus a per-period series.

    Buckets are built from created_at; only periods that contain orders are
    returned, the most recent N of them, oldest first.
    """
    if period not in ANALYTICS_PERIODS:
        raise ValidationError("Invalid period. Use 'week', 'month', or 'year'")

    counts = _status_counts(None)
    total_spent_cents = (
        db.session.query(func.coalesce(func.sum(Order.total_amount_cents), 0))
        .filter(Order.status == STATUS_PAID)
        .scalar()
    )

    rows = (
        db.session.query(Order.created_at, Order.status, Order.total_amount_cents)
        .order_by(Order.created_at.asc())
        .all()
    )

    buckets: dict[tuple, dict] = OrderedDict()
    for created_at, status, total_cents in rows:
        key, label = _bucket(created_at, period)
        bucket = buckets.get(key)
        if bucket is None:
            bucket = {
                "period_label": label,
                "total_orders": 0,
                "total_spent_cents": 0,
                **{_STATUS_KEYS[s]: 0 for s in ORDER_STATUSES},
            }
            buckets[key] = bucket
        bucket["total_orders"] += 1
        bucket[_STATUS_KEYS[status]] += 1
        if status == STATUS_PAID:
            bucket["total_spent_cents"] += total_cents

    recent_keys = sorted(buckets)[-ANALYTICS_PERIODS[period]:]
    data = []
    for key in recent_keys:
        bucket = buckets[key]
        bucket["total_spent"] = cents_to_amount(bucket.pop("total_spent_cents"))
        data.append(bucket)

    summary = {_STATUS_KEYS[status]: count for status, count in counts.items()}
    summary["total_orders"] = sum(counts.values())
    summary["total_spent"] = cents_to_amount(int(total_spent_cents or 0))

    return {
        "summary": summary,
        "period": period,
        "data": data,
    }
