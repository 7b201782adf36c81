# Overview: Service-layer operations for purchase orders; owns the order state machine.

"""
Purchase Order Lifecycle Service

================================================================================
PURPOSE: Enforce the order status graph and be the single place where an
order credits warehouse stock.
================================================================================

STATE MACHINE:
    not assigned -> assigned -> pending_review -> verified -> paid
    not assigned | assigned | pending_review -> canceled

    not assigned:   Created with its batches. Stock untouched.
    assigned:       A staff member is responsible for buying.
    pending_review: Bill uploaded by the buyer. Stock still untouched.
    verified:       Bill checked by an admin. Stock credited HERE, once.
    paid:           Terminal.
    canceled:       Terminal. Not reachable from verified (stock already
                    credited; no reversal rule exists).

RULES:
1. Every transition is ONE conditional UPDATE filtered on the expected
   current status. Zero affected rows means someone else moved the order
   first (or it was never in that status) and nothing is written.
2. verify flips the status and increments stock for each batch in the same
   database transaction, so stock is credited exactly once per order.
   The verifier must not be the staff member who submitted the bill.
3. Services validate before writing and roll back on any domain error; a
   transition is never half-applied.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.exc import OperationalError

from ..extensions import db
from ..models import Order, Product, PurchaseOrder, Staff, Supplier
from ..models.orders import (
    ORDER_STATUSES,
    STATUS_ASSIGNED,
    STATUS_CANCELED,
    STATUS_NOT_ASSIGNED,
    STATUS_PAID,
    STATUS_PENDING_REVIEW,
    STATUS_VERIFIED,
)
from ..errors import (
    ConflictError,
    DependencyError,
    NotFoundError,
    ProcureError,
    StateError,
    ValidationError,
)
from ..validation import (
    parse_id,
    parse_int,
    parse_money_cents,
    parse_optional_datetime,
    pick,
)
from .concurrency import compare_and_set, run_with_retry
from .sequence_service import next_order_number
from .stock_service import increment_stock
from procure.time_utils import utcnow


VALID_TRANSITIONS = {
    (STATUS_NOT_ASSIGNED, STATUS_ASSIGNED),
    (STATUS_ASSIGNED, STATUS_PENDING_REVIEW),
    (STATUS_PENDING_REVIEW, STATUS_VERIFIED),
    (STATUS_VERIFIED, STATUS_PAID),
    (STATUS_NOT_ASSIGNED, STATUS_CANCELED),
    (STATUS_ASSIGNED, STATUS_CANCELED),
    (STATUS_PENDING_REVIEW, STATUS_CANCELED),
}
CANCELABLE_STATUSES = (STATUS_NOT_ASSIGNED, STATUS_ASSIGNED, STATUS_PENDING_REVIEW)

# Public sort keys -> columns. camelCase aliases match the dashboard's query strings.
SORTABLE_FIELDS = {
    "created_at": Order.created_at,
    "createdAt": Order.created_at,
    "updated_at": Order.updated_at,
    "updatedAt": Order.updated_at,
    "order_number": Order.order_number,
    "orderNumber": Order.order_number,
    "status": Order.status,
    "total_amount": Order.total_amount_cents,
    "totalAmount": Order.total_amount_cents,
    "expected_date": Order.expected_date,
    "expectedDate": Order.expected_date,
    "assigned_date": Order.assigned_date,
    "assignedDate": Order.assigned_date,
    "verified_date": Order.verified_date,
    "verifiedDate": Order.verified_date,
    "paid_date": Order.paid_date,
    "paidDate": Order.paid_date,
}

_UNSET = object()


@dataclass(frozen=True)
class OrderItemInput:
    product_id: int
    quantity: int
    unit_cost_cents: int
    expiration_date: datetime | None


@dataclass(frozen=True)
class OrderPage:
    orders: list[Order]
    total: int
    pages: int
    page: int
    limit: int


def validate_status(status: str) -> None:
    if status not in ORDER_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(ORDER_STATUSES)}"
        )


def can_transition(from_status: str, to_status: str) -> bool:
    validate_status(from_status)
    validate_status(to_status)
    return (from_status, to_status) in VALID_TRANSITIONS


def _in_transaction(op):
    """
    Run op() and commit. Domain errors roll back and propagate unchanged;
    lock contention is retried, then surfaced as DependencyError.
    """
    def _run():
        try:
            result = op()
            db.session.commit()
            return result
        except ProcureError:
            db.session.rollback()
            raise

    try:
        return run_with_retry(_run)
    except OperationalError as exc:
        db.session.rollback()
        raise DependencyError("Order store unavailable") from exc


def _current_status(order_id: int) -> str:
    status = db.session.execute(select(Order.status).where(Order.id == order_id)).scalar_one_or_none()
    if status is None:
        raise NotFoundError(f"Order {order_id} not found")
    return status


def _state_error(order_id: int, action: str, expected, current: str) -> StateError:
    if isinstance(expected, str):
        required = f"'{expected}'"
    else:
        required = " or ".join(f"'{s}'" for s in expected)
    return StateError(
        f"Cannot {action} order {order_id}: current status is '{current}', must be {required}",
        current_status=current,
    )


def _transition(order_id: int, *, action: str, expected, target: str, values: dict) -> None:
    """
    Conditionally move order_id from expected -> target, setting values.

    Raises StateError naming the current status when the row did not match.
    """
    values = dict(values, status=target)
    if compare_and_set(Order, order_id, expected={"status": expected}, values=values):
        return

    raise _state_error(order_id, action, expected, _current_status(order_id))



# =============================================================================
# Reads
# =============================================================================

def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def get_order_for_staff(order_id: int, staff: Staff) -> Order:
    """
    Admins see every order; other staff only orders assigned to them.
    Hidden orders are reported as not found.
    """
    order = get_order(order_id)
    if not staff.is_admin and order.staff_id != staff.id:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def _parse_supplier_ids(value) -> list[int]:
    if value is None:
        return []
    if isinstance(value, str):
        raw = value.split(",")
    elif isinstance(value, (list, tuple)):
        raw = []
        for entry in value:
            raw.extend(str(entry).split(","))
    else:
        raw = [str(value)]
    return [parse_id(part.strip(), "supplier_ids") for part in raw if part.strip()]


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def list_orders(
    *,
    staff: Staff,
    staff_id: int | None = None,
    status: str | None = None,
    supplier_ids=None,
    order_number: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> OrderPage:
    """
    Filtered, paginated order listing.

    Non-admin callers are always restricted to their own assigned orders,
    regardless of the staff_id filter they pass.
    """
    if page < 1 or limit < 1:
        raise ValidationError("Page and limit must be greater than 0")

    query = db.session.query(Order)

    if not staff.is_admin:
        query = query.filter(Order.staff_id == staff.id)
    elif staff_id is not None:
        query = query.filter(Order.staff_id == staff_id)

    if status:
        validate_status(status)
        query = query.filter(Order.status == status)

    if order_number:
        query = query.filter(
            Order.order_number.ilike(f"%{_escape_like(order_number.strip())}%", escape="\\")
        )

    ids = _parse_supplier_ids(supplier_ids)
    if ids:
        query = query.filter(Order.supplier_id.in_(ids))

    sort_key = sort_by or "created_at"
    column = SORTABLE_FIELDS.get(sort_key)
    if column is None:
        raise ValidationError(
            f"Invalid sort field '{sort_key}'. Must be one of: {', '.join(sorted(SORTABLE_FIELDS))}"
        )
    if sort_order == "asc":
        ordering = (column.asc(), Order.id.asc())
    else:
        ordering = (column.desc(), Order.id.desc())

    total = query.count()
    orders = (
        query.order_by(*ordering)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return OrderPage(
        orders=orders,
        total=total,
        pages=math.ceil(total / limit),
        page=page,
        limit=limit,
    )


# =============================================================================
# Creation
# =============================================================================

def parse_order_items(raw_items) -> list[OrderItemInput]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("Order must contain at least one item")

    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        unit_cost = pick(raw, "unit_cost", "unitCost")
        if unit_cost is None:
            raise ValidationError(f"items[{index}].unit_cost is required")
        items.append(OrderItemInput(
            product_id=parse_id(pick(raw, "product_id", "productId"), f"items[{index}].product_id"),
            quantity=parse_int(pick(raw, "quantity"), f"items[{index}].quantity", minimum=1),
            unit_cost_cents=parse_money_cents(unit_cost, f"items[{index}].unit_cost"),
            expiration_date=parse_optional_datetime(
                pick(raw, "expiration_date", "expirationDate"),
                f"items[{index}].expiration_date",
            ),
        ))
    return items


def create_order(
    *,
    supplier_id,
    items,
    notes: str | None = None,
    expected_date=None,
    bill_url: str | None = None,
) -> Order:
    """
    Create an order and one PurchaseOrder batch per item.

    total_amount = sum(quantity * unit_cost) over the items, in cents.
    Status starts at 'not assigned'; stock is NOT touched here.

    Raises:
        ValidationError: missing supplier, no items, malformed item, or any
            supplier/product id that does not resolve
    """
    if supplier_id is None or supplier_id == "":
        raise ValidationError("Order supplier is required")
    supplier_id = parse_id(supplier_id, "supplier_id")
    if isinstance(items, list) and items and isinstance(items[0], OrderItemInput):
        parsed_items = items
    else:
        parsed_items = parse_order_items(items)
    expected_dt = parse_optional_datetime(expected_date, "expected_date")

    def _op() -> int:
        if db.session.get(Supplier, supplier_id) is None:
            raise ValidationError(f"Supplier {supplier_id} not found")

        product_ids = {item.product_id for item in parsed_items}
        found = set(
            db.session.execute(select(Product.id).where(Product.id.in_(product_ids))).scalars()
        )
        missing = sorted(product_ids - found)
        if missing:
            raise ValidationError(f"Product {missing[0]} not found")

        order = Order(
            order_number=next_order_number(),
            supplier_id=supplier_id,
            status=STATUS_NOT_ASSIGNED,
            total_amount_cents=sum(i.quantity * i.unit_cost_cents for i in parsed_items),
            notes=notes,
            expected_date=expected_dt,
            bill_url=bill_url,
        )
        db.session.add(order)
        db.session.flush()

        for position, item in enumerate(parsed_items):
            db.session.add(PurchaseOrder(
                order_id=order.id,
                position=position,
                product_id=item.product_id,
                quantity=item.quantity,
                unit_cost_cents=item.unit_cost_cents,
                expiration_date=item.expiration_date,
                remaining_qte=item.quantity,
            ))
        db.session.flush()
        return order.id

    order_id = _in_transaction(_op)
    return get_order(order_id)


# =============================================================================
# Transitions
# =============================================================================

def assign_order(order_id: int, staff_id) -> Order:
    """
    not assigned -> assigned.

    Raises:
        ValidationError: staff_id missing
        NotFoundError: order or staff does not exist
        ConflictError: order already assigned (including a lost race)
        StateError: order is past assignment
    """
    if staff_id is None or staff_id == "":
        raise ValidationError("Staff ID is required")
    staff_id = parse_id(staff_id, "staff_id")

    def _op() -> None:
        staff = db.session.get(Staff, staff_id)
        if staff is None or not staff.is_active:
            raise NotFoundError(f"Staff {staff_id} not found")

        if compare_and_set(
            Order,
            order_id,
            expected={"status": STATUS_NOT_ASSIGNED},
            values={"status": STATUS_ASSIGNED, "staff_id": staff_id, "assigned_date": utcnow()},
        ):
            return

        current = _current_status(order_id)
        if current == STATUS_ASSIGNED:
            raise ConflictError(f"Order {order_id} is already assigned")
        raise _state_error(order_id, "assign", STATUS_NOT_ASSIGNED, current)

    _in_transaction(_op)
    return get_order(order_id)


def submit_for_review(
    order_id: int,
    *,
    bill_url: str | None,
    total_amount=None,
    submitted_by_staff_id: int | None = None,
) -> Order:
    """
    assigned -> pending_review. Stores the bill and who uploaded it; stock is
    NOT credited yet.

    total_amount, when given, replaces the creation total verbatim.
    """
    if not bill_url:
        raise ValidationError("Bill image is required")

    values = {
        "bill_url": bill_url,
        "pending_review_date": utcnow(),
        "submitted_by_staff_id": submitted_by_staff_id,
    }
    if total_amount is not None and total_amount != "":
        values["total_amount_cents"] = parse_money_cents(total_amount, "total_amount")

    def _op() -> None:
        _transition(
            order_id,
            action="submit for review",
            expected=STATUS_ASSIGNED,
            target=STATUS_PENDING_REVIEW,
            values=values,
        )

    _in_transaction(_op)
    return get_order(order_id)


def verify_order(order_id: int, *, verified_by_staff_id: int | None = None) -> Order:
    """
    pending_review -> verified, crediting stock for every batch.

    The status flip and the stock increments commit together. A retried or
    concurrent verify finds the order no longer pending_review and raises
    StateError without touching stock.

    The verifier must differ from the staff member who submitted the bill;
    the check is part of the same conditional UPDATE. A self-verification
    raises ConflictError and leaves the order in pending_review.
    """
    def _op() -> None:
        bill_url = db.session.execute(
            select(Order.bill_url).where(Order.id == order_id)
        ).scalar_one_or_none()

        maker_checker = ()
        if verified_by_staff_id is not None:
            maker_checker = (
                or_(
                    Order.submitted_by_staff_id.is_(None),
                    Order.submitted_by_staff_id != verified_by_staff_id,
                ),
            )
        moved = compare_and_set(
            Order,
            order_id,
            expected={"status": STATUS_PENDING_REVIEW},
            values={
                "status": STATUS_VERIFIED,
                "verified_date": utcnow(),
                "verified_by_staff_id": verified_by_staff_id,
            },
            extra_conditions=maker_checker,
        )
        if not moved:
            current = _current_status(order_id)
            if current == STATUS_PENDING_REVIEW:
                raise ConflictError(
                    f"Order {order_id} must be verified by someone other than the staff member who submitted the bill"
                )
            raise _state_error(order_id, "verify", STATUS_PENDING_REVIEW, current)

        if not bill_url:
            raise ValidationError(f"Order {order_id} has no bill to verify")

        batches = db.session.execute(
            select(PurchaseOrder.product_id, PurchaseOrder.quantity)
            .where(PurchaseOrder.order_id == order_id)
            .order_by(PurchaseOrder.position)
        ).all()
        for batch in batches:
            increment_stock(batch.product_id, batch.quantity)

    _in_transaction(_op)
    return get_order(order_id)



def _mark_paid(order_id: int) -> None:
    _transition(
        order_id,
        action="mark as paid",
        expected=STATUS_VERIFIED,
        target=STATUS_PAID,
        values={"paid_date": utcnow()},
    )


def mark_paid(order_id: int) -> Order:
    """verified -> paid."""
    _in_transaction(lambda: _mark_paid(order_id))
    return get_order(order_id)


def _cancel(order_id: int, canceled_date) -> None:
    when = parse_optional_datetime(canceled_date, "canceled_date") or utcnow()
    _transition(
        order_id,
        action="cancel",
        expected=CANCELABLE_STATUSES,
        target=STATUS_CANCELED,
        values={"canceled_date": when},
    )


def cancel_order(order_id: int, canceled_date=None) -> Order:
    """
    not assigned | assigned | pending_review -> canceled.

    Verified orders already credited stock and cannot be canceled.
    """
    _in_transaction(lambda: _cancel(order_id, canceled_date))
    return get_order(order_id)


def _update_details(order_id: int, *, notes=_UNSET, expected_date=_UNSET) -> None:
    values = {}
    if notes is not _UNSET:
        values["notes"] = notes
    if expected_date is not _UNSET:
        values["expected_date"] = parse_optional_datetime(expected_date, "expected_date")
    if not values:
        return
    if not compare_and_set(Order, order_id, expected={}, values=values):
        raise NotFoundError(f"Order {order_id} not found")


def update_expected_date(order_id: int, expected_date) -> Order:
    """Replace expected_date in any state."""
    _in_transaction(lambda: _update_details(order_id, expected_date=expected_date))
    return get_order(order_id)


def update_order(
    order_id: int,
    *,
    status: str | None = None,
    notes=_UNSET,
    expected_date=_UNSET,
    canceled_date=None,
) -> Order:
    """
    Generic update used by PUT /api/orders/<id>.

    status may only be 'paid' or 'canceled' here; the other transitions have
    dedicated operations. The status change and the detail edits commit
    together or not at all.
    """
    if status:
        validate_status(status)
        if status not in (STATUS_PAID, STATUS_CANCELED):
            raise ValidationError(
                f"Status '{status}' cannot be set directly. Use the assign, submit-review or verify actions."
            )

    def _op() -> None:
        get_order(order_id)
        if status == STATUS_PAID:
            _mark_paid(order_id)
        elif status == STATUS_CANCELED:
            _cancel(order_id, canceled_date)
        _update_details(order_id, notes=notes, expected_date=expected_date)

    _in_transaction(_op)
    return get_order(order_id)
