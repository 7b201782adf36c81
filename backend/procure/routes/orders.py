# Overview: Flask API routes for purchase orders; parses input and returns JSON responses.

"""
Purchase Order Routes

ACCESS:
- All routes require a staff caller (X-Staff-Id).
- Create, assign, verify, pay, cancel, generic update and analytics are admin-only.
- Non-admin staff only see and act on orders assigned to them; other orders
  answer 404.

Status transitions:
    POST /<id>/assign         not assigned -> assigned
    POST /<id>/submit-review  assigned -> pending_review   (multipart, bill image)
    POST /<id>/verify         pending_review -> verified   (credits stock)
    POST /<id>/pay            verified -> paid
    POST /<id>/cancel         not assigned | assigned | pending_review -> canceled
"""

import json

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_staff
from ..errors import ProcureError, ValidationError
from ..extensions import db
from ..services import order_service, order_stats_service
from ..services.bill_storage import discard_order_bill, save_order_bill
from ..validation import parse_int, pick


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")

BILL_FIELDS = ("image", "bill")


def _request_data() -> dict:
    """JSON body, or form fields for multipart requests (items as a JSON string)."""
    if request.is_json:
        return request.get_json(silent=True) or {}

    data = request.form.to_dict()
    raw_items = data.get("items")
    if isinstance(raw_items, str):
        try:
            data["items"] = json.loads(raw_items)
        except ValueError:
            raise ValidationError("items must be a JSON array")
    return data


def _bill_file():
    for field in BILL_FIELDS:
        file = request.files.get(field)
        if file is not None and file.filename:
            return file
    return None


def _error_response(exc: ProcureError):
    db.session.rollback()
    return jsonify(exc.to_dict()), exc.status_code


def _unexpected(message: str):
    db.session.rollback()
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500


def _order_response(order, message: str, status_code: int = 200):
    return jsonify({"message": message, "order": order.to_dict(include_items=True)}), status_code


@orders_bp.post("")
@require_admin
def create_order_route():
    """
    Create a purchase order.

    Request body (JSON or multipart with optional "image" bill file):
    {
        "supplier_id": 1,                     // required
        "items": [                            // required, >= 1
            {"product_id": 1, "quantity": 10, "unit_cost": "5.00",
             "expiration_date": "2026-12-31"}
        ],
        "notes": "...",                       // optional
        "expected_date": "2026-11-01"         // optional
    }

    Returns:
        201: {message, order}
        400: Validation error
    """
    bill_url = None
    try:
        data = _request_data()
        file = _bill_file()
        if file is not None:
            bill_url = save_order_bill(file)

        order = order_service.create_order(
            supplier_id=pick(data, "supplier_id", "supplierId"),
            items=pick(data, "items"),
            notes=pick(data, "notes"),
            expected_date=pick(data, "expected_date", "expectedDate"),
            bill_url=bill_url,
        )
        return _order_response(order, "Order created successfully", 201)
    except ProcureError as e:
        discard_order_bill(bill_url)
        return _error_response(e)
    except Exception:
        discard_order_bill(bill_url)
        return _unexpected("Failed to create order")


@orders_bp.get("")
@require_staff
def list_orders_route():
    """
    List orders.

    Query parameters:
    - order_number / orderNumber: case-insensitive substring search
    - staff_id / staffId: filter by assignee (admins only; staff always see their own)
    - status: one of the order statuses
    - supplier_ids / supplierIds: comma list or repeated parameter
    - sort_by / sortBy: field name (default created_at)
    - order: asc | desc (default desc)
    - page (default 1), limit (default 10)

    Returns:
        {orders: Order[], total: int, pages: int}
    """
    args = request.args
    try:
        supplier_ids = args.getlist("supplier_ids") or args.getlist("supplierIds") or None
        staff_id = pick(args, "staff_id", "staffId")

        result = order_service.list_orders(
            staff=g.current_staff,
            staff_id=parse_int(staff_id, "staff_id", minimum=1) if staff_id else None,
            status=args.get("status") or None,
            supplier_ids=supplier_ids,
            order_number=pick(args, "order_number", "orderNumber"),
            sort_by=pick(args, "sort_by", "sortBy"),
            sort_order=args.get("order"),
            page=parse_int(args.get("page", "1"), "page"),
            limit=parse_int(args.get("limit", "10"), "limit"),
        )
        return jsonify({
            "orders": [o.to_dict(include_items=True) for o in result.orders],
            "total": result.total,
            "pages": result.pages,
            "page": result.page,
            "limit": result.limit,
        })
    except ProcureError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("Failed to list orders")


@orders_bp.get("/stats")
@require_staff
def order_stats_route():
    """Counts per status and this month's paid total, scoped to the caller."""
    try:
        return jsonify(order_stats_service.get_order_stats(staff=g.current_staff))
    except ProcureError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("Failed to fetch order statistics")


@orders_bp.get("/analytics")
@require_admin
def order_analytics_route():
    """Summary plus per-period series. ?period=week|month|year (default month)."""
    try:
        period = request.args.get("period", "month")
        return jsonify(order_stats_service.get_order_analytics(period=period))
    except ProcureError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("Failed to fetch order analytics")


@orders_bp.get("/<int:order_id>")
@require_staff
def get_order_route(order_id: int):
    try:
        order = order_service.get_order_for_staff(order_id, g.current_staff)
        return jsonify({"order": order.to_dict(include_items=True)})
    except ProcureError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("Failed to load order")


@orders_bp.post("/<int:order_id>/assign")
@require_admin
def assign_order_route(order_id: int):
    """
    Assign an order to a staff member.

    Request body: {"staff_id": 3}

    Returns:
        200: {message, order}
        400: staff_id missing, order already assigned, or past assignment
        404: order or staff not found
    """
    data = request.get_json(silent=True) or {}
    try:
        order = order_service.assign_order(order_id, pick(data, "staff_id", "staffId"))
        return _order_response(order, "Order assigned successfully")
    except ProcureError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("Failed to assign order")


@orders_bp.post("/<int:order_id>/submit-review")
@require_staff
def submit_review_route(order_id: int):
    """
    Upload the bill for an assigned order (multipart: "image", optional "total_amount").

    The assigned staff member or an admin may submit. Stock is not credited
    until a different admin verifies.
    """
    bill_url = None
    try:
        order_service.get_order_for_staff(order_id, g.current_staff)
        data = _request_data()

        file = _bill_file()
        if file is None:
            raise ValidationError("Bill image is required")
        bill_url = save_order_bill(file)

        order = order_service.submit_for_review(
            order_id,
            bill_url=bill_url,
            total_amount=pick(data, "total_amount", "totalAmount"),
            submitted_by_staff_id=g.current_staff.id,
        )
        return _order_response(order, "Order submitted for review")
    except ProcureError as e:
        discard_order_bill(bill_url)
        return _error_response(e)
    except Exception:
        discard_order_bill(bill_url)
        return _unexpected("Failed to submit order for review")


@orders_bp.post("/<int:order_id>/verify")
@require_admin
def verify_order_route(order_id: int):
    """
    Verify the uploaded bill and credit stock for every batch (exactly once).

    Returns 400 when the caller is the one who submitted the bill.
    """
    try:
        order = order_service.verify_order(order_id, verified_by_staff_id=g.current_staff.id)
        return _order_response(order, "Order verified successfully")
    except ProcureError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("Failed to verify order")


@orders_bp.post("/<int:order_id>/pay")
@require_admin
def pay_order_route(order_id: int):
    try:
        order = order_service.mark_paid(order_id)
        return _order_response(order, "Order marked as paid")
    except ProcureError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("Failed to mark order as paid")


@orders_bp.post("/<int:order_id>/cancel")
@require_admin
def cancel_order_route(order_id: int):
    """Request body (optional): {"canceled_date": "2026-10-19T10:00:00Z"}"""
    data = request.get_json(silent=True) or {}
    try:
        order = order_service.cancel_order(order_id, pick(data, "canceled_date", "canceledDate"))
        return _order_response(order, "Order canceled")
    except ProcureError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("Failed to cancel order")


@orders_bp.patch("/<int:order_id>/expected-date")
@require_staff
def update_expected_date_route(order_id: int):
    """Request body: {"expected_date": "2026-11-01" | null}"""
    data = request.get_json(silent=True) or {}
    try:
        order_service.get_order_for_staff(order_id, g.current_staff)
        order = order_service.update_expected_date(order_id, pick(data, "expected_date", "expectedDate"))
        return _order_response(order, "Expected date updated")
    except ProcureError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("Failed to update expected date")


@orders_bp.put("/<int:order_id>")
@require_admin
def update_order_route(order_id: int):
    """
    Generic update.

    Request body (all optional):
    {
        "status": "paid" | "canceled",
        "notes": "...",
        "expected_date": "...",
        "canceled_date": "..."
    }
    """
    try:
        data = _request_data()
        kwargs = {}
        if "notes" in data:
            kwargs["notes"] = data["notes"]
        for key in ("expected_date", "expectedDate"):
            if key in data:
                kwargs["expected_date"] = data[key]
                break

        order = order_service.update_order(
            order_id,
            status=pick(data, "status"),
            canceled_date=pick(data, "canceled_date", "canceledDate"),
            **kwargs,
        )
        return _order_response(order, "Order updated successfully")
    except ProcureError as e:
        return _error_response(e)
    except Exception:
        return _unexpected("Failed to update order")
