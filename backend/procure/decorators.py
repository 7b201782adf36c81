# Overview: Caller identity decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import Staff


STAFF_HEADER = "X-Staff-Id"


def _resolve_staff() -> Staff | None:
    raw = request.headers.get(STAFF_HEADER, "").strip()
    if not raw.isdigit():
        return None
    staff = db.session.get(Staff, int(raw))
    if staff is None or not staff.is_active:
        return None
    return staff


def require_staff(f):
    """
    Resolve the caller from the X-Staff-Id header.

    Sets g.current_staff. Returns 401 when the header is missing or does not
    name an active staff member.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        staff = _resolve_staff()
        if staff is None:
            return jsonify({"error": "Authentication required"}), 401
        g.current_staff = staff
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """
    require_staff + admin role. Returns 403 for non-admin staff.
    """
    @wraps(f)
    @require_staff
    def decorated_function(*args, **kwargs):
        if not g.current_staff.is_admin:
            return jsonify({"error": "Admin access required"}), 403
        return f(*args, **kwargs)

    return decorated_function
