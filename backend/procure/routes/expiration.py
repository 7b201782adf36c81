# Overview: Flask API routes for the expiration sweep; status, manual run and expiring-soon listing.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_admin, require_staff
from ..errors import ProcureError
from ..extensions import db
from ..services import expiration_scheduler, expiration_service
from ..validation import parse_int


expiration_bp = Blueprint("expiration", __name__, url_prefix="/api/expiration")


@expiration_bp.get("/status")
@require_admin
def sweep_status_route():
    return jsonify(expiration_scheduler.sweep_status())


@expiration_bp.post("/run")
@require_admin
def run_sweep_route():
    """
    Run one sweep immediately and report what it did.

    Shares the scheduler run lock, so it never overlaps a timed sweep.

    Returns:
        {found, expired, expired_batch_ids, skipped_batch_ids, failed_batch_ids}
    """
    try:
        result = expiration_scheduler.run_sweep_now(current_app._get_current_object())
        return jsonify(result.to_dict())
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to run expiration sweep")
        return jsonify({"error": "Internal server error"}), 500


@expiration_bp.post("/start")
@require_admin
def start_sweep_route():
    """Request body (optional): {"interval_seconds": 3600}"""
    data = request.get_json(silent=True) or {}
    try:
        interval = data.get("interval_seconds")
        if interval is not None:
            interval = parse_int(interval, "interval_seconds", minimum=1)
        started = expiration_scheduler.start_sweep(
            current_app._get_current_object(),
            interval_seconds=interval,
        )
        return jsonify({"started": started, **expiration_scheduler.sweep_status()})
    except ProcureError as e:
        return jsonify(e.to_dict()), e.status_code


@expiration_bp.post("/stop")
@require_admin
def stop_sweep_route():
    stopped = expiration_scheduler.stop_sweep()
    return jsonify({"stopped": stopped, **expiration_scheduler.sweep_status()})


@expiration_bp.get("/expiring")
@require_staff
def expiring_soon_route():
    """
    Batches expiring within N days (default 7): ?days=N

    Returns:
        {batches: PurchaseOrder[] with product, days: int}
    """
    try:
        days = parse_int(
            request.args.get("days", str(current_app.config.get("EXPIRING_SOON_DEFAULT_DAYS", 7))),
            "days",
            minimum=0,
        )
        batches = expiration_service.get_batches_expiring_within(days)
        return jsonify({
            "days": days,
            "batches": [b.to_dict(include_product=True) for b in batches],
        })
    except ProcureError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to list expiring batches")
        return jsonify({"error": "Internal server error"}), 500
