# backend/procure/routes/system.py
"""
System health endpoint.
"""

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from ..extensions import db
from .. import bootstrap
from ..services import expiration_scheduler

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2)}
    except Exception:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    ok = database["status"] == "healthy"
    return jsonify({
        "ok": ok,
        "database": database,
        "startup": bootstrap.get_state().value,
        "sweep_running": expiration_scheduler.is_sweep_running(),
    }), (200 if ok else 503)
