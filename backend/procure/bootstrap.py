# Overview: Explicit, idempotent startup sequence for the process entry point.

from __future__ import annotations

import enum
import threading

from flask import Flask
from sqlalchemy import text

from .extensions import db
from .services import expiration_scheduler


class StartupState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


_state = StartupState.UNINITIALIZED
_state_lock = threading.Lock()


def get_state() -> StartupState:
    return _state


def _set_state(state: StartupState) -> None:
    global _state
    _state = state


def initialize(app: Flask) -> StartupState:
    """
    Bring the process to READY:
    1. verify the database answers
    2. start the expiration sweep timer (when enabled)

    Calling again while INITIALIZING or READY does nothing. After FAILED the
    sequence is retried.
    """
    with _state_lock:
        if _state in (StartupState.INITIALIZING, StartupState.READY):
            return _state
        _set_state(StartupState.INITIALIZING)

    app.logger.info("Startup: initializing")
    try:
        with app.app_context():
            db.session.execute(text("SELECT 1"))
            db.session.remove()

        if app.config.get("EXPIRATION_SWEEP_ENABLED", True):
            expiration_scheduler.start_sweep(app)
        else:
            app.logger.info("Startup: expiration sweep disabled by configuration")
    except Exception:
        app.logger.exception("Startup failed")
        with _state_lock:
            _set_state(StartupState.FAILED)
        return StartupState.FAILED

    with _state_lock:
        _set_state(StartupState.READY)
    app.logger.info("Startup: ready")
    return StartupState.READY


def reset() -> None:
    """Stop background work and return to UNINITIALIZED (tests, reloads)."""
    expiration_scheduler.stop_sweep()
    with _state_lock:
        _set_state(StartupState.UNINITIALIZED)
