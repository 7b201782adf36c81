# Overview: Process-wide timer that runs the expiration sweep.

"""
Expiration Scheduler

One background thread per process runs run_sweep_once() every
interval_seconds inside an application context. start() while running is a
no-op, so the sweep is never doubled inside one process.

Across processes the sweep is still correct (batch expiry is a conditional
update), but only one deployment should enable the timer to avoid wasted
scans: set EXPIRATION_SWEEP_ENABLED=false on the others.
"""

from __future__ import annotations

import threading

from flask import Flask

from ..extensions import db
from . import expiration_service


class ExpirationScheduler:
    def __init__(self):
        self._lock = threading.Lock()
        self._run_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._app: Flask | None = None
        self.interval_seconds: int | None = None

    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def start(self, app: Flask, *, interval_seconds: int | None = None, run_immediately: bool = True) -> bool:
        """Start the timer. Returns False when it was already running."""
        with self._lock:
            if self.is_running():
                return False

            interval = interval_seconds or app.config.get("EXPIRATION_SWEEP_INTERVAL_SECONDS", 3600)
            if interval <= 0:
                raise ValueError("interval_seconds must be positive")

            self._app = app
            self.interval_seconds = interval
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._loop,
                args=(self._stop_event, run_immediately),
                name="expiration-sweep",
                daemon=True,
            )
            self._thread.start()

        app.logger.info("Expiration sweep scheduled every %s seconds", interval)
        return True

    def stop(self, timeout: float | None = 5.0) -> bool:
        """Stop the timer. Returns False when it was not running."""
        with self._lock:
            thread = self._thread
            if thread is None:
                return False
            self._stop_event.set()
            self._thread = None

        thread.join(timeout)
        if self._app is not None:
            self._app.logger.info("Expiration sweep stopped")
        return True

    def run_now(self, app: Flask):
        """Run one sweep synchronously in its own application context."""
        with self._run_lock:
            with app.app_context():
                try:
                    return expiration_service.run_sweep_once()
                finally:
                    db.session.remove()

    def _loop(self, stop_event: threading.Event, run_immediately: bool) -> None:
        app = self._app
        if run_immediately and not stop_event.is_set():
            self._safe_run(app)
        while not stop_event.wait(self.interval_seconds):
            self._safe_run(app)

    def _safe_run(self, app: Flask) -> None:
        try:
            self.run_now(app)
        except Exception:
            # The timer thread must survive a failed run (e.g. database down)
            app.logger.exception("Expiration sweep run failed")


_scheduler = ExpirationScheduler()


def start_sweep(app: Flask, *, interval_seconds: int | None = None, run_immediately: bool = True) -> bool:
    return _scheduler.start(app, interval_seconds=interval_seconds, run_immediately=run_immediately)


def stop_sweep() -> bool:
    return _scheduler.stop()


def is_sweep_running() -> bool:
    return _scheduler.is_running()


def run_sweep_now(app: Flask):
    return _scheduler.run_now(app)


def sweep_status() -> dict:
    return {
        "is_running": _scheduler.is_running(),
        "interval_seconds": _scheduler.interval_seconds,
    }
