# Overview: Domain error taxonomy shared by services and routes.

from __future__ import annotations


class ProcureError(Exception):
    """Base for every business error; carries the HTTP status routes answer with."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message}


class ValidationError(ProcureError):
    """400-level input problem (missing supplier, empty items, missing bill...)."""


class NotFoundError(ProcureError):
    """Referenced order/product/batch/supplier/staff does not exist."""

    status_code = 404


class StateError(ProcureError):
    """
    Requested transition is illegal from the current status.

    The message always names the current status.
    """

    def __init__(self, message: str, *, current_status: str | None = None):
        super().__init__(message)
        self.current_status = current_status

    def to_dict(self) -> dict:
        payload = super().to_dict()
        if self.current_status is not None:
            payload["status"] = self.current_status
        return payload


class ConflictError(ProcureError):
    """A concurrent or repeated transition already applied (e.g., double-assign)."""


class DependencyError(ProcureError):
    """Underlying store or bill storage unavailable."""

    status_code = 500
