# Overview: Bill/receipt image storage on the local upload folder.

from __future__ import annotations

import os
import uuid

from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from ..errors import DependencyError, ValidationError


ALLOWED_EXTENSIONS = {"png", "jpg", "jpeg", "webp", "gif", "pdf"}
ORDER_BILL_SUBDIR = "orders"


def _upload_root() -> str:
    return current_app.config["UPLOAD_FOLDER"]


def save_order_bill(file: FileStorage | None) -> str:
    """
    Persist an uploaded bill image and return its public path
    (/uploads/orders/<name>).

    Raises:
        ValidationError: no file, or unsupported extension
        DependencyError: the upload folder is not writable
    """
    if file is None or not file.filename:
        raise ValidationError("Bill image is required")

    original = secure_filename(file.filename)
    ext = original.rsplit(".", 1)[-1].lower() if "." in original else ""
    if ext not in ALLOWED_EXTENSIONS:
        raise ValidationError(
            f"Unsupported bill file type. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
        )

    stored_name = f"{uuid.uuid4().hex}.{ext}"
    target_dir = os.path.join(_upload_root(), ORDER_BILL_SUBDIR)
    try:
        os.makedirs(target_dir, exist_ok=True)
        file.save(os.path.join(target_dir, stored_name))
    except OSError as exc:
        current_app.logger.exception("Failed to store bill file %s", original)
        raise DependencyError("Bill storage unavailable") from exc

    return f"/uploads/{ORDER_BILL_SUBDIR}/{stored_name}"


def discard_order_bill(public_path: str | None) -> None:
    """Remove a stored bill whose order transition did not commit."""
    if not public_path or not public_path.startswith(f"/uploads/{ORDER_BILL_SUBDIR}/"):
        return
    name = public_path.rsplit("/", 1)[-1]
    path = os.path.join(_upload_root(), ORDER_BILL_SUBDIR, name)
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError:
        current_app.logger.warning("Could not remove orphaned bill %s", path)
