# backend/procure/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/procure.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///procure.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bill/receipt images. None -> <instance_path>/uploads (resolved in create_app)
    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER")
    MAX_CONTENT_LENGTH = int(os.environ.get("MAX_BILL_BYTES", str(10 * 1024 * 1024)))

    # Prefix for notification action URLs
    CLIENT_ORIGIN = os.environ.get("CLIENT_ORIGIN", "http://localhost:3000")

    ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
        if origin.strip()
    ]

    EXPIRATION_SWEEP_ENABLED = _env_bool("EXPIRATION_SWEEP_ENABLED", True)
    EXPIRATION_SWEEP_INTERVAL_SECONDS = int(os.environ.get("EXPIRATION_SWEEP_INTERVAL_SECONDS", "3600"))
    EXPIRING_SOON_DEFAULT_DAYS = 7
