from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from procure.errors import ValidationError
from procure.time_utils import parse_iso_datetime


# Maximum money value: 9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999


def pick(data: dict, *keys: str, default: Any = None) -> Any:
    """First present key wins; accepts snake_case and the dashboard's camelCase."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def parse_int(value: Any, field: str, *, minimum: int | None = None) -> int:
    # Reject floats, bools and scientific notation; accept plain digit strings
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be an integer")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    return result


def parse_id(value: Any, field: str) -> int:
    if value is None or value == "":
        raise ValidationError(f"{field} is required")
    return parse_int(value, field, minimum=1)


def parse_money_cents(value: Any, field: str) -> int:
    """
    "12.5" / 12.5 / 12 -> 1250. Rounded half-up to the cent, non-negative.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number")

    cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents < 0:
        raise ValidationError(f"{field} cannot be negative")
    if cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} exceeds maximum allowed amount")
    return cents


def parse_optional_datetime(value: Any, field: str) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        # Stored datetimes are naive UTC
        if value.tzinfo is None:
            return value
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    if isinstance(value, str):
        try:
            return parse_iso_datetime(value)
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 datetime")
    raise ValidationError(f"{field} must be an ISO-8601 datetime")


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ("1", "true", "yes", "on")
