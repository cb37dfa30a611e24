from __future__ import annotations

from datetime import datetime
from typing import Any

from .errors import ValidationError
from .time_utils import parse_iso_datetime


def require_json(payload: Any) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("JSON body required")
    return payload


def require_fields(payload: dict, *fields: str) -> None:
    missing = [f for f in fields if payload.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"{', '.join(missing)} required", missing=missing)


def parse_int(value: Any, field: str) -> int:
    """
    Strict integer parsing for ids coming from JSON or headers.

    Rejects bools, floats, decimals and scientific notation ("1e3").
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", field=field)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer", field=field)
        if "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be a plain integer", field=field)
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", field=field)
    raise ValidationError(f"{field} must be an integer", field=field)


def parse_optional_int(value: Any, field: str) -> int | None:
    if value is None or value == "":
        return None
    return parse_int(value, field)


def parse_bool(value: Any, field: str) -> bool | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "1", "yes"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "0", "no"):
        return False
    raise ValidationError(f"{field} must be a boolean", field=field)


def parse_limit(value: Any, *, default: int = 50, maximum: int = 500) -> int:
    if value is None or value == "":
        return default
    limit = parse_int(value, "limit")
    if limit < 1:
        raise ValidationError("limit must be positive", field="limit")
    return min(limit, maximum)


def parse_optional_datetime(value: Any, field: str) -> datetime | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an ISO-8601 datetime", field=field)
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime", field=field, value=value)
