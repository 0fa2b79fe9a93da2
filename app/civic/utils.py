from __future__ import annotations

from datetime import datetime, timezone

from flask import request

from app.civic.errors import ValidationError


def utcnow() -> datetime:
    """Naive UTC wall clock, matching how timestamps are stored."""
    return datetime.utcnow()


def parse_datetime(value: datetime | str | None, *, field: str) -> datetime | None:
    """Parse an ISO-8601 value into a naive UTC datetime."""
    if value is None:
        return None
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(raw)
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 datetime.") from None
    if not isinstance(value, datetime):
        raise ValidationError(f"{field} must be a datetime.")
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def iso_utc(value: datetime | None) -> str | None:
    """Format a naive UTC datetime as ISO-8601 with millisecond precision and a Z suffix."""
    if value is None:
        return None
    return value.isoformat(timespec="milliseconds") + "Z"


def clean_str(value: object) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def parse_bool(value: object, *, default: bool | None = None) -> bool | None:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    raw = str(value).strip().lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    return default


def json_body() -> dict:
    """Request JSON object, or an empty dict. Non-object bodies are a validation error."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")
    return data
