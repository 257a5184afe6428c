from __future__ import annotations
"""Reusable validation helpers for request payloads.

Keeps choice / required-field / timestamp checks in one place so every service
raises the same ValidationError shape.
"""
from datetime import datetime
from typing import Any, Iterable, Mapping, Optional
from fmc.errors import ValidationError
from fmc.utils.clock import as_utc


def validate_choice(value: Any, allowed: Iterable[str], field_name: str) -> str:
    """Validate that value is inside allowed.

    Returns the value (to enable inline usage) or raises ValidationError.
    """
    allowed = tuple(allowed)
    if value not in allowed:
        raise ValidationError(f"{field_name} invalid", field=field_name, allowed=list(allowed))
    return value


def require_fields(data: Mapping[str, Any], *names: str) -> None:
    missing = [n for n in names if data.get(n) in (None, '')]
    if missing:
        raise ValidationError(f"{', '.join(missing)} required", missing=missing)


def coerce_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be int", field=field_name)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be int", field=field_name)


def parse_timestamp(value: Optional[str], field_name: str) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp (``Z`` suffix accepted) into UTC; None passes through."""
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    try:
        return as_utc(datetime.fromisoformat(str(value).replace('Z', '+00:00')))
    except ValueError:
        raise ValidationError(f"{field_name} must be an ISO 8601 timestamp", field=field_name)


def isoformat(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return as_utc(dt).isoformat().replace('+00:00', 'Z')

__all__ = ['validate_choice', 'require_fields', 'coerce_int', 'parse_timestamp', 'isoformat']
