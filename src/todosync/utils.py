from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union


# PUBLIC_INTERFACE
def pagination_envelope(
    items: Union[Sequence[Any], Iterable[Any]],
    total: int,
    limit: int,
    offset: int,
) -> Dict[str, Any]:
    """
    Build a standard pagination envelope for list endpoints.

    Args:
        items: The list/iterable of items for the current page.
        total: Total number of items that match the query (ignoring pagination).
        limit: The limit used for pagination.
        offset: The offset used for pagination.

    Returns:
        Dict with keys: items, total, limit, offset.
    """
    materialized: List[Any] = list(items) if not isinstance(items, list) else items
    return {
        "items": materialized,
        "total": int(total),
        "limit": int(max(limit, 0)),
        "offset": int(max(offset, 0)),
    }


# PUBLIC_INTERFACE
def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# PUBLIC_INTERFACE
def parse_timestamp(value: Union[None, str, date, datetime]) -> Optional[datetime]:
    """
    Normalize a timestamp from the editor, the API or a store row into an aware
    UTC datetime.

    - None and empty strings give None
    - dates are promoted to midnight UTC
    - ISO8601 strings are parsed; a trailing 'Z' is accepted

    Raises:
        ValueError: if a string is not ISO8601 or the type is unsupported.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        if s.endswith("Z") or s.endswith("z"):
            s = s[:-1] + "+00:00"
        try:
            return as_utc(datetime.fromisoformat(s))
        except ValueError:
            try:
                d = date.fromisoformat(s)
            except ValueError as e:
                raise ValueError(f"Invalid timestamp {value!r}; expected an ISO8601 date or datetime") from e
            return datetime(d.year, d.month, d.day, tzinfo=timezone.utc)
    raise ValueError(f"Invalid timestamp type {type(value).__name__}")


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """ISO8601 rendering used for document attributes and wire payloads."""
    return None if value is None else as_utc(value).isoformat()
